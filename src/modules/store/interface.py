"""Store Module - Persistence seam of the adaptive learning engine.

The engine reads and writes exclusively through ``IPracticeStore``. A store
instance is bound to one ``Subject``; nothing it returns ever belongs to
another subject.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, Sequence

from src.shared.constants import (
    DEFAULT_ADAPTIVITY_LEVEL,
    DEFAULT_ENABLE_ADAPTIVE_LEARNING,
)
from src.shared.datetime_utils import utc_now
from src.shared.models import (
    DifficultyPreference,
    GapStatus,
    QuestionStatus,
    SelectionReason,
    Subject,
)


@dataclass
class AdaptivePreferences:
    """A user's adaptivity settings for one subject."""

    user_id: str
    adaptivity_level: int = DEFAULT_ADAPTIVITY_LEVEL  # 1-10
    difficulty_preference: DifficultyPreference = DifficultyPreference.BALANCED
    enable_adaptive_learning: bool = DEFAULT_ENABLE_ADAPTIVE_LEARNING
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class SubtopicProgress:
    """Aggregate proficiency of a user on one subtopic."""

    user_id: str
    subtopic_id: int
    mastery_level: int = 0  # 0-100
    questions_attempted: int = 0
    questions_correct: int = 0
    last_attempt_at: datetime | None = None


@dataclass
class Subtopic:
    """Subtopic as listed under its topic."""

    id: int
    topic_id: int
    name: str
    sequence_number: int = 0


@dataclass
class AttemptRecord:
    """One answered question joined with its concept data."""

    question_id: int
    question_type_id: int
    is_correct: bool
    session_id: int | None = None
    attempted_at: datetime = field(default_factory=utc_now)


@dataclass
class QuestionMastery:
    """Per-user mastery state of one question."""

    user_id: str
    question_id: int
    attempt_count: int = 0
    success_rate: float = 0.0  # 0-100
    status: QuestionStatus = QuestionStatus.TO_START


@dataclass
class LearningGap:
    """An evidence-backed conceptual weakness on a subtopic."""

    user_id: str
    subtopic_id: int
    concept_description: str
    severity: int  # 1-10
    evidence_question_ids: list[int] = field(default_factory=list)
    status: GapStatus = GapStatus.ACTIVE
    detected_at: datetime = field(default_factory=utc_now)
    resolved_at: datetime | None = None
    id: int | None = None

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None


@dataclass(frozen=True)
class SelectionLogEntry:
    """Write-once audit record of one question served in a session."""

    session_id: int
    question_id: int
    selection_reason: SelectionReason
    difficulty_level: int
    sequence_position: int
    created_at: datetime = field(default_factory=utc_now)


class IPracticeStore(Protocol):
    """Interface for the engine's persistence store.

    Missing rows are reported as ``None`` or empty lists, never as errors.
    Implementations raise ``StorageError`` for transient failures.
    """

    @property
    def subject(self) -> Subject:
        """Practice area this store is bound to."""
        ...

    # --- Preferences ---

    async def find_preferences(self, user_id: str) -> AdaptivePreferences | None:
        ...

    async def upsert_preferences(self, preferences: AdaptivePreferences) -> AdaptivePreferences:
        ...

    # --- Progress ---

    async def find_subtopic_progress(
        self,
        user_id: str,
        subtopic_id: int,
    ) -> SubtopicProgress | None:
        ...

    async def upsert_subtopic_progress(self, progress: SubtopicProgress) -> SubtopicProgress:
        ...

    async def list_subtopic_progress_for(
        self,
        user_id: str,
        subtopic_ids: Sequence[int],
    ) -> list[SubtopicProgress]:
        ...

    # --- Attempts ---

    async def insert_attempt(
        self,
        user_id: str,
        subtopic_id: int,
        attempt: AttemptRecord,
    ) -> None:
        ...

    async def list_attempts(self, user_id: str, subtopic_id: int) -> list[AttemptRecord]:
        """All attempts for (user, subtopic), oldest first."""
        ...

    async def list_recent_attempt_question_ids(
        self,
        user_id: str,
        subtopic_id: int,
        limit: int,
    ) -> list[int]:
        """Question ids of the ``limit`` latest attempts, newest first."""
        ...

    async def find_question_mastery(
        self,
        user_id: str,
        question_id: int,
    ) -> QuestionMastery | None:
        ...

    async def upsert_question_mastery(self, mastery: QuestionMastery) -> QuestionMastery:
        ...

    # --- Learning gaps ---

    async def find_active_gap(
        self,
        user_id: str,
        subtopic_id: int,
        concept: str,
    ) -> LearningGap | None:
        ...

    async def list_active_gaps(self, user_id: str, subtopic_id: int) -> list[LearningGap]:
        ...

    async def list_active_gaps_for(
        self,
        user_id: str,
        subtopic_ids: Sequence[int],
    ) -> list[LearningGap]:
        ...

    async def insert_gap(self, gap: LearningGap) -> LearningGap:
        """Insert an open gap.

        If an open gap for the same concept already exists, that gap is
        returned unchanged instead.
        """
        ...

    async def resolve_gap(self, gap_id: int, resolved_at: datetime) -> None:
        ...

    # --- Selection log ---

    async def insert_selection_log(self, entries: Sequence[SelectionLogEntry]) -> None:
        ...

    async def list_selection_log(self, session_id: int) -> list[SelectionLogEntry]:
        """Entries of one session ordered by sequence position."""
        ...

    # --- Content ---

    async def list_subtopics(self, topic_id: int) -> list[Subtopic]:
        """Subtopics of a topic in listing order."""
        ...
