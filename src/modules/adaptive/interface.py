"""Adaptive Module - Question selection, mastery tracking and learning gaps."""

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Sequence

from pydantic import Field, field_validator

from src.modules.store.interface import (
    AdaptivePreferences,
    AttemptRecord,
    LearningGap,
    QuestionMastery,
)
from src.shared.constants import MAX_ADAPTIVITY_LEVEL, MIN_ADAPTIVITY_LEVEL
from src.shared.models import (
    BaseSchema,
    DifficultyPreference,
    QuestionStatus,
    RecommendationReason,
    SelectionReason,
)

# Maps an attempt to the concept it evidences. Defaults to the question type.
ConceptKey = Callable[[AttemptRecord], str]


def question_type_concept(attempt: AttemptRecord) -> str:
    return str(attempt.question_type_id)


@dataclass
class QuestionRecord:
    """A candidate question with the caller's per-user mastery fields.

    ``score``, ``selection_reason`` and ``score_breakdown`` are filled in by
    the scorer.
    """

    id: int
    subtopic_id: int
    difficulty_level_id: int  # 1-5
    question_type_id: int
    attempt_count: int = 0
    success_rate: float | None = None  # 0-100, None or 0 reads as 50
    status: QuestionStatus = QuestionStatus.TO_START
    score: float | None = None
    selection_reason: SelectionReason | None = None
    score_breakdown: dict[str, float] = field(default_factory=dict)


@dataclass
class QuestionResult:
    """Outcome of one answered question in a batch."""

    question_id: int
    is_correct: bool


@dataclass
class AdaptiveRecommendation:
    """A subtopic suggested for practice."""

    id: int
    name: str
    reason: RecommendationReason

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "reason": self.reason.value}


@dataclass
class RecommendationResponse:
    """Topic-level study recommendations."""

    recommended_subtopics: list[AdaptiveRecommendation]
    learning_gaps_count: int
    has_adaptive_learning_enabled: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for the calling layer."""
        return {
            "recommended_subtopics": [r.to_dict() for r in self.recommended_subtopics],
            "learning_gaps_count": self.learning_gaps_count,
            "has_adaptive_learning_enabled": self.has_adaptive_learning_enabled,
        }


@dataclass
class SessionSummary:
    """Outcome of a finished practice session."""

    total_questions: int
    correct_answers: int
    score: int  # 0-100
    resolved_gaps: list[LearningGap] = field(default_factory=list)
    opened_gaps: list[LearningGap] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "score": self.score,
            "resolved_gaps": [g.concept_description for g in self.resolved_gaps],
            "opened_gaps": [g.concept_description for g in self.opened_gaps],
        }


class PreferencesUpdate(BaseSchema):
    """Partial preference update; only fields explicitly set are merged."""

    adaptivity_level: int | None = Field(
        default=None,
        description="How strongly selection adapts (clamped to 1-10)",
    )

    difficulty_preference: DifficultyPreference | None = Field(
        default=None,
        description="Shift of the target difficulty",
    )

    enable_adaptive_learning: bool | None = Field(
        default=None,
        description="Turn adaptive selection on or off",
    )

    @field_validator("adaptivity_level")
    @classmethod
    def clamp_adaptivity_level(cls, v: int | None) -> int | None:
        """Clamp out-of-range levels instead of rejecting them."""
        if v is None:
            return None
        return max(MIN_ADAPTIVITY_LEVEL, min(MAX_ADAPTIVITY_LEVEL, v))


class IAdaptiveLearningService(Protocol):
    """Interface for the adaptive learning engine.

    Called by the session orchestrator at session start (preferences and
    selection), after each answer, at session end, and on topic overview.
    """

    async def get_or_create_preferences(self, user_id: str) -> AdaptivePreferences:
        """Get a user's preferences, inserting defaults if absent."""
        ...

    async def save_preferences(
        self,
        user_id: str,
        update: PreferencesUpdate,
    ) -> AdaptivePreferences:
        """Merge the supplied fields into the user's preferences."""
        ...

    async def toggle_enabled(self, user_id: str) -> bool:
        """Flip the enable flag and return the new value."""
        ...

    async def select_adaptive_questions(
        self,
        user_id: str,
        subtopic_id: int,
        candidates: Sequence[QuestionRecord],
        session_id: int | None = None,
    ) -> list[QuestionRecord]:
        """Score candidates and return the best ones for a session.

        Args:
            user_id: User the session belongs to
            subtopic_id: Subtopic being practised
            candidates: Questions available for the session
            session_id: When given, the selection is written to the audit log

        Returns:
            At most ``max_session_questions`` candidates, best first
        """
        ...

    async def record_answer(
        self,
        user_id: str,
        subtopic_id: int,
        question_id: int,
        question_type_id: int,
        is_correct: bool,
        session_id: int | None = None,
    ) -> QuestionMastery:
        """Store one answer and fold it into question mastery and progress."""
        ...

    async def detect_learning_gaps(self, user_id: str, subtopic_id: int) -> list[LearningGap]:
        """Open gaps for concepts with repeated incorrect attempts."""
        ...

    async def update_learning_gaps(
        self,
        user_id: str,
        subtopic_id: int,
        results: Sequence[QuestionResult],
    ) -> list[LearningGap]:
        """Resolve disproven gaps after a batch, then look for new ones."""
        ...

    async def complete_session(
        self,
        user_id: str,
        subtopic_id: int,
        results: Sequence[QuestionResult],
    ) -> SessionSummary:
        """Score a finished session and update its learning gaps."""
        ...

    async def list_active_gaps(
        self,
        user_id: str,
        subtopic_id: int,
    ) -> list[LearningGap]:
        ...

    async def get_adaptive_learning_recommendations(
        self,
        user_id: str,
        topic_id: int,
    ) -> RecommendationResponse:
        """Rank the subtopics of a topic by what to practise next."""
        ...
