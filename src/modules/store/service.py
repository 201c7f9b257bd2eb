"""Store Service - In-memory implementation of the practice store.

Used by default (``FF_USE_DATABASE_PERSISTENCE`` off) and throughout the unit
tests. Records are copied on the way in and out so callers never share
mutable state with the store.
"""

from copy import deepcopy
from datetime import datetime
from typing import Sequence
import logging

from src.modules.store.interface import (
    AdaptivePreferences,
    AttemptRecord,
    IPracticeStore,
    LearningGap,
    QuestionMastery,
    SelectionLogEntry,
    Subtopic,
    SubtopicProgress,
)
from src.shared.models import GapStatus, Subject

logger = logging.getLogger(__name__)


class InMemoryPracticeStore(IPracticeStore):
    """Dictionary-backed practice store for one subject."""

    def __init__(self, subject: Subject = Subject.MATHS) -> None:
        self._subject = subject

        # In-memory storage (use the database store in production)
        self._preferences: dict[str, AdaptivePreferences] = {}
        self._progress: dict[tuple[str, int], SubtopicProgress] = {}
        self._attempts: dict[tuple[str, int], list[AttemptRecord]] = {}
        self._question_mastery: dict[tuple[str, int], QuestionMastery] = {}
        self._gaps: list[LearningGap] = []
        self._selection_log: list[SelectionLogEntry] = []
        self._subtopics: dict[int, Subtopic] = {}
        self._next_gap_id = 1

    @property
    def subject(self) -> Subject:
        return self._subject

    # --- Content seeding (owned by the content store in production) ---

    def add_subtopic(self, subtopic: Subtopic) -> None:
        self._subtopics[subtopic.id] = deepcopy(subtopic)

    # --- Preferences ---

    async def find_preferences(self, user_id: str) -> AdaptivePreferences | None:
        prefs = self._preferences.get(user_id)
        return deepcopy(prefs) if prefs else None

    async def upsert_preferences(self, preferences: AdaptivePreferences) -> AdaptivePreferences:
        self._preferences[preferences.user_id] = deepcopy(preferences)
        return deepcopy(preferences)

    # --- Progress ---

    async def find_subtopic_progress(
        self,
        user_id: str,
        subtopic_id: int,
    ) -> SubtopicProgress | None:
        progress = self._progress.get((user_id, subtopic_id))
        return deepcopy(progress) if progress else None

    async def upsert_subtopic_progress(self, progress: SubtopicProgress) -> SubtopicProgress:
        self._progress[(progress.user_id, progress.subtopic_id)] = deepcopy(progress)
        return deepcopy(progress)

    async def list_subtopic_progress_for(
        self,
        user_id: str,
        subtopic_ids: Sequence[int],
    ) -> list[SubtopicProgress]:
        return [
            deepcopy(self._progress[(user_id, sid)])
            for sid in subtopic_ids
            if (user_id, sid) in self._progress
        ]

    # --- Attempts ---

    async def insert_attempt(
        self,
        user_id: str,
        subtopic_id: int,
        attempt: AttemptRecord,
    ) -> None:
        self._attempts.setdefault((user_id, subtopic_id), []).append(deepcopy(attempt))

    async def list_attempts(self, user_id: str, subtopic_id: int) -> list[AttemptRecord]:
        return deepcopy(self._attempts.get((user_id, subtopic_id), []))

    async def list_recent_attempt_question_ids(
        self,
        user_id: str,
        subtopic_id: int,
        limit: int,
    ) -> list[int]:
        attempts = self._attempts.get((user_id, subtopic_id), [])
        # Insertion order breaks timestamp ties, newest insert wins
        ordered = sorted(
            enumerate(attempts),
            key=lambda pair: (pair[1].attempted_at, pair[0]),
            reverse=True,
        )
        return [attempt.question_id for _, attempt in ordered[:limit]]

    async def find_question_mastery(
        self,
        user_id: str,
        question_id: int,
    ) -> QuestionMastery | None:
        mastery = self._question_mastery.get((user_id, question_id))
        return deepcopy(mastery) if mastery else None

    async def upsert_question_mastery(self, mastery: QuestionMastery) -> QuestionMastery:
        self._question_mastery[(mastery.user_id, mastery.question_id)] = deepcopy(mastery)
        return deepcopy(mastery)

    # --- Learning gaps ---

    def _open_gaps(self, user_id: str) -> list[LearningGap]:
        return [g for g in self._gaps if g.user_id == user_id and g.is_open]

    async def find_active_gap(
        self,
        user_id: str,
        subtopic_id: int,
        concept: str,
    ) -> LearningGap | None:
        for gap in self._open_gaps(user_id):
            if gap.subtopic_id == subtopic_id and gap.concept_description == concept:
                return deepcopy(gap)
        return None

    async def list_active_gaps(self, user_id: str, subtopic_id: int) -> list[LearningGap]:
        return [deepcopy(g) for g in self._open_gaps(user_id) if g.subtopic_id == subtopic_id]

    async def list_active_gaps_for(
        self,
        user_id: str,
        subtopic_ids: Sequence[int],
    ) -> list[LearningGap]:
        wanted = set(subtopic_ids)
        return [deepcopy(g) for g in self._open_gaps(user_id) if g.subtopic_id in wanted]

    async def insert_gap(self, gap: LearningGap) -> LearningGap:
        existing = await self.find_active_gap(gap.user_id, gap.subtopic_id, gap.concept_description)
        if existing is not None:
            return existing

        stored = deepcopy(gap)
        stored.id = self._next_gap_id
        self._next_gap_id += 1
        self._gaps.append(stored)
        return deepcopy(stored)

    async def resolve_gap(self, gap_id: int, resolved_at: datetime) -> None:
        for gap in self._gaps:
            if gap.id == gap_id:
                gap.resolved_at = resolved_at
                gap.status = GapStatus.RESOLVED
                return
        logger.warning(f"resolve_gap: no gap with id {gap_id}")

    def all_gaps(self, user_id: str) -> list[LearningGap]:
        """Every gap of a user, resolved ones included."""
        return [deepcopy(g) for g in self._gaps if g.user_id == user_id]

    # --- Selection log ---

    async def insert_selection_log(self, entries: Sequence[SelectionLogEntry]) -> None:
        self._selection_log.extend(entries)

    async def list_selection_log(self, session_id: int) -> list[SelectionLogEntry]:
        return sorted(
            (e for e in self._selection_log if e.session_id == session_id),
            key=lambda e: e.sequence_position,
        )

    # --- Content ---

    async def list_subtopics(self, topic_id: int) -> list[Subtopic]:
        return sorted(
            (deepcopy(s) for s in self._subtopics.values() if s.topic_id == topic_id),
            key=lambda s: (s.sequence_number, s.id),
        )
