"""Adaptive Learning Service - the engine's entry points.

This service provides:
- Adaptivity preferences (lazy defaults, partial updates, on/off toggle)
- Adaptive question selection with a best-effort selection audit log
- Per-question mastery and subtopic progress tracking
- Learning gap detection and resolution
- Topic-level study recommendations

One instance serves one subject. Mutating entry points hold a keyed lock on
(subject, user, subtopic) so concurrent calls for the same user and subtopic
cannot interleave their reads and writes.
"""

from random import Random
from typing import Sequence
import logging

from src.modules.adaptive.gaps import GapDetector
from src.modules.adaptive.interface import (
    ConceptKey,
    IAdaptiveLearningService,
    PreferencesUpdate,
    QuestionRecord,
    QuestionResult,
    RecommendationResponse,
    SessionSummary,
)
from src.modules.adaptive.mastery import MasteryTracker
from src.modules.adaptive.preferences import PreferenceAccessor
from src.modules.adaptive.recommendations import RecommendationGenerator
from src.modules.adaptive.selection import QuestionSelector, SelectionLogFailureHook
from src.modules.store.interface import (
    AdaptivePreferences,
    IPracticeStore,
    LearningGap,
    QuestionMastery,
)
from src.shared.locks import IKeyedLock, KeyedLock, lock_key
from src.shared.models import Subject

logger = logging.getLogger(__name__)


class AdaptiveLearningService(IAdaptiveLearningService):
    """Adaptive learning engine for one subject.

    Args:
        store: Persistence store; its subject must match ``subject``
        subject: Practice area, defaults to the store's
        rng: Random source for the score tie-breaker
        concept_key: Maps an attempt to its concept, default question type
        on_log_failure: Called when selection-log entries cannot be written
        lock: Entry-point lock, default an in-process ``KeyedLock``
    """

    def __init__(
        self,
        store: IPracticeStore,
        subject: Subject | None = None,
        *,
        rng: Random | None = None,
        concept_key: ConceptKey | None = None,
        on_log_failure: SelectionLogFailureHook | None = None,
        lock: IKeyedLock | None = None,
    ) -> None:
        if subject is not None and subject != store.subject:
            raise ValueError(
                f"Store is bound to {store.subject.value}, not {subject.value}"
            )
        self._store = store
        self._subject = store.subject
        self._lock = lock or KeyedLock()

        self._preferences = PreferenceAccessor(store)
        self._mastery = MasteryTracker(store)
        self._gaps = GapDetector(store, concept_key=concept_key)
        self._selector = QuestionSelector(
            store,
            self._preferences,
            rng=rng,
            on_log_failure=on_log_failure,
        )
        self._recommendations = RecommendationGenerator(store)

    @property
    def subject(self) -> Subject:
        return self._subject

    def _key(self, user_id: str, subtopic_id: int | None = None) -> str:
        return lock_key(self._subject.value, user_id, subtopic_id)

    # --- Preferences ---

    async def get_or_create_preferences(self, user_id: str) -> AdaptivePreferences:
        async with self._lock.acquire(self._key(user_id)):
            return await self._preferences.get_or_create(user_id)

    async def save_preferences(
        self,
        user_id: str,
        update: PreferencesUpdate,
    ) -> AdaptivePreferences:
        async with self._lock.acquire(self._key(user_id)):
            return await self._preferences.save(user_id, update)

    async def toggle_enabled(self, user_id: str) -> bool:
        async with self._lock.acquire(self._key(user_id)):
            return await self._preferences.toggle_enabled(user_id)

    # --- Selection ---

    async def select_adaptive_questions(
        self,
        user_id: str,
        subtopic_id: int,
        candidates: Sequence[QuestionRecord],
        session_id: int | None = None,
    ) -> list[QuestionRecord]:
        if not candidates:
            return []
        async with self._lock.acquire(self._key(user_id, subtopic_id)):
            return await self._selector.select(user_id, subtopic_id, candidates, session_id)

    # --- Mastery ---

    async def record_answer(
        self,
        user_id: str,
        subtopic_id: int,
        question_id: int,
        question_type_id: int,
        is_correct: bool,
        session_id: int | None = None,
    ) -> QuestionMastery:
        async with self._lock.acquire(self._key(user_id, subtopic_id)):
            return await self._mastery.record_answer(
                user_id,
                subtopic_id,
                question_id,
                question_type_id,
                is_correct,
                session_id,
            )

    # --- Learning gaps ---

    async def detect_learning_gaps(self, user_id: str, subtopic_id: int) -> list[LearningGap]:
        async with self._lock.acquire(self._key(user_id, subtopic_id)):
            return await self._gaps.detect(user_id, subtopic_id)

    async def update_learning_gaps(
        self,
        user_id: str,
        subtopic_id: int,
        results: Sequence[QuestionResult],
    ) -> list[LearningGap]:
        async with self._lock.acquire(self._key(user_id, subtopic_id)):
            resolved, _ = await self._gaps.update(user_id, subtopic_id, results)
            return resolved

    async def complete_session(
        self,
        user_id: str,
        subtopic_id: int,
        results: Sequence[QuestionResult],
    ) -> SessionSummary:
        async with self._lock.acquire(self._key(user_id, subtopic_id)):
            resolved, opened = await self._gaps.update(user_id, subtopic_id, results)

        total = len(results)
        correct = sum(1 for r in results if r.is_correct)
        summary = SessionSummary(
            total_questions=total,
            correct_answers=correct,
            score=round(correct / total * 100) if total else 0,
            resolved_gaps=resolved,
            opened_gaps=opened,
        )
        logger.info(
            f"Session completed: user={user_id} subtopic={subtopic_id} "
            f"score={summary.score} ({correct}/{total}), "
            f"gaps resolved={len(resolved)} opened={len(opened)}"
        )
        return summary

    async def list_active_gaps(self, user_id: str, subtopic_id: int) -> list[LearningGap]:
        return await self._store.list_active_gaps(user_id, subtopic_id)

    # --- Recommendations ---

    async def get_adaptive_learning_recommendations(
        self,
        user_id: str,
        topic_id: int,
    ) -> RecommendationResponse:
        return await self._recommendations.recommend(user_id, topic_id)
