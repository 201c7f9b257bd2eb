"""Mastery tracking.

Per-question mastery is a small state machine driven by the success rate
*after* the new attempt has been folded in:

    To Start  --correct-->                   Learning
    Learning  --correct, rate >= 75-->       Mastered
    Learning  --incorrect, rate < 40-->      To Start
    Mastered  --incorrect-->                 Learning

Every other (status, outcome) pair keeps the current status. Subtopic
progress uses the same running-rate idea at subtopic granularity.
"""

from dataclasses import replace
from typing import Sequence
import logging

from src.modules.adaptive.interface import QuestionResult
from src.modules.store.interface import (
    AttemptRecord,
    IPracticeStore,
    QuestionMastery,
    SubtopicProgress,
)
from src.shared.config import get_settings
from src.shared.constants import (
    MAX_MASTERY_LEVEL,
    MAX_SUCCESS_RATE,
    MIN_MASTERY_LEVEL,
    MIN_SUCCESS_RATE,
)
from src.shared.datetime_utils import utc_now
from src.shared.models import QuestionStatus

logger = logging.getLogger(__name__)


def fold_attempt(success_rate: float, attempt_count: int, is_correct: bool) -> tuple[float, int]:
    """Fold one attempt into a running success rate.

    Args:
        success_rate: Rate before the attempt (0-100)
        attempt_count: Attempts before this one
        is_correct: Outcome of the attempt

    Returns:
        (new_success_rate, new_attempt_count)
    """
    successes = round(success_rate * attempt_count / 100) + (1 if is_correct else 0)
    count = attempt_count + 1
    rate = successes / count * 100 if count else 0.0
    return max(MIN_SUCCESS_RATE, min(MAX_SUCCESS_RATE, rate)), count


def next_status(
    current: QuestionStatus,
    is_correct: bool,
    success_rate: float,
    mastery_threshold: float = 75.0,
    demotion_threshold: float = 40.0,
) -> QuestionStatus:
    """Decide the status after an attempt, given the updated success rate."""
    if current == QuestionStatus.TO_START:
        return QuestionStatus.LEARNING if is_correct else QuestionStatus.TO_START

    if current == QuestionStatus.LEARNING:
        if is_correct and success_rate >= mastery_threshold:
            return QuestionStatus.MASTERED
        if not is_correct and success_rate < demotion_threshold:
            return QuestionStatus.TO_START
        return QuestionStatus.LEARNING

    # Mastered never drops straight back to To Start
    return QuestionStatus.MASTERED if is_correct else QuestionStatus.LEARNING


def apply_attempt(
    mastery: QuestionMastery,
    is_correct: bool,
    mastery_threshold: float = 75.0,
    demotion_threshold: float = 40.0,
) -> QuestionMastery:
    """Return ``mastery`` with one more attempt folded in and its status updated."""
    rate, count = fold_attempt(mastery.success_rate, mastery.attempt_count, is_correct)
    status = next_status(mastery.status, is_correct, rate, mastery_threshold, demotion_threshold)
    return replace(mastery, success_rate=rate, attempt_count=count, status=status)


def aggregate_progress(
    progress: SubtopicProgress,
    results: Sequence[QuestionResult],
) -> SubtopicProgress:
    """Fold a batch of answers into subtopic progress.

    An empty batch returns the progress unchanged.
    """
    if not results:
        return progress

    attempted = progress.questions_attempted + len(results)
    correct = progress.questions_correct + sum(1 for r in results if r.is_correct)
    level = round(correct / attempted * 100) if attempted else 0

    return replace(
        progress,
        questions_attempted=attempted,
        questions_correct=correct,
        mastery_level=max(MIN_MASTERY_LEVEL, min(MAX_MASTERY_LEVEL, level)),
        last_attempt_at=utc_now(),
    )


class MasteryTracker:
    """Persists answers and the mastery state derived from them."""

    def __init__(
        self,
        store: IPracticeStore,
        mastery_threshold: float | None = None,
        demotion_threshold: float | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._mastery_threshold = (
            mastery_threshold if mastery_threshold is not None else settings.mastery_threshold
        )
        self._demotion_threshold = (
            demotion_threshold if demotion_threshold is not None else settings.demotion_threshold
        )

    async def record_answer(
        self,
        user_id: str,
        subtopic_id: int,
        question_id: int,
        question_type_id: int,
        is_correct: bool,
        session_id: int | None = None,
    ) -> QuestionMastery:
        await self._store.insert_attempt(
            user_id,
            subtopic_id,
            AttemptRecord(
                question_id=question_id,
                question_type_id=question_type_id,
                is_correct=is_correct,
                session_id=session_id,
            ),
        )

        current = await self._store.find_question_mastery(user_id, question_id)
        if current is None:
            current = QuestionMastery(user_id=user_id, question_id=question_id)
        updated = apply_attempt(
            current, is_correct, self._mastery_threshold, self._demotion_threshold
        )
        saved = await self._store.upsert_question_mastery(updated)

        if saved.status != current.status:
            logger.info(
                f"Question {question_id} for user {user_id}: "
                f"{current.status.value} -> {saved.status.value} "
                f"(rate={saved.success_rate:.1f}, attempts={saved.attempt_count})"
            )

        await self.update_progress(
            user_id, subtopic_id, [QuestionResult(question_id=question_id, is_correct=is_correct)]
        )
        return saved

    async def update_progress(
        self,
        user_id: str,
        subtopic_id: int,
        results: Sequence[QuestionResult],
    ) -> SubtopicProgress:
        progress = await self._store.find_subtopic_progress(user_id, subtopic_id)
        if progress is None:
            progress = SubtopicProgress(user_id=user_id, subtopic_id=subtopic_id)
        if not results:
            return progress
        return await self._store.upsert_subtopic_progress(aggregate_progress(progress, results))
