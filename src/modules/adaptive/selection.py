"""Adaptive question scoring and selection.

Each candidate is scored as

    difficulty_score * 2 + gap_score * 3 + recency_penalty
        + success_rate_score + random_factor

where ``difficulty_score = 10 - |difficulty - target|``, ``gap_score`` is the
severity of the first open gap listing the question as evidence, the recency
penalty is -15 for one of the last ten attempted questions,
``success_rate_score = 10 - rate / 10`` (a missing or zero rate counts as
50) and ``random_factor`` is drawn from
[0, 5). The best ``max_session_questions`` candidates are returned and, when
a session id is given, written to the selection log on a best-effort basis.
"""

from dataclasses import replace
from math import ceil
from random import Random
from typing import Callable, Sequence
import logging

from src.modules.adaptive.interface import QuestionRecord
from src.modules.adaptive.preferences import PreferenceAccessor
from src.modules.store.interface import IPracticeStore, LearningGap, SelectionLogEntry
from src.shared.config import get_settings
from src.shared.constants import (
    APPROPRIATE_DIFFICULTY_SCORE,
    DEFAULT_SUCCESS_RATE,
    DIFFICULTY_WEIGHT,
    GAP_WEIGHT,
    MASTERY_PER_DIFFICULTY_STEP,
    MAX_DIFFICULTY_LEVEL,
    MIN_DIFFICULTY_LEVEL,
    RANDOM_FACTOR_MAX,
    RECENT_ATTEMPT_PENALTY,
    WEAK_AREA_SCORE,
)
from src.shared.models import DifficultyPreference, SelectionReason

logger = logging.getLogger(__name__)

# Called with the write error and the entries that were not logged
SelectionLogFailureHook = Callable[[Exception, list[SelectionLogEntry]], None]


def log_selection_failure(error: Exception, entries: list[SelectionLogEntry]) -> None:
    """Default failure hook: report the lost audit entries at ERROR."""
    payload = [
        {
            "session_id": e.session_id,
            "question_id": e.question_id,
            "selection_reason": e.selection_reason.value,
            "difficulty_level": e.difficulty_level,
            "sequence_position": e.sequence_position,
        }
        for e in entries
    ]
    logger.error(f"Failed to write selection log ({type(error).__name__}: {error}): {payload}")


def _clamp_difficulty(level: int) -> int:
    return max(MIN_DIFFICULTY_LEVEL, min(MAX_DIFFICULTY_LEVEL, level))


def target_difficulty(mastery_level: int, preference: DifficultyPreference) -> int:
    """Difficulty (1-5) a user should be served at a given subtopic mastery.

    >>> target_difficulty(0, DifficultyPreference.BALANCED)
    1
    >>> target_difficulty(100, DifficultyPreference.CHALLENGING)
    5
    """
    base = _clamp_difficulty(ceil(mastery_level / MASTERY_PER_DIFFICULTY_STEP))
    if preference == DifficultyPreference.CHALLENGING:
        return min(MAX_DIFFICULTY_LEVEL, base + 1)
    if preference == DifficultyPreference.EASIER:
        return max(MIN_DIFFICULTY_LEVEL, base - 1)
    return base


def matching_gap(question_id: int, gaps: Sequence[LearningGap]) -> LearningGap | None:
    for gap in gaps:
        if question_id in gap.evidence_question_ids:
            return gap
    return None


def score_question(
    question: QuestionRecord,
    target: int,
    gaps: Sequence[LearningGap],
    recent_question_ids: set[int],
    random_factor: float,
) -> QuestionRecord:
    """Return a copy of ``question`` with score, reason and breakdown attached."""
    difficulty_score = 10 - abs(question.difficulty_level_id - target)

    gap = matching_gap(question.id, gaps)
    gap_score = gap.severity if gap else 0

    recency_penalty = RECENT_ATTEMPT_PENALTY if question.id in recent_question_ids else 0

    # Unattempted questions arrive with no rate or a rate of 0
    success_rate = question.success_rate or DEFAULT_SUCCESS_RATE
    success_rate_score = 10 - success_rate / 10

    if gap_score > 0:
        reason = SelectionReason.FILLING_LEARNING_GAP
    elif difficulty_score > APPROPRIATE_DIFFICULTY_SCORE:
        reason = SelectionReason.APPROPRIATE_DIFFICULTY
    elif success_rate_score > WEAK_AREA_SCORE:
        reason = SelectionReason.REINFORCING_WEAK_AREA
    else:
        reason = SelectionReason.BALANCED_SELECTION

    breakdown = {
        "difficulty": float(difficulty_score * DIFFICULTY_WEIGHT),
        "gap": float(gap_score * GAP_WEIGHT),
        "recency": float(recency_penalty),
        "success_rate": success_rate_score,
        "random": random_factor,
    }
    return replace(
        question,
        score=sum(breakdown.values()),
        selection_reason=reason,
        score_breakdown=breakdown,
    )


class QuestionSelector:
    """Scores, ranks and logs candidate questions for a session."""

    def __init__(
        self,
        store: IPracticeStore,
        preferences: PreferenceAccessor,
        rng: Random | None = None,
        on_log_failure: SelectionLogFailureHook | None = None,
        max_questions: int | None = None,
        recent_window: int | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._preferences = preferences
        self._rng = rng or Random()
        self._on_log_failure = on_log_failure or log_selection_failure
        self._max_questions = max_questions or settings.max_session_questions
        self._recent_window = recent_window or settings.recent_attempts_window

    async def select(
        self,
        user_id: str,
        subtopic_id: int,
        candidates: Sequence[QuestionRecord],
        session_id: int | None = None,
    ) -> list[QuestionRecord]:
        if not candidates:
            return []

        prefs = await self._preferences.get_or_create(user_id)
        if not prefs.enable_adaptive_learning:
            selected = [
                replace(q, selection_reason=SelectionReason.DEFAULT)
                for q in candidates[: self._max_questions]
            ]
            logger.info(
                f"Adaptive learning disabled for user {user_id}; "
                f"serving {len(selected)} of {len(candidates)} questions in order"
            )
            await self._write_log(session_id, selected)
            return selected

        progress = await self._store.find_subtopic_progress(user_id, subtopic_id)
        mastery_level = progress.mastery_level if progress else 0
        gaps = await self._store.list_active_gaps(user_id, subtopic_id)
        recent = set(
            await self._store.list_recent_attempt_question_ids(
                user_id, subtopic_id, self._recent_window
            )
        )

        target = target_difficulty(mastery_level, prefs.difficulty_preference)
        scored = [
            score_question(q, target, gaps, recent, self._rng.random() * RANDOM_FACTOR_MAX)
            for q in candidates
        ]
        for q in scored:
            logger.debug(f"Question {q.id} scored {q.score:.2f} ({q.selection_reason.value}): {q.score_breakdown}")

        # sorted() is stable, so equal scores keep candidate order
        selected = sorted(scored, key=lambda q: q.score, reverse=True)[: self._max_questions]

        logger.info(
            f"Selected {len(selected)} of {len(candidates)} questions for user {user_id}, "
            f"subtopic {subtopic_id} (mastery={mastery_level}, target={target}, "
            f"gaps={len(gaps)})"
        )
        await self._write_log(session_id, selected)
        return selected

    async def _write_log(self, session_id: int | None, selected: list[QuestionRecord]) -> None:
        if session_id is None or not selected:
            return

        entries = [
            SelectionLogEntry(
                session_id=session_id,
                question_id=q.id,
                selection_reason=q.selection_reason or SelectionReason.DEFAULT,
                difficulty_level=q.difficulty_level_id,
                sequence_position=position,
            )
            for position, q in enumerate(selected)
        ]
        try:
            await self._store.insert_selection_log(entries)
        except Exception as e:
            # Audit is best-effort; the selection is still served
            try:
                self._on_log_failure(e, entries)
            except Exception:
                logger.exception("Selection log failure hook raised")
