"""Learning gap detection and resolution.

A gap is opened when at least ``gap_min_incorrect`` incorrect attempts on a
subtopic share one concept. It is resolved once a later batch answers at least
``gap_resolution_min_results`` of its evidence questions with a correct
percentage of ``gap_resolution_threshold`` or better.
"""

from math import ceil
from typing import Sequence
import logging

from src.modules.adaptive.interface import ConceptKey, QuestionResult, question_type_concept
from src.modules.store.interface import AttemptRecord, IPracticeStore, LearningGap
from src.shared.config import get_settings
from src.shared.constants import MAX_GAP_SEVERITY, MIN_GAP_SEVERITY
from src.shared.datetime_utils import utc_now
from src.shared.models import GapStatus

logger = logging.getLogger(__name__)


def gap_severity(incorrect_count: int) -> int:
    """Severity for a concept with ``incorrect_count`` wrong answers: ceil(n/2), 1-10."""
    return max(MIN_GAP_SEVERITY, min(MAX_GAP_SEVERITY, ceil(incorrect_count / 2)))


def group_by_concept(
    attempts: Sequence[AttemptRecord],
    concept_key: ConceptKey,
) -> dict[str, list[AttemptRecord]]:
    """Group attempts by concept, keeping discovery order of concepts and attempts."""
    groups: dict[str, list[AttemptRecord]] = {}
    for attempt in attempts:
        groups.setdefault(concept_key(attempt), []).append(attempt)
    return groups


def evidence_accuracy(
    gap: LearningGap,
    results: Sequence[QuestionResult],
) -> tuple[int, float]:
    """Score a batch against a gap's evidence questions.

    Returns:
        (number of results on evidence questions, percentage of them correct)
    """
    evidence = set(gap.evidence_question_ids)
    relevant = [r for r in results if r.question_id in evidence]
    if not relevant:
        return 0, 0.0
    correct = sum(1 for r in relevant if r.is_correct)
    return len(relevant), correct / len(relevant) * 100


class GapDetector:
    """Opens and resolves learning gaps for one store."""

    def __init__(
        self,
        store: IPracticeStore,
        concept_key: ConceptKey | None = None,
        min_incorrect: int | None = None,
        resolution_min_results: int | None = None,
        resolution_threshold: float | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._concept_key = concept_key or question_type_concept
        self._min_incorrect = min_incorrect or settings.gap_min_incorrect
        self._resolution_min_results = (
            resolution_min_results or settings.gap_resolution_min_results
        )
        self._resolution_threshold = (
            resolution_threshold
            if resolution_threshold is not None
            else settings.gap_resolution_threshold
        )

    async def detect(self, user_id: str, subtopic_id: int) -> list[LearningGap]:
        """Open gaps for concepts with enough incorrect attempts.

        Concepts that already have an open gap are left alone, so repeated
        calls without new attempts change nothing.

        Returns:
            Gaps opened by this call
        """
        attempts = await self._store.list_attempts(user_id, subtopic_id)
        incorrect = [a for a in attempts if not a.is_correct]
        if len(incorrect) < self._min_incorrect:
            logger.debug(
                f"Gap detection skipped for user {user_id}, subtopic {subtopic_id}: "
                f"{len(incorrect)} incorrect of {len(attempts)} attempts"
            )
            return []

        opened: list[LearningGap] = []
        for concept, group in group_by_concept(incorrect, self._concept_key).items():
            if len(group) < self._min_incorrect:
                continue

            existing = await self._store.find_active_gap(user_id, subtopic_id, concept)
            if existing is not None:
                continue

            gap = await self._store.insert_gap(
                LearningGap(
                    user_id=user_id,
                    subtopic_id=subtopic_id,
                    concept_description=concept,
                    severity=gap_severity(len(group)),
                    evidence_question_ids=[a.question_id for a in group],
                    status=GapStatus.ACTIVE,
                )
            )
            opened.append(gap)
            logger.info(
                f"Learning gap opened: user={user_id} subtopic={subtopic_id} "
                f"concept={concept} severity={gap.severity} evidence={gap.evidence_question_ids}"
            )

        return opened

    async def resolve(
        self,
        user_id: str,
        subtopic_id: int,
        results: Sequence[QuestionResult],
    ) -> list[LearningGap]:
        """Resolve open gaps disproven by a batch of answers.

        Returns:
            Gaps resolved by this call
        """
        resolved: list[LearningGap] = []
        for gap in await self._store.list_active_gaps(user_id, subtopic_id):
            answered, accuracy = evidence_accuracy(gap, results)
            if answered < self._resolution_min_results or accuracy < self._resolution_threshold:
                continue

            resolved_at = utc_now()
            await self._store.resolve_gap(gap.id, resolved_at)
            gap.resolved_at = resolved_at
            gap.status = GapStatus.RESOLVED
            resolved.append(gap)
            logger.info(
                f"Learning gap resolved: user={user_id} subtopic={subtopic_id} "
                f"concept={gap.concept_description} ({answered} answers, {accuracy:.0f}% correct)"
            )

        return resolved

    async def update(
        self,
        user_id: str,
        subtopic_id: int,
        results: Sequence[QuestionResult],
    ) -> tuple[list[LearningGap], list[LearningGap]]:
        """Resolve gaps from a batch, then detect new ones unless it was flawless.

        Returns:
            (resolved gaps, opened gaps)
        """
        resolved = await self.resolve(user_id, subtopic_id, results)

        if results and all(r.is_correct for r in results):
            # A flawless batch cannot evidence a new gap
            return resolved, []

        opened = await self.detect(user_id, subtopic_id)
        return resolved, opened
