"""Topic-level study recommendations."""

import logging

from src.modules.adaptive.interface import AdaptiveRecommendation, RecommendationResponse
from src.modules.store.interface import IPracticeStore
from src.shared.constants import (
    DEFAULT_ENABLE_ADAPTIVE_LEARNING,
    LOW_MASTERY_THRESHOLD,
    PROGRESSION_MASTERY_THRESHOLD,
)
from src.shared.models import RecommendationReason

logger = logging.getLogger(__name__)


class RecommendationGenerator:
    """Ranks the subtopics of a topic by what a user should practise next.

    Priority tiers, de-duplicated by subtopic:
    1. subtopics with an open learning gap
    2. subtopics with mastery below 50
    3. only when 1 and 2 are empty: if some subtopic is above 70 mastery,
       the first subtopic the user has never practised
    Within a tier subtopics keep their listing order.
    """

    def __init__(self, store: IPracticeStore) -> None:
        self._store = store

    async def recommend(self, user_id: str, topic_id: int) -> RecommendationResponse:
        prefs = await self._store.find_preferences(user_id)
        enabled = prefs.enable_adaptive_learning if prefs else DEFAULT_ENABLE_ADAPTIVE_LEARNING

        subtopics = await self._store.list_subtopics(topic_id)
        if not subtopics:
            return RecommendationResponse([], 0, enabled)

        subtopic_ids = [s.id for s in subtopics]
        progress = {
            p.subtopic_id: p
            for p in await self._store.list_subtopic_progress_for(user_id, subtopic_ids)
        }
        gaps = await self._store.list_active_gaps_for(user_id, subtopic_ids)
        gap_subtopics = {g.subtopic_id for g in gaps}

        recommended: list[AdaptiveRecommendation] = []
        seen: set[int] = set()

        def add(subtopic_id: int, name: str, reason: RecommendationReason) -> None:
            if subtopic_id not in seen:
                seen.add(subtopic_id)
                recommended.append(AdaptiveRecommendation(subtopic_id, name, reason))

        for s in subtopics:
            if s.id in gap_subtopics:
                add(s.id, s.name, RecommendationReason.LEARNING_GAP)

        for s in subtopics:
            p = progress.get(s.id)
            if p is not None and p.mastery_level < LOW_MASTERY_THRESHOLD:
                add(s.id, s.name, RecommendationReason.LOW_MASTERY)

        if not recommended and progress:
            highest = max(p.mastery_level for p in progress.values())
            if highest > PROGRESSION_MASTERY_THRESHOLD:
                unpracticed = next((s for s in subtopics if s.id not in progress), None)
                if unpracticed is not None:
                    add(unpracticed.id, unpracticed.name, RecommendationReason.NEXT_IN_PROGRESSION)

        logger.debug(
            f"Recommendations for user {user_id}, topic {topic_id}: "
            f"{[(r.id, r.reason.name) for r in recommended]}"
        )
        return RecommendationResponse(
            recommended_subtopics=recommended,
            learning_gaps_count=len(gaps),
            has_adaptive_learning_enabled=enabled,
        )
