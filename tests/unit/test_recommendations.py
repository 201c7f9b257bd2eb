"""Tests for topic-level recommendations."""

import pytest

from src.modules.store.interface import LearningGap, SubtopicProgress
from src.shared.datetime_utils import utc_now
from src.shared.models import RecommendationReason

TOPIC = 1


async def set_mastery(store, user_id, subtopic_id, level):
    await store.upsert_subtopic_progress(
        SubtopicProgress(
            user_id=user_id,
            subtopic_id=subtopic_id,
            mastery_level=level,
            questions_attempted=10,
            questions_correct=level // 10,
        )
    )


async def open_gap(store, user_id, subtopic_id, concept="1"):
    await store.insert_gap(
        LearningGap(user_id, subtopic_id, concept, 2, evidence_question_ids=[1, 2, 3])
    )


class TestRecommendations:
    """Tests for recommendation tiers."""

    @pytest.mark.asyncio
    async def test_unknown_topic_returns_empty_response(self, engine, sample_user_id):
        response = await engine.get_adaptive_learning_recommendations(sample_user_id, 999)

        assert response.recommended_subtopics == []
        assert response.learning_gaps_count == 0
        assert response.has_adaptive_learning_enabled is True

    @pytest.mark.asyncio
    async def test_new_user_gets_nothing(self, engine, sample_user_id, topic_with_subtopics):
        response = await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)
        assert response.recommended_subtopics == []

    @pytest.mark.asyncio
    async def test_gap_and_low_mastery_listed_once(
        self, engine, store, sample_user_id, topic_with_subtopics
    ):
        await open_gap(store, sample_user_id, 11)
        await set_mastery(store, sample_user_id, 11, 30)

        response = await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)

        assert [(r.id, r.reason) for r in response.recommended_subtopics] == [
            (11, RecommendationReason.LEARNING_GAP)
        ]
        assert response.learning_gaps_count == 1

    @pytest.mark.asyncio
    async def test_gaps_come_before_low_mastery(
        self, engine, store, sample_user_id, topic_with_subtopics
    ):
        await set_mastery(store, sample_user_id, 10, 20)
        await open_gap(store, sample_user_id, 12)
        await open_gap(store, sample_user_id, 12, concept="2")

        response = await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)

        assert [(r.id, r.name, r.reason) for r in response.recommended_subtopics] == [
            (12, "Percentages", RecommendationReason.LEARNING_GAP),
            (10, "Fractions", RecommendationReason.LOW_MASTERY),
        ]
        assert response.learning_gaps_count == 2

    @pytest.mark.asyncio
    async def test_mastery_of_fifty_is_not_low(
        self, engine, store, sample_user_id, topic_with_subtopics
    ):
        await set_mastery(store, sample_user_id, 10, 50)

        response = await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)
        assert response.recommended_subtopics == []

    @pytest.mark.asyncio
    async def test_next_in_progression(self, engine, store, sample_user_id, topic_with_subtopics):
        await set_mastery(store, sample_user_id, 10, 80)
        await set_mastery(store, sample_user_id, 12, 60)

        response = await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)

        assert [(r.id, r.reason) for r in response.recommended_subtopics] == [
            (11, RecommendationReason.NEXT_IN_PROGRESSION)
        ]

    @pytest.mark.asyncio
    async def test_progression_needs_mastery_above_seventy(
        self, engine, store, sample_user_id, topic_with_subtopics
    ):
        await set_mastery(store, sample_user_id, 10, 70)

        response = await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)
        assert response.recommended_subtopics == []

    @pytest.mark.asyncio
    async def test_progression_skipped_when_low_mastery_exists(
        self, engine, store, sample_user_id, topic_with_subtopics
    ):
        await set_mastery(store, sample_user_id, 10, 90)
        await set_mastery(store, sample_user_id, 11, 10)

        response = await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)

        assert [r.reason for r in response.recommended_subtopics] == [
            RecommendationReason.LOW_MASTERY
        ]

    @pytest.mark.asyncio
    async def test_resolved_gaps_are_ignored(self, engine, store, sample_user_id, topic_with_subtopics):
        await open_gap(store, sample_user_id, 10)
        gap = (await store.list_active_gaps(sample_user_id, 10))[0]
        await store.resolve_gap(gap.id, utc_now())

        response = await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)

        assert response.recommended_subtopics == []
        assert response.learning_gaps_count == 0

    @pytest.mark.asyncio
    async def test_reports_enabled_flag_without_creating_preferences(
        self, engine, store, sample_user_id, topic_with_subtopics
    ):
        await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)
        assert await store.find_preferences(sample_user_id) is None

        await engine.toggle_enabled(sample_user_id)
        await engine.toggle_enabled(sample_user_id)
        response = await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)
        assert response.has_adaptive_learning_enabled is False

    @pytest.mark.asyncio
    async def test_to_dict(self, engine, store, sample_user_id, topic_with_subtopics):
        await open_gap(store, sample_user_id, 10)

        response = await engine.get_adaptive_learning_recommendations(sample_user_id, TOPIC)

        assert response.to_dict() == {
            "recommended_subtopics": [
                {
                    "id": 10,
                    "name": "Fractions",
                    "reason": "Learning gap detected - practice needed",
                }
            ],
            "learning_gaps_count": 1,
            "has_adaptive_learning_enabled": True,
        }
