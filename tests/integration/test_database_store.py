"""Integration tests for the database-backed practice store.

Runs against a throwaway SQLite file through aiosqlite, so no server is
needed. The same models back PostgreSQL in production.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import src.modules.store.models  # noqa: F401
from src.modules.adaptive.interface import PreferencesUpdate, QuestionResult
from src.modules.adaptive.service import AdaptiveLearningService
from src.modules.store.db_service import DatabasePracticeStore
from src.modules.store.interface import (
    AdaptivePreferences,
    AttemptRecord,
    LearningGap,
    QuestionMastery,
    SelectionLogEntry,
    SubtopicProgress,
)
from src.modules.store.models import SubtopicModel
from src.modules.store.repository import AdaptivePreferencesRepository
from src.shared.database import Base
from src.shared.datetime_utils import utc_now
from src.shared.exceptions import SelectionLogError, StorageError
from src.shared.models import (
    DifficultyPreference,
    GapStatus,
    QuestionStatus,
    RecommendationReason,
    SelectionReason,
    Subject,
)

USER = "user_db_1"


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory over a fresh SQLite database with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'practice.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def db_store(session_factory):
    return DatabasePracticeStore(Subject.MATHS, session_factory=session_factory)


@pytest.fixture
def quant_store(session_factory):
    return DatabasePracticeStore(Subject.QUANTITATIVE, session_factory=session_factory)


@pytest.fixture
async def seeded_subtopics(session_factory):
    async with session_factory() as session:
        session.add_all(
            [
                SubtopicModel(id=10, subject="maths", topic_id=1, name="Fractions", sequence_number=1),
                SubtopicModel(id=11, subject="maths", topic_id=1, name="Decimals", sequence_number=2),
                SubtopicModel(id=12, subject="quantitative", topic_id=1, name="Ratios", sequence_number=1),
            ]
        )
        await session.commit()


class TestPreferencesPersistence:
    @pytest.mark.asyncio
    async def test_round_trip(self, db_store):
        assert await db_store.find_preferences(USER) is None

        await db_store.upsert_preferences(
            AdaptivePreferences(
                user_id=USER,
                adaptivity_level=7,
                difficulty_preference=DifficultyPreference.EASIER,
                enable_adaptive_learning=False,
            )
        )

        prefs = await db_store.find_preferences(USER)
        assert prefs.adaptivity_level == 7
        assert prefs.difficulty_preference == DifficultyPreference.EASIER
        assert prefs.enable_adaptive_learning is False
        assert prefs.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_upsert_updates_in_place(self, db_store):
        await db_store.upsert_preferences(AdaptivePreferences(user_id=USER))
        await db_store.upsert_preferences(AdaptivePreferences(user_id=USER, adaptivity_level=2))

        prefs = await db_store.find_preferences(USER)
        assert prefs.adaptivity_level == 2

    @pytest.mark.asyncio
    async def test_subjects_are_isolated(self, db_store, quant_store):
        await db_store.upsert_preferences(AdaptivePreferences(user_id=USER, adaptivity_level=9))

        assert await quant_store.find_preferences(USER) is None

    @pytest.mark.asyncio
    async def test_insert_race_updates_existing_row(self, db_store):
        await db_store.upsert_preferences(AdaptivePreferences(user_id=USER))
        real_get = AdaptivePreferencesRepository.get_by_user_id
        reads = []

        async def stale_first_read(repo, user_id):
            reads.append(user_id)
            if len(reads) == 1:
                return None
            return await real_get(repo, user_id)

        # The first read misses the row, so the insert hits the unique constraint
        with patch.object(AdaptivePreferencesRepository, "get_by_user_id", stale_first_read):
            saved = await db_store.upsert_preferences(
                AdaptivePreferences(user_id=USER, adaptivity_level=3)
            )

        assert len(reads) == 2
        assert saved.adaptivity_level == 3
        assert (await db_store.find_preferences(USER)).adaptivity_level == 3


class TestProgressAndMasteryPersistence:
    @pytest.mark.asyncio
    async def test_progress_round_trip(self, db_store):
        now = utc_now()
        await db_store.upsert_subtopic_progress(
            SubtopicProgress(USER, 10, mastery_level=40, questions_attempted=5,
                             questions_correct=2, last_attempt_at=now)
        )
        await db_store.upsert_subtopic_progress(
            SubtopicProgress(USER, 10, mastery_level=50, questions_attempted=6,
                             questions_correct=3, last_attempt_at=now)
        )

        progress = await db_store.find_subtopic_progress(USER, 10)
        assert (progress.mastery_level, progress.questions_attempted) == (50, 6)
        assert [p.subtopic_id for p in await db_store.list_subtopic_progress_for(USER, [10, 11])] == [10]

    @pytest.mark.asyncio
    async def test_mastery_round_trip(self, db_store):
        await db_store.upsert_question_mastery(
            QuestionMastery(USER, 5, attempt_count=1, success_rate=100.0,
                            status=QuestionStatus.LEARNING)
        )
        await db_store.upsert_question_mastery(
            QuestionMastery(USER, 5, attempt_count=2, success_rate=50.0,
                            status=QuestionStatus.LEARNING)
        )

        mastery = await db_store.find_question_mastery(USER, 5)
        assert mastery.attempt_count == 2
        assert mastery.success_rate == 50.0
        assert mastery.status == QuestionStatus.LEARNING


class TestAttemptPersistence:
    @pytest.mark.asyncio
    async def test_order_and_recent_ids(self, db_store):
        start = utc_now() - timedelta(minutes=10)
        for offset, question_id in enumerate([3, 1, 4, 1, 5]):
            await db_store.insert_attempt(
                USER,
                10,
                AttemptRecord(
                    question_id=question_id,
                    question_type_id=2,
                    is_correct=offset % 2 == 0,
                    session_id=8,
                    attempted_at=start + timedelta(seconds=offset),
                ),
            )

        attempts = await db_store.list_attempts(USER, 10)
        assert [a.question_id for a in attempts] == [3, 1, 4, 1, 5]
        assert attempts[0].session_id == 8
        assert await db_store.list_recent_attempt_question_ids(USER, 10, 3) == [5, 1, 4]

    @pytest.mark.asyncio
    async def test_recent_ids_tie_broken_by_insertion(self, db_store):
        at = utc_now()
        for question_id in (1, 2):
            await db_store.insert_attempt(USER, 10, AttemptRecord(question_id, 1, True, attempted_at=at))

        assert await db_store.list_recent_attempt_question_ids(USER, 10, 10) == [2, 1]


class TestGapPersistence:
    @pytest.mark.asyncio
    async def test_insert_and_resolve(self, db_store):
        gap = await db_store.insert_gap(LearningGap(USER, 10, "2", 3, [1, 2, 3, 4, 5]))

        assert gap.id is not None
        assert gap.evidence_question_ids == [1, 2, 3, 4, 5]
        found = await db_store.find_active_gap(USER, 10, "2")
        assert found.id == gap.id

        await db_store.resolve_gap(gap.id, utc_now())

        assert await db_store.find_active_gap(USER, 10, "2") is None
        assert await db_store.list_active_gaps(USER, 10) == []

    @pytest.mark.asyncio
    async def test_duplicate_open_concept_returns_existing(self, db_store):
        first = await db_store.insert_gap(LearningGap(USER, 10, "2", 3, [1, 2, 3]))
        second = await db_store.insert_gap(LearningGap(USER, 10, "2", 5, [7, 8, 9]))

        assert second.id == first.id
        assert second.severity == 3
        assert len(await db_store.list_active_gaps(USER, 10)) == 1

    @pytest.mark.asyncio
    async def test_concept_can_reopen_after_resolution(self, db_store):
        first = await db_store.insert_gap(LearningGap(USER, 10, "2", 3, [1, 2, 3]))
        await db_store.resolve_gap(first.id, utc_now())

        second = await db_store.insert_gap(LearningGap(USER, 10, "2", 2, [4, 5, 6]))

        assert second.id != first.id
        assert second.status == GapStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_resolve_unknown_gap_is_a_no_op(self, db_store):
        await db_store.resolve_gap(404, utc_now())

    @pytest.mark.asyncio
    async def test_gaps_scoped_to_subject(self, db_store, quant_store):
        await db_store.insert_gap(LearningGap(USER, 10, "2", 3, [1, 2, 3]))

        assert await quant_store.list_active_gaps(USER, 10) == []
        assert await quant_store.find_active_gap(USER, 10, "2") is None


class TestSelectionLogPersistence:
    @pytest.mark.asyncio
    async def test_round_trip_in_position_order(self, db_store):
        await db_store.insert_selection_log(
            [
                SelectionLogEntry(4, 30, SelectionReason.BALANCED_SELECTION, 3, 1),
                SelectionLogEntry(4, 10, SelectionReason.FILLING_LEARNING_GAP, 1, 0),
            ]
        )

        log = await db_store.list_selection_log(4)
        assert [(e.question_id, e.selection_reason, e.sequence_position) for e in log] == [
            (10, SelectionReason.FILLING_LEARNING_GAP, 0),
            (30, SelectionReason.BALANCED_SELECTION, 1),
        ]

    @pytest.mark.asyncio
    async def test_write_failure_raises_selection_log_error(self, db_store):
        failing = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk full")))
        with patch("src.modules.store.repository.SelectionLogRepository.add_all", failing):
            with pytest.raises(SelectionLogError) as exc_info:
                await db_store.insert_selection_log(
                    [SelectionLogEntry(4, 30, SelectionReason.DEFAULT, 1, 0)]
                )

        assert exc_info.value.details["session_id"] == 4


class TestStorageErrors:
    @pytest.mark.asyncio
    async def test_sqlalchemy_errors_are_wrapped(self, tmp_path):
        # No tables were created in this database
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        store = DatabasePracticeStore(
            Subject.MATHS,
            session_factory=async_sessionmaker(engine, expire_on_commit=False),
        )
        try:
            with pytest.raises(StorageError) as exc_info:
                await store.find_preferences(USER)
            assert exc_info.value.details["operation"] == "find_preferences"
        finally:
            await engine.dispose()


class TestEngineOnDatabase:
    """The engine end to end on the database store."""

    @pytest.fixture
    def db_engine(self, db_store, fixed_rng):
        return AdaptiveLearningService(db_store, Subject.MATHS, rng=fixed_rng)

    @pytest.mark.asyncio
    async def test_session_flow(self, db_engine, db_store, seeded_subtopics, make_question):
        prefs = await db_engine.save_preferences(
            USER, PreferencesUpdate(difficulty_preference=DifficultyPreference.CHALLENGING)
        )
        assert prefs.difficulty_preference == DifficultyPreference.CHALLENGING

        await db_store.upsert_subtopic_progress(SubtopicProgress(USER, 10, mastery_level=30))
        candidates = [make_question(q, difficulty=d) for q, d in [(1, 1), (2, 2), (3, 3)]]
        selected = await db_engine.select_adaptive_questions(USER, 10, candidates, session_id=1)
        # mastery 30 with the challenging preference targets difficulty 3
        assert [q.id for q in selected] == [3, 2, 1]
        assert len(await db_store.list_selection_log(1)) == 3

        for question_id in (1, 2, 3):
            await db_engine.record_answer(USER, 10, question_id, 6, False, session_id=1)
        summary = await db_engine.complete_session(
            USER, 10, [QuestionResult(q, False) for q in (1, 2, 3)]
        )

        assert summary.score == 0
        assert [g.concept_description for g in summary.opened_gaps] == ["6"]

        mastery = await db_store.find_question_mastery(USER, 2)
        assert mastery.attempt_count == 1
        assert mastery.status == QuestionStatus.TO_START

        response = await db_engine.get_adaptive_learning_recommendations(USER, 1)
        assert [(r.id, r.reason) for r in response.recommended_subtopics] == [
            (10, RecommendationReason.LEARNING_GAP)
        ]
        assert response.learning_gaps_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_selections_share_preferences(
        self, db_engine, db_store, seeded_subtopics, make_question
    ):
        selections = await asyncio.gather(
            db_engine.select_adaptive_questions(
                USER, 10, [make_question(1, subtopic_id=10)], session_id=1
            ),
            db_engine.select_adaptive_questions(
                USER, 11, [make_question(2, subtopic_id=11)], session_id=2
            ),
        )

        assert [[q.id for q in selected] for selected in selections] == [[1], [2]]
        prefs = await db_store.find_preferences(USER)
        assert prefs.difficulty_preference == DifficultyPreference.BALANCED

    @pytest.mark.asyncio
    async def test_subtopics_listed_per_subject(self, db_store, quant_store, seeded_subtopics):
        assert [s.id for s in await db_store.list_subtopics(1)] == [10, 11]
        assert [s.name for s in await quant_store.list_subtopics(1)] == ["Ratios"]
