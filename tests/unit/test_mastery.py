"""Tests for the mastery state machine and progress aggregation."""

from random import Random

import pytest

from src.modules.adaptive.interface import QuestionResult
from src.modules.adaptive.mastery import (
    aggregate_progress,
    apply_attempt,
    fold_attempt,
    next_status,
)
from src.modules.store.interface import QuestionMastery, SubtopicProgress
from src.shared.models import QuestionStatus


class TestFoldAttempt:
    """Tests for the running success rate."""

    def test_first_correct_attempt(self):
        assert fold_attempt(0.0, 0, True) == (100.0, 1)

    def test_first_incorrect_attempt(self):
        assert fold_attempt(0.0, 0, False) == (0.0, 1)

    def test_rounds_previous_successes(self):
        # 2 of 3 correct reads back as round(66.67 * 3 / 100) = 2 successes
        rate, count = fold_attempt(66.67, 3, True)
        assert count == 4
        assert rate == pytest.approx(75.0)

    def test_rate_stays_in_range_for_random_sequences(self):
        rng = Random(42)
        for _ in range(50):
            rate, count = 0.0, 0
            for _ in range(30):
                new_rate, new_count = fold_attempt(rate, count, rng.random() < 0.5)
                assert 0.0 <= new_rate <= 100.0
                assert new_count == count + 1
                rate, count = new_rate, new_count


class TestNextStatus:
    """Tests for status transitions."""

    @pytest.mark.parametrize(
        "current, is_correct, rate, expected",
        [
            (QuestionStatus.TO_START, True, 10.0, QuestionStatus.LEARNING),
            (QuestionStatus.TO_START, False, 0.0, QuestionStatus.TO_START),
            (QuestionStatus.LEARNING, True, 75.0, QuestionStatus.MASTERED),
            (QuestionStatus.LEARNING, True, 74.999, QuestionStatus.LEARNING),
            (QuestionStatus.LEARNING, False, 39.9, QuestionStatus.TO_START),
            (QuestionStatus.LEARNING, False, 40.0, QuestionStatus.LEARNING),
            (QuestionStatus.MASTERED, False, 90.0, QuestionStatus.LEARNING),
            (QuestionStatus.MASTERED, False, 0.0, QuestionStatus.LEARNING),
            (QuestionStatus.MASTERED, True, 50.0, QuestionStatus.MASTERED),
        ],
    )
    def test_transition_table(self, current, is_correct, rate, expected):
        assert next_status(current, is_correct, rate) == expected

    def test_custom_thresholds(self):
        assert next_status(QuestionStatus.LEARNING, True, 60.0, mastery_threshold=60.0) == (
            QuestionStatus.MASTERED
        )


class TestApplyAttempt:
    """Tests for folding an attempt into question mastery."""

    def test_decides_on_updated_rate(self):
        # 2/3 correct, then a correct answer -> 3/4 = 75% -> Mastered
        mastery = QuestionMastery(
            user_id="u1",
            question_id=7,
            attempt_count=3,
            success_rate=200 / 3,
            status=QuestionStatus.LEARNING,
        )
        updated = apply_attempt(mastery, True)

        assert updated.attempt_count == 4
        assert updated.success_rate == pytest.approx(75.0)
        assert updated.status == QuestionStatus.MASTERED
        # Input is not mutated
        assert mastery.attempt_count == 3

    def test_mastered_incorrect_goes_back_to_learning(self):
        mastery = QuestionMastery(
            user_id="u1",
            question_id=7,
            attempt_count=1,
            success_rate=100.0,
            status=QuestionStatus.MASTERED,
        )
        updated = apply_attempt(mastery, False)
        assert updated.success_rate == pytest.approx(50.0)
        assert updated.status == QuestionStatus.LEARNING


class TestAggregateProgress:
    """Tests for subtopic progress."""

    def test_accumulates_counts_and_level(self):
        progress = SubtopicProgress(
            user_id="u1",
            subtopic_id=10,
            questions_attempted=2,
            questions_correct=1,
            mastery_level=50,
        )
        results = [
            QuestionResult(question_id=1, is_correct=True),
            QuestionResult(question_id=2, is_correct=True),
        ]
        updated = aggregate_progress(progress, results)

        assert updated.questions_attempted == 4
        assert updated.questions_correct == 3
        assert updated.mastery_level == 75
        assert updated.last_attempt_at is not None

    def test_empty_batch_is_a_no_op(self):
        progress = SubtopicProgress(user_id="u1", subtopic_id=10)
        assert aggregate_progress(progress, []) is progress


class TestRecordAnswer:
    """Tests for MasteryTracker through the engine."""

    @pytest.mark.asyncio
    async def test_first_answer_creates_mastery_and_progress(self, engine, store, sample_user_id):
        mastery = await engine.record_answer(sample_user_id, 10, 101, 3, True, session_id=1)

        assert mastery.attempt_count == 1
        assert mastery.success_rate == 100.0
        assert mastery.status == QuestionStatus.LEARNING

        progress = await store.find_subtopic_progress(sample_user_id, 10)
        assert progress.questions_attempted == 1
        assert progress.questions_correct == 1
        assert progress.mastery_level == 100

        attempts = await store.list_attempts(sample_user_id, 10)
        assert [(a.question_id, a.question_type_id, a.session_id) for a in attempts] == [(101, 3, 1)]

    @pytest.mark.asyncio
    async def test_attempt_count_never_decreases(self, engine, sample_user_id):
        counts = []
        for outcome in [True, False, False, True, False]:
            mastery = await engine.record_answer(sample_user_id, 10, 101, 3, outcome)
            counts.append(mastery.attempt_count)
        assert counts == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_progress_tracks_every_answer(self, engine, store, sample_user_id):
        await engine.record_answer(sample_user_id, 10, 101, 3, True)
        await engine.record_answer(sample_user_id, 10, 102, 3, False)
        await engine.record_answer(sample_user_id, 10, 103, 3, False)

        progress = await store.find_subtopic_progress(sample_user_id, 10)
        assert progress.questions_attempted == 3
        assert progress.questions_correct == 1
        assert progress.mastery_level == 33
