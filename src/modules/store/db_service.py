"""Store Service - Database-backed implementation."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Sequence
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

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
from src.modules.store.models import (
    AdaptivePreferencesModel,
    LearningGapModel,
    QuestionAttemptModel,
    QuestionMasteryModel,
    SelectionLogModel,
    SubtopicProgressModel,
)
from src.modules.store.repository import (
    AdaptivePreferencesRepository,
    LearningGapRepository,
    QuestionAttemptRepository,
    QuestionMasteryRepository,
    SelectionLogRepository,
    SubtopicProgressRepository,
    SubtopicRepository,
)
from src.shared.database import get_db_session
from src.shared.datetime_utils import utc_now
from src.shared.exceptions import SelectionLogError, StorageError
from src.shared.models import Subject

logger = logging.getLogger(__name__)


class DatabasePracticeStore(IPracticeStore):
    """Database-backed practice store.

    Each method runs in its own short transaction. SQLAlchemy failures are
    re-raised as ``StorageError`` (``SelectionLogError`` for the audit log).
    """

    def __init__(
        self,
        subject: Subject = Subject.MATHS,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._subject = subject
        self._session_factory = session_factory

    @property
    def subject(self) -> Subject:
        return self._subject

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with get_db_session(self._session_factory) as db:
                yield db
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed for subject {self._subject.value}: {e}")
            raise StorageError(operation, e) from e

    # --- Preferences ---

    async def find_preferences(self, user_id: str) -> AdaptivePreferences | None:
        async with self._transaction("find_preferences") as db:
            model = await AdaptivePreferencesRepository(db, self._subject).get_by_user_id(user_id)
            return model.to_record() if model else None

    async def upsert_preferences(self, preferences: AdaptivePreferences) -> AdaptivePreferences:
        async with self._transaction("upsert_preferences") as db:
            repo = AdaptivePreferencesRepository(db, self._subject)
            model = await repo.get_by_user_id(preferences.user_id)
            if model is None:
                try:
                    model = await repo.add(
                        AdaptivePreferencesModel(
                            subject=self._subject.value,
                            user_id=preferences.user_id,
                            adaptivity_level=preferences.adaptivity_level,
                            difficulty_preference=preferences.difficulty_preference.value,
                            enable_adaptive_learning=preferences.enable_adaptive_learning,
                            created_at=preferences.created_at,
                            updated_at=preferences.updated_at,
                        )
                    )
                    return model.to_record()
                except IntegrityError:
                    # Another writer created the row first; update theirs
                    await db.rollback()
                    model = await repo.get_by_user_id(preferences.user_id)
                    if model is None:
                        raise
                    logger.info(
                        f"Preferences for user {preferences.user_id} created concurrently, "
                        f"updating existing row"
                    )

            model.adaptivity_level = preferences.adaptivity_level
            model.difficulty_preference = preferences.difficulty_preference.value
            model.enable_adaptive_learning = preferences.enable_adaptive_learning
            model.updated_at = preferences.updated_at
            await db.flush()
            return model.to_record()

    # --- Progress ---

    async def find_subtopic_progress(
        self,
        user_id: str,
        subtopic_id: int,
    ) -> SubtopicProgress | None:
        async with self._transaction("find_subtopic_progress") as db:
            model = await SubtopicProgressRepository(db, self._subject).get_for_user(
                user_id, subtopic_id
            )
            return model.to_record() if model else None

    async def upsert_subtopic_progress(self, progress: SubtopicProgress) -> SubtopicProgress:
        async with self._transaction("upsert_subtopic_progress") as db:
            repo = SubtopicProgressRepository(db, self._subject)
            model = await repo.get_for_user(progress.user_id, progress.subtopic_id)
            if model is None:
                model = await repo.add(
                    SubtopicProgressModel(
                        subject=self._subject.value,
                        user_id=progress.user_id,
                        subtopic_id=progress.subtopic_id,
                        mastery_level=progress.mastery_level,
                        questions_attempted=progress.questions_attempted,
                        questions_correct=progress.questions_correct,
                        last_attempt_at=progress.last_attempt_at,
                    )
                )
            else:
                model.mastery_level = progress.mastery_level
                model.questions_attempted = progress.questions_attempted
                model.questions_correct = progress.questions_correct
                model.last_attempt_at = progress.last_attempt_at
                await db.flush()
            return model.to_record()

    async def list_subtopic_progress_for(
        self,
        user_id: str,
        subtopic_ids: Sequence[int],
    ) -> list[SubtopicProgress]:
        async with self._transaction("list_subtopic_progress_for") as db:
            models = await SubtopicProgressRepository(db, self._subject).get_for_subtopics(
                user_id, subtopic_ids
            )
            return [m.to_record() for m in models]

    # --- Attempts ---

    async def insert_attempt(
        self,
        user_id: str,
        subtopic_id: int,
        attempt: AttemptRecord,
    ) -> None:
        async with self._transaction("insert_attempt") as db:
            await QuestionAttemptRepository(db, self._subject).add(
                QuestionAttemptModel(
                    subject=self._subject.value,
                    user_id=user_id,
                    subtopic_id=subtopic_id,
                    question_id=attempt.question_id,
                    question_type_id=attempt.question_type_id,
                    is_correct=attempt.is_correct,
                    session_id=attempt.session_id,
                    attempted_at=attempt.attempted_at,
                )
            )

    async def list_attempts(self, user_id: str, subtopic_id: int) -> list[AttemptRecord]:
        async with self._transaction("list_attempts") as db:
            models = await QuestionAttemptRepository(db, self._subject).get_for_subtopic(
                user_id, subtopic_id
            )
            return [m.to_record() for m in models]

    async def list_recent_attempt_question_ids(
        self,
        user_id: str,
        subtopic_id: int,
        limit: int,
    ) -> list[int]:
        async with self._transaction("list_recent_attempt_question_ids") as db:
            return await QuestionAttemptRepository(db, self._subject).get_recent_question_ids(
                user_id, subtopic_id, limit
            )

    async def find_question_mastery(
        self,
        user_id: str,
        question_id: int,
    ) -> QuestionMastery | None:
        async with self._transaction("find_question_mastery") as db:
            model = await QuestionMasteryRepository(db, self._subject).get_for_user(
                user_id, question_id
            )
            return model.to_record() if model else None

    async def upsert_question_mastery(self, mastery: QuestionMastery) -> QuestionMastery:
        async with self._transaction("upsert_question_mastery") as db:
            repo = QuestionMasteryRepository(db, self._subject)
            model = await repo.get_for_user(mastery.user_id, mastery.question_id)
            if model is None:
                model = await repo.add(
                    QuestionMasteryModel(
                        subject=self._subject.value,
                        user_id=mastery.user_id,
                        question_id=mastery.question_id,
                        attempt_count=mastery.attempt_count,
                        success_rate=mastery.success_rate,
                        status=mastery.status.value,
                    )
                )
            else:
                model.attempt_count = mastery.attempt_count
                model.success_rate = mastery.success_rate
                model.status = mastery.status.value
                model.updated_at = utc_now()
                await db.flush()
            return model.to_record()

    # --- Learning gaps ---

    async def find_active_gap(
        self,
        user_id: str,
        subtopic_id: int,
        concept: str,
    ) -> LearningGap | None:
        async with self._transaction("find_active_gap") as db:
            model = await LearningGapRepository(db, self._subject).get_open_by_concept(
                user_id, subtopic_id, concept
            )
            return model.to_record() if model else None

    async def list_active_gaps(self, user_id: str, subtopic_id: int) -> list[LearningGap]:
        return await self.list_active_gaps_for(user_id, [subtopic_id])

    async def list_active_gaps_for(
        self,
        user_id: str,
        subtopic_ids: Sequence[int],
    ) -> list[LearningGap]:
        async with self._transaction("list_active_gaps") as db:
            models = await LearningGapRepository(db, self._subject).get_open_for_subtopics(
                user_id, subtopic_ids
            )
            return [m.to_record() for m in models]

    async def insert_gap(self, gap: LearningGap) -> LearningGap:
        async with self._transaction("insert_gap") as db:
            repo = LearningGapRepository(db, self._subject)
            try:
                model = await repo.add(
                    LearningGapModel(
                        subject=self._subject.value,
                        user_id=gap.user_id,
                        subtopic_id=gap.subtopic_id,
                        concept_description=gap.concept_description,
                        severity=gap.severity,
                        evidence_question_ids=list(gap.evidence_question_ids),
                        status=gap.status.value,
                        detected_at=gap.detected_at,
                        resolved_at=gap.resolved_at,
                    )
                )
            except IntegrityError:
                # Another writer opened the same concept first
                await db.rollback()
                existing = await repo.get_open_by_concept(
                    gap.user_id, gap.subtopic_id, gap.concept_description
                )
                if existing is None:
                    raise
                logger.info(
                    f"Gap for concept {gap.concept_description} already open "
                    f"(user={gap.user_id}, subtopic={gap.subtopic_id})"
                )
                return existing.to_record()
            return model.to_record()

    async def resolve_gap(self, gap_id: int, resolved_at: datetime) -> None:
        async with self._transaction("resolve_gap") as db:
            resolved = await LearningGapRepository(db, self._subject).mark_resolved(
                gap_id, resolved_at
            )
            if not resolved:
                logger.warning(f"resolve_gap: no open gap with id {gap_id}")

    # --- Selection log ---

    async def insert_selection_log(self, entries: Sequence[SelectionLogEntry]) -> None:
        if not entries:
            return
        try:
            async with get_db_session(self._session_factory) as db:
                await SelectionLogRepository(db, self._subject).add_all(
                    [
                        SelectionLogModel(
                            subject=self._subject.value,
                            session_id=entry.session_id,
                            question_id=entry.question_id,
                            selection_reason=entry.selection_reason.value,
                            difficulty_level=entry.difficulty_level,
                            sequence_position=entry.sequence_position,
                            created_at=entry.created_at,
                        )
                        for entry in entries
                    ]
                )
        except SQLAlchemyError as e:
            raise SelectionLogError(entries[0].session_id, e) from e

    async def list_selection_log(self, session_id: int) -> list[SelectionLogEntry]:
        async with self._transaction("list_selection_log") as db:
            models = await SelectionLogRepository(db, self._subject).get_by_session(session_id)
            return [m.to_record() for m in models]

    # --- Content ---

    async def list_subtopics(self, topic_id: int) -> list[Subtopic]:
        async with self._transaction("list_subtopics") as db:
            models = await SubtopicRepository(db, self._subject).get_by_topic(topic_id)
            return [m.to_record() for m in models]
