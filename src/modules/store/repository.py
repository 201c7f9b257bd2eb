"""Store repositories for data access operations.

This module implements the repository pattern for the engine's tables,
separating SQL from the record mapping done in ``DatabasePracticeStore``.
All queries are scoped to the repository's subject by ``BaseRepository``.
"""

from datetime import datetime
from typing import Sequence

from sqlalchemy import desc

from src.modules.store.models import (
    AdaptivePreferencesModel,
    LearningGapModel,
    QuestionAttemptModel,
    QuestionMasteryModel,
    SelectionLogModel,
    SubtopicModel,
    SubtopicProgressModel,
)
from src.shared.models import GapStatus
from src.shared.repository import BaseRepository


class AdaptivePreferencesRepository(BaseRepository[AdaptivePreferencesModel]):
    """Repository for AdaptivePreferences entities."""

    @property
    def _model_class(self) -> type[AdaptivePreferencesModel]:
        return AdaptivePreferencesModel

    async def get_by_user_id(self, user_id: str) -> AdaptivePreferencesModel | None:
        return await self._first(AdaptivePreferencesModel.user_id == user_id)


class SubtopicRepository(BaseRepository[SubtopicModel]):
    """Repository for Subtopic entities."""

    @property
    def _model_class(self) -> type[SubtopicModel]:
        return SubtopicModel

    async def get_by_topic(self, topic_id: int) -> Sequence[SubtopicModel]:
        """Get subtopics of a topic in listing order.

        Args:
            topic_id: Topic ID

        Returns:
            Subtopics ordered by sequence number, then id
        """
        result = await self._session.execute(
            self._select(SubtopicModel.topic_id == topic_id).order_by(
                SubtopicModel.sequence_number, SubtopicModel.id
            )
        )
        return result.scalars().all()


class SubtopicProgressRepository(BaseRepository[SubtopicProgressModel]):
    """Repository for SubtopicProgress entities."""

    @property
    def _model_class(self) -> type[SubtopicProgressModel]:
        return SubtopicProgressModel

    async def get_for_user(
        self,
        user_id: str,
        subtopic_id: int,
    ) -> SubtopicProgressModel | None:
        return await self._first(
            SubtopicProgressModel.user_id == user_id,
            SubtopicProgressModel.subtopic_id == subtopic_id,
        )

    async def get_for_subtopics(
        self,
        user_id: str,
        subtopic_ids: Sequence[int],
    ) -> Sequence[SubtopicProgressModel]:
        if not subtopic_ids:
            return []
        return await self._all(
            SubtopicProgressModel.user_id == user_id,
            SubtopicProgressModel.subtopic_id.in_(list(subtopic_ids)),
        )


class QuestionAttemptRepository(BaseRepository[QuestionAttemptModel]):
    """Repository for QuestionAttempt entities."""

    @property
    def _model_class(self) -> type[QuestionAttemptModel]:
        return QuestionAttemptModel

    async def get_for_subtopic(
        self,
        user_id: str,
        subtopic_id: int,
    ) -> Sequence[QuestionAttemptModel]:
        """Get every attempt of a user on a subtopic, oldest first."""
        result = await self._session.execute(
            self._select(
                QuestionAttemptModel.user_id == user_id,
                QuestionAttemptModel.subtopic_id == subtopic_id,
            ).order_by(QuestionAttemptModel.attempted_at, QuestionAttemptModel.id)
        )
        return result.scalars().all()

    async def get_recent_question_ids(
        self,
        user_id: str,
        subtopic_id: int,
        limit: int,
    ) -> list[int]:
        """Get question ids of the latest attempts, newest first.

        Args:
            user_id: User ID
            subtopic_id: Subtopic ID
            limit: Maximum attempts to consider

        Returns:
            Question ids; a question answered twice appears twice
        """
        model = QuestionAttemptModel
        result = await self._session.execute(
            self._select(model.user_id == user_id, model.subtopic_id == subtopic_id)
            .with_only_columns(model.question_id)
            .order_by(desc(model.attempted_at), desc(model.id))
            .limit(limit)
        )
        return [row[0] for row in result.all()]


class QuestionMasteryRepository(BaseRepository[QuestionMasteryModel]):
    """Repository for QuestionMastery entities."""

    @property
    def _model_class(self) -> type[QuestionMasteryModel]:
        return QuestionMasteryModel

    async def get_for_user(
        self,
        user_id: str,
        question_id: int,
    ) -> QuestionMasteryModel | None:
        return await self._first(
            QuestionMasteryModel.user_id == user_id,
            QuestionMasteryModel.question_id == question_id,
        )


class LearningGapRepository(BaseRepository[LearningGapModel]):
    """Repository for LearningGap entities."""

    @property
    def _model_class(self) -> type[LearningGapModel]:
        return LearningGapModel

    async def get_open_by_concept(
        self,
        user_id: str,
        subtopic_id: int,
        concept: str,
    ) -> LearningGapModel | None:
        return await self._first(
            LearningGapModel.user_id == user_id,
            LearningGapModel.subtopic_id == subtopic_id,
            LearningGapModel.concept_description == concept,
            LearningGapModel.resolved_at.is_(None),
        )

    async def get_open_for_subtopics(
        self,
        user_id: str,
        subtopic_ids: Sequence[int],
    ) -> Sequence[LearningGapModel]:
        """Get open gaps of a user on the given subtopics, in detection order."""
        if not subtopic_ids:
            return []
        result = await self._session.execute(
            self._select(
                LearningGapModel.user_id == user_id,
                LearningGapModel.subtopic_id.in_(list(subtopic_ids)),
                LearningGapModel.resolved_at.is_(None),
            ).order_by(LearningGapModel.detected_at, LearningGapModel.id)
        )
        return result.scalars().all()

    async def mark_resolved(self, gap_id: int, resolved_at: datetime) -> bool:
        """Resolve an open gap.

        Returns:
            True if an open gap with this id existed
        """
        gap = await self._first(
            LearningGapModel.id == gap_id,
            LearningGapModel.resolved_at.is_(None),
        )
        if gap is None:
            return False
        gap.resolved_at = resolved_at
        gap.status = GapStatus.RESOLVED.value
        await self._session.flush()
        return True


class SelectionLogRepository(BaseRepository[SelectionLogModel]):
    """Repository for SelectionLog entities."""

    @property
    def _model_class(self) -> type[SelectionLogModel]:
        return SelectionLogModel

    async def get_by_session(self, session_id: int) -> Sequence[SelectionLogModel]:
        result = await self._session.execute(
            self._select(SelectionLogModel.session_id == session_id).order_by(
                SelectionLogModel.sequence_position
            )
        )
        return result.scalars().all()
