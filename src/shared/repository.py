"""Base repository pattern for data access.

This module provides a base repository class for implementing the repository
pattern across the store module, separating data access from engine logic.
Every repository is bound to one session and one subject; queries built
through ``_select`` are scoped to that subject automatically.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, Sequence, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.shared.database import Base
from src.shared.models import Subject

# Generic type for SQLAlchemy models
ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(ABC, Generic[ModelT]):
    """Base repository providing common subject-scoped operations.

    Store repositories inherit from this class and declare their model.
    """

    def __init__(self, session: AsyncSession, subject: Subject) -> None:
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
            subject: Practice area every query is scoped to
        """
        self._session = session
        self._subject = subject

    @property
    @abstractmethod
    def _model_class(self) -> type[ModelT]:
        """Return the SQLAlchemy model class for this repository."""
        pass

    def _select(self, *criteria: Any) -> Select[tuple[ModelT]]:
        """Build a SELECT on the model filtered by subject and extra criteria."""
        model = self._model_class
        return select(model).where(model.subject == self._subject.value, *criteria)

    async def _first(self, *criteria: Any) -> ModelT | None:
        result = await self._session.execute(self._select(*criteria).limit(1))
        return result.scalars().first()

    async def _all(self, *criteria: Any) -> Sequence[ModelT]:
        result = await self._session.execute(self._select(*criteria))
        return result.scalars().all()

    async def add(self, entity: ModelT) -> ModelT:
        """Persist a new entity and load server-generated columns.

        Args:
            entity: Entity to create

        Returns:
            Created entity with generated ID
        """
        self._session.add(entity)
        await self._session.flush()
        await self._session.refresh(entity)
        return entity

    async def add_all(self, entities: Sequence[ModelT]) -> None:
        """Persist several new entities in one flush."""
        self._session.add_all(list(entities))
        await self._session.flush()
