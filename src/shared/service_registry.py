"""Unified service registry for dependency injection.

This module provides a centralized factory that switches between in-memory
and database-backed stores, and between process-local and Redis locks,
based on feature flags.

Usage:
    from src.shared.service_registry import get_service_registry

    registry = get_service_registry()
    engine = registry.get_adaptive_learning_service(Subject.MATHS)

The registry automatically:
- Returns database stores when FF_USE_DATABASE_PERSISTENCE=true
- Returns Redis-backed locks when FF_USE_DISTRIBUTED_LOCKS=true
- Falls back to in-memory implementations when creation fails
- Caches one store and one engine per subject
"""

from functools import lru_cache
from typing import TYPE_CHECKING
import logging

from src.shared.feature_flags import FeatureFlags, get_feature_flags
from src.shared.models import Subject

if TYPE_CHECKING:
    from src.modules.adaptive.service import AdaptiveLearningService
    from src.modules.store.interface import IPracticeStore
    from src.shared.locks import IKeyedLock

logger = logging.getLogger(__name__)


class ServiceRegistry:
    """Unified service factory with feature flag support.

    Features:
    - Lazy instantiation, one instance per subject
    - Feature flag-based implementation selection
    - Automatic fallback on creation errors
    """

    _instance: "ServiceRegistry | None" = None

    def __new__(cls) -> "ServiceRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._flags = get_feature_flags()
        self._stores: dict[Subject, "IPracticeStore"] = {}
        self._engines: dict[Subject, "AdaptiveLearningService"] = {}
        self._lock: "IKeyedLock | None" = None
        self._initialized = True
        logger.info("ServiceRegistry initialized")

    def get_practice_store(self, subject: Subject) -> "IPracticeStore":
        """Get the practice store for a subject.

        Returns the database store if FF_USE_DATABASE_PERSISTENCE is enabled,
        otherwise the in-memory store.
        """
        if subject not in self._stores:
            self._stores[subject] = self._create_practice_store(subject)
        return self._stores[subject]

    def get_adaptive_learning_service(self, subject: Subject) -> "AdaptiveLearningService":
        """Get the adaptive learning engine for a subject."""
        if subject not in self._engines:
            from src.modules.adaptive.service import AdaptiveLearningService

            logger.info(f"Creating AdaptiveLearningService for {subject.value}")
            self._engines[subject] = AdaptiveLearningService(
                self.get_practice_store(subject),
                lock=self.get_lock(),
            )
        return self._engines[subject]

    def get_lock(self) -> "IKeyedLock":
        """Get the entry-point lock shared by all engines."""
        if self._lock is None:
            self._lock = self._create_lock()
        return self._lock

    def _create_practice_store(self, subject: Subject) -> "IPracticeStore":
        """Create practice store based on feature flags."""
        if self._flags.is_enabled(FeatureFlags.USE_DATABASE_PERSISTENCE):
            try:
                from src.modules.store.db_service import DatabasePracticeStore

                logger.info(f"Creating DatabasePracticeStore for {subject.value}")
                return DatabasePracticeStore(subject)
            except Exception as e:
                logger.warning(f"Failed to create DatabasePracticeStore, falling back: {e}")

        from src.modules.store.service import InMemoryPracticeStore

        logger.info(f"Creating InMemoryPracticeStore for {subject.value}")
        return InMemoryPracticeStore(subject)

    def _create_lock(self) -> "IKeyedLock":
        """Create entry-point lock based on feature flags."""
        if self._flags.is_enabled(FeatureFlags.USE_DISTRIBUTED_LOCKS):
            try:
                from src.shared.locks import RedisKeyedLock

                logger.info("Creating RedisKeyedLock")
                return RedisKeyedLock()
            except Exception as e:
                logger.warning(f"Failed to create RedisKeyedLock, falling back: {e}")

        from src.shared.locks import KeyedLock

        logger.info("Creating in-process KeyedLock")
        return KeyedLock()

    def clear_cache(self) -> None:
        """Clear all cached instances.

        Use this when feature flags change at runtime to force
        recreation with new settings.
        """
        self._stores.clear()
        self._engines.clear()
        self._lock = None
        logger.info("ServiceRegistry cache cleared")

    def get_service_info(self) -> dict[str, str]:
        """Get information about currently instantiated services.

        Returns:
            Dictionary of service names to their implementation types
        """
        info = {f"store:{s.value}": type(store).__name__ for s, store in self._stores.items()}
        info.update(
            {f"engine:{s.value}": type(engine).__name__ for s, engine in self._engines.items()}
        )
        if self._lock is not None:
            info["lock"] = type(self._lock).__name__
        return info

    def __repr__(self) -> str:
        db_enabled = self._flags.is_enabled(FeatureFlags.USE_DATABASE_PERSISTENCE)
        return f"ServiceRegistry(db_enabled={db_enabled}, services={self.get_service_info()})"


@lru_cache
def get_service_registry() -> ServiceRegistry:
    """Get the singleton ServiceRegistry instance."""
    return ServiceRegistry()


def get_practice_store(subject: Subject = Subject.MATHS) -> "IPracticeStore":
    """Get the practice store for a subject from the registry."""
    return get_service_registry().get_practice_store(subject)


def get_adaptive_learning_service(
    subject: Subject = Subject.MATHS,
) -> "AdaptiveLearningService":
    """Get the adaptive learning engine for a subject from the registry.

    This is the recommended way to get an engine instance,
    as it respects feature flags and provides fallback behavior.
    """
    return get_service_registry().get_adaptive_learning_service(subject)
