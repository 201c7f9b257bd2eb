"""Feature flags choosing the engine's backends.

    FF_USE_DATABASE_PERSISTENCE  SQLAlchemy store instead of the in-memory one
    FF_USE_DISTRIBUTED_LOCKS     Redis locks instead of the in-process lock table

Both default to off. Tests flip them with ``override``.
"""

from enum import Enum
from functools import lru_cache
import logging
import os

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes", "on")


class FeatureFlags(str, Enum):
    USE_DATABASE_PERSISTENCE = "use_database_persistence"
    USE_DISTRIBUTED_LOCKS = "use_distributed_locks"

    @property
    def env_key(self) -> str:
        return f"FF_{self.value.upper()}"


class FeatureFlagManager:
    """Reads flags from the environment, with runtime overrides on top."""

    def __init__(self) -> None:
        self._overrides: dict[FeatureFlags, bool] = {}

    def is_enabled(self, flag: FeatureFlags) -> bool:
        if flag in self._overrides:
            return self._overrides[flag]
        return os.getenv(flag.env_key, "false").lower() in _TRUTHY

    def override(self, flag: FeatureFlags, enabled: bool) -> None:
        self._overrides[flag] = enabled
        logger.info(f"Feature flag {flag.value} overridden: {enabled}")

    def clear_overrides(self) -> None:
        self._overrides.clear()


@lru_cache
def get_feature_flags() -> FeatureFlagManager:
    """Process-wide flag manager."""
    return FeatureFlagManager()
