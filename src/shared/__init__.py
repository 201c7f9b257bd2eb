"""Shared utilities and common code."""

from src.shared.config import Settings, get_settings
from src.shared.database import (
    Base,
    close_db,
    close_redis,
    get_db_session,
    get_redis,
    init_db,
    shutdown,
)
from src.shared.exceptions import (
    LockAcquisitionError,
    PracticeEngineError,
    SelectionLogError,
    StorageError,
)
from src.shared.models import (
    BaseSchema,
    DifficultyPreference,
    GapStatus,
    QuestionStatus,
    RecommendationReason,
    SelectionReason,
    Subject,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "Base",
    "get_db_session",
    "get_redis",
    "init_db",
    "close_db",
    "close_redis",
    "shutdown",
    # Exceptions
    "PracticeEngineError",
    "StorageError",
    "SelectionLogError",
    "LockAcquisitionError",
    # Models
    "BaseSchema",
    # Enums
    "Subject",
    "QuestionStatus",
    "DifficultyPreference",
    "GapStatus",
    "SelectionReason",
    "RecommendationReason",
]
