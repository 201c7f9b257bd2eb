"""Store Module - Persistence seam of the adaptive learning engine.

Usage:
    # Recommended: Use service registry (respects feature flags)
    from src.modules.store import get_practice_store
    store = get_practice_store(Subject.MATHS)

    # Direct access (bypasses feature flags)
    from src.modules.store import InMemoryPracticeStore, DatabasePracticeStore
"""

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
from src.modules.store.service import InMemoryPracticeStore
from src.modules.store.db_service import DatabasePracticeStore

# Registry-based getter (recommended)
from src.shared.service_registry import get_practice_store

__all__ = [
    # Interface types
    "IPracticeStore",
    "AdaptivePreferences",
    "AttemptRecord",
    "LearningGap",
    "QuestionMastery",
    "SelectionLogEntry",
    "Subtopic",
    "SubtopicProgress",
    # Implementations
    "InMemoryPracticeStore",
    "DatabasePracticeStore",
    # Factory function
    "get_practice_store",
]
