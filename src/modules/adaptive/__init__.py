"""Adaptive Module - Question selection, mastery tracking and learning gaps.

Usage:
    # Recommended: Use service registry (respects feature flags)
    from src.modules.adaptive import get_adaptive_learning_service
    engine = get_adaptive_learning_service(Subject.MATHS)

    # Direct construction (tests, custom stores)
    from src.modules.adaptive import AdaptiveLearningService
    engine = AdaptiveLearningService(InMemoryPracticeStore(Subject.MATHS))
"""

from src.modules.adaptive.interface import (
    AdaptiveRecommendation,
    ConceptKey,
    IAdaptiveLearningService,
    PreferencesUpdate,
    QuestionRecord,
    QuestionResult,
    RecommendationResponse,
    SessionSummary,
)
from src.modules.adaptive.mastery import (
    aggregate_progress,
    apply_attempt,
    fold_attempt,
    next_status,
)
from src.modules.adaptive.selection import target_difficulty
from src.modules.adaptive.service import AdaptiveLearningService
from src.shared.models import (
    DifficultyPreference,
    GapStatus,
    QuestionStatus,
    SelectionReason,
    Subject,
)

# Registry-based service getter (recommended)
from src.shared.service_registry import get_adaptive_learning_service

__all__ = [
    # Interface types
    "IAdaptiveLearningService",
    "AdaptiveRecommendation",
    "ConceptKey",
    "PreferencesUpdate",
    "QuestionRecord",
    "QuestionResult",
    "RecommendationResponse",
    "SessionSummary",
    # Enums (re-exported for convenience)
    "DifficultyPreference",
    "GapStatus",
    "QuestionStatus",
    "SelectionReason",
    "Subject",
    # Mastery state machine
    "fold_attempt",
    "next_status",
    "apply_attempt",
    "aggregate_progress",
    "target_difficulty",
    # Implementation
    "AdaptiveLearningService",
    # Factory function
    "get_adaptive_learning_service",
]
