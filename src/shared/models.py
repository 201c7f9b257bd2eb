"""Base models and common types used across modules."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


# Common enums and types


class Subject(str, Enum):
    """Practice areas served by the engine.

    Every persisted record is scoped to exactly one subject.
    """

    MATHS = "maths"
    QUANTITATIVE = "quantitative"


class QuestionStatus(str, Enum):
    """Per-user mastery state of a question."""

    TO_START = "To Start"
    LEARNING = "Learning"
    MASTERED = "Mastered"


class DifficultyPreference(str, Enum):
    """User preference shifting the target difficulty."""

    BALANCED = "balanced"
    CHALLENGING = "challenging"
    EASIER = "easier"


class GapStatus(str, Enum):
    """Lifecycle of a learning gap."""

    ACTIVE = "active"
    TESTING = "testing"
    RESOLVED = "resolved"


class SelectionReason(str, Enum):
    """Why a question was served in a session."""

    FILLING_LEARNING_GAP = "filling_learning_gap"
    APPROPRIATE_DIFFICULTY = "appropriate_difficulty"
    REINFORCING_WEAK_AREA = "reinforcing_weak_area"
    BALANCED_SELECTION = "balanced_selection"
    DEFAULT = "default"


class RecommendationReason(str, Enum):
    """Reasons attached to subtopic recommendations."""

    LEARNING_GAP = "Learning gap detected - practice needed"
    LOW_MASTERY = "Low mastery level - more practice recommended"
    NEXT_IN_PROGRESSION = "Next subtopic in progression"
