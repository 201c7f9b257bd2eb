"""Test configuration and fixtures."""

import sys
from pathlib import Path
from random import Random

# Load environment variables before any imports that need them
from dotenv import load_dotenv
project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")

# Ensure src is in path
sys.path.insert(0, str(project_root))

import pytest

from src.modules.adaptive.interface import QuestionRecord
from src.modules.adaptive.service import AdaptiveLearningService
from src.modules.store.interface import Subtopic
from src.modules.store.service import InMemoryPracticeStore
from src.shared.models import Subject


class FixedRandom(Random):
    """Random source whose ``random()`` always returns the same value."""

    def __init__(self, value: float = 0.0) -> None:
        super().__init__(0)
        self._value = value

    def random(self) -> float:
        return self._value


@pytest.fixture(autouse=True)
async def reset_db_engine():
    """Dispose engines created during a test to avoid connection pool issues."""
    yield
    from src.shared import database
    await database.close_db()


@pytest.fixture
def sample_user_id():
    """Sample opaque user id."""
    return "user_2abc123"


@pytest.fixture
def store():
    """Fresh in-memory maths store."""
    return InMemoryPracticeStore(Subject.MATHS)


@pytest.fixture
def fixed_rng():
    """Random source contributing nothing to scores."""
    return FixedRandom(0.0)


@pytest.fixture
def engine(store, fixed_rng):
    """Adaptive engine over the in-memory store with a deterministic tie-breaker."""
    return AdaptiveLearningService(store, rng=fixed_rng)


@pytest.fixture
def topic_with_subtopics(store):
    """Topic 1 with three subtopics listed in order 10, 11, 12."""
    subtopics = [
        Subtopic(id=10, topic_id=1, name="Fractions", sequence_number=1),
        Subtopic(id=11, topic_id=1, name="Decimals", sequence_number=2),
        Subtopic(id=12, topic_id=1, name="Percentages", sequence_number=3),
    ]
    for s in subtopics:
        store.add_subtopic(s)
    return subtopics


@pytest.fixture
def make_question():
    """Factory for candidate questions."""
    return _make_question


def _make_question(
    question_id: int,
    difficulty: int = 1,
    question_type_id: int = 1,
    success_rate: float | None = None,
    subtopic_id: int = 10,
) -> QuestionRecord:
    return QuestionRecord(
        id=question_id,
        subtopic_id=subtopic_id,
        difficulty_level_id=difficulty,
        question_type_id=question_type_id,
        success_rate=success_rate,
    )
