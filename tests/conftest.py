"""Global test fixtures and utilities for levelup tests"""
import pytest
from datetime import datetime, date, timedelta, timezone

from levelup.gamification.progression_engine import ProgressionEngine
from levelup.models.quest import Quest, QuestType, Difficulty, QuestCategory
from levelup.models.user import UserProgress
from levelup.utils.datetime_helpers import FixedClock


# ============================================================================
# Injected Capabilities
# ============================================================================

class ScriptedRandom:
    """
    Deterministic RandomSource for tests

    Values are served in order; once a queue is empty, random() returns
    `fallback` (0.99 misses every chance roll) and randint() returns the
    lower bound.
    """

    def __init__(self, randoms=None, ints=None, fallback=0.99):
        self.randoms = list(randoms or [])
        self.ints = list(ints or [])
        self.fallback = fallback
        self.random_calls = 0
        self.randint_calls = []

    def random(self) -> float:
        self.random_calls += 1
        if self.randoms:
            return self.randoms.pop(0)
        return self.fallback

    def randint(self, a: int, b: int) -> int:
        self.randint_calls.append((a, b))
        if self.ints:
            value = self.ints.pop(0)
            assert a <= value <= b, f"scripted {value} outside [{a}, {b}]"
            return value
        return a


# Wednesday, ISO week 2026-W42
NOW = datetime(2026, 10, 14, 12, 0, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def clock():
    """Pinned clock at Wednesday noon UTC"""
    return FixedClock(NOW)


@pytest.fixture
def rng():
    """Scripted random source that misses every chance roll"""
    return ScriptedRandom()


@pytest.fixture
def engine(rng, clock):
    """Progression engine wired to the scripted random source and fixed clock"""
    return ProgressionEngine(rng=rng, clock=clock)


# ============================================================================
# User & Quest Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "user-1"


@pytest.fixture
def test_user(test_user_id):
    """Fresh level 1 user with default trust (60)"""
    return UserProgress(user_id=test_user_id)


@pytest.fixture
def make_quest(test_user_id):
    """Factory for quests owned by the test user"""
    def _make_quest(**overrides):
        fields = {
            "user_id": test_user_id,
            "title": "Morning run",
            "quest_type": QuestType.HABIT,
            "difficulty": Difficulty.STANDARD,
            "category": QuestCategory.FITNESS,
        }
        fields.update(overrides)
        return Quest(**fields)
    return _make_quest


@pytest.fixture
def test_quest(make_quest):
    """Standard manual habit quest with no required signals"""
    return make_quest()


@pytest.fixture
def yesterday():
    return TODAY - timedelta(days=1)


@pytest.fixture
def make_date():
    """Helper for dates relative to today"""
    def _make_date(days_ago: int) -> date:
        return TODAY - timedelta(days=days_ago)
    return _make_date


@pytest.fixture
def make_rng():
    """Factory for scripted random sources"""
    return ScriptedRandom
