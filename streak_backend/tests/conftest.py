import itertools
import os

import pytest

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from streakflow.clock import FixedClock  # noqa: E402
from streakflow.repositories import InMemoryStore  # noqa: E402
from streakflow.sync import StreakSession  # noqa: E402


@pytest.fixture
def make_record():
    """Factory for TaskRecord dicts with sequential ids."""
    counter = itertools.count(1)

    def _make(
        date,
        completed=True,
        title=None,
        is_recurring=False,
        user_id="u1",
        reminder_time=None,
        id=None,
    ):
        n = next(counter)
        return {
            "id": id or f"t{n}",
            "user_id": user_id,
            "title": title or f"Task {n}",
            "date": date,
            "completed": completed,
            "is_recurring": is_recurring,
            "reminder_time": reminder_time,
            "snoozed_until": None,
        }

    return _make


@pytest.fixture
def clock():
    return FixedClock("2024-01-10")


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def session(store, clock):
    return StreakSession("u1", store, clock)
