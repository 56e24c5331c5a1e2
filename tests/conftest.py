"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like a temp DB and a controllable clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("BACKEND_PROVIDER", "sqlite")
os.environ.setdefault("BACKEND_URL", "http://backend.test")
os.environ.setdefault("BACKEND_TOKEN", "")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("SWEEP_INTERVAL_SECONDS", "300")

from datetime import datetime, timedelta, timezone

import pytest


class FakeClock:
    """Callable clock whose time the test moves by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, value: datetime) -> None:
        self.now = value

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def utc(year, month, day, hour=0, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    """A clock frozen at Monday 2026-03-02 08:00 UTC."""
    return FakeClock(utc(2026, 3, 2, 8, 0))


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_scheduler.db")


@pytest.fixture
def scheduling_db(tmp_db_path):
    """Return a SchedulingDB instance backed by a temp file."""
    from src.data.db import SchedulingDB
    return SchedulingDB(db_path=tmp_db_path)


@pytest.fixture
def mood_questions():
    from src.data.models import Question, QuestionType
    return [
        Question(id="q1", text="How anxious did you feel today?", type=QuestionType.LIKERT,
                 min=1, max=5, min_label="Not at all", max_label="Extremely"),
        Question(id="q2", text="How often did you sleep well?", type=QuestionType.FREQUENCY,
                 options=["Never", "Sometimes", "Often", "Always"]),
        Question(id="q3", text="Anything else to share?", type=QuestionType.OPEN_TEXT),
    ]
