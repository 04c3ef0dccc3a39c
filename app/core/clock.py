"""
Time source for circulation rules and background jobs.

All stored timestamps are naive UTC, so they compare the same way on
PostgreSQL and SQLite.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Clock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FakeClock(Clock):
    """Manually driven clock for tests and replays."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = to_naive_utc(start) or Clock().now()

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime):
        self._now = to_naive_utc(value)

    def advance(self, **kwargs):
        self._now = self._now + timedelta(**kwargs)
        return self._now


system_clock = Clock()


def get_clock() -> Clock:
    return system_clock
