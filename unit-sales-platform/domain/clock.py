"""
Injectable clock.

Services receive a Clock through their constructor and never call
``datetime.now()`` themselves. Lock expiry, due-date comparisons and audit
stamps all read the same clock, which keeps tests deterministic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from .time import require_utc_timestamp


class Clock(ABC):
    """Source of the current UTC time."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Production clock backed by the system wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Test clock frozen at a given instant until moved explicitly.

    Example:
        clock = FixedClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        clock.advance(minutes=61)
    """

    def __init__(self, fixed_time: datetime | None = None) -> None:
        self._now = fixed_time or datetime(2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc)
        require_utc_timestamp("fixed_time", self._now)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        require_utc_timestamp("value", value)
        self._now = value

    def advance(self, *, days: int = 0, minutes: int = 0, seconds: int = 0) -> datetime:
        self._now = self._now + timedelta(days=days, minutes=minutes, seconds=seconds)
        return self._now
