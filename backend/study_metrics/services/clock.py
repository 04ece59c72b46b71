"""
Clock Abstraction

Services that need "now" take a Clock instead of reading the wall clock
directly, so tests can pin the current instant.

Usage:
    from study_metrics.services.clock import FixedClock, SystemClock

    clock = SystemClock()
    now = clock.now()  # timezone-aware UTC

    test_clock = FixedClock(datetime(2024, 1, 15, 3, 0, tzinfo=timezone.utc))
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        """Return the current instant as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Clock backed by the system wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at a given instant. Naive datetimes are taken as UTC."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._instant

    def advance(self, delta: timedelta) -> None:
        """Move the frozen instant forward by ``delta``."""
        self._instant = self._instant + delta


def server_today(clock: Clock) -> date:
    """Return the calendar date observed in the server's local timezone."""
    return clock.now().astimezone().date()
