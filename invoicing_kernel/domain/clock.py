"""
Clock -- time source injected into the allocator and the issuance services.

The document series is keyed by calendar year, so the year an invoice is
numbered in comes from here, as do issued_at and the timestamps on call-log
and history rows.  Nothing in the kernel calls ``datetime.now()`` directly.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware."""

    def current_year(self) -> int:
        """Year whose document series new numbers are drawn from."""
        return self.now().year


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Tests use ``set_time()`` to cross a year boundary and ``advance()`` to
    push a cached gateway token past its expiry.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Move one second forward and return the new time."""
        self.advance()
        return self._current
