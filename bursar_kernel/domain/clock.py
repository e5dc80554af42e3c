"""
Clock -- injectable source of the current date.

Services take a ``Clock`` for the defaults that depend on "today": the
payment date of a new salary draft and the year in a fee payment
reference.  Engines never read the time; dates reach them as arguments.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """``now()`` is timezone-aware; ``today()`` is its date."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """A clock that only moves when told to.  Used by tests."""

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        if self._now.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")

    def now(self) -> datetime:
        return self._now

    def advance(self, days: int = 0, seconds: int = 0) -> None:
        self._now += timedelta(days=days, seconds=seconds)

    def set_date(self, day: date) -> None:
        """Move to ``day``, keeping the time of day."""
        self._now = self._now.replace(year=day.year, month=day.month, day=day.day)
