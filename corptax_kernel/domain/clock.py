"""
Clock -- injectable time source.

Engine and service code never call ``datetime.now()`` or ``date.today()``.
Installment due dates, 234C "past due" checks, 234B determination dates,
revision dates and rule pack cache expiry all read time through a Clock,
so a computation can be replayed exactly by fixing the clock.

Statutory dates are Indian calendar dates: ``today()`` is the date in IST
(UTC+05:30), so a payment made at 01:00 IST on 16 June is late even though
it is still 15 June in UTC.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

IST = timezone(timedelta(hours=5, minutes=30), name="IST")


class Clock(ABC):
    """
    Time source.

    Guarantees:
        - ``now()`` is timezone-aware.
        - ``today()`` is the IST calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().astimezone(IST).date()


class SystemClock(Clock):
    """Wall-clock time.  Not for tests or replay."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Starts at 09:00 UTC on 1 April 2024 (the first day of FY 2024-25) and
    only moves when told to.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(2024, 4, 1, 9, 0, 0, tzinfo=timezone.utc)
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        if time.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")
        self._fixed_time = time
        self._advance_seconds = 0

    def set_date(self, day: date) -> None:
        """Move to 09:00 UTC (14:30 IST) on ``day``."""
        self.set_time(datetime(day.year, day.month, day.day, 9, 0, 0, tzinfo=timezone.utc))

    def advance(self, seconds: int = 1) -> None:
        self._advance_seconds += seconds

    def advance_days(self, days: int) -> None:
        self._advance_seconds += days * 86400
