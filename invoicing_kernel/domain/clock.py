"""
Injectable time source.

Services, the bulk processor and the auditor read the current instant from a
Clock handed to them at construction; nothing in the package calls
``datetime.now()`` or ``date.today()`` directly.  Due-date arithmetic, overdue
sweeps and the deletion recency window therefore behave identically in tests
and in production.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Source of the current UTC instant."""

    @abstractmethod
    def now(self) -> datetime:
        """Timezone-aware UTC datetime."""

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time stands still until ``advance`` or ``advance_days`` moves it.  The
    default starting point is 2024-01-01 12:00 UTC.
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._current = (start or self.DEFAULT_START).astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)
