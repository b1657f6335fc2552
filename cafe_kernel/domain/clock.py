"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that lifecycle and payroll code never call
    ``datetime.now()`` or ``date.today()`` directly.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    the one sanctioned I/O boundary for time).

Invariants enforced:
    - ``now()`` returns branch-local wall-clock time as a naive datetime,
      the same convention as shift and break columns.

Audit relevance:
    Notice-window checks ("three days in advance") and resolution timestamps
    are traceable to an injected Clock instance and reproducible in tests.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need the current time receive a Clock instance via
        constructor injection.

    Guarantees:
        - ``now()`` returns a naive branch-local ``datetime``.
        - ``today()`` is the calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current branch-local wall-clock time."""
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """
    Production clock reading the system time in the branch timezone.

    Non-goals:
        Not suitable for deterministic tests.
    """

    def __init__(self, timezone_name: str = "Asia/Manila"):
        self._zone = ZoneInfo(timezone_name)

    def now(self) -> datetime:
        return datetime.now(self._zone).replace(tzinfo=None, microsecond=0)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(2025, 1, 6, 9, 0, 0)
        self._advance_seconds = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def advance(self, seconds: int = 1) -> datetime:
        """Move the clock forward and return the new time."""
        self._advance_seconds += seconds
        return self.now()

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0
