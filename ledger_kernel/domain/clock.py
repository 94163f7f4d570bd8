"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that callers obtain "now" in one place
    and pass it into the engines. Engines never call ``datetime.now()``;
    ``pending_since`` and settlement timestamps take explicit datetimes.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock returning actual system time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()``, ``advance_days()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: int = 1) -> None:
        self._offset += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._offset += timedelta(days=days)
