"""
Clock -- injectable time source.

Responsibility:
    Services never call ``datetime.now()`` directly; they receive a Clock.
    Ledger record timestamps are part of the hashed projection, so tests
    need to pin them.

Architecture position:
    Kernel > Domain -- pure, zero I/O (except SystemClock, the one
    sanctioned boundary for wall-clock time).
"""

import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()``, ``tick()`` or ``set_time()`` is called.
        - Safe to share between threads.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)
        self._advance = timedelta()
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return (self._fixed_time + self._advance).astimezone(UTC)

    def set_time(self, time: datetime) -> None:
        with self._lock:
            self._fixed_time = time
            self._advance = timedelta()

    def advance(self, seconds: float = 1) -> None:
        with self._lock:
            self._advance += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()
