"""
Injectable time source for the billing services.

Payment timestamps, issue and due dates, and the overdue check all come
from a Clock handed to the service at construction.  Nothing below the
service layer reads the system time; the pure domain functions take
``now`` as an argument instead.

Every clock returns timezone-aware datetimes.  Naive datetimes are
rejected with ValueError.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"Clock times must be timezone-aware, got {value!r}")
    return value


class Clock(ABC):
    """Source of "now" for services."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Shared safely between the threads of a concurrency test; ``now()``
    keeps returning the same instant until ``advance``/``advance_days``/
    ``set_time`` is called.
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __init__(self, start: datetime | None = None):
        self._current = _require_aware(start or self.DEFAULT_START)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set_time(self, value: datetime) -> None:
        with self._lock:
            self._current = _require_aware(value)

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward by ``seconds`` and return the new time."""
        with self._lock:
            self._current += timedelta(seconds=seconds)
            return self._current

    def advance_days(self, days: int = 1) -> datetime:
        return self.advance(days * 86400)
