"""
BillLockRegistry -- per-bill exclusive locks.

Responsibility:
    Serializes mutations of ONE bill (payments, lifecycle actions, draft
    edits) while leaving other bills completely independent.  There is no
    global operation lock: the registry's own mutex only guards the lookup
    table and is never held while a caller works.

Invariants enforced:
    - At most one thread holds the lock for a given key at a time.
    - Entries are dropped when no thread holds or waits on them, so the
      table does not grow with the number of bills ever touched.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field


@dataclass
class _Entry:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


class BillLockRegistry:
    """Keyed re-entrant locks, one per bill id (or other key)."""

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the exclusive lock for ``key`` for the duration of the block."""
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._mutex:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def active_keys(self) -> frozenset[str]:
        """Keys currently held or awaited."""
        with self._mutex:
            return frozenset(self._entries)
