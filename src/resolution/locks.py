"""
Per-key locking for canonical article mutations.

Two candidates updating the same canonical article must not interleave;
updates of different articles proceed independently.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class KeyedLock:
    """Lazily created lock per key, reference counted so idle keys are dropped."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def active_keys(self) -> list[str]:
        with self._guard:
            return list(self._locks)
