"""Per-key serialization for resolution.

Two resolutions for the same key (domain, name, or email) must never
both create a row. KeyedLock hands out one reentrant lock per key and
drops it again once nobody holds or waits on it.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .errors import LockTimeoutError


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self):
        self.lock = threading.RLock()
        self.refs = 0


class KeyedLock:
    """A registry of locks keyed by resolution key."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1

        acquired = entry.lock.acquire(timeout=self.timeout)
        try:
            if not acquired:
                raise LockTimeoutError(
                    f"Timed out waiting for resolution lock on {key}",
                    details={"key": key, "timeout": self.timeout},
                )
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.refs -= 1
                if entry.refs == 0:
                    self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


_default_locks: KeyedLock | None = None


def get_default_locks() -> KeyedLock:
    """Process-wide lock registry shared by resolvers."""
    global _default_locks
    if _default_locks is None:
        from ..config import get_settings

        _default_locks = KeyedLock(timeout=get_settings().lock_timeout_seconds)
    return _default_locks
