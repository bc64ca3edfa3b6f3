"""
In-process caches shared by the best-stocks and similarity lookups.

Both caches sit behind a reader/writer lock: any number of request threads
may read at once, while a writer (a cache fill or an invalidation) holds the
lock alone. A fill replaces the cached value wholesale; readers never see a
half-written entry.

Each cache carries a generation number that ``invalidate()`` bumps. A caller
reads ``generation`` before fetching from the store and passes it to
``put()``; a fill computed from data older than the last invalidation is
dropped instead of stored.

Two shapes are provided:

  - ``TTLSlotCache`` - a single value with a time-to-live (best stocks).
  - ``KeyedCache``   - a dict of values without expiry (similar stocks),
    cleared wholesale on invalidation.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Callable, Generator, Generic, Optional, TypeVar

T = TypeVar("T")


class ReadWriteLock:
    """Many-readers / one-writer lock; writers are preferred once waiting."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Generator[None, None, None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Generator[None, None, None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class TTLSlotCache(Generic[T]):
    """A single cached value that expires ``ttl_seconds`` after it was stored.

    Args:
        ttl_seconds: Lifetime of a stored value.
        clock: Monotonic seconds source; tests inject a fake.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = ReadWriteLock()
        self._value: Optional[T] = None
        self._stored_at: Optional[float] = None
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._lock.read():
            return self._generation

    def get(self) -> Optional[T]:
        """Return the live value, or ``None`` when empty or expired."""
        with self._lock.read():
            if self._stored_at is None:
                return None
            if self._clock() - self._stored_at >= self.ttl_seconds:
                return None
            return self._value

    def put(self, value: T, generation: Optional[int] = None) -> bool:
        """Store ``value``. Returns ``False`` if it was dropped as stale.

        When ``generation`` is given and an invalidation happened since it
        was read, the value is discarded.
        """
        with self._lock.write():
            if generation is not None and generation != self._generation:
                return False
            self._value = value
            self._stored_at = self._clock()
            return True

    def invalidate(self) -> None:
        with self._lock.write():
            self._generation += 1
            self._value = None
            self._stored_at = None


class KeyedCache(Generic[T]):
    """Unbounded key → value cache without expiry."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._entries: dict[str, T] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._lock.read():
            return self._generation

    def get(self, key: str) -> Optional[T]:
        with self._lock.read():
            return self._entries.get(key)

    def put(self, key: str, value: T, generation: Optional[int] = None) -> bool:
        """Store ``value`` under ``key`` unless invalidated since ``generation``."""
        with self._lock.write():
            if generation is not None and generation != self._generation:
                return False
            self._entries[key] = value
            return True

    def invalidate(self) -> None:
        with self._lock.write():
            self._generation += 1
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)
