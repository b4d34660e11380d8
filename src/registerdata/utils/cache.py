"""
In-memory caching utilities for loaded and joined registry data.

Provides a bounded cache with generational eviction and the locks that
guard it. Caches are plain objects owned by whoever creates them; there is
no module-level cache state.
"""

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generic, TypeVar

from registerdata.errors import LockError
from registerdata.utils.logging import get_logger

log = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time counters of a bounded cache."""

    name: str
    entries: int
    max_entries: int
    hits: int
    misses: int
    evictions: int


class BoundedCache(Generic[K, V]):
    """
    Insertion-ordered cache with a fixed entry limit.

    When an insert would exceed the limit, the oldest ``eviction_fraction``
    of the limit (at least one entry) is dropped in one step. This is
    cheaper to maintain than LRU and adequate for batch workloads where
    entries are large and few.

    Not thread-safe on its own; callers guard it with a lock.
    """

    def __init__(
        self,
        max_entries: int,
        eviction_fraction: float = 0.25,
        name: str = "cache",
    ) -> None:
        """
        Initialize cache.

        Args:
            max_entries: Maximum number of entries held.
            eviction_fraction: Share of ``max_entries`` dropped on overflow.
            name: Name used in log events and stats.
        """
        if max_entries < 1:
            msg = f"max_entries must be positive, got {max_entries}"
            raise ValueError(msg)
        self.name = name
        self.max_entries = max_entries
        self.eviction_fraction = eviction_fraction
        self._entries: dict[K, V] = {}
        self._counter_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[K]:
        """Keys from oldest to newest."""
        return list(self._entries)

    def get(self, key: K) -> V | None:
        """
        Get a cached value.

        Args:
            key: Cache key.

        Returns:
            Cached value or None on a miss.
        """
        value = self._entries.get(key)
        with self._counter_lock:
            if value is None:
                self._misses += 1
            else:
                self._hits += 1
        if value is None:
            log.debug("Cache miss", cache=self.name, key=str(key))
        else:
            log.debug("Cache hit", cache=self.name, key=str(key))
        return value

    def set(self, key: K, value: V) -> list[K]:
        """
        Store a value, evicting the oldest generation if full.

        Re-setting an existing key replaces the value and makes it newest.

        Args:
            key: Cache key.
            value: Value to cache.

        Returns:
            Keys evicted to make room.
        """
        evicted: list[K] = []
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_entries:
            evicted = self._evict()
        self._entries[key] = value
        return evicted

    def _evict(self) -> list[K]:
        n_evict = max(1, int(self.max_entries * self.eviction_fraction))
        victims = list(self._entries)[:n_evict]
        for victim in victims:
            del self._entries[victim]
        with self._counter_lock:
            self._evictions += len(victims)
        log.debug("Cache eviction", cache=self.name, evicted=len(victims))
        return victims

    def invalidate(self, key: K) -> bool:
        """
        Invalidate a cache entry.

        Args:
            key: Cache key.

        Returns:
            True if an entry was removed.
        """
        if key in self._entries:
            del self._entries[key]
            log.debug("Cache invalidated", cache=self.name, key=str(key))
            return True
        return False

    def clear(self) -> int:
        """
        Remove all entries.

        Returns:
            Number of entries removed.
        """
        count = len(self._entries)
        self._entries.clear()
        log.debug("Cache cleared", cache=self.name, entries_removed=count)
        return count

    def stats(self) -> CacheStats:
        """Snapshot of size and hit/miss/eviction counters."""
        with self._counter_lock:
            return CacheStats(
                name=self.name,
                entries=len(self._entries),
                max_entries=self.max_entries,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )


class ReadWriteLock:
    """
    Many-readers / single-writer lock.

    Waiting writers block new readers so a steady read load cannot starve
    inserts.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the lock for reading.

        Args:
            timeout: Seconds to wait before giving up (None waits forever).

        Raises:
            LockError: If the lock could not be acquired in time.
        """
        with self._cond:
            acquired = self._cond.wait_for(
                lambda: not self._writer and self._writers_waiting == 0,
                timeout=timeout,
            )
            if not acquired:
                msg = f"Timed out after {timeout}s waiting for read lock"
                raise LockError(msg)
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the lock exclusively.

        Args:
            timeout: Seconds to wait before giving up (None waits forever).

        Raises:
            LockError: If the lock could not be acquired in time.
        """
        with self._cond:
            self._writers_waiting += 1
            try:
                acquired = self._cond.wait_for(
                    lambda: not self._writer and self._readers == 0,
                    timeout=timeout,
                )
            finally:
                self._writers_waiting -= 1
            if not acquired:
                self._cond.notify_all()
                msg = f"Timed out after {timeout}s waiting for write lock"
                raise LockError(msg)
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@contextmanager
def hold(lock: threading.Lock, timeout: float | None = None) -> Iterator[None]:
    """
    Hold a mutex with an optional timeout.

    Args:
        lock: Mutex to acquire.
        timeout: Seconds to wait before giving up (None waits forever).

    Raises:
        LockError: If the lock could not be acquired in time.
    """
    acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
    if not acquired:
        msg = f"Timed out after {timeout}s waiting for cache lock"
        raise LockError(msg)
    try:
        yield
    finally:
        lock.release()
