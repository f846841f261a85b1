# search_gateway/storage/cache_store.py

"""Key/value cache with per-entry TTL.

The store knows nothing about query semantics. Expiry is passive: an
entry past its TTL is dropped the moment it is read, so an expired
value is never returned.
"""

import asyncio
import fnmatch
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("search_gateway.cache")


@dataclass(frozen=True)
class CacheEntry:
    """A stored value with the moment it was written and its lifetime."""

    value: Any
    stored_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        """True once ``ttl`` seconds have passed since ``stored_at``."""
        return now - self.stored_at >= self.ttl


class CacheStore(ABC):
    """Contract every cache backend fulfils.

    Backends may raise :class:`~search_gateway.models.errors.CacheUnavailable`;
    callers are expected to treat that as a miss.

    ``blocking`` marks backends that do network I/O; async callers run
    their calls on a worker thread instead of the event loop.
    """

    blocking: bool = True

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the live value for ``key`` or ``None``."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store ``value``, replacing any previous value and TTL."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns whether it was present."""
        ...

    @abstractmethod
    def clear(self) -> int:
        """Remove every entry and return how many were removed."""
        ...

    def keys(self, pattern: str = "*") -> list[str]:
        """List live keys matching a glob ``pattern``.

        Backends that cannot enumerate keys leave this unimplemented,
        and pattern invalidation degrades to exact-key deletes.
        """
        raise NotImplementedError


class InMemoryCacheStore(CacheStore):
    """Thread-safe in-process cache backed by a dict."""

    blocking = False

    def __init__(
        self, clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(now):
                del self._entries[key]
                logger.debug("Expired cache entry %s", key)
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            logger.debug("Ignoring set of %s with ttl=%s", key, ttl_seconds)
            return
        entry = CacheEntry(
            value=value, stored_at=self._clock(), ttl=ttl_seconds,
        )
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Purge all cached entries.

        Returns the number of entries that were removed.
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Cache manually purged (%d entries removed)", count)
        return count

    def keys(self, pattern: str = "*") -> list[str]:
        now = self._clock()
        with self._lock:
            return [
                k
                for k, e in self._entries.items()
                if not e.expired(now) and fnmatch.fnmatchcase(k, pattern)
            ]

    def purge_expired(self) -> int:
        """Remove entries older than their TTL; returns the count."""
        now = self._clock()
        with self._lock:
            stale = [
                k for k, e in self._entries.items() if e.expired(now)
            ]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.debug("Evicted %d expired cache entries", len(stale))
        return len(stale)


def safe_get(store: CacheStore, key: str) -> Any | None:
    """Read ``key``, treating any store fault as a miss."""
    try:
        return store.get(key)
    except Exception as exc:
        logger.warning(
            "Cache read failed for %s, treating as miss: %s", key, exc,
        )
        return None


def safe_set(
    store: CacheStore, key: str, value: Any, ttl_seconds: float,
) -> bool:
    """Write ``key``, swallowing store faults. Returns success."""
    try:
        store.set(key, value, ttl_seconds)
    except Exception as exc:
        logger.warning("Cache write failed for %s: %s", key, exc)
        return False
    logger.debug("Cached %s (TTL: %.0fs)", key, ttl_seconds)
    return True


async def cache_get(store: CacheStore, key: str) -> Any | None:
    """Async :func:`safe_get`; blocking backends run on a worker thread."""
    if not store.blocking:
        return safe_get(store, key)
    return await asyncio.to_thread(safe_get, store, key)


async def cache_set(
    store: CacheStore, key: str, value: Any, ttl_seconds: float,
) -> bool:
    """Async :func:`safe_set`; blocking backends run on a worker thread."""
    if not store.blocking:
        return safe_set(store, key, value, ttl_seconds)
    return await asyncio.to_thread(safe_set, store, key, value, ttl_seconds)
