"""
TTL Cache.

In-memory key/value store with per-entry expiry, LRU eviction under a
size bound, regex-based invalidation and hit/miss statistics. Used for
read-heavy chain queries (plan info, member info, system stats).
"""

import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger


@dataclass
class CacheEntry:
    """Cached value with expiry and access metadata."""

    value: Any
    expires_at: float
    created_at: float
    last_accessed: float
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class TTLCache:
    """
    Thread-safe TTL cache with LRU eviction.

    Entries live in an OrderedDict kept in recency order: reads and writes
    move a key to the end, so the least-recently-accessed key is always
    first. Expired entries are removed lazily on read and by cleanup().

    Usage:
        cache = TTLCache(max_size=5000)
        cache.set("plan_1", plan, ttl=3600)
        plan = cache.get("plan_1")
        cache.delete_by_pattern(r"^member_")
    """

    def __init__(
        self,
        max_size: int = 5000,
        default_ttl: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize cache.

        Args:
            max_size: Maximum number of entries
            default_ttl: TTL used when set() gets none
            clock: Monotonic time source
        """
        if max_size <= 0:
            raise ValueError("max_size must be positive")

        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0
        self._expirations = 0

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Store value under key.

        Args:
            key: Cache key
            value: Value to store
            ttl: Time to live in seconds (default_ttl when None)
        """
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            if key in self._store:
                del self._store[key]
            elif len(self._store) >= self.max_size:
                self._evict(len(self._store) - self.max_size + 1)

            self._store[key] = CacheEntry(
                value=value,
                expires_at=now + ttl,
                created_at=now,
                last_accessed=now,
            )
            self._sets += 1

    def set_many(self, items: dict[str, Any], ttl: float | None = None) -> None:
        """Store several values with the same TTL."""
        for key, value in items.items():
            self.set(key, value, ttl)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get value for key.

        Args:
            key: Cache key
            default: Returned on miss

        Returns:
            Cached value or default if missing or expired
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return default

            now = self._clock()
            if entry.is_expired(now):
                del self._store[key]
                self._expirations += 1
                self._misses += 1
                return default

            entry.last_accessed = now
            entry.access_count += 1
            self._store.move_to_end(key)
            self._hits += 1
            return entry.value

    def has(self, key: str) -> bool:
        """Check for a live entry without touching statistics or recency."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                del self._store[key]
                self._expirations += 1
                return False
            return True

    def delete(self, key: str) -> bool:
        """
        Remove key.

        Returns:
            True if the key was present
        """
        with self._lock:
            if self._store.pop(key, None) is None:
                return False
            self._deletes += 1
            return True

    def delete_by_pattern(self, pattern: str) -> int:
        """
        Remove all keys matching a regular expression.

        Args:
            pattern: Regex searched in each key

        Returns:
            Number of removed keys
        """
        regex = re.compile(pattern)
        with self._lock:
            keys = [key for key in self._store if regex.search(key)]
            for key in keys:
                del self._store[key]
            self._deletes += len(keys)

        if keys:
            logger.debug(f"[Cache] Deleted {len(keys)} keys matching '{pattern}'")
        return len(keys)

    def get_by_pattern(self, pattern: str) -> dict[str, Any]:
        """Get live values for all keys matching a regular expression."""
        regex = re.compile(pattern)
        with self._lock:
            now = self._clock()
            return {
                key: entry.value
                for key, entry in self._store.items()
                if regex.search(key) and not entry.is_expired(now)
            }

    def extend(self, key: str, seconds: float) -> bool:
        """
        Push a live entry's expiry further out.

        Returns:
            False if the key is missing or already expired
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return False
            entry.expires_at += seconds
            return True

    def get_info(self, key: str) -> dict[str, Any] | None:
        """Get entry metadata (age, remaining TTL, access count)."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            now = self._clock()
            return {
                "key": key,
                "age": now - entry.created_at,
                "ttl_remaining": max(0.0, entry.expires_at - now),
                "access_count": entry.access_count,
                "expired": entry.is_expired(now),
            }

    def get_top_keys(self, limit: int = 10) -> list[tuple[str, int]]:
        """Get most frequently read keys with their access counts."""
        with self._lock:
            ranked = sorted(
                ((key, entry.access_count) for key, entry in self._store.items()),
                key=lambda item: item[1],
                reverse=True,
            )
        return ranked[:limit]

    def cleanup(self) -> int:
        """
        Purge expired entries.

        Returns:
            Number of removed entries
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._store.items() if entry.is_expired(now)]
            for key in expired:
                del self._store[key]
            self._expirations += len(expired)

        if expired:
            logger.debug(f"[Cache] Swept {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._deletes += len(self._store)
            self._store.clear()

    def get_stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with size, counters and hit rate (percent)
        """
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._store),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "sets": self._sets,
                "deletes": self._deletes,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "hit_rate": round(self._hits / lookups * 100, 2) if lookups else 0.0,
            }

    def __len__(self) -> int:
        return len(self._store)

    def _evict(self, count: int) -> None:
        """Evict up to count least-recently-accessed entries (lock held)."""
        for _ in range(min(count, len(self._store))):
            key, _ = self._store.popitem(last=False)
            self._evictions += 1
            logger.debug(f"[Cache] Evicted LRU key '{key}'")
