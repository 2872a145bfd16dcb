"""In-memory cache for loaded tables.

The cache is private to one process. Invalidation is not broadcast, so
several server processes over the same workbooks can each serve a stale
copy until their own TTL expires.
"""

import time
import logging
import threading
from typing import Optional, Dict, Any, Tuple
from dataclasses import dataclass

from app.store import Table

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class CacheEntry:
    """Cache entry for one table."""
    table: Table
    timestamp: float  # milliseconds since epoch
    ttl: int  # milliseconds


class TableCache:
    """Time-boxed cache of table snapshots, keyed by table key."""

    def __init__(self, default_ttl: int = 300000):
        """
        Initialize table cache.

        Args:
            default_ttl: TTL in milliseconds for entries stored without an explicit TTL
        """
        self.default_ttl = default_ttl
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        # Bumped on every invalidation so a load that raced a write is not cached
        self._generations: Dict[str, int] = {}
        self._epoch = 0

    def get(self, key: str) -> Optional[Table]:
        """
        Get a cached table.

        Returns:
            Cached table if present and not expired, None otherwise
        """
        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                return None

            if _now_ms() - entry.timestamp > entry.ttl:
                del self._cache[key]
                logger.debug(f"Cache entry expired: {key}")
                return None

            return entry.table

    def set(self, key: str, table: Table, ttl: Optional[int] = None):
        """
        Cache a table snapshot.

        Args:
            key: Table key
            table: Loaded table
            ttl: TTL in milliseconds (defaults to default_ttl)
        """
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._cache[key] = CacheEntry(table=table, timestamp=_now_ms(), ttl=ttl)
        logger.debug(f"Cached table {key} ({len(table.rows)} rows, TTL: {ttl}ms)")

    def generation(self, key: str) -> Tuple[int, int]:
        """Token that changes whenever key (or the whole cache) is invalidated."""
        with self._lock:
            return (self._epoch, self._generations.get(key, 0))

    def set_if_current(self, key: str, table: Table, generation: Tuple[int, int], ttl: Optional[int] = None) -> bool:
        """
        Cache a table loaded after generation(key) was taken.

        Nothing is stored if the key was invalidated in between, since the
        load may predate a committed write.

        Returns:
            True if the table was cached
        """
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            if (self._epoch, self._generations.get(key, 0)) != generation:
                logger.debug(f"Discarding load of {key}: invalidated while loading")
                return False
            self._cache[key] = CacheEntry(table=table, timestamp=_now_ms(), ttl=ttl)
        logger.debug(f"Cached table {key} ({len(table.rows)} rows, TTL: {ttl}ms)")
        return True

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def invalidate(self, key: str) -> bool:
        """Remove one entry. Returns True if an entry was removed."""
        with self._lock:
            self._generations[key] = self._generations.get(key, 0) + 1
            removed = self._cache.pop(key, None) is not None
        if removed:
            logger.debug(f"Invalidated cache entry: {key}")
        return removed

    def invalidate_all(self):
        """Clear all cache entries."""
        with self._lock:
            self._epoch += 1
            self._cache.clear()

    def stats(self) -> Dict[str, Dict[str, Any]]:
        """Age, TTL and expiry of every entry (for diagnostics)."""
        now = _now_ms()
        with self._lock:
            return {
                key: {
                    "age": now - entry.timestamp,
                    "ttl": entry.ttl,
                    "expired": now - entry.timestamp > entry.ttl,
                    "size": len(entry.table.rows),
                }
                for key, entry in self._cache.items()
            }

    def cleanup(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = _now_ms()
        with self._lock:
            expired = [key for key, entry in self._cache.items() if now - entry.timestamp > entry.ttl]
            for key in expired:
                del self._cache[key]
        return len(expired)

    def size(self) -> int:
        with self._lock:
            return len(self._cache)
