"""Short-lived cache of session token lookups against the auth service."""

import hashlib
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, NamedTuple, Optional

logger = logging.getLogger(__name__)


class CachedLookup(NamedTuple):
    result: Dict[str, Any]
    expires_at: float


class AuthCache:
    """
    Remembers recent /auth/me answers keyed by a hash of the token.

    Successful lookups (a result with a "user" entry) live for success_ttl
    seconds, rejections for failure_ttl so a revoked token is not retried on
    every request. The cache is bounded; the oldest entry is evicted first.
    """

    def __init__(self, success_ttl: int = 60, failure_ttl: int = 10, max_entries: int = 1024):
        self.success_ttl = success_ttl
        self.failure_ttl = failure_ttl
        self.max_entries = max_entries
        self._cache: "OrderedDict[str, CachedLookup]" = OrderedDict()
        self._lock = threading.Lock()

    def _make_key(self, token: str) -> str:
        # Raw tokens are never stored
        return hashlib.sha256(token.encode()).hexdigest()

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the cached lookup for a token, or None if absent or expired."""
        cache_key = self._make_key(token)
        with self._lock:
            entry = self._cache.get(cache_key)
            if entry is None:
                return None
            if time.time() > entry.expires_at:
                del self._cache[cache_key]
                return None
            return entry.result

    def set(self, token: str, result: Dict[str, Any]):
        """Cache a lookup; the TTL depends on whether it identified a user."""
        is_success = "user" in result
        ttl = self.success_ttl if is_success else self.failure_ttl
        cache_key = self._make_key(token)

        with self._lock:
            self._cache[cache_key] = CachedLookup(result=result, expires_at=time.time() + ttl)
            self._cache.move_to_end(cache_key)
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)

        logger.debug(f"Cached auth result (TTL: {ttl}s, success: {is_success})")

    def purge_expired(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = time.time()
        with self._lock:
            expired = [key for key, entry in self._cache.items() if now > entry.expires_at]
            for key in expired:
                del self._cache[key]
        return len(expired)

    def clear(self):
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


_auth_cache_instance: Optional[AuthCache] = None


def get_auth_cache() -> AuthCache:
    """Get the global auth cache, building it from config on first use."""
    global _auth_cache_instance
    if _auth_cache_instance is None:
        from app.config import config
        _auth_cache_instance = AuthCache(success_ttl=config.AUTH_CACHE_TTL_SECONDS, failure_ttl=10)
    return _auth_cache_instance


def set_auth_cache(cache: AuthCache):
    """Install the global auth cache (done at startup and in tests)."""
    global _auth_cache_instance
    _auth_cache_instance = cache
