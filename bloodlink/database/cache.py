"""
In-memory cache with TTL for the JSON stores
Avoids re-reading the request and user files on every lookup
"""
import time
from typing import Any, Callable, Dict, Optional, Tuple
from threading import Lock


class TTLCache:
    """
    Thread-safe in-memory cache with TTL (Time To Live)

    A ttl of 0 disables caching entirely.
    """
    def __init__(self, ttl_seconds: int = 60, timer: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self._timer = timer
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired"""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if self._timer() < expiry:
                return value
            del self._cache[key]
            return None

    def set(self, key: str, value: Any):
        """Set value in cache with TTL"""
        if self.ttl <= 0:
            return
        with self._lock:
            self._cache[key] = (value, self._timer() + self.ttl)

    def invalidate(self, key: str):
        """Remove key from cache"""
        with self._lock:
            self._cache.pop(key, None)

    def clear(self):
        """Clear all cache entries"""
        with self._lock:
            self._cache.clear()
