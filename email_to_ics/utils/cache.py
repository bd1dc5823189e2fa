import threading
import time
from typing import Any, Dict, Optional, Tuple


class TTLCache:
    """Thread-safe in-memory cache whose entries expire after a fixed TTL."""

    def __init__(self, default_ttl_seconds: float = 900):
        self.default_ttl = default_ttl_seconds
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""
        with self._lock:
            item = self._cache.get(key)
            if item is None:
                return None
            value, expiry_time = item
            if time.monotonic() > expiry_time:
                del self._cache[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        with self._lock:
            self._cache[key] = (value, time.monotonic() + ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
