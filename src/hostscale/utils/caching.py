"""
hostscale Caching Utilities

Small thread-safe in-memory cache with per-entry TTL and explicit
invalidation.
"""

import time
import threading
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

_MISSING = object()


@dataclass
class CacheEntry(Generic[T]):
    """Single cache entry"""
    value: T
    created_at: float
    ttl: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired"""
        if self.ttl is None:
            return False
        return now - self.created_at > self.ttl


class TTLCache(Generic[T]):
    """
    Thread-safe cache whose entries expire after a TTL.

    Example:
        cache = TTLCache(default_ttl=3600)
        info = cache.remember("deployment_info", detector.detect)
        cache.forget("deployment_info")
    """

    def __init__(self, default_ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.RLock()

    def get(self, key: str, default: Optional[T] = None) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return default
            return entry.value

    def set(self, key: str, value: T, ttl: Any = _MISSING) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(
                value=value,
                created_at=self._clock(),
                ttl=self.default_ttl if ttl is _MISSING else ttl
            )

    def remember(self, key: str, factory: Callable[[], T], ttl: Any = _MISSING) -> T:
        """Return the cached value, computing and storing it on a miss"""
        with self._lock:
            value = self.get(key, _MISSING)
            if value is _MISSING:
                value = factory()
                self.set(key, value, ttl)
            return value

    def forget(self, key: str) -> bool:
        """Drop one entry; returns whether it existed"""
        with self._lock:
            existed = self._entries.pop(key, None) is not None
            if existed:
                logger.debug(f"Cache entry forgotten: {key}")
            return existed

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
