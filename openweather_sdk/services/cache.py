from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Set

import structlog
from cachetools import TTLCache

from ..config import CacheSettings
from ..schemas.weather import WeatherResponse

logger = structlog.get_logger()


class WeatherCache:
    """Thread-safe city -> snapshot cache.

    Entries expire ``ttl`` after their last write. Once ``max_size`` is
    reached, a write evicts the least recently used entry first. Expired
    entries are dropped lazily on access and before every ``keys()`` snapshot.
    """

    def __init__(self, ttl_s: float, max_size: int, timer: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._store: TTLCache = TTLCache(maxsize=max_size, ttl=ttl_s, timer=timer)
        self.ttl_s = ttl_s
        self.max_size = max_size

    def get(self, key: str) -> Optional[WeatherResponse]:
        with self._lock:
            return self._store.get(key)

    def put(self, key: str, value: WeatherResponse) -> None:
        with self._lock:
            self._store[key] = value

    def keys(self) -> Set[str]:
        with self._lock:
            self._store.expire()
            return set(self._store.keys())

    def invalidate_all(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            self._store.expire()
            return len(self._store)

    def __repr__(self) -> str:
        return f"WeatherCache(ttl_s={self.ttl_s}, max_size={self.max_size})"


def build_cache(settings: CacheSettings, timer: Callable[[], float] = time.monotonic) -> WeatherCache:
    cache = WeatherCache(settings.ttl.total_seconds(), settings.max_size, timer=timer)
    logger.debug("cache_init", ttl_s=cache.ttl_s, max_size=cache.max_size)
    return cache
