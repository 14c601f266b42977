from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Set

import structlog

from ..config import SupportedLanguage, Units
from ..errors import ShutdownError
from ..schemas.weather import WeatherResponse
from .cache import WeatherCache
from .weather_api import OpenWeatherApi

logger = structlog.get_logger()


class WeatherClient:
    """Cache-first weather lookups for one API key.

    Concurrent misses for the same city are not coalesced: each one calls the
    API and the cache keeps whichever response is written last.
    """

    def __init__(
        self,
        language: SupportedLanguage,
        units: Units,
        cache: WeatherCache,
        cache_shared: bool,
        weather_api: OpenWeatherApi,
        logging_enabled: bool = False,
    ) -> None:
        self.language = language
        self.units = units
        self.cache_shared = cache_shared
        self.logging_enabled = logging_enabled
        self._cache = cache
        self._api = weather_api
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def get_weather(self, city: str) -> WeatherResponse:
        self._check_open()
        cached = self._lookup(city)
        if cached is not None:
            return cached

        response = self._api.weather(city, self.language, self.units)
        self._store(city, response)
        return response

    def get_weather_async(self, city: str) -> "Future[WeatherResponse]":
        self._check_open()
        cached = self._lookup(city)
        if cached is not None:
            done: Future = Future()
            done.set_result(cached)
            return done
        return self.refresh_async(city)

    def refresh_async(self, city: str) -> "Future[WeatherResponse]":
        """Fetch ``city`` and overwrite its cache entry, skipping the cache read."""
        self._check_open()
        return self._api.weather_async(
            city, self.language, self.units, on_result=lambda r: self._store(city, r)
        )

    def cached_cities(self) -> Set[str]:
        return self._cache.keys()

    def _lookup(self, city: str):
        if self.logging_enabled:
            logger.debug("get_weather", city=city)
        cached = self._cache.get(city)
        if self.logging_enabled:
            logger.debug("cache_hit" if cached is not None else "cache_miss", city=city)
        return cached

    def _store(self, city: str, response: WeatherResponse) -> None:
        self._cache.put(city, response)
        if self.logging_enabled:
            logger.debug("cache_put", city=city)

    def _check_open(self) -> None:
        if self._closed:
            raise ShutdownError("WeatherClient")

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        if self.logging_enabled:
            logger.info("weather_client_close", cache_shared=self.cache_shared)
        # fetcher first, so a late refresh cannot refill a cleared cache;
        # a shared cache still serves other clients
        self._api.shutdown()
        if not self.cache_shared:
            self._cache.invalidate_all()

    def __enter__(self) -> "WeatherClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
