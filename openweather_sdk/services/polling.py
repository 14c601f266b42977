from __future__ import annotations

import threading
from concurrent.futures import Future
from datetime import timedelta
from functools import partial
from typing import Optional, Set

import structlog

from ..schemas.weather import WeatherResponse
from .client import WeatherClient

logger = structlog.get_logger()


class RefreshLoop:
    """Re-fetches every cached city of a client once per interval.

    Runs on a single daemon thread. Each cycle dispatches one async refresh
    per city without waiting on them; failures are logged and never stop the
    loop. Only ``stop()`` ends it.
    """

    def __init__(self, client: WeatherClient, interval: timedelta, logging_enabled: bool = False) -> None:
        self.interval_s = interval.total_seconds()
        self.logging_enabled = logging_enabled
        self._client = client
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="openweather-poll", daemon=True)

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stop.is_set()

    def start(self) -> None:
        if self.logging_enabled:
            logger.info("polling_start", interval_s=self.interval_s)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            try:
                self.poll_once()
            except Exception as e:
                logger.error("poll_cycle_failed", error=str(e))

    def poll_once(self) -> None:
        cities = self._client.cached_cities()
        if self.logging_enabled:
            logger.debug("poll_cycle", cities=len(cities))
        for city in cities:
            if self._stop.is_set():
                return
            try:
                future = self._client.refresh_async(city)
            except Exception as e:
                logger.warning("poll_refresh_failed", city=city, error=str(e))
                continue
            future.add_done_callback(partial(self._on_refreshed, city))

    def _on_refreshed(self, city: str, future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.warning("poll_refresh_failed", city=city, error=str(error))
        elif self.logging_enabled:
            logger.debug("poll_refresh_complete", city=city)

    def stop(self, timeout: Optional[float] = None) -> None:
        if self._stop.is_set():
            return
        self._stop.set()
        if self.logging_enabled:
            logger.info("polling_stop")
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)


class PollingWeatherClient:
    """A ``WeatherClient`` whose cached cities are kept fresh in the background."""

    def __init__(self, client: WeatherClient, polling_interval: timedelta) -> None:
        self._client = client
        self.polling_interval = polling_interval
        self._loop = RefreshLoop(client, polling_interval, client.logging_enabled)
        self._loop.start()

    @property
    def language(self):
        return self._client.language

    @property
    def units(self):
        return self._client.units

    @property
    def cache_shared(self) -> bool:
        return self._client.cache_shared

    @property
    def closed(self) -> bool:
        return self._client.closed

    @property
    def polling(self) -> bool:
        return self._loop.running

    def get_weather(self, city: str) -> WeatherResponse:
        return self._client.get_weather(city)

    def get_weather_async(self, city: str) -> "Future[WeatherResponse]":
        return self._client.get_weather_async(city)

    def cached_cities(self) -> Set[str]:
        return self._client.cached_cities()

    def close(self) -> None:
        self._loop.stop()
        self._client.close()

    def __enter__(self) -> "PollingWeatherClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
