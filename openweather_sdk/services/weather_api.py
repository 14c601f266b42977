from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Optional

import requests
import structlog

from ..config import SupportedLanguage, Units
from ..errors import (
    DecodeError,
    RequestCancelledError,
    ShutdownError,
    TransportError,
    parse_error_response,
)
from ..logging import mask_key
from ..schemas.weather import WeatherResponse
from .transport import PendingCall, TransportPool

logger = structlog.get_logger()

DEFAULT_BASE_URL = "http://api.openweathermap.org"
WEATHER_ENDPOINT = "/data/2.5/weather"


class OpenWeatherApi:
    """Calls the current-weather endpoint for one API key.

    The transport is either dedicated to this fetcher (and shut down with it)
    or shared, in which case ``shutdown()`` leaves it alone.
    """

    def __init__(
        self,
        api_key: str,
        transport: TransportPool,
        transport_shared: bool,
        logging_enabled: bool = False,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self._api_key = api_key
        self._transport = transport
        self.transport_shared = transport_shared
        self.logging_enabled = logging_enabled
        self._url = base_url.rstrip("/") + WEATHER_ENDPOINT
        self._shutdown = False
        self._shutdown_lock = threading.Lock()

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def weather(self, city: str, language: SupportedLanguage, units: Units) -> WeatherResponse:
        if self.logging_enabled:
            logger.debug("weather_call", mode="sync", city=city, lang=str(language), units=str(units))
        self._check_shutdown()

        # run on the pool so the call timeout also bounds the wait for headers
        call = self._build_call(city, language, units)
        try:
            return self._transport.enqueue(call, self._handle_response).result()
        except RequestCancelledError:
            if self.logging_enabled:
                logger.debug("weather_call_cancelled", city=city)
            raise
        except TransportError as e:
            if self.logging_enabled:
                logger.warning("weather_call_failed", city=city, error=str(e))
            raise

    def weather_async(
        self,
        city: str,
        language: SupportedLanguage,
        units: Units,
        on_result: Optional[Callable[[WeatherResponse], None]] = None,
    ) -> "Future[WeatherResponse]":
        """Non-blocking variant of ``weather``; ``cancel()`` on the result aborts the request.

        ``on_result`` runs on the worker with the decoded snapshot before the
        future completes, so waiters observe its side effects.
        """
        if self.logging_enabled:
            logger.debug("weather_call", mode="async", city=city, lang=str(language), units=str(units))
        self._check_shutdown()

        def handle(response: requests.Response) -> WeatherResponse:
            snapshot = self._handle_response(response)
            if on_result is not None:
                on_result(snapshot)
            return snapshot

        call = self._build_call(city, language, units)
        future = self._transport.enqueue(call, handle)
        if self.logging_enabled:
            future.add_done_callback(lambda f: self._log_outcome(city, f))
        return future

    def _log_outcome(self, city: str, future: Future) -> None:
        error = future.exception()
        if error is None:
            logger.debug("weather_call_complete", city=city)
        elif isinstance(error, RequestCancelledError):
            logger.debug("weather_call_cancelled", city=city)
        else:
            logger.warning("weather_call_failed", city=city, error=str(error))

    def _check_shutdown(self) -> None:
        if self._shutdown:
            if self.logging_enabled:
                logger.warning("weather_api_shut_down", api_key=mask_key(self._api_key))
            raise ShutdownError("OpenWeatherApi")

    def _build_call(self, city: str, language: SupportedLanguage, units: Units) -> PendingCall:
        params = {
            "q": city,
            "lang": str(language),
            "units": str(units),
            "appid": self._api_key,
        }
        return self._transport.new_call(self._url, params)

    def _handle_response(self, response: requests.Response) -> WeatherResponse:
        status = response.reason or str(response.status_code)
        if not 200 <= response.status_code < 300:
            error = parse_error_response(status, response.text)
            if self.logging_enabled:
                logger.debug("weather_error_response", http_status=response.status_code, code=error.code)
            raise error

        try:
            payload = response.json()
            snapshot = WeatherResponse.from_payload(payload)
        except ValueError as e:
            if self.logging_enabled:
                logger.error("weather_response_undecodable", error=str(e))
            raise DecodeError(f"Unable to parse response: {e}") from e

        if self.logging_enabled:
            logger.debug("weather_response", name=snapshot.name, dt=snapshot.datetime)
        return snapshot

    def shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shutdown:
                if self.logging_enabled:
                    logger.debug("weather_api_already_shut_down")
                return
            self._shutdown = True

        if self.transport_shared:
            return
        self._transport.shutdown()
