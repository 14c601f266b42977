from __future__ import annotations

import json
from typing import Optional

import structlog
from pydantic import ValidationError

from .schemas.weather import ErrorResponse

logger = structlog.get_logger()


class OpenWeatherSdkError(Exception):
    """Base class for every error raised by the SDK."""


class WeatherApiError(OpenWeatherSdkError):
    """The provider answered with a non-success payload."""

    def __init__(self, code: int, status: str, message: str):
        super().__init__(f"Weather API error: code={code}, status={status}, message={message}")
        self.code = code
        self.status = status
        self.message = message


class ApiKeyError(WeatherApiError):
    pass


class NotFoundError(WeatherApiError):
    pass


class TooManyRequestsError(WeatherApiError):
    pass


class InternalApiError(WeatherApiError):
    pass


class TransportError(OpenWeatherSdkError):
    """Network level failure while talking to the provider."""


class RequestCancelledError(TransportError):
    """The request was explicitly cancelled by its caller."""


class DecodeError(OpenWeatherSdkError):
    """A success response body could not be parsed into a snapshot."""


class ConfigurationError(OpenWeatherSdkError):
    pass


class ShutdownError(ConfigurationError):
    def __init__(self, what: str = "OpenWeatherApi"):
        super().__init__(f"{what} has already been shut down")


UNKNOWN_ERROR_CODE = -1

_BY_CODE = {
    401: ApiKeyError,
    404: NotFoundError,
    429: TooManyRequestsError,
}
_SERVER_CODES = frozenset({500, 502, 503, 504})


def parse_error_response(status: str, payload: Optional[str]) -> WeatherApiError:
    """Map an OpenWeather error body (``{"cod": ..., "message": ...}``) onto the error taxonomy.

    A body that cannot be decoded yields a generic ``WeatherApiError`` with
    code ``-1`` instead of propagating the decode failure.
    """
    try:
        error = ErrorResponse.model_validate(json.loads(payload or ""))
    except (ValueError, TypeError, ValidationError) as e:
        logger.debug("error_payload_undecodable", status=status, error=str(e))
        return WeatherApiError(UNKNOWN_ERROR_CODE, status, "Unknown error")

    if error.cod in _SERVER_CODES:
        return InternalApiError(error.cod, status, error.message)
    cls = _BY_CODE.get(error.cod, WeatherApiError)
    return cls(error.cod, status, error.message)
