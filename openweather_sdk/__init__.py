"""Client-side access layer for the OpenWeather current weather API.

Subpackages:
- schemas: weather snapshot and error payload models.
- services: cache, HTTP transport, API fetcher and the client variants.

``WeatherSdk`` is the entry point: it builds one client per API key and owns
the resources shared between them.
"""

from .config import (
    CacheSettings,
    ClientConfig,
    SdkSettings,
    SupportedLanguage,
    TransportSettings,
    Units,
    UpdateMode,
)
from .errors import (
    ApiKeyError,
    ConfigurationError,
    DecodeError,
    InternalApiError,
    NotFoundError,
    OpenWeatherSdkError,
    RequestCancelledError,
    ShutdownError,
    TooManyRequestsError,
    TransportError,
    WeatherApiError,
)
from .registry import WeatherSdk
from .schemas.weather import WeatherResponse
from .services.client import WeatherClient
from .services.polling import PollingWeatherClient

__all__ = [
    "WeatherSdk",
    "WeatherClient",
    "PollingWeatherClient",
    "WeatherResponse",
    "ClientConfig",
    "CacheSettings",
    "TransportSettings",
    "SdkSettings",
    "SupportedLanguage",
    "Units",
    "UpdateMode",
    "OpenWeatherSdkError",
    "WeatherApiError",
    "ApiKeyError",
    "NotFoundError",
    "TooManyRequestsError",
    "InternalApiError",
    "TransportError",
    "RequestCancelledError",
    "DecodeError",
    "ConfigurationError",
    "ShutdownError",
]
