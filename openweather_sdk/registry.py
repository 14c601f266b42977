from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Optional, Set, Union

import structlog

from .config import CacheSettings, ClientConfig, SdkSettings, TransportSettings, UpdateMode
from .errors import ConfigurationError, ShutdownError
from .logging import init_logging, mask_key
from .services.cache import WeatherCache, build_cache
from .services.client import WeatherClient
from .services.polling import PollingWeatherClient
from .services.transport import TransportPool, build_transport
from .services.weather_api import OpenWeatherApi

logger = structlog.get_logger()

Client = Union[WeatherClient, PollingWeatherClient]


class WeatherSdk:
    """Creates and owns weather clients, one per API key.

    The registry holds at most one shared cache and one shared transport,
    both created lazily with defaults unless configured first. Clients built
    with ``shared_cache=False`` / ``shared_transport=False`` get their own,
    released when the client closes. Shared ones are only released by
    ``close()``.

    Usage::

        with WeatherSdk() as sdk:
            client = sdk.build("api-key", language=SupportedLanguage.GERMAN)
            client.get_weather("Berlin")
    """

    _instance: Optional["WeatherSdk"] = None
    _instance_lock = threading.Lock()

    def __init__(
        self,
        settings: Optional[SdkSettings] = None,
        transport_factory: Callable[[TransportSettings], TransportPool] = build_transport,
        cache_factory: Callable[[CacheSettings], WeatherCache] = build_cache,
    ) -> None:
        self.settings = settings or SdkSettings()
        self._transport_factory = transport_factory
        self._cache_factory = cache_factory

        self._lock = threading.Lock()  # shutdown flag and shared resources
        self._clients_lock = threading.Lock()
        self._clients: Dict[str, Client] = {}
        self._pending: Set[str] = set()
        self._shared_transport: Optional[TransportPool] = None
        self._shared_cache: Optional[WeatherCache] = None
        self._shutdown = False

    @classmethod
    def instance(cls) -> "WeatherSdk":
        """Process-wide registry, created on first use."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def from_env(cls) -> "WeatherSdk":
        """Registry configured from ``OPENWEATHER_*`` variables, with logging initialised."""
        settings = SdkSettings()
        init_logging(settings.log_level)
        return cls(settings)

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def _ensure_open(self) -> None:
        if self._shutdown:
            logger.warning("sdk_shut_down")
            raise ShutdownError("WeatherSdk")

    # Shared resources ---------------------------------------------------
    def configure_shared_transport(self, settings: TransportSettings) -> "WeatherSdk":
        with self._lock:
            self._ensure_open()
            if self._shared_transport is not None:
                logger.error("shared_transport_already_initialized")
                raise ConfigurationError("shared transport has already been initialized")
            self._shared_transport = self._transport_factory(settings)
        logger.debug("shared_transport_configured")
        return self

    def configure_shared_cache(self, settings: CacheSettings) -> "WeatherSdk":
        with self._lock:
            self._ensure_open()
            if self._shared_cache is not None:
                logger.error("shared_cache_already_initialized")
                raise ConfigurationError("shared cache has already been initialized")
            self._shared_cache = self._cache_factory(settings)
        logger.debug("shared_cache_configured")
        return self

    def _shared_transport_or_default(self) -> TransportPool:
        with self._lock:
            self._ensure_open()
            if self._shared_transport is None:
                logger.debug("shared_transport_default")
                self._shared_transport = self._transport_factory(TransportSettings())
            return self._shared_transport

    def _shared_cache_or_default(self) -> WeatherCache:
        with self._lock:
            self._ensure_open()
            if self._shared_cache is None:
                logger.debug("shared_cache_default")
                self._shared_cache = self._cache_factory(self.settings.shared_cache_settings())
            return self._shared_cache

    # Clients ------------------------------------------------------------
    def build(self, api_key: str, config: Optional[ClientConfig] = None, **overrides: Any) -> Client:
        """Create and register the client for ``api_key``.

        ``overrides`` are ``ClientConfig`` fields applied on top of ``config``.
        Raises ``ConfigurationError`` for a duplicate key or for a polling
        client on the shared cache, before any resource is created.
        """
        self._ensure_open()
        if not api_key:
            raise ValueError("API key cannot be empty")

        cfg = config or ClientConfig()
        if overrides:
            cfg = ClientConfig.model_validate({**dict(cfg), **overrides})

        masked = mask_key(api_key)
        logger.debug("client_build", api_key=masked, mode=cfg.update_mode.value)

        # polling clients iterate their whole cache, so they cannot share one
        if cfg.shared_cache and cfg.update_mode is UpdateMode.POLLING:
            logger.error("shared_cache_with_polling", api_key=masked)
            raise ConfigurationError("Cannot use shared cache with a client in POLLING mode")

        with self._clients_lock:
            if api_key in self._clients or api_key in self._pending:
                logger.error("client_already_exists", api_key=masked)
                raise ConfigurationError("Client with this API key already exists")
            self._pending.add(api_key)

        try:
            client = self._create_client(api_key, cfg)
        except BaseException:
            with self._clients_lock:
                self._pending.discard(api_key)
            raise

        with self._clients_lock:
            self._pending.discard(api_key)
            if not self._shutdown:
                self._clients[api_key] = client
                logger.debug("client_built", api_key=masked)
                return client

        # the registry closed while this client was being built
        client.close()
        raise ShutdownError("WeatherSdk")

    def _create_client(self, api_key: str, cfg: ClientConfig) -> Client:
        cache = self._shared_cache_or_default() if cfg.shared_cache else self._cache_factory(cfg.cache)
        transport = (
            self._shared_transport_or_default() if cfg.shared_transport else self._transport_factory(cfg.transport)
        )
        api = OpenWeatherApi(
            api_key,
            transport,
            transport_shared=cfg.shared_transport,
            logging_enabled=cfg.logging_enabled,
            base_url=self.settings.base_url,
        )
        client = WeatherClient(
            cfg.language,
            cfg.units,
            cache,
            cache_shared=cfg.shared_cache,
            weather_api=api,
            logging_enabled=cfg.logging_enabled,
        )
        if cfg.update_mode is UpdateMode.POLLING:
            try:
                return PollingWeatherClient(client, cfg.polling_interval)
            except Exception:
                client.close()
                raise
        return client

    def client(self, api_key: str) -> Optional[Client]:
        self._ensure_open()
        return self._clients.get(api_key)

    def delete_client(self, api_key: str) -> None:
        self._ensure_open()
        with self._clients_lock:
            client = self._clients.pop(api_key, None)
        if client is None:
            return
        logger.debug("client_delete", api_key=mask_key(api_key))
        client.close()

    # Lifecycle ----------------------------------------------------------
    def close(self) -> None:
        with self._lock:
            if self._shutdown:
                logger.warning("sdk_close_called_again")
                return
            self._shutdown = True

            logger.info("sdk_shutdown", clients=len(self._clients))
            with self._clients_lock:
                clients = list(self._clients.values())
                self._clients.clear()
            for client in clients:
                try:
                    client.close()
                except Exception as e:
                    logger.error("client_close_failed", error=str(e))

            if self._shared_transport is not None:
                self._shared_transport.shutdown()
                self._shared_transport = None
                logger.debug("shared_transport_released")

            if self._shared_cache is not None:
                self._shared_cache.invalidate_all()
                self._shared_cache = None
                logger.debug("shared_cache_released")

            logger.info("sdk_shutdown_complete")

    def __enter__(self) -> "WeatherSdk":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
