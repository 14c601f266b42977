import io
import json
import logging
from datetime import timedelta

import pytest
import structlog
from pydantic import ValidationError

from openweather_sdk import WeatherSdk
from openweather_sdk.config import (
    CacheSettings,
    ClientConfig,
    SdkSettings,
    SupportedLanguage,
    TransportSettings,
    Units,
    UpdateMode,
)
from openweather_sdk.logging import SDK_LOGGER, init_logging, mask_key


def test_client_config_defaults():
    cfg = ClientConfig()
    assert cfg.update_mode is UpdateMode.ON_DEMAND
    assert cfg.polling_interval == timedelta(minutes=5)
    assert cfg.language is SupportedLanguage.ENGLISH
    assert cfg.units is Units.METRIC
    assert cfg.logging_enabled is False
    assert cfg.shared_cache and cfg.shared_transport
    assert cfg.cache.ttl == timedelta(minutes=10)
    assert cfg.cache.max_size == 10
    assert cfg.transport.call_timeout == timedelta(seconds=10)
    assert cfg.transport.max_concurrent_requests == 64
    assert cfg.transport.executor is None


def test_shared_cache_defaults_are_larger():
    shared = SdkSettings().shared_cache_settings()
    assert shared.ttl > CacheSettings().ttl
    assert shared.max_size > CacheSettings().max_size


@pytest.mark.parametrize(
    "factory",
    [
        lambda: CacheSettings(max_size=0),
        lambda: CacheSettings(ttl=timedelta(0)),
        lambda: TransportSettings(read_timeout=timedelta(seconds=-1)),
        lambda: TransportSettings(max_concurrent_requests=0),
        lambda: ClientConfig(polling_interval=timedelta(0)),
        lambda: ClientConfig(update_mode="sometimes"),
    ],
)
def test_invalid_settings_are_rejected(factory):
    with pytest.raises(ValidationError):
        factory()


def test_language_codes():
    assert SupportedLanguage.from_code("DE") is SupportedLanguage.GERMAN
    assert SupportedLanguage.from_code("zh_tw") is SupportedLanguage.CHINESE_TRADITIONAL
    assert str(SupportedLanguage.PORTUGUESE_BRAZIL) == "pt_br"
    assert str(Units.IMPERIAL) == "imperial"
    with pytest.raises(ValueError):
        SupportedLanguage.from_code("xx")


@pytest.fixture
def sdk_logger():
    sdk_logger = logging.getLogger(SDK_LOGGER)

    def reset():
        for handler in list(sdk_logger.handlers):
            sdk_logger.removeHandler(handler)
        sdk_logger.propagate = True
        sdk_logger.setLevel(logging.NOTSET)

    reset()
    yield sdk_logger
    structlog.reset_defaults()
    reset()


def test_from_env_reads_prefixed_variables(monkeypatch, sdk_logger):
    monkeypatch.setenv("OPENWEATHER_BASE_URL", "http://proxy.local")
    monkeypatch.setenv("OPENWEATHER_SHARED_CACHE_MAX_SIZE", "99")
    monkeypatch.setenv("OPENWEATHER_LOG_LEVEL", "warning")
    sdk = WeatherSdk.from_env()
    assert sdk.settings.base_url == "http://proxy.local"
    assert sdk.settings.shared_cache_settings().max_size == 99
    assert sdk_logger.level == logging.WARNING
    sdk.close()


def test_init_logging_configures_only_the_sdk_logger(sdk_logger):
    root_handlers = list(logging.getLogger().handlers)
    root_level = logging.getLogger().level
    out = io.StringIO()

    logger = init_logging("INFO", stream=out)
    logger.info("logging_ready", api_key=mask_key("abcdef123456"))
    logger.debug("too_chatty")

    assert logging.getLogger().handlers == root_handlers
    assert logging.getLogger().level == root_level
    assert not sdk_logger.propagate
    event = json.loads(out.getvalue().strip().splitlines()[-1])
    assert event["event"] == "logging_ready"
    assert event["api_key"] == "abc*****"
    assert event["logger"] == SDK_LOGGER
    assert "too_chatty" not in out.getvalue()


def test_init_logging_twice_keeps_one_handler(sdk_logger):
    init_logging("INFO", stream=io.StringIO())
    init_logging("DEBUG", stream=io.StringIO())
    assert len(sdk_logger.handlers) == 1
    assert sdk_logger.level == logging.DEBUG


def test_mask_key():
    assert mask_key("abcdef123456") == "abc*****"
