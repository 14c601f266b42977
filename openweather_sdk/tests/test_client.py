from unittest.mock import Mock, call

import pytest
import requests

from openweather_sdk.config import SupportedLanguage, TransportSettings, Units
from openweather_sdk.errors import NotFoundError, ShutdownError, TransportError
from openweather_sdk.services.cache import WeatherCache
from openweather_sdk.services.client import WeatherClient
from openweather_sdk.services.transport import TransportPool
from openweather_sdk.services.weather_api import OpenWeatherApi


@pytest.fixture
def make_client(provider, clock):
    built = []

    def _make(cache_shared=False, cache=None):
        transport = TransportPool(TransportSettings(), session=provider)
        api = OpenWeatherApi("key", transport, transport_shared=False, base_url="http://owm.test")
        cache = cache if cache is not None else WeatherCache(ttl_s=600, max_size=10, timer=clock)
        client = WeatherClient(SupportedLanguage.ENGLISH, Units.METRIC, cache, cache_shared, api, logging_enabled=True)
        built.append(client)
        return client, cache, transport

    yield _make
    for c in built:
        c.close()


def test_first_call_fetches_second_call_hits_cache(make_client, provider):
    client, cache, _ = make_client()

    first = client.get_weather("Berlin")
    assert provider.calls["Berlin"] == 1
    assert cache.get("Berlin") == first

    second = client.get_weather("Berlin")
    assert provider.calls["Berlin"] == 1
    assert second is first


def test_expired_entry_is_fetched_again(make_client, provider, clock):
    client, _, _ = make_client()
    client.get_weather("Berlin")
    clock.advance(600)
    client.get_weather("Berlin")
    assert provider.calls["Berlin"] == 2


def test_failures_propagate_and_are_not_cached(make_client, provider):
    client, cache, _ = make_client()
    provider.answer("Atlantis", 404, {"cod": "404", "message": "city not found"})
    provider.fail("Nowhere", requests.ConnectionError("dns failure"))

    with pytest.raises(NotFoundError):
        client.get_weather("Atlantis")
    with pytest.raises(TransportError):
        client.get_weather("Nowhere")
    assert cache.keys() == set()

    with pytest.raises(NotFoundError):
        client.get_weather("Atlantis")
    assert provider.calls["Atlantis"] == 2


def test_async_miss_writes_cache_before_completing(make_client, provider):
    client, cache, _ = make_client()
    snap = client.get_weather_async("Madrid").result(timeout=2)
    assert cache.get("Madrid") == snap

    again = client.get_weather_async("Madrid")
    assert again.done()
    assert again.result() is snap
    assert provider.calls["Madrid"] == 1


def test_async_failure_completes_exceptionally(make_client, provider):
    client, cache, _ = make_client()
    provider.answer("Atlantis", 404, {"cod": 404, "message": "city not found"})
    future = client.get_weather_async("Atlantis")
    assert isinstance(future.exception(timeout=2), NotFoundError)
    assert cache.get("Atlantis") is None


def test_refresh_bypasses_cache_read(make_client, provider):
    client, _, _ = make_client()
    client.get_weather("Lima")
    client.refresh_async("Lima").result(timeout=2)
    assert provider.calls["Lima"] == 2


def test_close_clears_dedicated_cache_and_transport(make_client):
    client, cache, transport = make_client()
    client.get_weather("Berlin")
    client.close()
    client.close()

    assert cache.keys() == set()
    assert transport.is_shutdown
    with pytest.raises(ShutdownError):
        client.get_weather("Berlin")


def test_close_keeps_shared_cache(make_client, clock):
    shared = WeatherCache(ttl_s=600, max_size=10, timer=clock)
    client, _, _ = make_client(cache_shared=True, cache=shared)
    client.get_weather("Berlin")
    client.close()
    assert shared.keys() == {"Berlin"}


def test_close_stops_fetcher_before_clearing_dedicated_cache():
    parts = Mock()
    client = WeatherClient(
        SupportedLanguage.ENGLISH, Units.METRIC, parts.cache, cache_shared=False, weather_api=parts.api
    )
    client.close()
    assert parts.mock_calls == [call.api.shutdown(), call.cache.invalidate_all()]


def test_context_manager_closes(make_client):
    client, _, transport = make_client()
    with client:
        client.get_weather("Quito")
    assert client.closed
    assert transport.is_shutdown
