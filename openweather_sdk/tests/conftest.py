import json
import threading
from collections import Counter
from typing import Any, Dict, Optional, Tuple

import pytest
import requests

from openweather_sdk import WeatherSdk
from openweather_sdk.config import SdkSettings
from openweather_sdk.services.cache import build_cache
from openweather_sdk.services.transport import TransportPool


def weather_payload(name: str, temp: float = 20.5) -> Dict[str, Any]:
    return {
        "coord": {"lon": 13.41, "lat": 52.52},
        "weather": [{"id": 800, "main": "Clear", "description": "clear sky", "icon": "01d"}],
        "main": {"temp": temp, "feels_like": temp - 1.5, "pressure": 1015, "humidity": 40},
        "visibility": 10000,
        "wind": {"speed": 4.1, "deg": 80},
        "dt": 1700000000,
        "sys": {"country": "DE", "sunrise": 1699940000, "sunset": 1699975000},
        "timezone": 3600,
        "name": name,
        "cod": 200,
    }


def make_response(status_code: int, body: str, reason: str = "") -> requests.Response:
    r = requests.Response()
    r.status_code = status_code
    r.reason = reason or ("OK" if status_code == 200 else "Error")
    r.encoding = "utf-8"
    r._content = body.encode("utf-8")
    r._content_consumed = True
    return r


class StubProvider:
    """Stands in for ``requests.Session``: answers per city and counts calls."""

    def __init__(self) -> None:
        self.calls = Counter()
        self.params = []
        self._lock = threading.Lock()
        self._answers: Dict[str, Tuple[int, str]] = {}
        self._failures: Dict[str, Exception] = {}
        self._gates: Dict[str, threading.Event] = {}
        self.entered = threading.Event()
        self.closed = False

    def answer(self, city: str, status_code: int = 200, body: Optional[Any] = None) -> None:
        if body is None:
            body = weather_payload(city)
        self._answers[city] = (status_code, body if isinstance(body, str) else json.dumps(body))

    def fail(self, city: str, error: Exception) -> None:
        self._failures[city] = error

    def hold(self, city: str) -> threading.Event:
        gate = threading.Event()
        self._gates[city] = gate
        return gate

    def get(self, url, params=None, timeout=None, stream=False):
        city = params["q"]
        with self._lock:
            self.calls[city] += 1
            self.params.append(dict(params))
        gate = self._gates.get(city)
        if gate is not None:
            self.entered.set()
            gate.wait(5)
        if city in self._failures:
            raise self._failures[city]
        status_code, body = self._answers.get(city, (200, json.dumps(weather_payload(city))))
        return make_response(status_code, body)

    def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transports(provider):
    created = []

    def factory(settings):
        pool = TransportPool(settings, session=provider)
        created.append(pool)
        return pool

    factory.created = created
    return factory


@pytest.fixture
def caches(clock):
    created = []

    def factory(settings):
        cache = build_cache(settings, timer=clock)
        created.append(cache)
        return cache

    factory.created = created
    return factory


@pytest.fixture
def sdk(transports, caches):
    s = WeatherSdk(
        settings=SdkSettings(base_url="http://owm.test"),
        transport_factory=transports,
        cache_factory=caches,
    )
    yield s
    s.close()
