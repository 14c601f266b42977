from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Weather(_Frozen):
    main: Optional[str] = None
    description: Optional[str] = None


class Temperature(_Frozen):
    temp: float = 0.0
    feels_like: float = 0.0


class Wind(_Frozen):
    speed: Optional[float] = None


class SolarTimes(_Frozen):
    sunrise: int = 0
    sunset: int = 0


class WeatherResponse(_Frozen):
    """Current weather snapshot for one location.

    Times are unix seconds (UTC); ``timezone`` is the shift from UTC in seconds.
    """

    weather: Weather = Field(default_factory=Weather)
    temperature: Temperature = Field(default_factory=Temperature)
    visibility: Optional[int] = None
    wind: Wind = Field(default_factory=Wind)
    datetime: int = 0
    sys: SolarTimes = Field(default_factory=SolarTimes)
    timezone: int = 0
    name: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "WeatherResponse":
        """Build a snapshot from the raw ``/data/2.5/weather`` JSON object.

        Decoding is lenient: only the first ``weather`` entry is used, missing
        numbers fall back to zero and missing optional values to ``None``.
        Raises ``ValueError`` if ``data`` is not a JSON object.
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")

        weather_list = data.get("weather")
        first = weather_list[0] if isinstance(weather_list, list) and weather_list else {}
        main = _obj(data, "main")
        wind = _obj(data, "wind")
        sys = _obj(data, "sys")

        return cls(
            weather=Weather(main=_text(first, "main"), description=_text(first, "description")),
            temperature=Temperature(
                temp=_number(main, "temp", 0.0),
                feels_like=_number(main, "feels_like", 0.0),
            ),
            visibility=_integer(data, "visibility", None),
            wind=Wind(speed=_number(wind, "speed", None)),
            datetime=_integer(data, "dt", 0),
            sys=SolarTimes(sunrise=_integer(sys, "sunrise", 0), sunset=_integer(sys, "sunset", 0)),
            timezone=_integer(data, "timezone", 0),
            name=_text(data, "name"),
        )


class ErrorResponse(BaseModel):
    cod: int
    message: str = ""

    # the API sends "cod" as a string on some endpoints ("404")
    @field_validator("cod", mode="before")
    @classmethod
    def _coerce_cod(cls, v: Any) -> Any:
        if isinstance(v, str):
            return int(v.strip())
        return v


def _obj(data: Any, key: str) -> Dict[str, Any]:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


def _text(data: Any, key: str) -> Optional[str]:
    value = data.get(key) if isinstance(data, dict) else None
    return None if value is None else str(value)


def _number(data: Dict[str, Any], key: str, default: Optional[float]) -> Optional[float]:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def _integer(data: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    value = data.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return default
