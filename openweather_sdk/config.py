from __future__ import annotations

from concurrent.futures import Executor
from datetime import timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class UpdateMode(str, Enum):
    ON_DEMAND = "on_demand"
    POLLING = "polling"


class Units(str, Enum):
    IMPERIAL = "imperial"
    METRIC = "metric"

    def __str__(self) -> str:
        return self.value


class SupportedLanguage(str, Enum):
    """Languages accepted by the OpenWeather ``lang`` parameter."""

    AFRIKAANS = "af"
    ALBANIAN = "sq"
    ARABIC = "ar"
    AZERBAIJANI = "az"
    BASQUE = "eu"
    BELARUSIAN = "be"
    BULGARIAN = "bg"
    CATALAN = "ca"
    CHINESE_SIMPLIFIED = "zh_cn"
    CHINESE_TRADITIONAL = "zh_tw"
    CROATIAN = "hr"
    CZECH = "cz"
    DANISH = "da"
    DUTCH = "nl"
    ENGLISH = "en"
    FINNISH = "fi"
    FRENCH = "fr"
    GALICIAN = "gl"
    GERMAN = "de"
    GREEK = "el"
    HEBREW = "he"
    HINDI = "hi"
    HUNGARIAN = "hu"
    ICELANDIC = "is"
    INDONESIAN = "id"
    ITALIAN = "it"
    JAPANESE = "ja"
    KOREAN = "kr"
    KURMANJI = "ku"
    LATVIAN = "la"
    LITHUANIAN = "lt"
    MACEDONIAN = "mk"
    NORWEGIAN = "no"
    PERSIAN = "fa"
    POLISH = "pl"
    PORTUGUESE = "pt"
    PORTUGUESE_BRAZIL = "pt_br"
    ROMANIAN = "ro"
    RUSSIAN = "ru"
    SERBIAN = "sr"
    SLOVAK = "sk"
    SLOVENIAN = "sl"
    SPANISH = "es"
    SWEDISH = "sv"
    THAI = "th"
    TURKISH = "tr"
    UKRAINIAN = "uk"
    VIETNAMESE = "vi"
    ZULU = "zu"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_code(cls, code: str) -> "SupportedLanguage":
        for lang in cls:
            if lang.value == code.lower():
                return lang
        raise ValueError(f"Unsupported language code: {code}")


class CacheSettings(BaseModel):
    ttl: timedelta = timedelta(minutes=10)
    max_size: int = Field(10, gt=0)

    @field_validator("ttl")
    @classmethod
    def _positive_ttl(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("ttl must be > 0")
        return v


class TransportSettings(BaseModel):
    """HTTP transport knobs. ``executor`` runs async calls; the pool owns one when it is None."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    connect_timeout: timedelta = timedelta(seconds=10)
    read_timeout: timedelta = timedelta(seconds=10)
    write_timeout: timedelta = timedelta(seconds=10)
    call_timeout: timedelta = timedelta(seconds=10)
    max_concurrent_requests: int = Field(64, gt=0)
    executor: Optional[Executor] = None

    @field_validator("connect_timeout", "read_timeout", "write_timeout", "call_timeout")
    @classmethod
    def _positive_timeout(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("timeouts must be > 0")
        return v


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    update_mode: UpdateMode = UpdateMode.ON_DEMAND
    polling_interval: timedelta = timedelta(minutes=5)
    language: SupportedLanguage = SupportedLanguage.ENGLISH
    units: Units = Units.METRIC
    logging_enabled: bool = False
    shared_cache: bool = True
    shared_transport: bool = True
    cache: CacheSettings = Field(default_factory=CacheSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)

    @field_validator("polling_interval")
    @classmethod
    def _positive_interval(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("polling_interval must be > 0")
        return v


class SdkSettings(BaseSettings):
    base_url: str = "http://api.openweathermap.org"
    log_level: str = "INFO"

    # the shared cache serves every client, so it gets a longer ttl and more room
    shared_cache_ttl_s: int = Field(15 * 60, gt=0)
    shared_cache_max_size: int = Field(50, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="OPENWEATHER_",  # e.g. OPENWEATHER_BASE_URL
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def shared_cache_settings(self) -> CacheSettings:
        return CacheSettings(ttl=timedelta(seconds=self.shared_cache_ttl_s), max_size=self.shared_cache_max_size)
