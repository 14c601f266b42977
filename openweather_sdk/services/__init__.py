"""Cache, transport, fetcher and client building blocks used by ``WeatherSdk``."""
