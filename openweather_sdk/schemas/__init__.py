from .weather import ErrorResponse, SolarTimes, Temperature, Weather, WeatherResponse, Wind

__all__ = ["ErrorResponse", "SolarTimes", "Temperature", "Weather", "WeatherResponse", "Wind"]
