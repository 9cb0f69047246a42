"""
Data layer module for the collaborator sources: historical weather and
CSV-backed economic series.
"""
from src.data.weather_source import (
    WeatherObservation,
    WeatherCache,
    HistoricalWeatherSource,
)
from src.data.economic_source import (
    SeriesPoint,
    EconomicDataSource,
    parse_series_frame,
)

__all__ = [
    # Weather
    "WeatherObservation",
    "WeatherCache",
    "HistoricalWeatherSource",
    # Economic data
    "SeriesPoint",
    "EconomicDataSource",
    "parse_series_frame",
]
