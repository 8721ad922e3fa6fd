"""Forecast providers, the weather cache and the weather evaluator."""

from .base import FetchFailed, ForecastProvider, TimeZoneResolver
from .cache import CancelToken, LoadOutcome, LoadStatus, NotReady, WeatherCache
from .evaluate import WeatherEvaluator
from .forecast import ForecastView, InvalidPayload
from .open_meteo import OpenMeteoForecastProvider
from .store import JsonFileStore, MemoryStore

__all__ = [
    "FetchFailed",
    "ForecastProvider",
    "TimeZoneResolver",
    "CancelToken",
    "LoadOutcome",
    "LoadStatus",
    "NotReady",
    "WeatherCache",
    "WeatherEvaluator",
    "ForecastView",
    "InvalidPayload",
    "OpenMeteoForecastProvider",
    "JsonFileStore",
    "MemoryStore",
]
