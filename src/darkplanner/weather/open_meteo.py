"""Open-Meteo forecast provider.

Three hourly streams are requested per location, all with ``timezone=auto``
so ``hourly.time`` keys come back as local wall-clock strings together with
the IANA zone they belong to:

* forecast API: cloud cover, 10 m wind, relative humidity (14 days)
* air-quality API: aerosol optical depth (7 days)
* forecast API, GEM model: upper-air wind speeds for the seeing score (14 days)
"""

from __future__ import annotations

import time
from typing import Dict, Optional

import requests

from darkplanner.astro.tz import is_valid_zone
from darkplanner.core.debug import DebugCollector, NullDebugCollector
from .base import FetchFailed, ForecastProvider, Payload

FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
AIR_QUALITY_URL = "https://air-quality-api.open-meteo.com/v1/air-quality"

WEATHER_VARS = ("cloud_cover", "wind_speed_10m", "relative_humidity_2m")
AOD_VARS = ("aerosol_optical_depth",)
SEEING_VARS = ("wind_speed_200hPa", "wind_speed_300hPa", "wind_speed_500hPa", "wind_speed_700hPa")

MAX_ATTEMPTS = 3


class OpenMeteoForecastProvider(ForecastProvider):
    def __init__(
        self,
        forecast_url: str = FORECAST_URL,
        air_quality_url: str = AIR_QUALITY_URL,
        debug: DebugCollector | None = None,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ):
        self.forecast_url = forecast_url
        self.air_quality_url = air_quality_url
        self.debug = debug or NullDebugCollector()
        self.session = session or requests.Session()
        self.timeout = timeout

    @staticmethod
    def _base_params(lat: float, lon: float) -> Dict[str, str]:
        return {"latitude": f"{lat}", "longitude": f"{lon}", "timezone": "auto"}

    def _get(self, stream: str, url: str, params: Dict[str, str]) -> Payload:
        self.debug.emit("weather.request", {"stream": stream, "url": url, "params": params}, ts=None)
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                resp = self.session.get(url, params=params, timeout=self.timeout)
                resp.raise_for_status()
                data = resp.json()
                break
            except (requests.RequestException, ValueError) as exc:
                if attempt == MAX_ATTEMPTS:
                    raise FetchFailed(f"Open-Meteo {stream} request failed: {exc}") from exc
                self.debug.emit("weather.retry", {"stream": stream, "attempt": attempt, "error": str(exc)}, ts=None)
                time.sleep(0.5 * attempt)
        if not isinstance(data, dict):
            raise FetchFailed(f"Open-Meteo {stream} response is not a JSON object")
        hourly = data.get("hourly") or {}
        self.debug.emit(
            "weather.response_meta",
            {
                "stream": stream,
                "timezone": data.get("timezone"),
                "hours": len(hourly.get("time") or []),
                "lat": data.get("latitude"),
                "lon": data.get("longitude"),
            },
            ts=(hourly.get("time") or [None])[0],
        )
        return data

    def fetch_weather(self, lat: float, lon: float) -> Payload:
        params = self._base_params(lat, lon)
        params.update({"hourly": ",".join(WEATHER_VARS), "models": "best_match", "forecast_days": "14"})
        return self._get("weather", self.forecast_url, params)

    def fetch_aod(self, lat: float, lon: float) -> Payload:
        params = self._base_params(lat, lon)
        params.update({"hourly": ",".join(AOD_VARS), "forecast_days": "7"})
        return self._get("aod", self.air_quality_url, params)

    def fetch_seeing(self, lat: float, lon: float) -> Payload:
        params = self._base_params(lat, lon)
        params.update({"hourly": ",".join(SEEING_VARS), "models": "gem_seamless", "forecast_days": "14"})
        return self._get("seeing", self.forecast_url, params)

    def resolve_timezone(self, lat: float, lon: float) -> Optional[str]:
        """IANA zone Open-Meteo assigns to the coordinate, or None."""
        params = self._base_params(lat, lon)
        params.update({"hourly": "cloud_cover", "forecast_days": "1"})
        zone = self._get("timezone", self.forecast_url, params).get("timezone")
        return zone if isinstance(zone, str) and is_valid_zone(zone) else None


__all__ = [
    "OpenMeteoForecastProvider",
    "FORECAST_URL",
    "AIR_QUALITY_URL",
    "WEATHER_VARS",
    "AOD_VARS",
    "SEEING_VARS",
]
