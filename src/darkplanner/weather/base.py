"""Forecast provider protocols."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

Payload = Dict[str, Any]


class FetchFailed(RuntimeError):
    """Raised when a forecast endpoint cannot be reached or answers with an error."""


class NotReady(RuntimeError):
    """Raised when a forecast is requested before any load succeeded."""


class ForecastProvider(Protocol):
    """Interface for the three hourly streams behind a cached forecast.

    Each call returns the decoded JSON payload for one location. Payloads are
    expected to carry ``hourly.time`` (local wall-clock keys) and, for the
    basic weather stream, the IANA ``timezone`` those keys are expressed in.
    """

    def fetch_weather(self, lat: float, lon: float) -> Payload:
        """Cloud cover, 10 m wind speed and relative humidity."""
        ...

    def fetch_aod(self, lat: float, lon: float) -> Payload:
        """Aerosol optical depth."""
        ...

    def fetch_seeing(self, lat: float, lon: float) -> Payload:
        """Upper-air wind speeds at 200/300/500/700 hPa."""
        ...


class TimeZoneResolver(Protocol):
    def resolve_timezone(self, lat: float, lon: float) -> Optional[str]:
        ...


__all__ = ["Payload", "FetchFailed", "NotReady", "ForecastProvider", "TimeZoneResolver"]
