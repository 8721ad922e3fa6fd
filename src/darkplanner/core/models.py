"""Domain models for the night planner.

Provides validated data structures for observing locations, darkness filters,
weather thresholds and the per-night records produced by the engine.
"""
from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union


class ValidationError(ValueError):
    """Raised when model inputs violate constraints."""


def _iso(value: Optional[dt.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Location:
    lat: float
    lon: float
    zone: Optional[str] = None
    id: str = "default"

    def __post_init__(self):
        try:
            lat = float(self.lat)
            lon = float(self.lon)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Latitude and longitude must be numeric") from exc
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise ValidationError("Latitude and longitude must be finite")
        if not (-90.0 <= lat <= 90.0):
            raise ValidationError("Latitude must be between -90 and 90 degrees")
        if not (-180.0 <= lon <= 180.0):
            raise ValidationError("Longitude must be between -180 and 180 degrees")
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lon", lon)
        if self.zone is not None and not str(self.zone).strip():
            object.__setattr__(self, "zone", None)


@dataclass(frozen=True)
class Interval:
    """Half-open span ``[start, end)`` of UTC instants."""

    start: dt.datetime
    end: dt.datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValidationError("Interval bounds must be timezone-aware")
        if self.end < self.start:
            raise ValidationError("Interval end must not precede its start")

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


class Edge(str, Enum):
    """Astronomical edges a filter window can be anchored to."""

    ASTR_START = "astrStart"
    ASTR_END = "astrEnd"


@dataclass(frozen=True)
class Hour:
    """Fixed wall-clock hour counted from the night's base midnight."""

    value: int

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ValidationError("Filter hour must be an integer")
        if not (0 <= self.value <= 23):
            raise ValidationError("Filter hour must be between 0 and 23")

    def __str__(self) -> str:
        return str(self.value)


FilterEdge = Union[Edge, Hour]


def parse_edge(raw: Any) -> FilterEdge:
    """Parse ``astrStart``/``astrEnd`` or an hour (int or numeric string)."""
    if isinstance(raw, (Edge, Hour)):
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        for edge in Edge:
            if text.lower() == edge.value.lower():
                return edge
        try:
            return Hour(int(text))
        except ValueError as exc:
            raise ValidationError(f"Unknown filter edge: {raw!r}") from exc
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    return Hour(raw)


DAY_PRESETS: Dict[str, FrozenSet[int]] = {
    "fri_sat": frozenset({5, 6}),
    "fri_sat_sun": frozenset({5, 6, 0}),
    "sat_sun": frozenset({6, 0}),
}


def parse_days(raw: Any) -> Optional[FrozenSet[int]]:
    """Resolve a day-of-week selection (0 = Sunday ... 6 = Saturday)."""
    if raw is None:
        return None
    if isinstance(raw, str):
        key = raw.strip().lower()
        if key in {"", "all", "any", "none"}:
            return None
        if key in DAY_PRESETS:
            return DAY_PRESETS[key]
        raw = [part for part in key.split(",") if part.strip()]
    try:
        days = frozenset(int(d) for d in raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid day-of-week selection: {raw!r}") from exc
    return days or None


@dataclass(frozen=True)
class FilterConfig:
    from_edge: FilterEdge = Hour(21)
    to_edge: FilterEdge = Hour(2)
    min_minutes: int = 0
    allowed_days: Optional[FrozenSet[int]] = None
    hide_non_match: bool = False
    highlight_match: bool = False

    def __post_init__(self):
        for edge in (self.from_edge, self.to_edge):
            if not isinstance(edge, (Edge, Hour)):
                raise ValidationError("Filter edges must be Edge or Hour values")
        if self.min_minutes < 0:
            raise ValidationError("min_minutes must be non-negative")
        if self.allowed_days is not None:
            days = frozenset(self.allowed_days)
            if any(d not in range(7) for d in days):
                raise ValidationError("allowed_days must contain values 0..6 (0 = Sunday)")
            object.__setattr__(self, "allowed_days", days or None)

    @property
    def has_time_filter(self) -> bool:
        return self.min_minutes > 0

    @property
    def has_day_filter(self) -> bool:
        return bool(self.allowed_days)

    @property
    def is_active(self) -> bool:
        return self.has_time_filter or self.has_day_filter

    def allows_day(self, day_of_week: int) -> bool:
        return self.allowed_days is None or day_of_week in self.allowed_days


@dataclass(frozen=True)
class WeatherThresholds:
    enabled: bool = False
    max_cloud: float = 10.0
    max_wind_ms: float = 6.0
    max_humidity: float = 70.0
    min_consec_hours: int = 3

    def __post_init__(self):
        if not (0.0 <= self.max_cloud <= 100.0):
            raise ValidationError("max_cloud must be between 0 and 100 percent")
        if not (0.0 <= self.max_humidity <= 100.0):
            raise ValidationError("max_humidity must be between 0 and 100 percent")
        if self.max_wind_ms < 0:
            raise ValidationError("max_wind_ms must be non-negative")
        if self.min_consec_hours < 1:
            raise ValidationError("min_consec_hours must be at least 1")

    def passes(self, cloud_pct: Optional[float], wind_ms: Optional[float], humidity_pct: Optional[float]) -> bool:
        if cloud_pct is None or wind_ms is None or humidity_pct is None:
            return False
        return cloud_pct <= self.max_cloud and wind_ms <= self.max_wind_ms and humidity_pct <= self.max_humidity


@dataclass(frozen=True)
class HourSample:
    iso: str
    instant: dt.datetime
    cloud_pct: Optional[float]
    humidity_pct: Optional[float]
    wind_ms: Optional[float]
    aod: Optional[float] = None
    seeing_score: Optional[int] = None
    seeing_label: Optional[str] = None
    passes: Optional[bool] = None

    @property
    def wind_kmh(self) -> Optional[float]:
        return self.wind_ms * 3.6 if self.wind_ms is not None else None

    def to_dict(self) -> dict:
        return {
            "iso": self.iso,
            "instant": self.instant.isoformat(),
            "cloud_pct": self.cloud_pct,
            "humidity_pct": self.humidity_pct,
            "wind_ms": self.wind_ms,
            "aod": self.aod,
            "seeing_score": self.seeing_score,
            "seeing_label": self.seeing_label,
            "passes": self.passes,
        }


@dataclass(frozen=True)
class NightRecord:
    date: dt.date
    zone: str
    lat: float
    lon: float
    mid0: dt.datetime
    mid1: dt.datetime
    sunset: Optional[dt.datetime] = None
    sunrise: Optional[dt.datetime] = None
    astr_start: Optional[dt.datetime] = None
    astr_end: Optional[dt.datetime] = None
    moon_rises_in_night: List[dt.datetime] = field(default_factory=list)
    moon_sets_in_night: List[dt.datetime] = field(default_factory=list)
    moon_always_above: bool = False
    moon_always_below: bool = False
    sun_always_above: bool = False
    sun_always_below: bool = False

    def __post_init__(self):
        if self.mid1 <= self.mid0:
            raise ValidationError("mid1 must follow mid0")
        if self.astr_start is not None and self.astr_end is not None and self.astr_end <= self.astr_start:
            raise ValidationError("astr_end must be after astr_start")

    @property
    def has_astronomical_night(self) -> bool:
        return self.astr_start is not None and self.astr_end is not None

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "zone": self.zone,
            "mid0": self.mid0.isoformat(),
            "mid1": self.mid1.isoformat(),
            "sunset": _iso(self.sunset),
            "sunrise": _iso(self.sunrise),
            "astr_start": _iso(self.astr_start),
            "astr_end": _iso(self.astr_end),
            "moon_rises_in_night": [t.isoformat() for t in self.moon_rises_in_night],
            "moon_sets_in_night": [t.isoformat() for t in self.moon_sets_in_night],
            "moon_always_above": self.moon_always_above,
            "moon_always_below": self.moon_always_below,
            "sun_always_above": self.sun_always_above,
            "sun_always_below": self.sun_always_below,
        }


@dataclass(frozen=True)
class MoonPhase:
    fraction: float
    phase: float
    age_days: float
    key: str

    def to_dict(self) -> dict:
        return {"fraction": self.fraction, "phase": self.phase, "age_days": self.age_days, "key": self.key}


@dataclass(frozen=True)
class WeatherRun:
    start: dt.datetime
    end: dt.datetime
    length_hours: int

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "length_hours": self.length_hours}


class EvalReason(str, Enum):
    NO_ASTRONOMICAL_EDGES = "noAstronomicalEdges"
    NO_FORECAST_DATA = "noForecastData"
    NO_DARK_HOURS = "noDarkHours"


@dataclass(frozen=True)
class EvalResult:
    ok: bool
    runs: List[WeatherRun] = field(default_factory=list)
    hours: List[HourSample] = field(default_factory=list)
    overlap_minutes: int = 0
    day_of_week_match: bool = True
    reason: Optional[EvalReason] = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "runs": [r.to_dict() for r in self.runs],
            "hours": [h.to_dict() for h in self.hours],
            "overlap_minutes": self.overlap_minutes,
            "day_of_week_match": self.day_of_week_match,
            "reason": self.reason.value if self.reason is not None else None,
        }


@dataclass(frozen=True)
class NightResult:
    date: dt.date
    night: NightRecord
    darkness_intervals: List[Interval]
    total_darkness_minutes: int
    day_of_week: int
    day_of_week_match: bool
    overlap_minutes: int
    darkness_pass: bool
    weather_result: Optional[EvalResult] = None
    moon_phase: Optional[MoonPhase] = None
    hidden: bool = False
    highlighted: bool = False

    @property
    def weather_pass(self) -> Optional[bool]:
        return self.weather_result.ok if self.weather_result is not None else None

    @property
    def weekend(self) -> bool:
        return self.day_of_week in (0, 6)

    @property
    def has_darkness(self) -> bool:
        return bool(self.darkness_intervals)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "night": self.night.to_dict(),
            "darkness_intervals": [i.to_dict() for i in self.darkness_intervals],
            "total_darkness_minutes": self.total_darkness_minutes,
            "day_of_week": self.day_of_week,
            "day_of_week_match": self.day_of_week_match,
            "overlap_minutes": self.overlap_minutes,
            "darkness_pass": self.darkness_pass,
            "weather_pass": self.weather_pass,
            "weather_result": self.weather_result.to_dict() if self.weather_result is not None else None,
            "moon_phase": self.moon_phase.to_dict() if self.moon_phase is not None else None,
            "hidden": self.hidden,
            "highlighted": self.highlighted,
        }


@dataclass(frozen=True)
class NightMatch:
    days_ahead: int
    date: dt.date
    overlap_minutes: int

    def to_dict(self) -> dict:
        return {"days_ahead": self.days_ahead, "date": self.date.isoformat(), "overlap_minutes": self.overlap_minutes}


__all__ = [
    "ValidationError",
    "Location",
    "Interval",
    "Edge",
    "Hour",
    "FilterEdge",
    "parse_edge",
    "DAY_PRESETS",
    "parse_days",
    "FilterConfig",
    "WeatherThresholds",
    "HourSample",
    "NightRecord",
    "MoonPhase",
    "WeatherRun",
    "EvalReason",
    "EvalResult",
    "NightResult",
    "NightMatch",
]
