"""Configuration loader for planner runs.

Supports YAML and JSON files holding a location, a darkness filter, weather
thresholds and run options. Every section is optional; missing values fall
back to the planner defaults.
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .models import (
    FilterConfig,
    Hour,
    Location,
    ValidationError,
    WeatherThresholds,
    parse_days,
    parse_edge,
)
from .units import wind_to_ms

DEFAULT_NIGHTS = 30


class ConfigError(ValueError):
    """Raised when configuration cannot be parsed into domain models."""


@dataclass(frozen=True)
class PlannerConfig:
    location: Optional[Location] = None
    filter: FilterConfig = field(default_factory=FilterConfig)
    weather: WeatherThresholds = field(default_factory=WeatherThresholds)
    nights: int = DEFAULT_NIGHTS
    cache_dir: Optional[Path] = None
    data_dir: Optional[Path] = None


def _load_raw(path: Path) -> Dict[str, Any]:
    text = path.read_text()
    if path.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(text) or {}
    elif path.suffix.lower() == ".json":
        raw = json.loads(text)
    else:
        raise ConfigError(f"Unsupported config extension: {path.suffix}")
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    return raw


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return value


def _clamp(value: float, lo: float, hi: float = math.inf) -> float:
    return max(lo, min(hi, value))


def parse_location(raw: Dict[str, Any]) -> Location:
    try:
        return Location(
            id=str(raw.get("id", "default")),
            lat=float(raw["lat"]),
            lon=float(raw["lon"]),
            zone=raw.get("zone"),
        )
    except KeyError as exc:
        raise ConfigError(f"Missing location field: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid location: {exc}") from exc


def parse_filter(raw: Dict[str, Any]) -> FilterConfig:
    try:
        min_hours = float(raw.get("min_hours", 0) or 0)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid filter.min_hours: {exc}") from exc
    if not math.isfinite(min_hours) or min_hours < 0:
        raise ConfigError("filter.min_hours must be a non-negative number")
    try:
        return FilterConfig(
            from_edge=parse_edge(raw.get("from", Hour(21))),
            to_edge=parse_edge(raw.get("to", Hour(2))),
            min_minutes=int(math.floor(min_hours * 60 + 0.5)),
            allowed_days=parse_days(raw.get("days")),
            hide_non_match=bool(raw.get("hide_non_match", False)),
            highlight_match=bool(raw.get("highlight_match", False)),
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid filter: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid filter: {exc}") from exc


def parse_weather(raw: Dict[str, Any]) -> WeatherThresholds:
    defaults = WeatherThresholds()
    try:
        unit = raw.get("wind_unit", "ms")
        max_wind = raw.get("max_wind")
        max_wind_ms = wind_to_ms(float(max_wind), unit) if max_wind is not None else defaults.max_wind_ms
        return WeatherThresholds(
            enabled=bool(raw.get("enabled", defaults.enabled)),
            max_cloud=_clamp(float(raw.get("max_cloud", defaults.max_cloud)), 0.0, 100.0),
            max_wind_ms=_clamp(max_wind_ms, 0.0),
            max_humidity=_clamp(float(raw.get("max_humidity", defaults.max_humidity)), 0.0, 100.0),
            min_consec_hours=max(1, int(raw.get("min_consec_hours", defaults.min_consec_hours))),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid weather thresholds: {exc}") from exc


def load_planner_config(path: str | Path) -> PlannerConfig:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    raw = _load_raw(path)

    location_raw = raw.get("location")
    location = parse_location(location_raw) if location_raw else None
    run = _section(raw, "run")
    try:
        nights = int(run.get("nights", DEFAULT_NIGHTS))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid run.nights: {exc}") from exc
    if nights < 1:
        raise ConfigError("run.nights must be at least 1")
    cache_dir = run.get("cache_dir")
    data_dir = run.get("data_dir")
    return PlannerConfig(
        location=location,
        filter=parse_filter(_section(raw, "filter")),
        weather=parse_weather(_section(raw, "weather")),
        nights=nights,
        cache_dir=Path(cache_dir).expanduser() if cache_dir else None,
        data_dir=Path(data_dir).expanduser() if data_dir else None,
    )


__all__ = [
    "ConfigError",
    "PlannerConfig",
    "DEFAULT_NIGHTS",
    "parse_location",
    "parse_filter",
    "parse_weather",
    "load_planner_config",
]
