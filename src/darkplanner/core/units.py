"""Wind speed unit conversions used at config and CLI boundaries.

Thresholds are stored in m/s internally; users may enter them in km/h or mph.
"""
from __future__ import annotations

WIND_UNITS = ("ms", "kmh", "mph")

_PER_MS = {
    "ms": 1.0,
    "kmh": 3.6,
    "mph": 2.2369362920544,
}

_ALIASES = {
    "ms": "ms",
    "m/s": "ms",
    "mps": "ms",
    "kmh": "kmh",
    "km/h": "kmh",
    "kph": "kmh",
    "mph": "mph",
}


def normalize_wind_unit(unit: str) -> str:
    key = _ALIASES.get(str(unit).strip().lower())
    if key is None:
        raise ValueError(f"Unknown wind unit: {unit!r}; expected one of {', '.join(WIND_UNITS)}")
    return key


def wind_to_ms(value: float, unit: str) -> float:
    return float(value) / _PER_MS[normalize_wind_unit(unit)]


def wind_from_ms(value_ms: float, unit: str) -> float:
    return float(value_ms) * _PER_MS[normalize_wind_unit(unit)]


__all__ = ["WIND_UNITS", "normalize_wind_unit", "wind_to_ms", "wind_from_ms"]
