"""Hour-indexed forecast view built from the three cached payloads.

The view is a pandas DataFrame with one row per ``hourly.time`` key of the
basic weather stream. AOD and seeing values join on the same wall-clock key;
keys a stream lacks yield missing values. Each row also carries the UTC
instant of its key, computed in the zone the forecast itself reports.
"""
from __future__ import annotations

import datetime as dt
import math
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from darkplanner.astro import tz
from darkplanner.core.models import HourSample, Interval, WeatherThresholds
from darkplanner.engine.intervals import contains
from .base import Payload
from .seeing import seeing_label, seeing_score

COLUMNS = ["iso", "instant", "cloud_pct", "humidity_pct", "wind_ms", "aod", "seeing_score", "seeing_label"]


class InvalidPayload(ValueError):
    """Raised when a forecast payload lacks ``hourly.time``."""


def _hourly(payload: Optional[Payload]) -> Optional[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return None
    hourly = payload.get("hourly")
    if not isinstance(hourly, dict) or not isinstance(hourly.get("time"), list):
        return None
    return hourly


def _values(hourly: Dict[str, Any], key: str, n: int) -> List[Any]:
    raw = hourly.get(key)
    if not isinstance(raw, list):
        return [None] * n
    raw = list(raw[:n])
    return raw + [None] * (n - len(raw))


def _num(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(out) else out


def _keyed(hourly: Optional[Dict[str, Any]], key: str) -> Dict[str, Any]:
    if hourly is None:
        return {}
    times = hourly["time"]
    return dict(zip(times, _values(hourly, key, len(times))))


def _seeing_by_key(hourly: Optional[Dict[str, Any]]) -> Dict[str, Optional[int]]:
    if hourly is None:
        return {}
    times = hourly["time"]
    levels = [_values(hourly, f"wind_speed_{p}hPa", len(times)) for p in (200, 300, 500, 700)]
    return {
        iso: seeing_score(*(_num(level[i]) for level in levels))
        for i, iso in enumerate(times)
    }


def _wind_to_ms(values: Sequence[Any], unit: Optional[str]) -> List[Optional[float]]:
    factor = 1.0 if unit in {"m/s", "ms"} else 1.0 / 3.6
    return [v * factor if v is not None else None for v in (_num(x) for x in values)]


class ForecastView:
    """Joined hourly forecast for one location."""

    def __init__(self, frame: pd.DataFrame, zone: Optional[str]):
        self.frame = frame
        self.zone = zone

    @classmethod
    def from_payloads(
        cls,
        weather: Payload,
        aod: Optional[Payload] = None,
        seeing: Optional[Payload] = None,
    ) -> "ForecastView":
        hourly = _hourly(weather)
        if hourly is None:
            raise InvalidPayload("Forecast payload has no hourly.time array")
        zone = weather.get("timezone")
        if not (isinstance(zone, str) and tz.is_valid_zone(zone)):
            zone = None

        times = [str(t) for t in hourly["time"]]
        n = len(times)
        try:
            instants = [tz.parse_wall_clock(t, zone) for t in times]
        except ValueError as exc:
            raise InvalidPayload(f"Unparseable forecast time key: {exc}") from exc
        wind_unit = (weather.get("hourly_units") or {}).get("wind_speed_10m", "km/h")
        aod_map = _keyed(_hourly(aod), "aerosol_optical_depth")
        seeing_map = _seeing_by_key(_hourly(seeing))
        scores = [seeing_map.get(t) for t in times]

        frame = pd.DataFrame(
            {
                "iso": times,
                "instant": instants,
                "cloud_pct": [_num(v) for v in _values(hourly, "cloud_cover", n)],
                "humidity_pct": [_num(v) for v in _values(hourly, "relative_humidity_2m", n)],
                "wind_ms": _wind_to_ms(_values(hourly, "wind_speed_10m", n), wind_unit),
                "aod": [_num(aod_map.get(t)) for t in times],
                "seeing_score": pd.Series(scores, dtype="object"),
                "seeing_label": [lbl.value if lbl is not None else None for lbl in map(seeing_label, scores)],
            },
            columns=COLUMNS,
        )
        frame = frame.sort_values("instant", kind="stable").reset_index(drop=True)
        return cls(frame, zone)

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def empty(self) -> bool:
        return self.frame.empty

    def _sample(self, row: Any, thresholds: Optional[WeatherThresholds]) -> HourSample:
        cloud = _num(row.cloud_pct)
        humidity = _num(row.humidity_pct)
        wind = _num(row.wind_ms)
        aod = _num(row.aod)
        score = row.seeing_score
        instant = row.instant.to_pydatetime() if hasattr(row.instant, "to_pydatetime") else row.instant
        return HourSample(
            iso=row.iso,
            instant=instant,
            cloud_pct=cloud,
            humidity_pct=humidity,
            wind_ms=wind,
            aod=aod,
            seeing_score=int(score) if score is not None and not pd.isna(score) else None,
            seeing_label=row.seeing_label if isinstance(row.seeing_label, str) else None,
            passes=thresholds.passes(cloud, wind, humidity) if thresholds is not None else None,
        )

    def hours_between(
        self,
        start: dt.datetime,
        end: dt.datetime,
        *,
        include_end: bool = False,
        within: Optional[Sequence[Interval]] = None,
        thresholds: Optional[WeatherThresholds] = None,
    ) -> List[HourSample]:
        """Samples with ``start <= instant < end`` (``<= end`` if ``include_end``).

        When ``within`` is given, only instants inside one of those intervals
        are kept. Results are sorted by instant.
        """
        if self.frame.empty:
            return []
        instants = self.frame["instant"]
        mask = (instants >= pd.Timestamp(start)) & (
            instants <= pd.Timestamp(end) if include_end else instants < pd.Timestamp(end)
        )
        samples = [self._sample(row, thresholds) for row in self.frame[mask].itertuples(index=False)]
        if within is not None:
            samples = [s for s in samples if contains(within, s.instant)]
        return samples


__all__ = ["InvalidPayload", "ForecastView", "COLUMNS"]
