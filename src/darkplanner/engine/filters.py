"""Filter window resolution and the darkness filter."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional, Sequence

from darkplanner.astro import tz
from darkplanner.core.debug import DebugCollector, NullDebugCollector
from darkplanner.core.models import Edge, FilterConfig, FilterEdge, Hour, Interval, NightRecord
from darkplanner.engine.intervals import overlap_minutes


class NoWindow(LookupError):
    """Raised when a filter edge needs an astronomical event the night lacks."""


def _edge_instant(edge: FilterEdge, night: NightRecord) -> dt.datetime:
    if isinstance(edge, Hour):
        return night.mid0 + dt.timedelta(hours=edge.value)
    value = night.astr_start if edge is Edge.ASTR_START else night.astr_end
    if value is None:
        raise NoWindow(f"Night of {night.date.isoformat()} has no {edge.value}")
    return value


def resolve_filter_window(filter_config: FilterConfig, night: NightRecord) -> Interval:
    """Single contiguous window; an end at or before the start moves 24 h later."""
    start = _edge_instant(filter_config.from_edge, night)
    end = _edge_instant(filter_config.to_edge, night)
    if end <= start:
        end += dt.timedelta(hours=24)
    return Interval(start, end)


@dataclass(frozen=True)
class DarknessFilterResult:
    window: Optional[Interval]
    overlap_minutes: int
    day_of_week: int
    day_of_week_match: bool
    passes: bool


def evaluate_darkness_filter(
    night: NightRecord,
    intervals: Sequence[Interval],
    filter_config: FilterConfig,
    *,
    debug: Optional[DebugCollector] = None,
) -> DarknessFilterResult:
    debug = debug or NullDebugCollector()
    day_of_week = tz.day_of_week(night.mid0, night.zone)
    dow_match = filter_config.allows_day(day_of_week)
    try:
        window: Optional[Interval] = resolve_filter_window(filter_config, night)
    except NoWindow:
        window = None
    overlap = overlap_minutes(intervals, window) if window is not None else 0
    result = DarknessFilterResult(
        window=window,
        overlap_minutes=overlap,
        day_of_week=day_of_week,
        day_of_week_match=dow_match,
        passes=dow_match and overlap >= filter_config.min_minutes,
    )
    debug.emit(
        "filter.summary",
        {
            "window": window.to_dict() if window is not None else None,
            "overlap_minutes": overlap,
            "min_minutes": filter_config.min_minutes,
            "day_of_week": day_of_week,
            "day_of_week_match": dow_match,
            "passes": result.passes,
        },
        ts=night.mid0,
        night=night.date.isoformat(),
    )
    return result


__all__ = ["NoWindow", "resolve_filter_window", "DarknessFilterResult", "evaluate_darkness_filter"]
