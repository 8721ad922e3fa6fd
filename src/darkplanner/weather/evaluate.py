"""Weather evaluation of a night against the observing thresholds."""
from __future__ import annotations

from typing import List, Optional, Sequence

from darkplanner.core.debug import DebugCollector, NullDebugCollector
from darkplanner.core.models import (
    EvalReason,
    EvalResult,
    FilterConfig,
    HourSample,
    Interval,
    NightRecord,
    WeatherRun,
    WeatherThresholds,
)
from darkplanner.engine.filters import NoWindow, evaluate_darkness_filter, resolve_filter_window
from darkplanner.engine.intervals import contains
from .cache import WeatherCache
from .forecast import ForecastView


def find_consecutive_runs(hours: Sequence[HourSample]) -> List[WeatherRun]:
    """Maximal runs of adjacent passing hours.

    Adjacency is by position in ``hours`` (the provider grid is hourly), not
    by instant arithmetic. A run ends at its last passing hour's instant.
    """
    runs: List[WeatherRun] = []
    start: Optional[HourSample] = None
    last: Optional[HourSample] = None
    length = 0
    for hour in hours:
        if hour.passes:
            if start is None:
                start = hour
                length = 0
            last = hour
            length += 1
            continue
        if start is not None:
            runs.append(WeatherRun(start=start.instant, end=last.instant, length_hours=length))
        start = None
    if start is not None:
        runs.append(WeatherRun(start=start.instant, end=last.instant, length_hours=length))
    return runs


def evaluate_forecast(
    view: ForecastView,
    night: NightRecord,
    darkness_intervals: Sequence[Interval],
    filter_config: FilterConfig,
    thresholds: WeatherThresholds,
) -> EvalResult:
    """Pure evaluation of one night against an already loaded forecast."""
    dark = evaluate_darkness_filter(night, darkness_intervals, filter_config)
    if not night.has_astronomical_night:
        return EvalResult(
            ok=False,
            overlap_minutes=dark.overlap_minutes,
            day_of_week_match=dark.day_of_week_match,
            reason=EvalReason.NO_ASTRONOMICAL_EDGES,
        )
    try:
        window = resolve_filter_window(filter_config, night)
    except NoWindow:
        return EvalResult(
            ok=False,
            overlap_minutes=dark.overlap_minutes,
            day_of_week_match=dark.day_of_week_match,
            reason=EvalReason.NO_ASTRONOMICAL_EDGES,
        )

    in_window = view.hours_between(window.start, window.end, thresholds=thresholds)
    if not in_window:
        return EvalResult(
            ok=False,
            overlap_minutes=dark.overlap_minutes,
            day_of_week_match=dark.day_of_week_match,
            reason=EvalReason.NO_FORECAST_DATA,
        )
    hours = [h for h in in_window if contains(darkness_intervals, h.instant)]
    if not hours:
        return EvalResult(
            ok=False,
            overlap_minutes=dark.overlap_minutes,
            day_of_week_match=dark.day_of_week_match,
            reason=EvalReason.NO_DARK_HOURS,
        )
    runs = find_consecutive_runs(hours)
    return EvalResult(
        ok=any(r.length_hours >= thresholds.min_consec_hours for r in runs),
        runs=runs,
        hours=hours,
        overlap_minutes=dark.overlap_minutes,
        day_of_week_match=dark.day_of_week_match,
    )


class WeatherEvaluator:
    """Binds thresholds to a :class:`WeatherCache` for per-night evaluation."""

    def __init__(
        self,
        cache: WeatherCache,
        thresholds: WeatherThresholds,
        debug: Optional[DebugCollector] = None,
    ):
        self.cache = cache
        self.thresholds = thresholds
        self.debug = debug or NullDebugCollector()

    @property
    def enabled(self) -> bool:
        return self.thresholds.enabled

    def is_ready(self, night: NightRecord) -> bool:
        return self.cache.is_ready(night.lat, night.lon)

    def evaluate(
        self,
        night: NightRecord,
        darkness_intervals: Sequence[Interval],
        filter_config: FilterConfig,
    ) -> EvalResult:
        """Raises :class:`~darkplanner.weather.base.NotReady` before a forecast is loaded."""
        view = self.cache.forecast_for(night.lat, night.lon)
        result = evaluate_forecast(view, night, darkness_intervals, filter_config, self.thresholds)
        self.debug.emit(
            "weather.evaluate",
            {
                "ok": result.ok,
                "reason": result.reason,
                "hours": len(result.hours),
                "runs": [r.length_hours for r in result.runs],
                "min_consec_hours": self.thresholds.min_consec_hours,
            },
            ts=night.mid0,
            night=night.date.isoformat(),
        )
        return result

    def all_astr_night_hours(self, night: NightRecord) -> List[HourSample]:
        """Every forecast hour in ``[astr_start, astr_end]``, marked against the thresholds."""
        if not night.has_astronomical_night:
            return []
        view = self.cache.forecast_for(night.lat, night.lon)
        return view.hours_between(night.astr_start, night.astr_end, include_end=True, thresholds=self.thresholds)


__all__ = ["find_consecutive_runs", "evaluate_forecast", "WeatherEvaluator"]
