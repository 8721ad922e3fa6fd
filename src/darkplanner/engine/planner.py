"""Planner orchestration: per-night darkness, filter and weather results.

The planner is stateless per call. Each night of the horizon is assembled
from the ephemeris, walked for moon-free darkness, checked against the
darkness filter and, when a weather evaluator is enabled and its forecast is
loaded, against the weather thresholds.

A location without a usable zone is planned in the zone of its loaded
forecast, else the zone a :class:`TimeZoneResolver` reports for its
coordinates, else the host zone.
"""
from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union

from darkplanner.astro import tz
from darkplanner.astro.ephemeris import AlmanacEphemeris, Ephemeris
from darkplanner.core.debug import DebugCollector, NullDebugCollector, ScopedDebugCollector
from darkplanner.core.models import EvalReason, EvalResult, FilterConfig, Location, NightMatch, NightResult
from darkplanner.engine.darkness import compute_darkness
from darkplanner.engine.filters import evaluate_darkness_filter
from darkplanner.engine.night import assemble_night
from darkplanner.weather.base import FetchFailed, NotReady, TimeZoneResolver

if TYPE_CHECKING:
    from darkplanner.weather.evaluate import WeatherEvaluator

DEFAULT_HORIZON_NIGHTS = 30
DEFAULT_SEARCH_NIGHTS = 30

DateLike = Union[dt.date, dt.datetime]


class NightPlanner:
    def __init__(
        self,
        ephemeris: Optional[Ephemeris] = None,
        weather: Optional["WeatherEvaluator"] = None,
        debug: Optional[DebugCollector] = None,
        zone_resolver: Optional[TimeZoneResolver] = None,
    ):
        self.ephemeris = ephemeris or AlmanacEphemeris()
        self.weather = weather
        self.debug = debug or NullDebugCollector()
        self.zone_resolver = zone_resolver
        self._resolved_zones: Dict[Tuple[float, float], Optional[str]] = {}

    @property
    def weather_enabled(self) -> bool:
        return self.weather is not None and self.weather.enabled

    def _forecast_zone(self, location: Location) -> Optional[str]:
        if self.weather is None or not self.weather.cache.is_ready(location.lat, location.lon):
            return None
        return self.weather.cache.forecast_for(location.lat, location.lon).zone

    def _lookup_zone(self, location: Location) -> Optional[str]:
        key = (location.lat, location.lon)
        if key not in self._resolved_zones:
            try:
                zone = self.zone_resolver.resolve_timezone(location.lat, location.lon)
            except FetchFailed as exc:
                self.debug.emit("planner.zone", {"source": "resolver", "error": str(exc)}, ts=None, location=location.id)
                zone = None
            self._resolved_zones[key] = zone
        return self._resolved_zones[key]

    def resolve_zone(self, location: Location) -> str:
        """Zone the location's nights are planned in."""
        if location.zone and tz.is_valid_zone(location.zone):
            return location.zone.strip()
        source, zone = "forecast", self._forecast_zone(location)
        if zone is None and self.zone_resolver is not None:
            source, zone = "resolver", self._lookup_zone(location)
        if zone is None or not tz.is_valid_zone(zone):
            source, zone = "host", tz.host_zone()
        self.debug.emit("planner.zone", {"source": source, "zone": zone}, ts=None, location=location.id)
        return zone

    @staticmethod
    def _base_date(start: DateLike, zone: str) -> dt.date:
        if isinstance(start, dt.datetime):
            return tz.zoned_date(start, zone)
        return start

    def _weather_result(self, night, intervals, filter_config) -> Optional[EvalResult]:
        if not self.weather_enabled:
            return None
        try:
            result = self.weather.evaluate(night, intervals, filter_config)
        except NotReady:
            return None
        if result.reason is EvalReason.NO_FORECAST_DATA:
            # Beyond the forecast horizon.
            return None
        return result

    def _evaluate(self, day: dt.date, location: Location, zone: str, filter_config: FilterConfig) -> NightResult:
        debug = ScopedDebugCollector(self.debug, location=location.id, night=day.isoformat())
        night = assemble_night(day, location, zone, self.ephemeris, debug=debug)
        darkness = compute_darkness(night, self.ephemeris, debug=debug)
        dark_filter = evaluate_darkness_filter(night, darkness.intervals, filter_config, debug=debug)
        weather_result = self._weather_result(night, darkness.intervals, filter_config)

        hidden = highlighted = False
        if filter_config.is_active:
            hidden = filter_config.hide_non_match and not dark_filter.passes
            highlighted = filter_config.highlight_match and dark_filter.passes and not hidden

        result = NightResult(
            date=day,
            night=night,
            darkness_intervals=darkness.intervals,
            total_darkness_minutes=darkness.total_minutes,
            day_of_week=dark_filter.day_of_week,
            day_of_week_match=dark_filter.day_of_week_match,
            overlap_minutes=dark_filter.overlap_minutes,
            darkness_pass=dark_filter.passes,
            weather_result=weather_result,
            moon_phase=self.ephemeris.moon_phase(night.mid1),
            hidden=hidden,
            highlighted=highlighted,
        )
        debug.emit(
            "planner.night",
            {
                "total_darkness_minutes": result.total_darkness_minutes,
                "overlap_minutes": result.overlap_minutes,
                "darkness_pass": result.darkness_pass,
                "weather_pass": result.weather_pass,
                "moon_phase": result.moon_phase.key,
            },
            ts=night.mid0,
        )
        return result

    def evaluate_single_night(self, day: DateLike, location: Location, filter_config: FilterConfig) -> NightResult:
        zone = self.resolve_zone(location)
        return self._evaluate(self._base_date(day, zone), location, zone, filter_config)

    def plan_horizon(
        self,
        start: DateLike,
        location: Location,
        filter_config: FilterConfig,
        nights: int = DEFAULT_HORIZON_NIGHTS,
    ) -> List[NightResult]:
        """Results for ``nights`` consecutive civil dates from ``start``, in date order."""
        if nights < 0:
            raise ValueError("nights must be non-negative")
        zone = self.resolve_zone(location)
        base = self._base_date(start, zone)
        return [
            self._evaluate(base + dt.timedelta(days=i), location, zone, filter_config)
            for i in range(nights)
        ]

    def find_next_matching_night(
        self,
        start: DateLike,
        location: Location,
        filter_config: FilterConfig,
        within: int = DEFAULT_SEARCH_NIGHTS,
    ) -> Optional[NightMatch]:
        """First night 1..``within`` days after ``start`` with darkness passing the filter.

        When weather is enabled and a forecast is loaded, the night must also
        pass the weather thresholds.
        """
        zone = self.resolve_zone(location)
        base = self._base_date(start, zone)
        require_weather = self.weather_enabled and self.weather.cache.is_ready(location.lat, location.lon)
        for i in range(1, within + 1):
            result = self._evaluate(base + dt.timedelta(days=i), location, zone, filter_config)
            if not result.has_darkness or not result.darkness_pass:
                continue
            if require_weather and result.weather_pass is not True:
                continue
            match = NightMatch(days_ahead=i, date=result.date, overlap_minutes=result.overlap_minutes)
            self.debug.emit("planner.next_match", match.to_dict(), ts=result.night.mid0, location=location.id)
            return match
        self.debug.emit("planner.next_match", {"days_ahead": None, "within": within}, ts=None, location=location.id)
        return None


__all__ = ["NightPlanner", "DEFAULT_HORIZON_NIGHTS", "DEFAULT_SEARCH_NIGHTS"]
