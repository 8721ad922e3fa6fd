"""Command line entrypoint for darkplanner.

Commands:

* ``plan``: darkness/filter/weather table for a horizon of nights.
* ``night``: full record for one night, including the hourly weather table.
* ``next``: first upcoming night that passes the filter.
* ``timezone``: resolve the IANA zone for a coordinate via Open-Meteo.
"""
from __future__ import annotations

import datetime as dt
import json
import math
from pathlib import Path
from typing import List, Optional

import pandas as pd
import typer

from darkplanner.astro import tz
from darkplanner.astro.ephemeris import DEFAULT_DATA_DIR, AlmanacEphemeris, Ephemeris, EphemerisUnavailable
from darkplanner.core.config import ConfigError, PlannerConfig, load_planner_config
from darkplanner.core.debug import NullDebugCollector, build_debug_collector
from darkplanner.core.models import (
    FilterConfig,
    Location,
    NightResult,
    ValidationError,
    WeatherThresholds,
    parse_days,
    parse_edge,
)
from darkplanner.core.units import wind_from_ms, wind_to_ms
from darkplanner.engine.planner import NightPlanner
from darkplanner.weather.base import FetchFailed
from darkplanner.weather.cache import WeatherCache
from darkplanner.weather.evaluate import WeatherEvaluator
from darkplanner.weather.open_meteo import OpenMeteoForecastProvider
from darkplanner.weather.store import JsonFileStore

__version__ = "0.1.0"

DEFAULT_CACHE_DIR = Path("~/.cache/darkplanner")

app = typer.Typer(add_completion=False, help="Dark-sky night planner CLI")


def default_forecast_provider(debug) -> OpenMeteoForecastProvider:
    """Factory separated for easy monkeypatching in tests."""

    return OpenMeteoForecastProvider(debug=debug)


def default_ephemeris(data_dir: Optional[Path]) -> Ephemeris:
    """Factory separated for easy monkeypatching in tests."""

    return AlmanacEphemeris(data_dir=data_dir or DEFAULT_DATA_DIR)


def _exit_with_error(msg: str) -> None:
    typer.echo(f"Error: {msg}", err=True)
    raise typer.Exit(code=1)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"darkplanner {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """Plan moon-free astronomical nights with optional weather screening."""


def _load_config(config: Optional[Path]) -> PlannerConfig:
    if config is None:
        return PlannerConfig()
    try:
        return load_planner_config(config)
    except ConfigError as exc:
        _exit_with_error(str(exc))


def _resolve_location(
    cfg: PlannerConfig,
    lat: Optional[float],
    lon: Optional[float],
    zone: Optional[str],
) -> Location:
    base = cfg.location
    if (lat is None or lon is None) and base is None:
        _exit_with_error("location required: pass --lat/--lon or a config with a location section")
    if zone is not None and not tz.is_valid_zone(zone):
        _exit_with_error(f"Unknown time zone: {zone}")
    try:
        return Location(
            id=base.id if base is not None else "cli",
            lat=lat if lat is not None else base.lat,
            lon=lon if lon is not None else base.lon,
            zone=zone if zone is not None else (base.zone if base is not None else None),
        )
    except ValidationError as exc:
        _exit_with_error(str(exc))


def _resolve_filter(
    cfg: PlannerConfig,
    from_edge: Optional[str],
    to_edge: Optional[str],
    min_hours: Optional[float],
    days: Optional[str],
) -> FilterConfig:
    base = cfg.filter
    try:
        return FilterConfig(
            from_edge=parse_edge(from_edge) if from_edge is not None else base.from_edge,
            to_edge=parse_edge(to_edge) if to_edge is not None else base.to_edge,
            min_minutes=int(math.floor(min_hours * 60 + 0.5)) if min_hours is not None else base.min_minutes,
            allowed_days=parse_days(days) if days is not None else base.allowed_days,
            hide_non_match=base.hide_non_match,
            highlight_match=base.highlight_match,
        )
    except ValidationError as exc:
        _exit_with_error(str(exc))


def _resolve_weather(
    cfg: PlannerConfig,
    enabled: Optional[bool],
    max_cloud: Optional[float],
    max_wind: Optional[float],
    wind_unit: str,
    max_humidity: Optional[float],
    min_consec_hours: Optional[int],
) -> WeatherThresholds:
    base = cfg.weather
    try:
        return WeatherThresholds(
            enabled=enabled if enabled is not None else base.enabled,
            max_cloud=max_cloud if max_cloud is not None else base.max_cloud,
            max_wind_ms=wind_to_ms(max_wind, wind_unit) if max_wind is not None else base.max_wind_ms,
            max_humidity=max_humidity if max_humidity is not None else base.max_humidity,
            min_consec_hours=min_consec_hours if min_consec_hours is not None else base.min_consec_hours,
        )
    except ValueError as exc:
        _exit_with_error(str(exc))


def _parse_date(value: Optional[str], zone: str) -> dt.date:
    if value is None:
        return tz.zoned_date(dt.datetime.now(tz.UTC), zone)
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        _exit_with_error("date must be YYYY-MM-DD")


def _build_planner(
    thresholds: WeatherThresholds,
    location: Location,
    cfg: PlannerConfig,
    cache_dir: Optional[Path],
    refresh: bool,
    debug_collector,
) -> NightPlanner:
    provider = None
    if thresholds.enabled or location.zone is None:
        provider = default_forecast_provider(debug=debug_collector)
    evaluator = None
    if thresholds.enabled:
        store = JsonFileStore(cache_dir or cfg.cache_dir or DEFAULT_CACHE_DIR)
        cache = WeatherCache(provider, store, debug=debug_collector)
        outcome = cache.load(location.lat, location.lon, force=refresh)
        if not outcome.ready:
            typer.echo(f"Weather unavailable ({outcome.error or outcome.status.value}); continuing without it", err=True)
        elif outcome.from_cache:
            fetched = tz.from_ms(outcome.fetched_at_ms).isoformat() if outcome.fetched_at_ms is not None else "?"
            typer.echo(f"Weather from cache (fetched {fetched})", err=True)
        evaluator = WeatherEvaluator(cache, thresholds, debug=debug_collector)
    return NightPlanner(
        ephemeris=default_ephemeris(cfg.data_dir),
        weather=evaluator,
        debug=debug_collector,
        zone_resolver=provider if location.zone is None else None,
    )


def _fmt_pass(value: Optional[bool]) -> str:
    if value is None:
        return "-"
    return "yes" if value else "no"


def _results_frame(results: List[NightResult], zone: str) -> pd.DataFrame:
    rows = []
    for r in results:
        rows.append(
            {
                "date": r.date.isoformat(),
                "dow": r.date.strftime("%a"),
                "astr_start": tz.format_local(r.night.astr_start, zone),
                "astr_end": tz.format_local(r.night.astr_end, zone),
                "dark_min": r.total_darkness_minutes,
                "overlap_min": r.overlap_minutes,
                "dark_pass": _fmt_pass(r.darkness_pass),
                "weather_pass": _fmt_pass(r.weather_pass),
                "moon": r.moon_phase.key if r.moon_phase is not None else "-",
                "illum_pct": round(r.moon_phase.fraction * 100) if r.moon_phase is not None else None,
                "mark": "*" if r.highlighted else "",
            }
        )
    return pd.DataFrame(rows)


def _write_output(payload, frame: pd.DataFrame, fmt: str, output: Optional[Path]) -> None:
    fmt = fmt.lower()
    if fmt == "json":
        text = json.dumps(payload, indent=2)
    elif fmt == "csv":
        text = frame.to_csv(index=False)
    elif fmt == "table":
        text = frame.to_string(index=False) if not frame.empty else "No nights to show"
    else:
        _exit_with_error("format must be json, csv or table")
    if output is not None:
        output.write_text(text)
        typer.echo(f"Wrote results to {output}")
    else:
        typer.echo(text)


def _finish_debug(debug_collector, debug: Optional[Path]) -> None:
    close = getattr(debug_collector, "close", None)
    if close is not None:
        close()
    if debug:
        typer.echo(f"Debug events -> {debug}", err=True)


@app.command()
def plan(
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, help="Planner YAML/JSON file"),
    date: Optional[str] = typer.Option(None, help="First night (YYYY-MM-DD); defaults to today in the location zone"),
    nights: Optional[int] = typer.Option(None, min=1, help="Number of nights (default from config, else 30)"),
    lat: Optional[float] = typer.Option(None, help="Latitude in degrees"),
    lon: Optional[float] = typer.Option(None, help="Longitude in degrees"),
    zone: Optional[str] = typer.Option(None, help="IANA time zone; resolved from the coordinates when omitted"),
    from_edge: Optional[str] = typer.Option(None, "--from", help="Window start: hour 0-23, astrStart or astrEnd"),
    to_edge: Optional[str] = typer.Option(None, "--to", help="Window end: hour 0-23, astrStart or astrEnd"),
    min_hours: Optional[float] = typer.Option(None, help="Minimum dark hours inside the window"),
    days: Optional[str] = typer.Option(None, help="Allowed weekdays: fri_sat, fri_sat_sun, sat_sun or CSV of 0-6 (0=Sun)"),
    weather: Optional[bool] = typer.Option(None, "--weather/--no-weather", help="Screen nights against the forecast"),
    max_cloud: Optional[float] = typer.Option(None, help="Maximum cloud cover (%)"),
    max_wind: Optional[float] = typer.Option(None, help="Maximum wind speed in --wind-unit"),
    wind_unit: str = typer.Option("ms", help="Unit for --max-wind: ms, kmh or mph"),
    max_humidity: Optional[float] = typer.Option(None, help="Maximum relative humidity (%)"),
    min_consec_hours: Optional[int] = typer.Option(None, help="Consecutive good hours required"),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore a fresh cache and refetch the forecast"),
    cache_dir: Optional[Path] = typer.Option(None, help="Weather cache directory"),
    debug: Optional[Path] = typer.Option(None, help="Write debug events to this path (.json or JSONL)"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json or csv"),
    output: Optional[Path] = typer.Option(None, help="Output file path; defaults to stdout"),
):
    """Plan a horizon of nights."""
    cfg = _load_config(config)
    location = _resolve_location(cfg, lat, lon, zone)
    filter_config = _resolve_filter(cfg, from_edge, to_edge, min_hours, days)
    thresholds = _resolve_weather(cfg, weather, max_cloud, max_wind, wind_unit, max_humidity, min_consec_hours)
    debug_collector = build_debug_collector(debug) if debug else NullDebugCollector()
    planner = _build_planner(thresholds, location, cfg, cache_dir, refresh, debug_collector)
    effective_zone = planner.resolve_zone(location)
    start = _parse_date(date, effective_zone)
    try:
        results = planner.plan_horizon(start, location, filter_config, nights=nights or cfg.nights)
    except EphemerisUnavailable as exc:
        _exit_with_error(str(exc))
    visible = [r for r in results if not r.hidden]

    _write_output([r.to_dict() for r in visible], _results_frame(visible, effective_zone), format, output)
    _finish_debug(debug_collector, debug)


@app.command()
def night(
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, help="Planner YAML/JSON file"),
    date: Optional[str] = typer.Option(None, help="Night date (YYYY-MM-DD); defaults to today"),
    lat: Optional[float] = typer.Option(None, help="Latitude in degrees"),
    lon: Optional[float] = typer.Option(None, help="Longitude in degrees"),
    zone: Optional[str] = typer.Option(None, help="IANA time zone; resolved from the coordinates when omitted"),
    from_edge: Optional[str] = typer.Option(None, "--from", help="Window start: hour 0-23, astrStart or astrEnd"),
    to_edge: Optional[str] = typer.Option(None, "--to", help="Window end: hour 0-23, astrStart or astrEnd"),
    min_hours: Optional[float] = typer.Option(None, help="Minimum dark hours inside the window"),
    weather: Optional[bool] = typer.Option(None, "--weather/--no-weather", help="Include the hourly forecast"),
    wind_unit: str = typer.Option("ms", help="Unit for wind in the hourly table: ms, kmh or mph"),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore a fresh cache and refetch the forecast"),
    cache_dir: Optional[Path] = typer.Option(None, help="Weather cache directory"),
    debug: Optional[Path] = typer.Option(None, help="Write debug events to this path (.json or JSONL)"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Show one night in detail."""
    cfg = _load_config(config)
    location = _resolve_location(cfg, lat, lon, zone)
    filter_config = _resolve_filter(cfg, from_edge, to_edge, min_hours, None)
    thresholds = _resolve_weather(cfg, weather, None, None, "ms", None, None)
    debug_collector = build_debug_collector(debug) if debug else NullDebugCollector()
    planner = _build_planner(thresholds, location, cfg, cache_dir, refresh, debug_collector)
    effective_zone = planner.resolve_zone(location)
    day = _parse_date(date, effective_zone)
    try:
        result = planner.evaluate_single_night(day, location, filter_config)
    except EphemerisUnavailable as exc:
        _exit_with_error(str(exc))
    hours = []
    if planner.weather is not None and planner.weather.is_ready(result.night):
        hours = planner.weather.all_astr_night_hours(result.night)

    if format.lower() == "json":
        payload = result.to_dict()
        payload["hours"] = [h.to_dict() for h in hours]
        typer.echo(json.dumps(payload, indent=2))
        _finish_debug(debug_collector, debug)
        return
    if format.lower() != "table":
        _exit_with_error("format must be table or json")

    rec = result.night
    typer.echo(f"Night of {day.isoformat()} ({effective_zone})")
    typer.echo(f"  sunset {tz.format_local(rec.sunset, effective_zone)}  sunrise {tz.format_local(rec.sunrise, effective_zone)}")
    typer.echo(
        f"  astronomical night {tz.format_local(rec.astr_start, effective_zone)} - {tz.format_local(rec.astr_end, effective_zone)}"
    )
    if rec.sun_always_below:
        typer.echo("  sun stays below the horizon all day")
    if rec.sun_always_above:
        typer.echo("  sun stays above the horizon all day")
    for label, events in (("moonrise", rec.moon_rises_in_night), ("moonset", rec.moon_sets_in_night)):
        for t in events:
            typer.echo(f"  {label} {tz.format_local(t, effective_zone)}")
    if result.moon_phase is not None:
        typer.echo(f"  moon {result.moon_phase.key} ({result.moon_phase.fraction * 100:.0f}% lit)")
    if not result.darkness_intervals:
        typer.echo("  no full darkness")
    for interval in result.darkness_intervals:
        typer.echo(
            f"  dark {tz.format_local(interval.start, effective_zone)} - {tz.format_local(interval.end, effective_zone)}"
        )
    typer.echo(f"  total darkness {result.total_darkness_minutes} min, in window {result.overlap_minutes} min")
    typer.echo(f"  darkness filter: {_fmt_pass(result.darkness_pass)}  weather: {_fmt_pass(result.weather_pass)}")
    if hours:
        frame = pd.DataFrame(
            [
                {
                    "time": tz.format_local(h.instant, effective_zone),
                    "cloud_pct": h.cloud_pct,
                    "humidity_pct": h.humidity_pct,
                    f"wind_{wind_unit}": round(wind_from_ms(h.wind_ms, wind_unit), 1) if h.wind_ms is not None else None,
                    "aod": h.aod,
                    "seeing": h.seeing_label or "-",
                    "ok": _fmt_pass(h.passes),
                }
                for h in hours
            ]
        )
        typer.echo(frame.to_string(index=False))
    _finish_debug(debug_collector, debug)


@app.command("next")
def next_night(
    config: Optional[Path] = typer.Option(None, exists=True, readable=True, help="Planner YAML/JSON file"),
    date: Optional[str] = typer.Option(None, help="Search after this date (YYYY-MM-DD); defaults to today"),
    within: int = typer.Option(30, min=1, help="Days ahead to search"),
    lat: Optional[float] = typer.Option(None, help="Latitude in degrees"),
    lon: Optional[float] = typer.Option(None, help="Longitude in degrees"),
    zone: Optional[str] = typer.Option(None, help="IANA time zone; resolved from the coordinates when omitted"),
    from_edge: Optional[str] = typer.Option(None, "--from", help="Window start: hour 0-23, astrStart or astrEnd"),
    to_edge: Optional[str] = typer.Option(None, "--to", help="Window end: hour 0-23, astrStart or astrEnd"),
    min_hours: Optional[float] = typer.Option(None, help="Minimum dark hours inside the window"),
    days: Optional[str] = typer.Option(None, help="Allowed weekdays: fri_sat, fri_sat_sun, sat_sun or CSV of 0-6 (0=Sun)"),
    weather: Optional[bool] = typer.Option(None, "--weather/--no-weather", help="Also require good weather"),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore a fresh cache and refetch the forecast"),
    cache_dir: Optional[Path] = typer.Option(None, help="Weather cache directory"),
):
    """Find the next night that passes the filter."""
    cfg = _load_config(config)
    location = _resolve_location(cfg, lat, lon, zone)
    filter_config = _resolve_filter(cfg, from_edge, to_edge, min_hours, days)
    thresholds = _resolve_weather(cfg, weather, None, None, "ms", None, None)
    planner = _build_planner(thresholds, location, cfg, cache_dir, refresh, NullDebugCollector())
    start = _parse_date(date, planner.resolve_zone(location))
    try:
        match = planner.find_next_matching_night(start, location, filter_config, within=within)
    except EphemerisUnavailable as exc:
        _exit_with_error(str(exc))
    if match is None:
        typer.echo(f"No matching night within {within} days")
        raise typer.Exit(code=0)
    typer.echo(
        f"Next matching night: {match.date.isoformat()} (in {match.days_ahead} day(s), {match.overlap_minutes} dark min in window)"
    )


@app.command()
def timezone(
    lat: float = typer.Option(..., help="Latitude in degrees"),
    lon: float = typer.Option(..., help="Longitude in degrees"),
):
    """Resolve the IANA time zone of a coordinate."""
    try:
        Location(lat=lat, lon=lon)
    except ValidationError as exc:
        _exit_with_error(str(exc))
    provider = default_forecast_provider(debug=NullDebugCollector())
    try:
        zone = provider.resolve_timezone(lat, lon)
    except FetchFailed as exc:
        _exit_with_error(f"Time zone lookup failed: {exc}")
    if zone is None:
        _exit_with_error("Time zone could not be resolved")
    typer.echo(zone)


def main():
    app()


if __name__ == "__main__":
    main()
