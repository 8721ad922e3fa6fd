import datetime as dt
import json

import pytest

from conftest import FixedSkyEphemeris, build_hourly_payload
from darkplanner.core.debug import ListDebugCollector
from darkplanner.core.models import FilterConfig, Hour, Location, WeatherThresholds
from darkplanner.engine.planner import NightPlanner
from darkplanner.weather.base import FetchFailed
from darkplanner.weather.cache import WeatherCache
from darkplanner.weather.evaluate import WeatherEvaluator

MUNICH = Location(lat=48.1351, lon=11.5820, zone="Europe/Berlin", id="munich")
SYDNEY = Location(lat=-33.87, lon=151.21, id="sydney")
WINDOW = FilterConfig(from_edge=Hour(21), to_edge=Hour(4), min_minutes=60)
NOW = dt.datetime(2025, 12, 18, 12, tzinfo=dt.timezone.utc).timestamp()


class StubProvider:
    def __init__(self, weather):
        self.weather = weather

    def fetch_weather(self, lat, lon):
        return self.weather

    def fetch_aod(self, lat, lon):
        raise FetchFailed("no aod")

    def fetch_seeing(self, lat, lon):
        return {"hourly": {"time": []}}


class StaticZone:
    def __init__(self, zone=None, error=None):
        self.zone = zone
        self.error = error
        self.calls = 0

    def resolve_timezone(self, lat, lon):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.zone


def planner(**kwargs):
    return NightPlanner(ephemeris=FixedSkyEphemeris(), **kwargs)


def weather_planner(cloud=0.0, load=True):
    payload = build_hourly_payload("2025-12-18T00:00", 96, zone="Europe/Berlin", cloud=cloud)
    cache = WeatherCache(StubProvider(payload), clock=lambda: NOW)
    if load:
        assert cache.load(MUNICH.lat, MUNICH.lon).ready
    evaluator = WeatherEvaluator(cache, WeatherThresholds(enabled=True))
    return planner(weather=evaluator)


def test_plan_horizon_is_ordered_and_idempotent():
    first = planner().plan_horizon(dt.date(2025, 12, 18), MUNICH, WINDOW, nights=5)
    second = planner().plan_horizon(dt.date(2025, 12, 18), MUNICH, WINDOW, nights=5)
    assert [r.date for r in first] == [dt.date(2025, 12, 18) + dt.timedelta(days=i) for i in range(5)]
    assert json.dumps([r.to_dict() for r in first]) == json.dumps([r.to_dict() for r in second])
    assert all(r.weather_result is None for r in first)
    assert all(r.total_darkness_minutes == 690 and r.overlap_minutes == 420 for r in first)


def test_plan_horizon_accepts_datetime_start():
    start = dt.datetime(2025, 12, 20, 23, 30, tzinfo=dt.timezone.utc)  # already Dec 21 in Berlin
    results = planner().plan_horizon(start, MUNICH, WINDOW, nights=1)
    assert results[0].date == dt.date(2025, 12, 21)


def test_negative_horizon_rejected():
    with pytest.raises(ValueError):
        planner().plan_horizon(dt.date(2025, 12, 18), MUNICH, WINDOW, nights=-1)


def test_single_night_flags_and_debug():
    debug = ListDebugCollector()
    subject = planner(debug=debug)
    result = subject.evaluate_single_night(
        dt.date(2025, 12, 21), MUNICH, FilterConfig(min_minutes=60, highlight_match=True)
    )
    assert result.darkness_pass
    assert result.highlighted and not result.hidden
    assert result.day_of_week == 0 and result.weekend
    assert result.moon_phase.key == "new_moon"
    assert debug.stages() == ["night.assemble", "darkness.summary", "filter.summary", "planner.night"]
    assert {e["location"] for e in debug.events} == {"munich"}

    hidden = subject.evaluate_single_night(
        dt.date(2025, 12, 21), MUNICH, FilterConfig(min_minutes=2000, hide_non_match=True, highlight_match=True)
    )
    assert hidden.hidden and not hidden.highlighted


def test_inactive_filter_never_hides():
    result = planner().evaluate_single_night(dt.date(2025, 6, 21), MUNICH, FilterConfig(hide_non_match=True))
    assert not result.hidden


def test_invalid_zone_falls_back_to_host(monkeypatch):
    monkeypatch.setenv("TZ", "UTC")
    location = Location(lat=MUNICH.lat, lon=MUNICH.lon, zone="Nowhere/Special")
    result = planner().evaluate_single_night(dt.date(2025, 12, 21), location, WINDOW)
    assert result.night.zone == "UTC"
    assert result.night.mid0 == dt.datetime(2025, 12, 21, tzinfo=dt.timezone.utc)


def test_zoneless_location_uses_resolver(monkeypatch):
    monkeypatch.setenv("TZ", "UTC")
    resolver = StaticZone("Australia/Sydney")
    debug = ListDebugCollector()
    subject = planner(zone_resolver=resolver, debug=debug)
    results = subject.plan_horizon(dt.date(2025, 7, 1), SYDNEY, WINDOW, nights=2)
    assert {r.night.zone for r in results} == {"Australia/Sydney"}
    assert results[0].night.mid0 == dt.datetime(2025, 6, 30, 14, tzinfo=dt.timezone.utc)
    subject.evaluate_single_night(dt.date(2025, 7, 3), SYDNEY, WINDOW)
    assert resolver.calls == 1
    assert debug.events[0]["stage"] == "planner.zone"
    assert debug.events[0]["payload"] == {"source": "resolver", "zone": "Australia/Sydney"}


def test_zoneless_location_falls_back_when_lookup_fails(monkeypatch):
    monkeypatch.setenv("TZ", "UTC")
    debug = ListDebugCollector()
    subject = planner(zone_resolver=StaticZone(error=FetchFailed("offline")), debug=debug)
    result = subject.evaluate_single_night(dt.date(2025, 7, 1), SYDNEY, WINDOW)
    assert result.night.zone == "UTC"
    assert [e["payload"].get("source") for e in debug.events[:2]] == ["resolver", "host"]


def test_zoneless_location_uses_forecast_zone(monkeypatch):
    monkeypatch.setenv("TZ", "UTC")
    resolver = StaticZone("Asia/Tokyo")
    subject = weather_planner()
    subject.zone_resolver = resolver
    location = Location(lat=MUNICH.lat, lon=MUNICH.lon, id="munich")
    result = subject.evaluate_single_night(dt.date(2025, 12, 19), location, WINDOW)
    assert result.night.zone == "Europe/Berlin"
    assert result.weather_pass is True
    assert resolver.calls == 0


def test_zoneless_far_location_never_spans_two_nights(sky, monkeypatch):
    monkeypatch.setenv("TZ", "UTC")
    host = NightPlanner(ephemeris=sky).evaluate_single_night(dt.date(2025, 7, 1), SYDNEY, WINDOW)
    assert host.night.zone == "UTC"
    assert not host.night.has_astronomical_night
    assert host.darkness_intervals == []

    resolved = NightPlanner(ephemeris=sky, zone_resolver=StaticZone("Australia/Sydney")).evaluate_single_night(
        dt.date(2025, 7, 1), SYDNEY, WINDOW
    )
    span = resolved.night.astr_end - resolved.night.astr_start
    assert dt.timedelta(hours=9) < span < dt.timedelta(hours=13)
    for interval in resolved.darkness_intervals:
        assert resolved.night.astr_start <= interval.start < interval.end <= resolved.night.astr_end


def test_next_matching_saturday():
    debug = ListDebugCollector()
    match = planner(debug=debug).find_next_matching_night(dt.date(2025, 12, 18), MUNICH, FilterConfig(allowed_days=[6]))
    assert match.days_ahead == 2
    assert match.date == dt.date(2025, 12, 20)
    assert match.overlap_minutes > 0
    assert debug.events[-1]["stage"] == "planner.next_match"


def test_next_match_none_within_limit():
    match = planner().find_next_matching_night(dt.date(2025, 12, 18), MUNICH, FilterConfig(min_minutes=600), within=3)
    assert match is None


def test_no_match_in_midsummer(sky):
    match = NightPlanner(ephemeris=sky).find_next_matching_night(
        dt.date(2025, 6, 10), MUNICH, FilterConfig(min_minutes=60), within=3
    )
    assert match is None


def test_weather_result_attached_when_loaded():
    subject = weather_planner()
    result = subject.evaluate_single_night(dt.date(2025, 12, 19), MUNICH, WINDOW)
    assert result.weather_pass is True
    assert [r.length_hours for r in result.weather_result.runs] == [7]
    assert all(h.aod is None for h in result.weather_result.hours)

    # past the end of the forecast
    beyond = subject.evaluate_single_night(dt.date(2025, 12, 27), MUNICH, WINDOW)
    assert beyond.weather_result is None


def test_weather_not_loaded_is_ignored():
    subject = weather_planner(load=False)
    result = subject.evaluate_single_night(dt.date(2025, 12, 19), MUNICH, WINDOW)
    assert result.weather_result is None
    match = subject.find_next_matching_night(dt.date(2025, 12, 18), MUNICH, FilterConfig(allowed_days=[5, 6]))
    assert match.days_ahead == 1


def test_next_match_requires_clear_sky_when_loaded():
    # overcast from Friday noon to Saturday noon (local)
    clouds = [100.0 if 36 <= i < 60 else 0.0 for i in range(96)]
    subject = weather_planner(cloud=clouds)
    match = subject.find_next_matching_night(dt.date(2025, 12, 18), MUNICH, FilterConfig(allowed_days=[5, 6]))
    assert match.days_ahead == 2
    assert match.date == dt.date(2025, 12, 20)
