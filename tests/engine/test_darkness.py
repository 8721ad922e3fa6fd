import datetime as dt
import math

from darkplanner.core.debug import ListDebugCollector
from darkplanner.core.models import Interval, NightRecord
from darkplanner.engine.darkness import compute_darkness
from darkplanner.engine.intervals import is_sorted_disjoint

UTC = dt.timezone.utc
MID0 = dt.datetime(2025, 1, 10, tzinfo=UTC)
START = dt.datetime(2025, 1, 10, 18, tzinfo=UTC)


class MoonScheduleEphemeris:
    """Moon at dec -90 (below at lat 45) except inside the given spans."""

    def __init__(self, above=()):
        self.above = [Interval(a, b) for a, b in above]

    def events_for_civil_day(self, midnight, lat, lon):
        raise AssertionError("not used")

    def moon_equatorial(self, instant):
        up = any(i.start <= instant < i.end for i in self.above)
        return 0.0, (math.pi / 2 if up else -math.pi / 2)

    def local_sidereal_time(self, instant, lon):
        return 0.0


def night(duration, astr_start=START):
    return NightRecord(
        date=MID0.date(),
        zone="UTC",
        lat=45.0,
        lon=0.0,
        mid0=MID0,
        mid1=MID0 + dt.timedelta(days=1),
        astr_start=astr_start,
        astr_end=astr_start + duration if astr_start is not None else None,
    )


def at(minutes):
    return START + dt.timedelta(minutes=minutes)


def test_moon_rising_and_setting_splits_darkness():
    eph = MoonScheduleEphemeris(above=[(at(243), at(298))])
    debug = ListDebugCollector()
    result = compute_darkness(night(dt.timedelta(hours=8)), eph, debug=debug)
    assert result.intervals == [Interval(at(0), at(245)), Interval(at(300), at(480))]
    assert result.total_minutes == 425
    assert is_sorted_disjoint(result.intervals)
    assert debug.stages() == ["darkness.summary"]
    assert debug.events[0]["payload"]["samples"] == 97


def test_open_span_closes_at_astr_end_off_grid():
    result = compute_darkness(night(dt.timedelta(hours=7, minutes=58)), MoonScheduleEphemeris())
    assert result.intervals == [Interval(at(0), at(478))]
    assert result.total_minutes == 478


def test_moon_up_all_night():
    eph = MoonScheduleEphemeris(above=[(START - dt.timedelta(hours=1), START + dt.timedelta(hours=12))])
    result = compute_darkness(night(dt.timedelta(hours=8)), eph)
    assert result.intervals == []
    assert result.total_minutes == 0


def test_moon_setting_on_last_sample_yields_no_zero_span():
    eph = MoonScheduleEphemeris(above=[(START - dt.timedelta(hours=1), at(480))])
    result = compute_darkness(night(dt.timedelta(hours=8)), eph)
    assert result.intervals == []


def test_no_astronomical_night():
    result = compute_darkness(night(None, astr_start=None), MoonScheduleEphemeris())
    assert result.intervals == [] and result.total_minutes == 0
