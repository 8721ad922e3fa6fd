import datetime as dt

from darkplanner.astro.ephemeris import CivilDayEvents, MoonEvents, RiseSet, SunEvents
from darkplanner.core.debug import ListDebugCollector
from darkplanner.core.models import Location
from darkplanner.engine.night import assemble_night

UTC = dt.timezone.utc
DAY = dt.date(2025, 1, 10)
MID0 = dt.datetime(2025, 1, 10, tzinfo=UTC)
MID1 = dt.datetime(2025, 1, 11, tzinfo=UTC)
LOC = Location(lat=45.0, lon=0.0, id="stub")


def events(sun_day, twilight, moon=RiseSet(always_below=True)):
    return CivilDayEvents(sun=SunEvents(day=sun_day, twilight_a=twilight), moon=MoonEvents(day=moon))


class StubEphemeris:
    def __init__(self, by_midnight):
        self.by_midnight = by_midnight

    def events_for_civil_day(self, midnight, lat, lon):
        return self.by_midnight[midnight]

    def moon_equatorial(self, instant):
        return 0.0, 0.0

    def local_sidereal_time(self, instant, lon):
        return 0.0


def test_regular_night_edges_and_moon_events():
    eph = StubEphemeris(
        {
            MID0: events(RiseSet(rise=7.5, set=16.5), RiseSet(rise=5.7, set=18.3), RiseSet(rise=20.0)),
            MID1: events(RiseSet(rise=8.0, set=16.6), RiseSet(rise=6.2, set=18.4), RiseSet(rise=13.0, set=3.0)),
        }
    )
    debug = ListDebugCollector()
    night = assemble_night(DAY, LOC, "UTC", eph, debug=debug)

    assert night.mid0 == MID0 and night.mid1 == MID1
    assert night.sunset == MID0 + dt.timedelta(hours=16.5)
    assert night.sunrise == MID1 + dt.timedelta(hours=8.0)
    assert night.astr_start == MID0 + dt.timedelta(hours=18.3)
    assert night.astr_end == MID1 + dt.timedelta(hours=6.2)
    assert night.moon_rises_in_night == [MID0 + dt.timedelta(hours=20.0)]
    # the 13:00 rise on D+1 is after sunrise
    assert night.moon_sets_in_night == [MID1 + dt.timedelta(hours=3.0)]
    assert debug.stages() == ["night.assemble"]
    assert debug.events[0]["location"] == "stub"
    assert debug.events[0]["night"] == "2025-01-10"


def test_twilight_crossings_outside_night_are_dropped():
    # Short summer night: the -18 deg crossings found belong to the wrong side
    # of sunset/sunrise.
    eph = StubEphemeris(
        {
            MID0: events(RiseSet(rise=3.3, set=19.3), RiseSet(rise=1.6, set=0.9)),
            MID1: events(RiseSet(rise=3.3, set=19.3), RiseSet(rise=1.6, set=0.9)),
        }
    )
    night = assemble_night(DAY, LOC, "UTC", eph)
    assert night.astr_start is None
    assert night.astr_end == MID1 + dt.timedelta(hours=1.6)
    assert not night.has_astronomical_night


def test_polar_night_keeps_twilight_edges():
    eph = StubEphemeris(
        {
            MID0: events(RiseSet(always_below=True), RiseSet(rise=9.5, set=14.5)),
            MID1: events(RiseSet(always_below=True), RiseSet(rise=9.6, set=14.4)),
        }
    )
    night = assemble_night(DAY, LOC, "UTC", eph)
    assert night.sun_always_below
    assert night.sunset is None and night.sunrise is None
    assert night.astr_start == MID0 + dt.timedelta(hours=14.5)
    assert night.astr_end == MID1 + dt.timedelta(hours=9.6)
    assert night.moon_rises_in_night == [] and night.moon_sets_in_night == []


def test_midnight_sun_has_no_edges():
    eph = StubEphemeris(
        {
            MID0: events(RiseSet(always_above=True), RiseSet(always_above=True), RiseSet(always_above=True)),
            MID1: events(RiseSet(always_above=True), RiseSet(always_above=True), RiseSet(always_above=True)),
        }
    )
    night = assemble_night(DAY, LOC, "UTC", eph)
    assert night.sun_always_above and night.moon_always_above
    assert night.astr_start is None and night.astr_end is None


def test_edges_from_two_local_nights_are_rejected():
    # Sydney in July seen from UTC midnights: dusk on D and dawn on D+1 enclose
    # a whole day, including the sunrise at 21:00 on D.
    day = RiseSet(rise=21.0, set=7.0)
    twilight = RiseSet(rise=19.5, set=8.3)
    eph = StubEphemeris({MID0: events(day, twilight), MID1: events(day, twilight)})
    night = assemble_night(DAY, LOC, "UTC", eph)
    assert night.sunrise - night.sunset > dt.timedelta(hours=24)
    assert night.astr_start is None and night.astr_end is None
    assert not night.has_astronomical_night
