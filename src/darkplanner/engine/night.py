"""Assemble the night record for a civil date.

The night of date D runs from D's sunset to the sunrise on D+1. Evening
events come from the ephemeris search anchored at D's zoned midnight
(``mid0``), morning events from the search anchored at D+1's (``mid1``).
"""
from __future__ import annotations

import datetime as dt
from typing import List, Optional, Sequence, Tuple

from darkplanner.astro import tz
from darkplanner.astro.ephemeris import CivilDayEvents, Ephemeris
from darkplanner.core.debug import DebugCollector, NullDebugCollector
from darkplanner.core.models import Location, NightRecord

MAX_NIGHT = dt.timedelta(hours=24)


def _at(midnight: dt.datetime, hours: Optional[float]) -> Optional[dt.datetime]:
    if hours is None:
        return None
    return midnight + dt.timedelta(hours=hours)


def _guard_twilight(
    sunset: Optional[dt.datetime],
    sunrise: Optional[dt.datetime],
    astr_start: Optional[dt.datetime],
    astr_end: Optional[dt.datetime],
    daylight: Sequence[Optional[dt.datetime]] = (),
) -> Tuple[Optional[dt.datetime], Optional[dt.datetime]]:
    # A -18 deg crossing before sunset or after sunrise belongs to another night.
    if astr_start is not None and sunset is not None and astr_start < sunset:
        astr_start = None
    if astr_end is not None and sunrise is not None and astr_end > sunrise:
        astr_end = None
    if astr_start is None or astr_end is None:
        return astr_start, astr_end
    if astr_end <= astr_start or astr_end - astr_start > MAX_NIGHT:
        return None, None
    # Edges taken from two different local nights enclose a sunrise or sunset.
    if any(t is not None and astr_start < t < astr_end for t in daylight):
        return None, None
    return astr_start, astr_end


def _moon_events_in_night(
    days: List[Tuple[dt.datetime, CivilDayEvents]],
    sunset: Optional[dt.datetime],
    sunrise: Optional[dt.datetime],
) -> Tuple[List[dt.datetime], List[dt.datetime]]:
    if sunset is None or sunrise is None:
        return [], []
    rises, sets = [], []
    for midnight, events in days:
        rise = _at(midnight, events.moon.day.rise)
        set_ = _at(midnight, events.moon.day.set)
        if rise is not None and sunset <= rise <= sunrise:
            rises.append(rise)
        if set_ is not None and sunset <= set_ <= sunrise:
            sets.append(set_)
    return sorted(rises), sorted(sets)


def assemble_night(
    day: dt.date,
    location: Location,
    zone: str,
    ephemeris: Ephemeris,
    *,
    debug: Optional[DebugCollector] = None,
) -> NightRecord:
    debug = debug or NullDebugCollector()
    mid0 = tz.at_zoned_midnight(day, zone)
    mid1 = tz.at_zoned_midnight(day + dt.timedelta(days=1), zone)
    ev0 = ephemeris.events_for_civil_day(mid0, location.lat, location.lon)
    ev1 = ephemeris.events_for_civil_day(mid1, location.lat, location.lon)

    sunset = _at(mid0, ev0.sun.day.set)
    sunrise = _at(mid1, ev1.sun.day.rise)
    astr_start, astr_end = _guard_twilight(
        sunset,
        sunrise,
        _at(mid0, ev0.sun.twilight_a.set),
        _at(mid1, ev1.sun.twilight_a.rise),
        daylight=[
            _at(mid0, ev0.sun.day.rise),
            _at(mid0, ev0.sun.twilight_a.rise),
            _at(mid1, ev1.sun.twilight_a.set),
            _at(mid1, ev1.sun.day.set),
        ],
    )
    rises, sets = _moon_events_in_night([(mid0, ev0), (mid1, ev1)], sunset, sunrise)

    record = NightRecord(
        date=day,
        zone=zone,
        lat=location.lat,
        lon=location.lon,
        mid0=mid0,
        mid1=mid1,
        sunset=sunset,
        sunrise=sunrise,
        astr_start=astr_start,
        astr_end=astr_end,
        moon_rises_in_night=rises,
        moon_sets_in_night=sets,
        moon_always_above=ev0.moon.day.always_above or ev1.moon.day.always_above,
        moon_always_below=ev0.moon.day.always_below or ev1.moon.day.always_below,
        sun_always_above=ev0.sun.day.always_above,
        sun_always_below=ev0.sun.day.always_below,
    )
    debug.emit(
        "night.assemble",
        {
            "zone": zone,
            "sunset": sunset,
            "sunrise": sunrise,
            "astr_start": astr_start,
            "astr_end": astr_end,
            "moon_rises": rises,
            "moon_sets": sets,
            "sun_always_above": record.sun_always_above,
            "sun_always_below": record.sun_always_below,
        },
        ts=mid0,
        location=location.id,
        night=day.isoformat(),
    )
    return record


__all__ = ["assemble_night"]
