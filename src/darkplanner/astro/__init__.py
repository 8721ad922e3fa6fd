"""Astronomy: time zone service and sun/moon ephemeris."""

from .ephemeris import AlmanacEphemeris, CivilDayEvents, Ephemeris, EphemerisUnavailable, RiseSet
from .tz import InvalidZone, at_zoned_midnight, resolve_zone

__all__ = [
    "AlmanacEphemeris",
    "CivilDayEvents",
    "Ephemeris",
    "EphemerisUnavailable",
    "RiseSet",
    "InvalidZone",
    "at_zoned_midnight",
    "resolve_zone",
]
