"""Sun and moon ephemeris.

Sun elevation comes from pvlib's solar position algorithm, sampled on a
fixed grid across the 24 hours after a local midnight; rise/set and -18 deg
twilight crossings are interpolated between neighbouring samples. Moon
positions, moon rise/set, sidereal time and lunar phase come from skyfield
with a JPL planetary kernel, loaded lazily on first use. Event hours are
returned relative to the midnight they were searched from.
"""
from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Tuple

import pandas as pd
from pvlib.location import Location as PvLocation
from skyfield import almanac
from skyfield.api import Loader, wgs84

from darkplanner.core.models import MoonPhase


PI2 = 2.0 * math.pi
RAD = math.pi / 180.0
SYNODIC_MONTH_DAYS = 29.530588853

SUN_HORIZON_DEG = -50.0 / 60.0
TWILIGHT_A_DEG = -18.0
# Topocentric horizon for the moon's upper limb: refraction plus semi-diameter.
MOON_REFRACTION_DEG = -34.0 / 60.0
MOON_RADIUS_DEG = 0.25

SEARCH_SPAN = dt.timedelta(hours=24)
SUN_SAMPLE_STEP = dt.timedelta(minutes=2)

DEFAULT_KERNEL = "de421.bsp"
DEFAULT_DATA_DIR = Path("~/.cache/darkplanner/skyfield")


class EphemerisUnavailable(RuntimeError):
    """Raised when the planetary kernel cannot be loaded or downloaded."""


@dataclass(frozen=True)
class RiseSet:
    """Event hours after the reference midnight, or a circumpolar flag."""

    rise: Optional[float] = None
    set: Optional[float] = None
    always_above: bool = False
    always_below: bool = False


@dataclass(frozen=True)
class SunEvents:
    day: RiseSet
    twilight_a: RiseSet


@dataclass(frozen=True)
class MoonEvents:
    day: RiseSet


@dataclass(frozen=True)
class CivilDayEvents:
    sun: SunEvents
    moon: MoonEvents


class Ephemeris(Protocol):
    def events_for_civil_day(self, midnight: dt.datetime, lat: float, lon: float) -> CivilDayEvents:
        ...

    def moon_equatorial(self, instant: dt.datetime) -> Tuple[float, float]:
        ...

    def local_sidereal_time(self, instant: dt.datetime, lon: float) -> float:
        ...

    def moon_phase(self, instant: dt.datetime) -> MoonPhase:
        ...


def _hours_after(midnight: dt.datetime, instant: dt.datetime) -> float:
    return (instant - midnight).total_seconds() / 3600.0


def sample_times(midnight: dt.datetime, step: dt.timedelta = SUN_SAMPLE_STEP) -> pd.DatetimeIndex:
    """UTC sample instants covering ``[midnight, midnight + 24h]``."""
    if midnight.tzinfo is None:
        raise ValueError("midnight must be timezone-aware")
    periods = int(SEARCH_SPAN / step) + 1
    return pd.date_range(start=pd.Timestamp(midnight).tz_convert("UTC"), periods=periods, freq=step)


def find_crossings(midnight: dt.datetime, times: pd.DatetimeIndex, altitude, threshold: float) -> RiseSet:
    """First upward and downward crossings of ``threshold`` in sampled altitudes.

    Crossing instants are linearly interpolated between the two samples that
    bracket the sign change. Without any crossing the body is flagged as
    always above or always below.
    """
    heights = [float(a) - threshold for a in altitude]
    if len(heights) != len(times):
        raise ValueError("times and altitude must have the same length")
    rise: Optional[float] = None
    set_: Optional[float] = None
    for i in range(1, len(heights)):
        y0, y1 = heights[i - 1], heights[i]
        if (y0 > 0.0) == (y1 > 0.0):
            continue
        fraction = y0 / (y0 - y1)
        instant = times[i - 1] + (times[i] - times[i - 1]) * fraction
        hours = _hours_after(midnight, instant.to_pydatetime())
        if y1 > 0.0 and rise is None:
            rise = hours
        elif y1 <= 0.0 and set_ is None:
            set_ = hours
        if rise is not None and set_ is not None:
            break
    if rise is None and set_ is None:
        above = heights[0] > 0.0
        return RiseSet(always_above=above, always_below=not above)
    return RiseSet(rise=rise, set=set_)


def sun_elevation(times: pd.DatetimeIndex, lat: float, lon: float) -> pd.Series:
    """Geometric sun elevation (degrees), without refraction."""
    solpos = PvLocation(latitude=lat, longitude=lon, tz="UTC").get_solarposition(times)
    return solpos["elevation"]


def sun_events(midnight: dt.datetime, lat: float, lon: float, step: dt.timedelta = SUN_SAMPLE_STEP) -> SunEvents:
    times = sample_times(midnight, step)
    elevation = sun_elevation(times, lat, lon).to_numpy()
    return SunEvents(
        day=find_crossings(midnight, times, elevation, SUN_HORIZON_DEG),
        twilight_a=find_crossings(midnight, times, elevation, TWILIGHT_A_DEG),
    )


def altitude(ra: float, dec: float, lat_deg: float, lst: float) -> float:
    """Geometric altitude (radians) for an equatorial position and LST."""
    phi = lat_deg * RAD
    sin_alt = math.sin(phi) * math.sin(dec) + math.cos(phi) * math.cos(dec) * math.cos(lst - ra)
    return math.asin(max(-1.0, min(1.0, sin_alt)))


_PHASE_KEYS = (
    (0.03, "new_moon"),
    (0.22, "waxing_crescent"),
    (0.28, "first_quarter"),
    (0.47, "waxing_gibbous"),
    (0.53, "full_moon"),
    (0.72, "waning_gibbous"),
    (0.78, "last_quarter"),
    (0.97, "old_crescent"),
)


def phase_key(phase: float) -> str:
    for limit, key in _PHASE_KEYS:
        if phase < limit:
            return key
    return "new_moon"


class AlmanacEphemeris:
    """Default :class:`Ephemeris`: pvlib for the sun, skyfield for the moon."""

    def __init__(
        self,
        data_dir: str | Path = DEFAULT_DATA_DIR,
        kernel: str = DEFAULT_KERNEL,
        sun_step: dt.timedelta = SUN_SAMPLE_STEP,
    ):
        self.data_dir = Path(data_dir).expanduser()
        self.kernel = kernel
        self.sun_step = sun_step
        self._ts = None
        self._eph = None

    def load(self) -> "AlmanacEphemeris":
        """Load the timescale and kernel, downloading the kernel if missing."""
        if self._eph is not None:
            return self
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            loader = Loader(str(self.data_dir), verbose=False)
            self._ts = loader.timescale()
            self._eph = loader(self.kernel)
        except (OSError, ValueError) as exc:
            raise EphemerisUnavailable(f"Cannot load {self.kernel} from {self.data_dir}: {exc}") from exc
        return self

    def _time(self, instant: dt.datetime):
        if instant.tzinfo is None:
            raise ValueError("instant must be timezone-aware")
        self.load()
        return self._ts.from_datetime(instant)

    def moon_events(self, midnight: dt.datetime, lat: float, lon: float) -> MoonEvents:
        t0 = self._time(midnight)
        t1 = self._time(midnight + SEARCH_SPAN)
        observer = wgs84.latlon(lat, lon)
        moon = self._eph["moon"]
        rising = almanac.risings_and_settings(
            self._eph, moon, observer, horizon_degrees=MOON_REFRACTION_DEG, radius_degrees=MOON_RADIUS_DEG
        )
        times, events = almanac.find_discrete(t0, t1, rising)
        rise: Optional[float] = None
        set_: Optional[float] = None
        for t, up in zip(times, events):
            hours = _hours_after(midnight, t.utc_datetime())
            if up and rise is None:
                rise = hours
            elif not up and set_ is None:
                set_ = hours
        if rise is None and set_ is None:
            alt, _, _ = (self._eph["earth"] + observer).at(t0).observe(moon).apparent().altaz()
            above = alt.degrees > MOON_REFRACTION_DEG - MOON_RADIUS_DEG
            return MoonEvents(day=RiseSet(always_above=above, always_below=not above))
        return MoonEvents(day=RiseSet(rise=rise, set=set_))

    def events_for_civil_day(self, midnight: dt.datetime, lat: float, lon: float) -> CivilDayEvents:
        return CivilDayEvents(
            sun=sun_events(midnight, lat, lon, self.sun_step),
            moon=self.moon_events(midnight, lat, lon),
        )

    def moon_equatorial(self, instant: dt.datetime) -> Tuple[float, float]:
        """Geocentric apparent right ascension and declination (radians) of date."""
        t = self._time(instant)
        ra, dec, _ = self._eph["earth"].at(t).observe(self._eph["moon"]).apparent().radec(epoch="date")
        return ra.radians, dec.radians

    def local_sidereal_time(self, instant: dt.datetime, lon: float) -> float:
        t = self._time(instant)
        return (t.gast * 15.0 * RAD + lon * RAD) % PI2

    def moon_phase(self, instant: dt.datetime) -> MoonPhase:
        """Illuminated fraction, phase (0 new, 0.5 full) and age of the moon."""
        t = self._time(instant)
        phase = float(almanac.moon_phase(self._eph, t).degrees % 360.0) / 360.0
        fraction = almanac.fraction_illuminated(self._eph, "moon", t)
        return MoonPhase(
            fraction=float(fraction),
            phase=phase,
            age_days=phase * SYNODIC_MONTH_DAYS,
            key=phase_key(phase),
        )


def moon_altitude(ephemeris: Ephemeris, instant: dt.datetime, lat: float, lon: float) -> float:
    """Moon altitude in radians at ``instant`` for an observer at lat/lon."""
    ra, dec = ephemeris.moon_equatorial(instant)
    return altitude(ra, dec, lat, ephemeris.local_sidereal_time(instant, lon))


__all__ = [
    "RiseSet",
    "SunEvents",
    "MoonEvents",
    "CivilDayEvents",
    "Ephemeris",
    "AlmanacEphemeris",
    "EphemerisUnavailable",
    "sample_times",
    "find_crossings",
    "sun_elevation",
    "sun_events",
    "altitude",
    "phase_key",
    "moon_altitude",
    "SYNODIC_MONTH_DAYS",
]
