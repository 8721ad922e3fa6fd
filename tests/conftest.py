import datetime as dt
import math
import sys
from pathlib import Path

import pytest

# ensure src package importable
ROOT = Path(__file__).resolve().parents[1]
src = ROOT / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))

# Disable external plugins for reproducibility in isolated test envs
PYTEST_DISABLE_PLUGIN_AUTOLOAD = True

from darkplanner.astro.ephemeris import (  # noqa: E402
    AlmanacEphemeris,
    CivilDayEvents,
    EphemerisUnavailable,
    MoonEvents,
    RiseSet,
    SunEvents,
)
from darkplanner.core.models import MoonPhase  # noqa: E402


def build_hourly_payload(start, hours, zone="UTC", cloud=0.0, humidity=50.0, wind_kmh=5.0, lat=0.0, lon=0.0):
    """Open-Meteo-shaped basic weather payload with naive local time keys."""
    base = dt.datetime.fromisoformat(start)
    times = [(base + dt.timedelta(hours=i)).strftime("%Y-%m-%dT%H:%M") for i in range(hours)]

    def series(value):
        return list(value) if isinstance(value, (list, tuple)) else [value] * hours

    return {
        "latitude": lat,
        "longitude": lon,
        "timezone": zone,
        "hourly_units": {"time": "iso8601", "wind_speed_10m": "km/h"},
        "hourly": {
            "time": times,
            "cloud_cover": series(cloud),
            "relative_humidity_2m": series(humidity),
            "wind_speed_10m": series(wind_kmh),
        },
    }


class FixedSkyEphemeris:
    """Same sun times after every local midnight; moon at dec -90, new.

    Astronomical night runs 18:15 to 05:45 local and, north of the equator,
    is fully dark.
    """

    def __init__(self, sun=RiseSet(rise=7.5, set=16.5), twilight=RiseSet(rise=5.75, set=18.25)):
        self.sun = sun
        self.twilight = twilight

    def events_for_civil_day(self, midnight, lat, lon):
        return CivilDayEvents(
            sun=SunEvents(day=self.sun, twilight_a=self.twilight),
            moon=MoonEvents(day=RiseSet(always_below=True)),
        )

    def moon_equatorial(self, instant):
        return 0.0, -math.pi / 2

    def local_sidereal_time(self, instant, lon):
        return 0.0

    def moon_phase(self, instant):
        return MoonPhase(fraction=0.01, phase=0.99, age_days=29.2, key="new_moon")


@pytest.fixture
def hourly_payload():
    return build_hourly_payload


@pytest.fixture
def fixed_sky():
    return FixedSkyEphemeris()


@pytest.fixture(scope="session")
def sky():
    """Library-backed ephemeris; skips when the planetary kernel cannot be fetched."""
    ephemeris = AlmanacEphemeris()
    try:
        return ephemeris.load()
    except EphemerisUnavailable as exc:
        pytest.skip(f"planetary kernel unavailable: {exc}")
