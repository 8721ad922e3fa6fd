"""Time zone service: wall-clock values in an IANA zone <-> UTC instants.

All engine arithmetic runs on timezone-aware UTC ``datetime`` instants.
Zoned wall-clock values only appear at the edges: user dates, forecast keys
and formatting. Non-existent local times (spring-forward gap) resolve to the
instant shifted forward by the gap; ambiguous ones (fall-back overlap) resolve
to the later instant.
"""
from __future__ import annotations

import datetime as dt
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

import pytz

UTC = dt.timezone.utc
_EPOCH = dt.datetime(1970, 1, 1, tzinfo=UTC)


class InvalidZone(ValueError):
    """Raised when an IANA zone identifier is unknown."""


@lru_cache(maxsize=None)
def get_zone(zone: str) -> dt.tzinfo:
    if not isinstance(zone, str) or not zone.strip():
        raise InvalidZone(f"Time zone id required, got {zone!r}")
    try:
        return pytz.timezone(zone.strip())
    except pytz.UnknownTimeZoneError as exc:
        raise InvalidZone(f"Unknown time zone: {zone}") from exc


def is_valid_zone(zone: Optional[str]) -> bool:
    try:
        get_zone(zone)
    except InvalidZone:
        return False
    return True


def _host_zone_candidates():
    yield os.environ.get("TZ", "").lstrip(":")
    try:
        yield Path("/etc/timezone").read_text().strip()
    except OSError:
        pass
    localtime = Path("/etc/localtime")
    if localtime.is_symlink():
        target = str(localtime.resolve())
        if "zoneinfo/" in target:
            yield target.split("zoneinfo/", 1)[1]


def host_zone() -> str:
    """Best-effort IANA id of the host's zone, ``UTC`` if undeterminable."""
    for candidate in _host_zone_candidates():
        if candidate and is_valid_zone(candidate):
            return candidate
    return "UTC"


def resolve_zone(zone: Optional[str]) -> str:
    """Return ``zone`` if valid, else the host zone."""
    if zone and is_valid_zone(zone):
        return zone.strip()
    return host_zone()


def ensure_utc(instant: dt.datetime) -> dt.datetime:
    if instant.tzinfo is None:
        raise ValueError("instant must be timezone-aware")
    return instant.astimezone(UTC)


def to_ms(instant: dt.datetime) -> int:
    delta = ensure_utc(instant) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def from_ms(ms: int) -> dt.datetime:
    return _EPOCH + dt.timedelta(milliseconds=int(ms))


def zoned_to_instant(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0,
    *,
    zone: str,
) -> dt.datetime:
    tz = get_zone(zone)
    naive = dt.datetime(year, month, day, hour, minute, second)
    # Both DST readings agree except in a gap or overlap; the later one is
    # the forward-shifted gap time and the second occurrence of an overlap.
    candidates = [tz.localize(naive, is_dst=flag).astimezone(UTC) for flag in (True, False)]
    return max(candidates)


def localize(naive: dt.datetime, zone: str) -> dt.datetime:
    return zoned_to_instant(
        naive.year, naive.month, naive.day, naive.hour, naive.minute, naive.second, zone=zone
    ) + dt.timedelta(microseconds=naive.microsecond)


def at_zoned_midnight(day: dt.date, zone: str) -> dt.datetime:
    return zoned_to_instant(day.year, day.month, day.day, zone=zone)


def project(instant: dt.datetime, zone: str) -> dt.datetime:
    """Wall-clock view of ``instant`` in ``zone`` (aware, zone-local)."""
    return ensure_utc(instant).astimezone(get_zone(zone))


def zoned_date(instant: dt.datetime, zone: str) -> dt.date:
    return project(instant, zone).date()


def day_of_week(instant: dt.datetime, zone: str) -> int:
    """Weekday of the zoned date, 0 = Sunday ... 6 = Saturday."""
    return (project(instant, zone).weekday() + 1) % 7


def offset_minutes(zone: str, instant: dt.datetime) -> int:
    offset = project(instant, zone).utcoffset() or dt.timedelta(0)
    return int(offset.total_seconds() // 60)


def midnight_of(instant: dt.datetime, zone: str) -> dt.datetime:
    return at_zoned_midnight(zoned_date(instant, zone), zone)


def shift_days(instant: dt.datetime, days: int, zone: str) -> dt.datetime:
    """Zoned midnight ``days`` civil days after the zoned date of ``instant``."""
    return at_zoned_midnight(zoned_date(instant, zone) + dt.timedelta(days=days), zone)


def parse_wall_clock(text: str, zone: Optional[str]) -> dt.datetime:
    """Parse an ISO local timestamp (``YYYY-MM-DDTHH:MM``) to a UTC instant.

    Timestamps carrying an explicit offset are honoured as-is. Naive ones are
    read in ``zone``, or as UTC when no zone is known.
    """
    parsed = dt.datetime.fromisoformat(str(text).strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        return parsed.astimezone(UTC)
    if zone is None:
        return parsed.replace(tzinfo=UTC)
    return localize(parsed, zone)


def format_local(instant: Optional[dt.datetime], zone: str, fmt: str = "%H:%M") -> str:
    if instant is None:
        return "-"
    return project(instant, zone).strftime(fmt)


__all__ = [
    "UTC",
    "InvalidZone",
    "get_zone",
    "is_valid_zone",
    "host_zone",
    "resolve_zone",
    "ensure_utc",
    "to_ms",
    "from_ms",
    "zoned_to_instant",
    "localize",
    "at_zoned_midnight",
    "project",
    "zoned_date",
    "day_of_week",
    "offset_minutes",
    "midnight_of",
    "shift_days",
    "parse_wall_clock",
    "format_local",
]
