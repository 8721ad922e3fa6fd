"""Full-darkness intervals: astronomical night with the moon below the horizon."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import List, Optional

from darkplanner.astro.ephemeris import Ephemeris, moon_altitude
from darkplanner.core.debug import DebugCollector, NullDebugCollector
from darkplanner.core.models import Interval, NightRecord
from darkplanner.engine.intervals import total_minutes

DARKNESS_STEP = dt.timedelta(minutes=5)


@dataclass(frozen=True)
class DarknessResult:
    intervals: List[Interval] = field(default_factory=list)
    total_minutes: int = 0


def compute_darkness(
    night: NightRecord,
    ephemeris: Ephemeris,
    *,
    step: dt.timedelta = DARKNESS_STEP,
    debug: Optional[DebugCollector] = None,
) -> DarknessResult:
    """Walk the astronomical night in fixed steps and collect moon-down spans.

    Samples run from ``astr_start`` to ``astr_end`` inclusive. A span opens on
    the first sample with the moon below the horizon and closes on the first
    sample with it above; a span still open at the end closes at ``astr_end``.
    """
    debug = debug or NullDebugCollector()
    if not night.has_astronomical_night:
        return DarknessResult()

    start, end = night.astr_start, night.astr_end
    intervals: List[Interval] = []
    run_start: Optional[dt.datetime] = None
    samples = 0
    t = start
    while t <= end:
        dark = moon_altitude(ephemeris, t, night.lat, night.lon) < 0.0
        samples += 1
        if dark and run_start is None:
            run_start = t
        elif not dark and run_start is not None:
            intervals.append(Interval(run_start, t))
            run_start = None
        t += step
    if run_start is not None and run_start < end:
        intervals.append(Interval(run_start, end))

    result = DarknessResult(intervals=intervals, total_minutes=total_minutes(intervals))
    debug.emit(
        "darkness.summary",
        {
            "samples": samples,
            "step_min": step.total_seconds() / 60.0,
            "intervals": [i.to_dict() for i in intervals],
            "total_minutes": result.total_minutes,
        },
        ts=start,
        night=night.date.isoformat(),
    )
    return result


__all__ = ["DARKNESS_STEP", "DarknessResult", "compute_darkness"]
