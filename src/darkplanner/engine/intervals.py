"""Arithmetic on sorted, disjoint lists of UTC intervals."""
from __future__ import annotations

import datetime as dt
import math
from typing import Iterable, List, Optional, Sequence

from darkplanner.core.models import Interval


def round_minutes(delta: dt.timedelta) -> int:
    """Whole minutes in ``delta``, rounded half-up."""
    return int(math.floor(delta.total_seconds() / 60.0 + 0.5))


def duration_minutes(interval: Interval) -> int:
    return round_minutes(interval.end - interval.start)


def total_minutes(intervals: Iterable[Interval]) -> int:
    return sum(duration_minutes(i) for i in intervals)


def intersect(a: Interval, b: Interval) -> Optional[Interval]:
    start = max(a.start, b.start)
    end = min(a.end, b.end)
    if end <= start:
        return None
    return Interval(start, end)


def overlap_minutes(intervals: Iterable[Interval], window: Interval) -> int:
    """Sum of per-interval overlaps with ``window``, each rounded on its own."""
    total = 0
    for interval in intervals:
        part = intersect(interval, window)
        if part is not None:
            total += duration_minutes(part)
    return total


def contains(intervals: Iterable[Interval], instant: dt.datetime) -> bool:
    return any(i.start <= instant < i.end for i in intervals)


def is_sorted_disjoint(intervals: Sequence[Interval]) -> bool:
    return all(prev.end <= cur.start for prev, cur in zip(intervals, intervals[1:]))


__all__ = [
    "round_minutes",
    "duration_minutes",
    "total_minutes",
    "intersect",
    "overlap_minutes",
    "contains",
    "is_sorted_disjoint",
]
