"""Engine package: night assembly, darkness, filters and horizon planning."""

from .darkness import DarknessResult, compute_darkness
from .filters import NoWindow, evaluate_darkness_filter, resolve_filter_window
from .night import assemble_night
from .planner import NightPlanner

__all__ = [
    "DarknessResult",
    "compute_darkness",
    "NoWindow",
    "evaluate_darkness_filter",
    "resolve_filter_window",
    "assemble_night",
    "NightPlanner",
]
