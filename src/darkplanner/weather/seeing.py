"""Seeing score from upper-air wind speeds.

Strong jet-stream winds, fast mid-level flow and shear between the two all
degrade seeing. Each contributes a penalty in [0, 1]; the weighted sum maps to
a 0..100 score and a coarse label.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Sequence

JET_RANGE_KMH = (100.0, 200.0)
MID_RANGE_KMH = (40.0, 120.0)
SHEAR_RANGE_KMH = (40.0, 120.0)
WEIGHTS = (0.5, 0.3, 0.2)


class SeeingLabel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    POOR = "poor"


def _mean(values: Sequence[Optional[float]]) -> Optional[float]:
    present = [float(v) for v in values if v is not None and not math.isnan(float(v))]
    if not present:
        return None
    return sum(present) / len(present)


def _penalty(value: float, bounds) -> float:
    lo, hi = bounds
    return min(1.0, max(0.0, (value - lo) / (hi - lo)))


def seeing_score(
    ws200: Optional[float],
    ws300: Optional[float],
    ws500: Optional[float],
    ws700: Optional[float],
) -> Optional[int]:
    """Score 0..100 from wind speeds in km/h; None when a level pair is missing."""
    v_jet = _mean([ws200, ws300])
    v_mid = _mean([ws500, ws700])
    if v_jet is None or v_mid is None:
        return None
    penalty = (
        WEIGHTS[0] * _penalty(v_jet, JET_RANGE_KMH)
        + WEIGHTS[1] * _penalty(v_mid, MID_RANGE_KMH)
        + WEIGHTS[2] * _penalty(abs(v_jet - v_mid), SHEAR_RANGE_KMH)
    )
    score = int(math.floor((1.0 - penalty) * 100.0 + 0.5))
    return max(0, min(100, score))


def seeing_label(score: Optional[int]) -> Optional[SeeingLabel]:
    if score is None:
        return None
    if score >= 80:
        return SeeingLabel.EXCELLENT
    if score >= 60:
        return SeeingLabel.GOOD
    if score >= 40:
        return SeeingLabel.AVERAGE
    return SeeingLabel.POOR


__all__ = ["SeeingLabel", "seeing_score", "seeing_label"]
