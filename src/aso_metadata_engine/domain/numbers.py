"""Small numeric helpers shared by the scoring modules."""

from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (2.5 -> 3)."""
    return math.floor(value + 0.5)


def clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    return max(lower, min(upper, value))


def clamp_score(value: float) -> int:
    """Round half-up and clamp to the 0-100 score range."""
    return int(clamp(round_half_up(value)))
