"""
Review Momentum - Pure Functions

Classifies an app's review-acquisition trend from trailing-window counts.
No I/O; the metrics job feeds it counts read from the reviews table.

Usage:
    from services.metrics.review_momentum import compute_momentum

    result = compute_momentum(v7=12, v30=45, v90=120)
    result.momentum  # 'accelerating'
"""
import math
from dataclasses import dataclass


class Momentum:
    """Momentum classification values."""
    FLAT = 'flat'
    SPIKE = 'spike'
    ACCELERATING = 'accelerating'
    SLOWING = 'slowing'
    STABLE = 'stable'

    ALL = [FLAT, SPIKE, ACCELERATING, SLOWING, STABLE]


@dataclass
class MomentumResult:
    v7d: int
    v30d: int
    v90d: int
    acc_micro: float
    acc_macro: float
    momentum: str


def round2(value: float) -> float:
    """Round half up to 2 decimals (0.125 -> 0.13, -0.125 -> -0.12)."""
    return math.floor(value * 100 + 0.5) / 100


def compute_momentum(v7: int, v30: int, v90: int) -> MomentumResult:
    """
    Args:
        v7, v30, v90: review counts in the trailing 7/30/90 days

    Returns:
        MomentumResult with the two accelerations and the classification.
        acc_micro compares the last week to the 30-day weekly rate;
        acc_macro compares the last 30 days to the 90-day monthly rate.
    """
    expected7 = v30 / (30 / 7)
    acc_micro = round2(v7 - expected7)

    expected30 = v90 / 3
    acc_macro = round2(v30 - expected30)

    if v30 == 0 and v7 == 0:
        momentum = Momentum.FLAT
    elif expected7 > 0 and acc_micro > expected7:
        momentum = Momentum.SPIKE
    elif acc_micro > 0 and acc_macro > 0:
        momentum = Momentum.ACCELERATING
    elif acc_micro < 0 or acc_macro < 0:
        momentum = Momentum.SLOWING
    else:
        momentum = Momentum.STABLE

    return MomentumResult(
        v7d=v7,
        v30d=v30,
        v90d=v90,
        acc_micro=acc_micro,
        acc_macro=acc_macro,
        momentum=momentum,
    )
