"""
Scarcity multiplier: rarer asset pools amplify their holders' points, deep
pools dampen them. The effect is always surfaced as an explicit breakdown
line, never folded silently into the slot total.

Rounding is half-up (toward +inf at exact halves) for both the multiplier
and the point adjustment, so -12.5 becomes -12 and 12.5 becomes 13.
"""

import math

from scoring.breakdown import BreakdownDetail, with_adjustment


SCARCITY_MIN = 0.65
SCARCITY_MAX = 1.35
SCARCITY_REFERENCE_POOL = 100
SCARCITY_MIN_POOL = 10


def round_half_up(value: float, ndigits: int = 0) -> float:
    scale = 10 ** ndigits
    return math.floor(value * scale + 0.5) / scale


def scarcity_multiplier(pool_size: int) -> float:
    """clamp((100 / max(n, 10)) ** 0.5, 0.65, 1.35), rounded to 2 decimals."""
    raw = (SCARCITY_REFERENCE_POOL / max(pool_size, SCARCITY_MIN_POOL)) ** 0.5
    return round_half_up(min(max(raw, SCARCITY_MIN), SCARCITY_MAX), 2)


def scarcity_adjustment(points: int, multiplier: float) -> int:
    """Signed point change the multiplier produces: round(points x m) - points."""
    return int(round_half_up(points * multiplier)) - points


def apply_scarcity(detail: BreakdownDetail, pool_size: int) -> BreakdownDetail:
    """
    Append the scarcity line. The label follows the multiplier, not the sign
    of the adjustment: a boost on a negative slot deepens it but is still a
    boost.
    """
    multiplier = scarcity_multiplier(pool_size)
    adjustment = scarcity_adjustment(detail.total, multiplier)
    label = "Scarcity Boost" if multiplier > 1 else "Scarcity Dampening"
    return with_adjustment(detail, label, f"{pool_size} in pool (×{multiplier:.2f})", adjustment)
