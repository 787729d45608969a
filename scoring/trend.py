"""
Asset Trend Scorer

Converts one asset's daily metrics into a structured point breakdown for the
trend-scored archetypes (manufacturer, retailer, cultivar, product).

Pure arithmetic over the inputs: there is no error path. Callers sanitize
malformed rows (negative counts, NaN ratios) before scoring.
"""

import math
import statistics
from dataclasses import dataclass, field
from typing import Optional, Sequence

from scoring.streaks import StreakScore


TREND_MULTIPLIER_MIN = 0.1
TREND_MULTIPLIER_MAX = 5.0
NEUTRAL_TREND = 1.0

CONSISTENCY_BONUS_CAP = 20
VELOCITY_BONUS_CAP = 15
MOMENTUM_BONUS_CAP = 40


@dataclass(frozen=True)
class ArchetypeWeights:
    order_weight: float
    trend_weight: int


# Retailers carry the manufacturer weights
ARCHETYPE_WEIGHTS: dict[str, ArchetypeWeights] = {
    "manufacturer": ArchetypeWeights(order_weight=5, trend_weight=25),
    "retailer": ArchetypeWeights(order_weight=5, trend_weight=25),
    "cultivar": ArchetypeWeights(order_weight=4.5, trend_weight=22),
    "product": ArchetypeWeights(order_weight=4, trend_weight=20),
}

TREND_SCORED_TYPES = frozenset(ARCHETYPE_WEIGHTS)


@dataclass
class TrendStats:
    """
    One asset's metrics for one day.

    ``trend_multiplier``, ``consistency_score`` and ``velocity_score`` are
    recomputed from the raw volume series when the aggregation job did not
    precompute them.
    """

    order_count: int = 0
    current_rank: int = 0
    previous_rank: int = 0
    streak_days: int = 0
    market_share_percent: float = 0.0
    trend_multiplier: Optional[float] = None
    consistency_score: Optional[float] = None
    velocity_score: Optional[float] = None
    days1: Optional[float] = None
    days7: Optional[float] = None
    days14: Optional[float] = None
    daily_volumes: Optional[Sequence[float]] = field(default=None)


@dataclass(frozen=True)
class TrendBreakdown:
    asset_type: str
    order_count_points: int
    trend_momentum_points: int
    rank_bonus_points: int
    momentum_bonus_points: int
    consistency_bonus_points: int
    velocity_bonus_points: int
    streak_bonus_points: int
    market_share_bonus_points: int
    total_points: int
    trend_multiplier: float
    consistency_score: float
    velocity_score: float
    streak: StreakScore


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def calculate_trend_multiplier(days1: float, days7: float) -> float:
    """
    Ratio of the day's volume to the trailing 7-day daily average.

    - both zero: 1.0 (neutral)
    - no 7-day baseline but a positive day: 5.0 (new-entrant ceiling)
    - otherwise clamped to [0.1, 5.0]
    """
    current_day = max(days1 or 0, 0)
    trailing_week = max(days7 or 0, 0)

    if current_day == 0 and trailing_week == 0:
        return NEUTRAL_TREND

    average_daily = trailing_week / 7 if trailing_week > 0 else 0
    if average_daily == 0:
        return TREND_MULTIPLIER_MAX if current_day > 0 else NEUTRAL_TREND

    return _clamp(current_day / average_daily, TREND_MULTIPLIER_MIN, TREND_MULTIPLIER_MAX)


def resolve_trend_multiplier(stats: TrendStats) -> float:
    """Use the precomputed multiplier when present and positive, else recompute."""
    if stats.trend_multiplier is not None and stats.trend_multiplier > 0:
        return _clamp(stats.trend_multiplier, TREND_MULTIPLIER_MIN, TREND_MULTIPLIER_MAX)
    return calculate_trend_multiplier(stats.days1 or 0, stats.days7 or 0)


def calculate_consistency_score(daily_volumes: Optional[Sequence[float]]) -> int:
    """
    0-100 consistency from the coefficient of variation of daily volumes.

    Fewer than three points gives 0. CV of 0 scores 100, CV >= 1 scores 0.
    """
    if not daily_volumes or len(daily_volumes) < 3:
        return 0
    mean = statistics.fmean(daily_volumes)
    std_dev = statistics.pstdev(daily_volumes)
    cv = std_dev / mean if mean > 0 else 1
    return max(0, math.floor((1 - cv) * 100))


def calculate_velocity_score(days1: float, days7: float, days14: Optional[float]) -> int:
    """Acceleration between the two most recent weeks, scaled and clamped to [-50, 100]."""
    if not days14:
        return 0
    recent_growth = days7 - days1
    older_growth = days14 - days7
    acceleration = recent_growth - older_growth
    return int(_clamp(math.floor(acceleration * 0.05), -50, 100))


def calculate_rank_bonus(rank: int) -> int:
    """Tiered rank bonus, identical for every trend-scored archetype."""
    if rank <= 0:
        return 0
    if rank == 1:
        return 30
    if rank <= 3:
        return 20
    if rank <= 5:
        return 15
    if rank <= 10:
        return 10
    return 0


def calculate_momentum_bonus(previous_rank: int, current_rank: int) -> int:
    """
    +8 per rank gained (max 40), -4 per rank lost (min -40).

    Losing is penalized at half the rate gaining is rewarded. Either rank
    being 0 (unranked) means there is nothing to compare: 0.
    """
    if previous_rank == 0 or current_rank == 0:
        return 0
    rank_change = previous_rank - current_rank
    if rank_change > 0:
        return min(MOMENTUM_BONUS_CAP, rank_change * 8)
    if rank_change < 0:
        return max(-MOMENTUM_BONUS_CAP, rank_change * 4)
    return 0


def calculate_consistency_bonus(consistency_score: float) -> int:
    return min(CONSISTENCY_BONUS_CAP, math.floor(consistency_score * 0.20))


def calculate_velocity_bonus(velocity_score: float) -> int:
    # Magnitude only: deceleration earns the same bonus as acceleration
    return min(VELOCITY_BONUS_CAP, abs(math.floor(velocity_score * 0.15)))


def calculate_market_share_bonus(market_share_percent: float) -> int:
    if market_share_percent >= 15:
        return 20
    if market_share_percent >= 8:
        return 15
    if market_share_percent >= 4:
        return 10
    if market_share_percent >= 2:
        return 5
    return 0


def score_trend(asset_type: str, stats: TrendStats) -> TrendBreakdown:
    """
    Score one asset for one day.

    Scoring breakdown:
        - Orders: count x 5 (manufacturer/retailer), x 4.5 floored (cultivar), x 4 (product)
        - Trend: floor(multiplier x 25 / 22 / 20)
        - Rank: +30 / +20 / +15 / +10 for ranks 1 / 2-3 / 4-5 / 6-10
        - Momentum: +8 per rank gained (max 40), -4 per rank lost (min -40)
        - Consistency: floor(score x 0.2), max 20
        - Velocity: |floor(score x 0.15)|, max 15
        - Streak: 2 per day, max 15
        - Market share: +20 / +15 / +10 / +5 at 15% / 8% / 4% / 2%

    Raises:
        KeyError: If asset_type is not a trend-scored archetype
    """
    weights = ARCHETYPE_WEIGHTS[asset_type]

    order_count_points = math.floor(stats.order_count * weights.order_weight)

    trend_multiplier = resolve_trend_multiplier(stats)
    trend_momentum_points = math.floor(trend_multiplier * weights.trend_weight)

    rank_bonus_points = calculate_rank_bonus(stats.current_rank)
    momentum_bonus_points = calculate_momentum_bonus(stats.previous_rank, stats.current_rank)

    if stats.consistency_score is not None:
        consistency_score = stats.consistency_score
    else:
        consistency_score = calculate_consistency_score(stats.daily_volumes)
    consistency_bonus_points = calculate_consistency_bonus(consistency_score)

    if stats.velocity_score is not None:
        velocity_score = stats.velocity_score
    else:
        velocity_score = calculate_velocity_score(
            stats.days1 or 0, stats.days7 or 0, stats.days14
        )
    velocity_bonus_points = calculate_velocity_bonus(velocity_score)

    streak = StreakScore.from_days(stats.streak_days)
    market_share_bonus_points = calculate_market_share_bonus(stats.market_share_percent)

    total_points = (
        order_count_points
        + trend_momentum_points
        + rank_bonus_points
        + momentum_bonus_points
        + consistency_bonus_points
        + velocity_bonus_points
        + streak.bonus_points
        + market_share_bonus_points
    )

    return TrendBreakdown(
        asset_type=asset_type,
        order_count_points=order_count_points,
        trend_momentum_points=trend_momentum_points,
        rank_bonus_points=rank_bonus_points,
        momentum_bonus_points=momentum_bonus_points,
        consistency_bonus_points=consistency_bonus_points,
        velocity_bonus_points=velocity_bonus_points,
        streak_bonus_points=streak.bonus_points,
        market_share_bonus_points=market_share_bonus_points,
        total_points=total_points,
        trend_multiplier=trend_multiplier,
        consistency_score=consistency_score,
        velocity_score=velocity_score,
        streak=streak,
    )
