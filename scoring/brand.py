"""
Brand rating formula.

Brands are not trend-scored; they earn points from user ratings:
    - Rating count: 10 points per rating received
    - Rating quality: 20 points per star of the Bayesian average (floored)
    - Top brand: +50 for the #1 brand by ratings
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Union


RATING_COUNT_WEIGHT = 10
RATING_QUALITY_WEIGHT = 20
TOP_BRAND_BONUS = 50


@dataclass(frozen=True)
class BrandStats:
    total_ratings: int = 0
    average_rating: Union[float, Decimal] = 0.0
    bayesian_average: Union[float, Decimal] = 0.0
    rank: int = 0


@dataclass(frozen=True)
class BrandBreakdown:
    rating_count_points: int
    rating_quality_points: int
    rank_bonus_points: int
    total_points: int
    total_ratings: int
    bayesian_average: float
    rank: int


def score_brand(stats: BrandStats) -> BrandBreakdown:
    total_ratings = stats.total_ratings or 0
    bayesian_average = float(stats.bayesian_average or 0)

    rating_count_points = total_ratings * RATING_COUNT_WEIGHT
    # Bayesian average, not the raw mean
    rating_quality_points = math.floor(bayesian_average * RATING_QUALITY_WEIGHT)
    rank_bonus_points = TOP_BRAND_BONUS if stats.rank == 1 else 0

    return BrandBreakdown(
        rating_count_points=rating_count_points,
        rating_quality_points=rating_quality_points,
        rank_bonus_points=rank_bonus_points,
        total_points=rating_count_points + rating_quality_points + rank_bonus_points,
        total_ratings=total_ratings,
        bayesian_average=bayesian_average,
        rank=stats.rank,
    )
