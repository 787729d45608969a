"""
Team composition bonuses.

Bonuses are evaluated in a fixed priority order and applied until the
100-point cap is exhausted; the bonus that crosses the cap is truncated and
anything after it is dropped.

Shared (both scopes):
    Perfect Week        +50  every populated slot >= the median slot score
    Position Diversity  +30  each slot group holds 18-32% of the subtotal
    Momentum Master     +20  3+ assets gained rank
Daily:
    Hot Streak Squad    +25  2+ assets on 3+ day streaks
    Trend Explosion     +30  any asset at a 3x+ trend multiplier
    Dark Horse          +20  any asset jumped 10+ ranks into the top 10
Weekly:
    Consistency King    +25  slot score std dev <= 8% of the subtotal
    Steady Climb        +20  2+ assets gained 2+ ranks
    Market Leader       +20  any asset at 10%+ market share
"""

import statistics
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from scoring.periods import Scope


TEAM_BONUS_CAP = 100

DIVERSITY_MIN_SHARE = 0.18
DIVERSITY_MAX_SHARE = 0.32

# Slot archetype -> diversity group
POSITION_GROUPS = {
    "manufacturer": "manufacturer",
    "cultivar": "cultivation",
    "product": "cultivation",
    "retailer": "retail",
    "brand": "brand",
}


@dataclass(frozen=True)
class AssetContext:
    """Per-asset signals the team bonuses look at."""

    current_rank: int = 0
    previous_rank: int = 0
    streak_days: int = 0
    trend_multiplier: float = 1.0
    market_share_percent: float = 0.0

    @property
    def rank_gain(self) -> int:
        if self.current_rank == 0 or self.previous_rank == 0:
            return 0
        return self.previous_rank - self.current_rank


@dataclass(frozen=True)
class SlotScore:
    position: str
    archetype: str
    points: int
    context: Optional[AssetContext] = None


@dataclass(frozen=True)
class AppliedBonus:
    name: str
    points: int
    full_points: int

    @property
    def truncated(self) -> bool:
        return self.points < self.full_points

    def to_dict(self) -> dict:
        return {"name": self.name, "points": self.points, "full_points": self.full_points}


def _contexts(slots: Sequence[SlotScore]) -> list[AssetContext]:
    return [s.context for s in slots if s.context is not None]


def is_perfect_week(slots: Sequence[SlotScore]) -> bool:
    if not slots:
        return False
    median = statistics.median(s.points for s in slots)
    return all(s.points >= median for s in slots)


def has_position_diversity(slots: Sequence[SlotScore]) -> bool:
    subtotal = sum(s.points for s in slots)
    if subtotal <= 0:
        return False
    group_points = {group: 0 for group in set(POSITION_GROUPS.values())}
    for slot in slots:
        group_points[POSITION_GROUPS[slot.archetype]] += slot.points
    return all(
        DIVERSITY_MIN_SHARE <= points / subtotal <= DIVERSITY_MAX_SHARE
        for points in group_points.values()
    )


def is_momentum_master(slots: Sequence[SlotScore]) -> bool:
    return sum(1 for c in _contexts(slots) if c.rank_gain > 0) >= 3


def is_hot_streak_squad(slots: Sequence[SlotScore]) -> bool:
    return sum(1 for c in _contexts(slots) if c.streak_days >= 3) >= 2


def is_trend_explosion(slots: Sequence[SlotScore]) -> bool:
    return any(c.trend_multiplier >= 3 for c in _contexts(slots))


def is_dark_horse(slots: Sequence[SlotScore]) -> bool:
    return any(
        c.previous_rank > 0 and 1 <= c.current_rank <= 10 and c.rank_gain >= 10
        for c in _contexts(slots)
    )


def is_consistency_king(slots: Sequence[SlotScore]) -> bool:
    subtotal = sum(s.points for s in slots)
    if subtotal <= 0 or len(slots) < 2:
        return False
    return statistics.pstdev(s.points for s in slots) <= 0.08 * subtotal


def is_steady_climb(slots: Sequence[SlotScore]) -> bool:
    return sum(1 for c in _contexts(slots) if c.rank_gain >= 2) >= 2


def is_market_leader(slots: Sequence[SlotScore]) -> bool:
    return any(c.market_share_percent >= 10 for c in _contexts(slots))


BonusRule = tuple[str, int, Callable[[Sequence[SlotScore]], bool]]

SHARED_BONUSES: tuple[BonusRule, ...] = (
    ("Perfect Week", 50, is_perfect_week),
    ("Position Diversity", 30, has_position_diversity),
    ("Momentum Master", 20, is_momentum_master),
)

SCOPE_BONUSES: dict[Scope, tuple[BonusRule, ...]] = {
    Scope.DAILY: (
        ("Hot Streak Squad", 25, is_hot_streak_squad),
        ("Trend Explosion", 30, is_trend_explosion),
        ("Dark Horse", 20, is_dark_horse),
    ),
    Scope.WEEKLY: (
        ("Consistency King", 25, is_consistency_king),
        ("Steady Climb", 20, is_steady_climb),
        ("Market Leader", 20, is_market_leader),
    ),
}


def calculate_team_bonuses(
    slots: Sequence[SlotScore], scope: "Scope | str"
) -> list[AppliedBonus]:
    """Eligible bonuses in priority order, truncated at the team cap."""
    rules = SHARED_BONUSES + SCOPE_BONUSES[Scope(scope)]
    applied: list[AppliedBonus] = []
    remaining = TEAM_BONUS_CAP

    for name, points, predicate in rules:
        if remaining <= 0:
            break
        if not predicate(slots):
            continue
        granted = min(points, remaining)
        applied.append(AppliedBonus(name=name, points=granted, full_points=points))
        remaining -= granted

    return applied
