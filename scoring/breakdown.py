"""
Breakdown Formatter

Turns scorer output into a human-auditable structure:

    {
        "components": [{"category", "value", "formula", "points"}],
        "bonuses":    [{"type", "condition", "points"}],
        "penalties":  [{"type", "condition", "points"}],   # points <= 0
        "subtotal": int,   # sum of components
        "total": int,      # always the scorer's total
    }

Every builder guarantees total == subtotal + sum(bonuses) + sum(penalties).
If the rendered lines ever disagree with the scorer's total, an explicit
"Adjustment" line is appended rather than letting the display drift from the
stored value.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import date
from typing import Optional, Sequence, Union

from core.logging import get_logger
from scoring.brand import BrandBreakdown, RATING_COUNT_WEIGHT, RATING_QUALITY_WEIGHT
from scoring.trend import ARCHETYPE_WEIGHTS, TrendBreakdown

log = get_logger(__name__)


@dataclass(frozen=True)
class BreakdownComponent:
    category: str
    value: Union[int, float, str]
    formula: str
    points: int


@dataclass(frozen=True)
class BreakdownBonus:
    type: str
    condition: str
    points: int


@dataclass(frozen=True)
class BreakdownDetail:
    components: tuple[BreakdownComponent, ...] = ()
    bonuses: tuple[BreakdownBonus, ...] = ()
    penalties: tuple[BreakdownBonus, ...] = ()
    subtotal: int = 0
    total: int = 0

    @property
    def line_sum(self) -> int:
        return (
            self.subtotal
            + sum(b.points for b in self.bonuses)
            + sum(p.points for p in self.penalties)
        )

    def to_dict(self) -> dict:
        return {
            "components": [asdict(c) for c in self.components],
            "bonuses": [asdict(b) for b in self.bonuses],
            "penalties": [asdict(p) for p in self.penalties],
            "subtotal": self.subtotal,
            "total": self.total,
        }


def with_adjustment(
    detail: BreakdownDetail, type_: str, condition: str, points: int
) -> BreakdownDetail:
    """
    Append a signed line and move the total by the same amount.

    Positive points land in bonuses, negative in penalties; zero is a no-op.
    """
    if points == 0:
        return detail
    line = BreakdownBonus(type=type_, condition=condition, points=points)
    if points > 0:
        return replace(detail, bonuses=detail.bonuses + (line,), total=detail.total + points)
    return replace(detail, penalties=detail.penalties + (line,), total=detail.total + points)


def _reconcile(detail: BreakdownDetail, **context) -> BreakdownDetail:
    diff = detail.total - detail.line_sum
    if diff == 0:
        return detail

    log.warning(
        "breakdown_reconciliation",
        total=detail.total,
        line_sum=detail.line_sum,
        diff=diff,
        **context,
    )
    line = BreakdownBonus(type="Adjustment", condition="Score reconciliation", points=diff)
    if diff > 0:
        return replace(detail, bonuses=detail.bonuses + (line,))
    return replace(detail, penalties=detail.penalties + (line,))


def _format_weight(weight: float) -> str:
    return f"{weight:g}"


def format_trend_breakdown(
    scoring: TrendBreakdown,
    order_count: int,
    rank: int,
    previous_rank: int,
) -> BreakdownDetail:
    """Render a trend-scored asset's breakdown with display labels."""
    weights = ARCHETYPE_WEIGHTS[scoring.asset_type]
    multiplier = f"{scoring.trend_multiplier:.2f}"

    components = (
        BreakdownComponent(
            category="Order Activity",
            value=f"{order_count} orders",
            formula=f"{order_count} × {_format_weight(weights.order_weight)}",
            points=scoring.order_count_points,
        ),
        BreakdownComponent(
            category="Trend Bonus",
            value=f"{multiplier}x",
            formula=f"{multiplier} × {weights.trend_weight}",
            points=scoring.trend_momentum_points,
        ),
    )

    bonuses: list[BreakdownBonus] = []
    penalties: list[BreakdownBonus] = []

    if scoring.rank_bonus_points > 0:
        bonuses.append(BreakdownBonus("Rank Bonus", f"Rank #{rank}", scoring.rank_bonus_points))

    if scoring.momentum_bonus_points != 0:
        rank_change = previous_rank - rank
        if scoring.momentum_bonus_points > 0:
            bonuses.append(
                BreakdownBonus("Position Gain", f"↑{abs(rank_change)} ranks", scoring.momentum_bonus_points)
            )
        else:
            penalties.append(
                BreakdownBonus("Position Loss", f"↓{abs(rank_change)} ranks", scoring.momentum_bonus_points)
            )

    if scoring.consistency_bonus_points > 0:
        bonuses.append(
            BreakdownBonus(
                "Consistency Bonus",
                f"Stable performance ({scoring.consistency_score:g}/100)",
                scoring.consistency_bonus_points,
            )
        )

    if scoring.velocity_bonus_points > 0:
        direction = "Accelerating" if scoring.velocity_score >= 0 else "Decelerating"
        bonuses.append(
            BreakdownBonus(
                "Velocity Bonus",
                f"{direction} growth ({scoring.velocity_score:+g})",
                scoring.velocity_bonus_points,
            )
        )

    if scoring.streak_bonus_points > 0:
        tier = scoring.streak.display_tier
        bonuses.append(
            BreakdownBonus(
                f"{tier.label} Streak",
                f"{scoring.streak.streak_days} days streak (×{tier.multiplier:.2f} multiplier)",
                scoring.streak_bonus_points,
            )
        )

    if scoring.market_share_bonus_points > 0:
        bonuses.append(
            BreakdownBonus("Market Share Bonus", "Significant market position", scoring.market_share_bonus_points)
        )

    detail = BreakdownDetail(
        components=components,
        bonuses=tuple(bonuses),
        penalties=tuple(penalties),
        subtotal=sum(c.points for c in components),
        total=scoring.total_points,
    )
    return _reconcile(detail, asset_type=scoring.asset_type)


def format_brand_breakdown(scoring: BrandBreakdown) -> BreakdownDetail:
    components = (
        BreakdownComponent(
            category="Rating Count",
            value=f"{scoring.total_ratings} ratings",
            formula=f"{scoring.total_ratings} × {RATING_COUNT_WEIGHT}",
            points=scoring.rating_count_points,
        ),
        BreakdownComponent(
            category="Rating Quality",
            value=f"{scoring.bayesian_average:.2f}★",
            formula=f"{scoring.bayesian_average:.2f} × {RATING_QUALITY_WEIGHT}",
            points=scoring.rating_quality_points,
        ),
    )
    bonuses: tuple[BreakdownBonus, ...] = ()
    if scoring.rank_bonus_points > 0:
        bonuses = (BreakdownBonus("Top Brand", f"Rank #{scoring.rank}", scoring.rank_bonus_points),)

    detail = BreakdownDetail(
        components=components,
        bonuses=bonuses,
        subtotal=sum(c.points for c in components),
        total=scoring.total_points,
    )
    return _reconcile(detail, asset_type="brand")


def no_data_breakdown(reason: str = "No stats for this period") -> BreakdownDetail:
    """Breakdown for a slot whose asset has no stat row: zero points, never an error."""
    return BreakdownDetail(
        components=(BreakdownComponent(category="No Data", value=0, formula=reason, points=0),),
    )


def format_weekly_breakdown(
    daily_totals: Sequence[tuple[date, int]],
    context_lines: Sequence[BreakdownBonus] = (),
) -> BreakdownDetail:
    """
    One component per scored day, plus week-level context lines.

    The total is the sum of the daily totals and the context lines.
    """
    components = tuple(
        BreakdownComponent(
            category=day.strftime("%a %d %b"),
            value=day.isoformat(),
            formula="daily total",
            points=points,
        )
        for day, points in daily_totals
    )
    subtotal = sum(c.points for c in components)
    detail = BreakdownDetail(components=components, subtotal=subtotal, total=subtotal)
    for line in context_lines:
        detail = with_adjustment(detail, line.type, line.condition, line.points)
    return detail


# =============================================================================
# Display formatters
# =============================================================================


def format_trend_multiplier(multiplier: float) -> str:
    if multiplier >= 5:
        return f"🔥 {multiplier:.1f}x"
    if multiplier >= 2:
        return f"↗️ {multiplier:.1f}x"
    if multiplier >= 1:
        return f"→ {multiplier:.1f}x"
    return f"↘️ {multiplier:.1f}x"


def format_rank_change(current_rank: int, previous_rank: Optional[int]) -> str:
    if not previous_rank:
        return f"#{current_rank} (new)"
    change = previous_rank - current_rank
    if change > 0:
        return f"#{current_rank} (↑{change})"
    if change < 0:
        return f"#{current_rank} (↓{abs(change)})"
    return f"#{current_rank} (→)"


def format_streak(streak_days: int) -> str:
    if streak_days <= 0:
        return ""
    if streak_days == 1:
        return "🔥"
    if streak_days < 7:
        return f"🔥 {streak_days}d"
    return f"🔥🔥 {streak_days}d"
