"""
Team Aggregator

Resolves a team's lineup for a scoring period, scores every populated slot,
applies the scarcity multiplier, adds team composition bonuses and persists
the result idempotently.

Persistence contract (one transaction per team):
    1. upsert the (team, period_key) TeamScore row
    2. lock that row (SELECT ... FOR UPDATE where the backend supports it)
    3. delete every prior breakdown row for the score id
    4. bulk-insert the current breakdown rows

Two overlapping recomputations of the same (team, period) serialize on the
row lock instead of interleaving breakdown rows.
"""

import asyncio
import json
import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

from core.logging import get_logger
from core.resilience import storage_guard, with_retry
from db.base import db, run_with_connection
from db.models import (
    Asset,
    AssetDailyStat,
    BrandRatingStat,
    Lineup,
    ScoringBreakdownRow,
    Team,
    TeamScore,
)
from db.models.team_scores import POSITION_FIELDS
from scoring.brand import BrandStats, score_brand
from scoring.breakdown import (
    BreakdownBonus,
    BreakdownDetail,
    format_brand_breakdown,
    format_trend_breakdown,
    format_weekly_breakdown,
    no_data_breakdown,
)
from scoring.periods import Scope, ScoringPeriod
from scoring.scarcity import apply_scarcity
from scoring.team_bonuses import AppliedBonus, AssetContext, SlotScore, calculate_team_bonuses
from scoring.trend import (
    TrendStats,
    calculate_market_share_bonus,
    calculate_momentum_bonus,
    resolve_trend_multiplier,
    score_trend,
)
from scoring.streaks import calculate_streak_bonus

log = get_logger(__name__)


class TeamNotFoundError(LookupError):
    pass


@dataclass
class SlotResult:
    position: str
    asset_type: str
    asset_id: int
    detail: BreakdownDetail
    context: Optional[AssetContext] = None

    @property
    def points(self) -> int:
        return self.detail.total

    @property
    def penalty_points(self) -> int:
        return sum(p.points for p in self.detail.penalties)


@dataclass
class TeamScoreResult:
    team_id: int
    period: ScoringPeriod
    slots: list[SlotResult] = field(default_factory=list)
    bonuses: list[AppliedBonus] = field(default_factory=list)
    team_score_id: Optional[int] = None

    @property
    def subtotal(self) -> int:
        return sum(slot.points for slot in self.slots)

    @property
    def bonus_points(self) -> int:
        return sum(b.points for b in self.bonuses)

    @property
    def penalty_points(self) -> int:
        # Already included in the slot points; reported separately for auditing
        return sum(slot.penalty_points for slot in self.slots)

    @property
    def total_points(self) -> int:
        return self.subtotal + self.bonus_points

    def position_points(self) -> dict[str, int]:
        return {slot.position: slot.points for slot in self.slots}


def _clean_number(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def trend_stats_from_row(row: AssetDailyStat) -> TrendStats:
    """Sanitize a stat row into scorer input: negatives clamp to 0, NaN becomes missing."""
    market_share = _clean_number(row.market_share_percent) or 0.0
    velocity = _clean_number(row.velocity_score)
    return TrendStats(
        order_count=max(row.order_count or 0, 0),
        current_rank=max(row.current_rank or 0, 0),
        previous_rank=max(row.previous_rank or 0, 0),
        streak_days=max(row.streak_days or 0, 0),
        market_share_percent=max(market_share, 0.0),
        trend_multiplier=_clean_number(row.trend_multiplier),
        consistency_score=_clean_number(row.consistency_score),
        velocity_score=velocity,
        days1=_clean_number(row.days1),
        days7=_clean_number(row.days7),
        days14=_clean_number(row.days14),
        daily_volumes=row.volume_series,
    )


def asset_context(stats: TrendStats, previous_rank: Optional[int] = None) -> AssetContext:
    return AssetContext(
        current_rank=stats.current_rank,
        previous_rank=stats.previous_rank if previous_rank is None else previous_rank,
        streak_days=stats.streak_days,
        trend_multiplier=resolve_trend_multiplier(stats),
        market_share_percent=stats.market_share_percent,
    )


def weekly_context_lines(first: TrendStats, last: TrendStats) -> list[BreakdownBonus]:
    """
    Week-level lines drawn from the week's last available snapshot.

    Rank movement runs from the first day's previous rank to the last day's
    current rank.
    """
    lines = []
    movement = calculate_momentum_bonus(first.previous_rank, last.current_rank)
    if movement:
        change = first.previous_rank - last.current_rank
        arrow = "↑" if change > 0 else "↓"
        lines.append(BreakdownBonus("Weekly Rank Movement", f"{arrow}{abs(change)} ranks this week", movement))

    market = calculate_market_share_bonus(last.market_share_percent)
    if market:
        lines.append(
            BreakdownBonus("Weekly Market Position", f"{last.market_share_percent:.1f}% market share", market)
        )

    streak = calculate_streak_bonus(last.streak_days)
    if streak:
        lines.append(BreakdownBonus("Weekly Streak", f"{last.streak_days} days streak", streak))
    return lines


class TeamAggregator:
    """
    Scores teams for a period.

    score_team() is synchronous and touches the database directly; call it
    from a worker thread (score_teams does this for the async callers).
    """

    def __init__(self, pool_sizes: Optional[dict[str, int]] = None):
        self._pool_sizes = pool_sizes

    def _get_pool_sizes(self) -> dict[str, int]:
        if self._pool_sizes is None:
            return Asset.pool_sizes()
        return self._pool_sizes

    # ------------------------------------------------------------------
    # Slot scoring
    # ------------------------------------------------------------------

    def _score_trend_daily(self, archetype: str, asset_id: int, period: ScoringPeriod):
        row = AssetDailyStat.for_asset_on(asset_id, period.stat_date)
        if row is None:
            return no_data_breakdown(), None
        stats = trend_stats_from_row(row)
        scoring = score_trend(archetype, stats)
        detail = format_trend_breakdown(
            scoring, stats.order_count, stats.current_rank, stats.previous_rank
        )
        return detail, asset_context(stats)

    def _score_trend_weekly(self, archetype: str, asset_id: int, period: ScoringPeriod):
        rows = AssetDailyStat.for_asset_between(asset_id, period.first_date, period.last_date)
        if not rows:
            return no_data_breakdown("No stats this week"), None

        daily = [trend_stats_from_row(row) for row in rows]
        daily_totals = [
            (row.stat_date, score_trend(archetype, stats).total_points)
            for row, stats in zip(rows, daily)
        ]
        first, last = daily[0], daily[-1]
        detail = format_weekly_breakdown(daily_totals, weekly_context_lines(first, last))
        return detail, asset_context(last, previous_rank=first.previous_rank)

    def _score_brand(self, asset_id: int, period: ScoringPeriod):
        if period.scope == Scope.DAILY:
            row = BrandRatingStat.for_asset_on(asset_id, period.stat_date)
            if row is None:
                return no_data_breakdown(), None
            return format_brand_breakdown(score_brand(_brand_stats(row))), None

        rows = BrandRatingStat.for_asset_between(asset_id, period.first_date, period.last_date)
        if not rows:
            return no_data_breakdown("No ratings this week"), None
        daily_totals = [(row.stat_date, score_brand(_brand_stats(row)).total_points) for row in rows]
        return format_weekly_breakdown(daily_totals), None

    def score_slot(
        self,
        position: str,
        archetype: str,
        asset_id: int,
        period: ScoringPeriod,
        pool_sizes: dict[str, int],
    ) -> SlotResult:
        if archetype == "brand":
            detail, context = self._score_brand(asset_id, period)
        elif period.scope == Scope.DAILY:
            detail, context = self._score_trend_daily(archetype, asset_id, period)
        else:
            detail, context = self._score_trend_weekly(archetype, asset_id, period)

        detail = apply_scarcity(detail, pool_sizes.get(archetype, 0))
        return SlotResult(
            position=position,
            asset_type=archetype,
            asset_id=asset_id,
            detail=detail,
            context=context,
        )

    # ------------------------------------------------------------------
    # Team scoring
    # ------------------------------------------------------------------

    def compute_team(self, team_id: int, period: ScoringPeriod) -> TeamScoreResult:
        """Score a team without persisting anything."""
        if Team.get_or_none(Team.id == team_id) is None:
            raise TeamNotFoundError(f"Team {team_id} not found")

        result = TeamScoreResult(team_id=team_id, period=period)
        lineup = Lineup.for_team(team_id, period.key)
        if lineup is None:
            log.info("lineup_missing", team_id=team_id, period=period.key)
            return result

        pool_sizes = self._get_pool_sizes()
        for position, archetype, asset_id in lineup.slot_assignments():
            result.slots.append(
                self.score_slot(position, archetype, asset_id, period, pool_sizes)
            )

        result.bonuses = calculate_team_bonuses(
            [SlotScore(s.position, s.asset_type, s.points, s.context) for s in result.slots],
            period.scope,
        )
        return result

    @with_retry(max_attempts=3, base_delay=0.5, max_delay=5.0)
    @storage_guard
    def persist(self, result: TeamScoreResult) -> int:
        """Upsert the TeamScore and replace its breakdown rows atomically."""
        period = result.period
        record = {
            "team": result.team_id,
            "period_key": period.key,
            "scope": period.scope.value,
            "stat_date": period.stat_date,
            "iso_year": period.iso_year,
            "iso_week": period.iso_week,
            "bonus_points": result.bonus_points,
            "penalty_points": result.penalty_points,
            "total_points": result.total_points,
            "bonuses": json.dumps([b.to_dict() for b in result.bonuses]),
        }
        position_points = result.position_points()
        for slot_field in POSITION_FIELDS:
            record[slot_field] = position_points.get(slot_field[: -len("_points")], 0)

        # created_at is insert-only
        update = {k: v for k, v in record.items() if k not in ("team", "period_key")}

        with db.atomic():
            TeamScore.insert(record).on_conflict(
                conflict_target=[TeamScore.team, TeamScore.period_key],
                update=update,
            ).execute()

            query = TeamScore.select(TeamScore.id).where(
                (TeamScore.team == result.team_id) & (TeamScore.period_key == period.key)
            )
            if db.for_update:
                query = query.for_update()
            score_id = query.get().id

            ScoringBreakdownRow.delete().where(
                ScoringBreakdownRow.team_score == score_id
            ).execute()

            rows = [
                {
                    "team_score": score_id,
                    "position": slot.position,
                    "asset_type": slot.asset_type,
                    "asset_id": slot.asset_id,
                    "total_points": slot.points,
                    "breakdown": json.dumps(slot.detail.to_dict(), ensure_ascii=False, sort_keys=True),
                }
                for slot in result.slots
            ]
            if rows:
                ScoringBreakdownRow.insert_many(rows).execute()

        return score_id

    @storage_guard
    def _compute(self, team_id: int, period: ScoringPeriod) -> TeamScoreResult:
        return self.compute_team(team_id, period)

    def score_team(self, team_id: int, period: ScoringPeriod) -> TeamScoreResult:
        """
        Compute and persist one team's score for a period.

        Raises:
            TeamNotFoundError: If the team does not exist
            StorageUnavailableError: If the database cannot be reached
        """
        result = self._compute(team_id, period)
        result.team_score_id = self.persist(result)

        log.info(
            "team_score_persisted",
            team_id=team_id,
            period=period.key,
            subtotal=result.subtotal,
            bonus_points=result.bonus_points,
            total=result.total_points,
            slots=len(result.slots),
        )
        return result

    async def score_team_async(self, team_id: int, period: ScoringPeriod) -> TeamScoreResult:
        """score_team() on a worker thread with its own database connection."""
        return await asyncio.to_thread(_score_in_thread, self.score_team, team_id, period)

    async def score_teams(
        self, team_ids: Iterable[int], period: ScoringPeriod
    ) -> dict[int, TeamScoreResult]:
        """
        Score several teams concurrently.

        A failing team is logged and left out of the result; the others
        still complete.
        """
        team_ids = list(team_ids)
        outcomes = await asyncio.gather(
            *(self.score_team_async(team_id, period) for team_id in team_ids),
            return_exceptions=True,
        )

        results: dict[int, TeamScoreResult] = {}
        for team_id, outcome in zip(team_ids, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                log.warning(
                    "team_scoring_failed",
                    team_id=team_id,
                    period=period.key,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                continue
            results[team_id] = outcome
        return results


@storage_guard
def _score_in_thread(score_team, team_id: int, period: ScoringPeriod) -> TeamScoreResult:
    return run_with_connection(score_team, team_id, period)


def _brand_stats(row: BrandRatingStat) -> BrandStats:
    return BrandStats(
        total_ratings=max(row.total_ratings or 0, 0),
        average_rating=row.average_rating or 0,
        bayesian_average=row.bayesian_average or 0,
        rank=max(row.rank or 0, 0),
    )
