"""
Team Scores Pipelines

Batch rescoring of every team that has a lineup for the period. The match
scheduler keeps live matches fresh on its own; these runs cover backfills
and teams that are not in an active match.
"""

from typing import Optional

from db.models.lineups import Lineup
from pipelines.base import BasePipeline
from pipelines.config import PipelineConfig
from pipelines.context import PipelineContext
from scoring.periods import Scope, ScoringPeriod
from services.team_aggregator import TeamAggregator


class _TeamScoresPipeline(BasePipeline):
    """Shared per-team loop: one failing team is logged and skipped."""

    def __init__(self, aggregator: Optional[TeamAggregator] = None):
        super().__init__()
        self.aggregator = aggregator or TeamAggregator()

    def execute(self, ctx: PipelineContext, period: ScoringPeriod) -> None:
        team_ids = Lineup.team_ids_for_period(period.key)
        ctx.log.info("teams_found", count=len(team_ids))

        for team_id in team_ids:
            try:
                result = self.aggregator.score_team(team_id, period)
            except Exception as e:
                ctx.increment_failed()
                ctx.log.warning(
                    "team_processing_error",
                    team_id=team_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            ctx.increment_records()
            ctx.log.debug(
                "team_score_recorded",
                team_id=team_id,
                total=result.total_points,
            )

        if team_ids and ctx.records_processed == 0:
            raise RuntimeError(
                f"0 of {len(team_ids)} teams scored for {period.key}"
            )


class DailyTeamScoresPipeline(_TeamScoresPipeline):
    """Rescore every team with a lineup for the day."""

    config = PipelineConfig(
        name="daily_team_scores",
        display_name="Daily Team Scores",
        description="Rescores every team with a daily lineup, with breakdowns and team bonuses",
        target_table="team_scores",
        scope=Scope.DAILY,
    )


class WeeklyTeamScoresPipeline(_TeamScoresPipeline):
    """Rescore every team with a lineup for the ISO week."""

    config = PipelineConfig(
        name="weekly_team_scores",
        display_name="Weekly Team Scores",
        description="Rescores every team with a weekly lineup from the week's daily stats",
        target_table="team_scores",
        scope=Scope.WEEKLY,
    )
