"""
Base Pipeline

Template for batch rescoring runs. A run resolves its scoring period from
config.scope and the target date, opens a ScoringRun row, calls execute(),
and converts any exception into a failed PipelineResult.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import date
from typing import ClassVar, Optional

from db.base import run_with_connection
from pipelines.config import PipelineConfig
from pipelines.context import PipelineContext
from schemas.pipeline import PipelineResult
from scoring.periods import ScoringPeriod, period_for


class BasePipeline(ABC):
    """
    Subclasses set a `config` class attribute and implement execute().

    Example:
        class DailyTeamScoresPipeline(BasePipeline):
            config = PipelineConfig(
                name="daily_team_scores",
                display_name="Daily Team Scores",
                description="Rescores every team with a lineup for the day",
                target_table="team_scores",
                scope=Scope.DAILY,
            )

            def execute(self, ctx, period):
                for team_id in Lineup.team_ids_for_period(period.key):
                    ...
                    ctx.increment_records()
    """

    config: ClassVar[PipelineConfig]

    def __init__(self):
        if getattr(self.__class__, "config", None) is None:
            raise ValueError(f"{self.__class__.__name__} must define a 'config' class attribute")

    @abstractmethod
    def execute(self, ctx: PipelineContext, period: ScoringPeriod) -> None:
        """
        Score one period. Runs in a worker thread with its own database
        connection, so blocking peewee calls are fine.

        Any exception fails the run.
        """

    def before_execute(self, ctx: PipelineContext, period: ScoringPeriod) -> None:
        ctx.log.debug(
            "period_resolved",
            first_date=period.first_date.isoformat(),
            last_date=period.last_date.isoformat(),
        )

    def after_execute(self, ctx: PipelineContext, period: ScoringPeriod) -> None:
        if ctx.records_failed:
            ctx.log.warning("teams_skipped", count=ctx.records_failed, period=period.key)

    def _run_sync(self, date_override: Optional[date] = None) -> PipelineResult:
        ctx = PipelineContext(self.config.name, date_override=date_override)
        period = period_for(self.config.scope, ctx.target_date)
        ctx.start_tracking(period.key)

        try:
            self.before_execute(ctx, period)
            self.execute(ctx, period)
            self.after_execute(ctx, period)
            return ctx.mark_success()
        except Exception as e:
            return ctx.mark_failed(e)

    async def run(self, date_override: Optional[date] = None) -> PipelineResult:
        """
        Args:
            date_override: Score the period containing this date instead of
                           the current one (backfills).
        """
        return await asyncio.to_thread(run_with_connection, self._run_sync, date_override)

    @classmethod
    def get_info(cls) -> dict:
        return {
            "name": cls.config.name,
            "display_name": cls.config.display_name,
            "description": cls.config.description,
            "target_table": cls.config.target_table,
            "scope": cls.config.scope.value,
        }
