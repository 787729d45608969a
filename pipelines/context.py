"""
Pipeline Context

Per-run state for a batch rescoring pipeline: the ScoringRun audit row,
success/failure counters, timing and a logger bound to the run.
"""

from __future__ import annotations

import traceback
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

import pytz

from core.logging import get_logger, new_correlation_id
from core.settings import settings
from db.models.scoring_run import RunStatus, ScoringRun
from schemas.common import ApiStatus
from schemas.pipeline import PipelineResult


def _challenge_now() -> datetime:
    return datetime.now(pytz.timezone(settings.challenge_timezone))


@dataclass
class PipelineContext:
    """
    Usage:
        ctx = PipelineContext("daily_team_scores")
        ctx.start_tracking(period_key="2026-10-14")
        try:
            for team_id in team_ids:
                ...
                ctx.increment_records()
            return ctx.mark_success()
        except Exception as e:
            return ctx.mark_failed(e)
    """

    pipeline_name: str
    date_override: Optional[date] = None
    run_id: uuid.UUID = field(default_factory=uuid.uuid4)
    started_at: datetime = field(default_factory=_challenge_now)
    period_key: Optional[str] = None
    records_processed: int = 0
    records_failed: int = 0

    _db_run: Optional[ScoringRun] = field(default=None, repr=False)
    _log: Any = field(default=None, repr=False)

    def __post_init__(self):
        new_correlation_id("run-")
        self._log = get_logger("pipeline").bind(pipeline=self.pipeline_name)

    @property
    def log(self):
        return self._log

    @property
    def target_date(self) -> date:
        """The day this run scores: the override, or today in challenge time."""
        return self.date_override or self.started_at.date()

    def start_tracking(self, period_key: Optional[str] = None) -> None:
        """Create the ScoringRun row; its id becomes the run id."""
        self.period_key = period_key
        self._db_run = ScoringRun.start_run(self.pipeline_name, period_key)
        self.run_id = self._db_run.id
        self._log = self._log.bind(run_id=str(self.run_id), period=period_key)
        self._log.info("pipeline_started", backfill=self.date_override is not None)

    def increment_records(self, count: int = 1) -> None:
        self.records_processed += count

    def increment_failed(self, count: int = 1) -> None:
        self.records_failed += count

    def _finish(
        self,
        status: ApiStatus,
        message: str,
        error: Optional[str] = None,
    ) -> PipelineResult:
        completed_at = _challenge_now()
        if self._db_run:
            self._db_run.finish(
                RunStatus.SUCCESS if status == ApiStatus.SUCCESS else RunStatus.FAILED,
                records_processed=self.records_processed,
                records_failed=self.records_failed,
                error_message=error,
            )
        return PipelineResult(
            status=status,
            message=message,
            started_at=self.started_at.isoformat(),
            completed_at=completed_at.isoformat(),
            duration_seconds=(completed_at - self.started_at).total_seconds(),
            records_processed=self.records_processed,
            records_failed=self.records_failed,
            period_key=self.period_key,
            error=error,
        )

    def mark_success(self, message: Optional[str] = None) -> PipelineResult:
        result = self._finish(
            ApiStatus.SUCCESS,
            message or f"{self.pipeline_name} scored {self.records_processed} teams for {self.period_key}",
        )
        self._log.info(
            "pipeline_completed",
            records_processed=self.records_processed,
            records_failed=self.records_failed,
            duration_seconds=result.duration_seconds,
        )
        return result

    def mark_failed(self, error: Exception) -> PipelineResult:
        """Record the failure; call from inside the except block so the traceback is logged."""
        error_msg = f"{type(error).__name__}: {error}"
        self._log.error(
            "pipeline_failed",
            error=error_msg,
            records_failed=self.records_failed,
            traceback=traceback.format_exc(),
        )
        return self._finish(ApiStatus.ERROR, f"{self.pipeline_name} failed", error=error_msg)
