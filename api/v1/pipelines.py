"""
Pipeline API Routes

Token-protected triggers for the batch rescoring pipelines, used by cron
jobs and by operators running backfills.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Security

from api.v1.dependencies import get_aggregator
from core.logging import get_logger
from core.pipeline_auth import verify_pipeline_token
from pipelines import list_pipelines, run_pipeline
from schemas.common import ApiStatus
from schemas.pipeline import PipelineListResponse, PipelineResponse
from services.team_aggregator import TeamAggregator

router = APIRouter(prefix="/pipelines", tags=["pipelines"])
log = get_logger("pipeline_api")


async def _trigger(name: str, date_override: Optional[date], aggregator: TeamAggregator) -> PipelineResponse:
    log.info("pipeline_triggered", pipeline=name, date=date_override.isoformat() if date_override else None)
    result = await run_pipeline(name, date_override=date_override, aggregator=aggregator)
    return PipelineResponse(status=result.status, message=result.message, data=result)


@router.get("/", response_model=PipelineListResponse)
async def get_available_pipelines(
    _: str = Security(verify_pipeline_token),
) -> PipelineListResponse:
    return PipelineListResponse(
        status=ApiStatus.SUCCESS,
        message="Available pipelines",
        data=list_pipelines(),
    )


@router.post("/daily-team-scores", response_model=PipelineResponse)
async def trigger_daily_team_scores(
    _: str = Security(verify_pipeline_token),
    date: Optional[date] = Query(None, description="Day to rescore (YYYY-MM-DD). Omit for today."),
    aggregator: TeamAggregator = Depends(get_aggregator),
) -> PipelineResponse:
    """
    Rescore every team with a lineup for the day and rewrite its breakdown rows.

    A run where some teams fail still succeeds; it fails only when no team
    could be scored.
    """
    return await _trigger("daily_team_scores", date, aggregator)


@router.post("/weekly-team-scores", response_model=PipelineResponse)
async def trigger_weekly_team_scores(
    _: str = Security(verify_pipeline_token),
    date: Optional[date] = Query(None, description="Any date inside the ISO week to score. Omit for this week."),
    aggregator: TeamAggregator = Depends(get_aggregator),
) -> PipelineResponse:
    """Rescore every team with a lineup for the ISO week containing the date."""
    return await _trigger("weekly_team_scores", date, aggregator)
