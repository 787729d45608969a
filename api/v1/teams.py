"""
Team Scoring API Routes

On-demand rescoring of a single team for a daily or weekly period.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Security

from api.v1.dependencies import get_aggregator
from core.logging import get_logger
from core.pipeline_auth import verify_pipeline_token
from core.settings import settings
from schemas.common import ApiStatus
from schemas.scoring import (
    AppliedBonusResponse,
    SlotScoreResponse,
    TeamScoreData,
    TeamScoreResponse,
)
from scoring.periods import Scope, local_today, period_for
from services.team_aggregator import TeamAggregator, TeamScoreResult

router = APIRouter(prefix="/teams", tags=["teams"])
log = get_logger("teams_api")


def team_score_data(result: TeamScoreResult) -> TeamScoreData:
    return TeamScoreData(
        team_id=result.team_id,
        period_key=result.period.key,
        scope=result.period.scope.value,
        subtotal=result.subtotal,
        bonus_points=result.bonus_points,
        penalty_points=result.penalty_points,
        total_points=result.total_points,
        bonuses=[AppliedBonusResponse(**b.to_dict()) for b in result.bonuses],
        slots=[
            SlotScoreResponse(
                position=slot.position,
                asset_type=slot.asset_type,
                asset_id=slot.asset_id,
                points=slot.points,
                breakdown=slot.detail.to_dict(),
            )
            for slot in result.slots
        ],
    )


@router.post("/{team_id}/score", response_model=TeamScoreResponse)
async def score_team(
    team_id: int,
    _: str = Security(verify_pipeline_token),
    scope: Scope = Query(Scope.DAILY, description="daily or weekly"),
    date: Optional[date] = Query(None, description="Date inside the period (YYYY-MM-DD). Omit for today."),
    aggregator: TeamAggregator = Depends(get_aggregator),
) -> TeamScoreResponse:
    """
    Rescore one team and persist its score and breakdowns.

    Unknown teams return 404; a team without a lineup scores 0.
    """
    period = period_for(scope, date or local_today(settings.challenge_timezone))
    result = await aggregator.score_team_async(team_id, period)

    log.info("team_rescored_on_demand", team_id=team_id, period=period.key, total=result.total_points)
    return TeamScoreResponse(
        status=ApiStatus.SUCCESS,
        message=f"Team {team_id} scored for {period.key}",
        data=team_score_data(result),
    )

