"""
Match API Routes

Manual triggers for the per-match work the scheduler normally does on its
own tick: a rescoring pass, the halftime / regulation / overtime checks, and
a read-only overtime status.
"""

import asyncio

from fastapi import APIRouter, Depends, Security

from api.v1.dependencies import get_scheduler
from core.logging import get_logger
from core.pipeline_auth import verify_pipeline_token
from db.base import run_with_connection
from db.models import Match, TeamScore
from schemas.common import ApiStatus
from schemas.scoring import (
    MatchActionData,
    MatchActionResponse,
    OvertimeStatusData,
    OvertimeStatusResponse,
)
from scoring.periods import period_for
from services.match_scheduler import MatchScheduler
from services.overtime_service import MatchNotFoundError

router = APIRouter(prefix="/matches", tags=["matches"])
log = get_logger("matches_api")


def _load_match(match_id: int) -> Match:
    match = Match.get_by_id_or_none(match_id)
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found")
    return match


def _match_totals(match: Match) -> dict[str, int]:
    period = period_for(match.scope, match.period_start)
    totals = TeamScore.totals_for(match.team_ids, period.key)
    return {str(team_id): points for team_id, points in totals.items()}


async def _action_data(match: Match, actions: list[str], plays_queued: int) -> MatchActionData:
    scores = await asyncio.to_thread(run_with_connection, _match_totals, match)
    return MatchActionData(
        match_id=match.id,
        status=match.status,
        actions=actions,
        plays_queued=plays_queued,
        scores=scores,
    )


@router.post("/{match_id}/rescore", response_model=MatchActionResponse)
async def rescore_match(
    match_id: int,
    _: str = Security(verify_pipeline_token),
    scheduler: MatchScheduler = Depends(get_scheduler),
) -> MatchActionResponse:
    """
    Rescore both teams of a match and run the broadcaster diff.

    Completed matches are not rescored.
    """
    match = await asyncio.to_thread(run_with_connection, _load_match, match_id)
    if match.is_complete:
        return MatchActionResponse(
            status=ApiStatus.SUCCESS,
            message=f"Match {match_id} is already complete",
            data=await _action_data(match, [], 0),
        )

    plays_queued = await scheduler.rescore_match(match)
    log.info("match_rescored_on_demand", match_id=match_id, plays_queued=plays_queued)
    return MatchActionResponse(
        status=ApiStatus.SUCCESS,
        message=f"Match {match_id} rescored",
        data=await _action_data(match, ["rescored"], plays_queued),
    )


@router.post("/{match_id}/evaluate", response_model=MatchActionResponse)
async def evaluate_match(
    match_id: int,
    _: str = Security(verify_pipeline_token),
    scheduler: MatchScheduler = Depends(get_scheduler),
) -> MatchActionResponse:
    """Run the halftime, end-of-regulation and overtime checks for one match now."""
    match, actions = await scheduler.evaluate_match(match_id)
    return MatchActionResponse(
        status=ApiStatus.SUCCESS,
        message=f"Match {match_id} evaluated",
        data=await _action_data(match, actions.names(), actions.plays_queued),
    )


@router.get("/{match_id}/overtime", response_model=OvertimeStatusResponse)
async def get_overtime_status(
    match_id: int,
    _: str = Security(verify_pipeline_token),
    scheduler: MatchScheduler = Depends(get_scheduler),
) -> OvertimeStatusResponse:
    match, status = await scheduler.overtime.get_status(match_id)
    data = OvertimeStatusData(
        match_id=match.id,
        status=match.status,
        is_in_overtime=status.is_in_overtime,
        team_a_id=status.team_a_id,
        team_a_score=status.team_a_score,
        team_b_id=status.team_b_id,
        team_b_score=status.team_b_score,
        current_lead=status.current_lead,
        leading_team_id=status.leading_team_id,
        minutes_remaining=status.minutes_remaining,
        can_win_now=status.can_win_now,
        golden_goal_progress=status.golden_goal_progress,
        overtime_start_time=status.overtime_start_time.isoformat() if status.overtime_start_time else None,
        overtime_end_time=status.overtime_end_time.isoformat() if status.overtime_end_time else None,
        winner_id=match.winner_id,
        win_condition=match.win_condition,
    )
    return OvertimeStatusResponse(
        status=ApiStatus.SUCCESS,
        message=f"Overtime status for match {match_id}",
        data=data,
    )
