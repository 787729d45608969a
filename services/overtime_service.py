"""
Overtime Service

Applies overtime engine decisions to Match rows and announces them on the
push channel. Standings come from the persisted TeamScore rows for the
match's scoring period.
"""

import asyncio
from datetime import datetime
from typing import Optional

from core.logging import get_logger
from db.base import db, run_with_connection
from db.models import Match, ScoringBreakdownRow, Team, TeamScore
from schemas.scoring import MatchResultEvent, OvertimeStartEvent
from scoring.periods import period_for
from services.overtime import (
    NO_ACTION,
    OVERTIME_WIN_MARGIN,
    MatchPhase,
    OvertimeAction,
    OvertimeDecision,
    OvertimeStatus,
    TeamStanding,
    WinCondition,
    evaluate_overtime,
    evaluate_regulation_end,
    overtime_status,
)
from services.push_transport import PushTransport

log = get_logger(__name__)


class MatchNotFoundError(LookupError):
    pass


def match_phase(match: Match) -> MatchPhase:
    if match.is_complete:
        return MatchPhase.COMPLETE
    if match.is_in_overtime:
        return MatchPhase.OVERTIME
    return MatchPhase.ACTIVE


def load_standings(match: Match) -> tuple[TeamStanding, TeamStanding]:
    """Current totals and best single-asset score for both teams."""
    period = period_for(match.scope, match.period_start)
    standings = []
    for team_id in match.team_ids:
        score = TeamScore.for_team(team_id, period.key)
        standings.append(
            TeamStanding(
                team_id=team_id,
                points=score.total_points if score else 0,
                best_asset_points=ScoringBreakdownRow.best_asset_points(score.id if score else None),
            )
        )
    return standings[0], standings[1]


def _describe(condition: WinCondition, winner_name: str, lead: int) -> str:
    if condition == WinCondition.GOLDEN_GOAL:
        return f"GOLDEN GOAL! {winner_name} wins with a {lead}-point lead!"
    if condition == WinCondition.TIMEOUT_LEAD:
        return f"Time's up! {winner_name} wins with a {lead}-point lead!"
    if condition == WinCondition.TIMEOUT_TIEBREAKER:
        return f"Tiebreaker! {winner_name} wins with the highest single-asset score!"
    return f"{winner_name} wins by {lead} points in regulation"


def _apply_decision(match_id: int, decision_fn, now: datetime):
    """
    Re-read the match, evaluate, persist, all in one transaction. Runs in a
    worker thread.

    The write is conditional on the phase that was read, so when two
    evaluators race only one of them gets the decision back; the other
    sees NO_ACTION and announces nothing.

    Returns (decision, match, standings).
    """
    with db.atomic():
        match = Match.for_transition(match_id)
        if match is None:
            raise MatchNotFoundError(f"Match {match_id} not found")
        if match.is_complete:
            return NO_ACTION, match, None

        team_a, team_b = load_standings(match)
        decision: OvertimeDecision = decision_fn(match, now, team_a, team_b)

        if decision.action == OvertimeAction.ENTER_OVERTIME:
            applied = match.start_overtime(decision.overtime_start_time, decision.overtime_end_time)
        elif decision.action == OvertimeAction.FINALIZE:
            applied = match.complete(decision.winner_id, decision.win_condition.value, now)
        else:
            return decision, match, (team_a, team_b)

    if not applied:
        log.info("match_transition_superseded", match_id=match_id, action=decision.action.value)
        return NO_ACTION, Match.get_by_id(match_id), None
    return decision, match, (team_a, team_b)


def _regulation(match: Match, now: datetime, team_a: TeamStanding, team_b: TeamStanding):
    return evaluate_regulation_end(match.end_time, now, team_a, team_b, match_phase(match))


def _overtime(match: Match, now: datetime, team_a: TeamStanding, team_b: TeamStanding):
    return evaluate_overtime(match.overtime_end_time, now, team_a, team_b, match_phase(match))


class OvertimeService:
    def __init__(self, transport: PushTransport):
        self.transport = transport

    async def check_regulation_end(self, match: Match, now: datetime) -> OvertimeDecision:
        """End-of-regulation check: enter overtime or finalize in regulation."""
        return await self._evaluate(match, _regulation, now)

    async def check_overtime(self, match: Match, now: datetime) -> OvertimeDecision:
        """Golden goal / timeout check for a match in overtime."""
        return await self._evaluate(match, _overtime, now)

    async def _evaluate(self, match: Match, decision_fn, now: datetime) -> OvertimeDecision:
        decision, fresh, standings = await asyncio.to_thread(
            run_with_connection, _apply_decision, match.id, decision_fn, now
        )
        _sync_match(match, fresh)

        if decision.action == OvertimeAction.ENTER_OVERTIME:
            await self._announce_overtime(match, decision)
        elif decision.action == OvertimeAction.FINALIZE:
            await self._announce_result(match, decision, standings)
        return decision

    async def _announce_overtime(self, match: Match, decision: OvertimeDecision) -> None:
        log.info(
            "overtime_started",
            match_id=match.id,
            lead=decision.lead,
            ends_at=decision.overtime_end_time.isoformat(),
        )
        event = OvertimeStartEvent(
            match_id=match.id,
            overtime_start_time=decision.overtime_start_time.isoformat(),
            overtime_end_time=decision.overtime_end_time.isoformat(),
            win_margin_required=OVERTIME_WIN_MARGIN,
            message=f"GOLDEN GOAL OVERTIME! First to gain a {OVERTIME_WIN_MARGIN}-point lead wins!",
        )
        await self.transport.send(match.id, "overtime_start", event.model_dump())

    async def _announce_result(
        self,
        match: Match,
        decision: OvertimeDecision,
        standings: tuple[TeamStanding, TeamStanding],
    ) -> None:
        names = await asyncio.to_thread(run_with_connection, _team_names, match.team_ids)
        by_id = {s.team_id: s for s in standings}
        winner = by_id[decision.winner_id]
        loser = by_id[decision.loser_id]
        winner_name = names.get(winner.team_id, f"Team {winner.team_id}")

        event = MatchResultEvent(
            match_id=match.id,
            winner_id=winner.team_id,
            winner_team_name=winner_name,
            loser_id=loser.team_id,
            loser_team_name=names.get(loser.team_id, f"Team {loser.team_id}"),
            final_score=winner.points,
            loser_score=loser.points,
            win_condition=decision.win_condition.value,
            win_description=_describe(decision.win_condition, winner_name, decision.lead),
        )
        log.info(
            "match_finalized",
            match_id=match.id,
            winner_id=winner.team_id,
            win_condition=decision.win_condition.value,
            lead=decision.lead,
        )

        payload = event.model_dump()
        if decision.win_condition == WinCondition.GOLDEN_GOAL:
            await self.transport.send(match.id, "golden_goal", payload)
        elif decision.win_condition in (WinCondition.TIMEOUT_LEAD, WinCondition.TIMEOUT_TIEBREAKER):
            await self.transport.send(match.id, "overtime_end", payload)
        await self.transport.send(match.id, "match_finalized", payload)

    async def get_status(self, match_id: int, now: Optional[datetime] = None) -> tuple[Match, OvertimeStatus]:
        """
        Raises:
            MatchNotFoundError: If the match does not exist
        """
        now = now or datetime.utcnow()
        match, standings = await asyncio.to_thread(run_with_connection, _load_for_status, match_id)
        status = overtime_status(
            standings[0],
            standings[1],
            now,
            is_in_overtime=match.is_in_overtime,
            overtime_start_time=match.overtime_start_time,
            overtime_end_time=match.overtime_end_time,
        )
        return match, status


def _load_for_status(match_id: int):
    match = Match.get_by_id_or_none(match_id)
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found")
    return match, load_standings(match)


def _team_names(team_ids: tuple[int, ...]) -> dict[int, str]:
    return {t.id: t.name for t in Team.select().where(Team.id.in_(list(team_ids)))}


def _sync_match(target: Match, source: Match) -> None:
    """Copy lifecycle fields from a freshly loaded row onto the caller's instance."""
    for name in (
        "status",
        "is_in_overtime",
        "overtime_start_time",
        "overtime_end_time",
        "winner_id",
        "win_condition",
        "completed_at",
    ):
        setattr(target, name, getattr(source, name))
