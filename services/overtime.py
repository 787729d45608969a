"""
Overtime Engine

Pure state machine for match completion. No I/O: takes current standings and
times, returns a decision. overtime_service applies decisions to Match rows.

    ACTIVE --(end time, |diff| <= 50)--> OVERTIME --(lead >= 25)--> COMPLETE (golden_goal)
    ACTIVE --(end time, |diff| > 50)---> COMPLETE (regulation)
    OVERTIME --(1h window elapsed)-----> COMPLETE (timeout_lead | timeout_tiebreaker)

COMPLETE is terminal.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


OVERTIME_TRIGGER_THRESHOLD = 50
OVERTIME_WIN_MARGIN = 25
OVERTIME_DURATION = timedelta(hours=1)


class MatchPhase(str, Enum):
    ACTIVE = "active"
    OVERTIME = "overtime"
    COMPLETE = "complete"


class WinCondition(str, Enum):
    REGULATION = "regulation"
    GOLDEN_GOAL = "golden_goal"
    TIMEOUT_LEAD = "timeout_lead"
    TIMEOUT_TIEBREAKER = "timeout_tiebreaker"


class OvertimeAction(str, Enum):
    NONE = "none"
    ENTER_OVERTIME = "enter_overtime"
    FINALIZE = "finalize"


@dataclass(frozen=True)
class TeamStanding:
    team_id: int
    points: int
    best_asset_points: int = 0


@dataclass(frozen=True)
class OvertimeDecision:
    action: OvertimeAction
    winner_id: Optional[int] = None
    loser_id: Optional[int] = None
    win_condition: Optional[WinCondition] = None
    overtime_start_time: Optional[datetime] = None
    overtime_end_time: Optional[datetime] = None
    lead: int = 0


NO_ACTION = OvertimeDecision(action=OvertimeAction.NONE)


def _finalize(
    winner: TeamStanding, loser: TeamStanding, condition: WinCondition
) -> OvertimeDecision:
    return OvertimeDecision(
        action=OvertimeAction.FINALIZE,
        winner_id=winner.team_id,
        loser_id=loser.team_id,
        win_condition=condition,
        lead=winner.points - loser.points,
    )


def _leader(a: TeamStanding, b: TeamStanding) -> tuple[TeamStanding, TeamStanding]:
    return (a, b) if a.points >= b.points else (b, a)


def evaluate_regulation_end(
    end_time: Optional[datetime],
    now: datetime,
    team_a: TeamStanding,
    team_b: TeamStanding,
    phase: MatchPhase = MatchPhase.ACTIVE,
) -> OvertimeDecision:
    """
    End-of-regulation check.

    Only acts on an ACTIVE match at or after its configured end time.
    """
    if phase != MatchPhase.ACTIVE or end_time is None or now < end_time:
        return NO_ACTION

    diff = abs(team_a.points - team_b.points)
    if diff <= OVERTIME_TRIGGER_THRESHOLD:
        return OvertimeDecision(
            action=OvertimeAction.ENTER_OVERTIME,
            overtime_start_time=now,
            overtime_end_time=now + OVERTIME_DURATION,
            lead=diff,
        )

    winner, loser = _leader(team_a, team_b)
    return _finalize(winner, loser, WinCondition.REGULATION)


def resolve_timeout(team_a: TeamStanding, team_b: TeamStanding) -> OvertimeDecision:
    """
    Winner once the overtime window has elapsed.

    Totals decide first, then each team's best single asset. When that is
    tied as well, the lower team id wins so the outcome stays deterministic.
    """
    if team_a.points != team_b.points:
        winner, loser = _leader(team_a, team_b)
        return _finalize(winner, loser, WinCondition.TIMEOUT_LEAD)

    if team_a.best_asset_points != team_b.best_asset_points:
        if team_a.best_asset_points > team_b.best_asset_points:
            winner, loser = team_a, team_b
        else:
            winner, loser = team_b, team_a
    elif team_a.team_id < team_b.team_id:
        winner, loser = team_a, team_b
    else:
        winner, loser = team_b, team_a
    return _finalize(winner, loser, WinCondition.TIMEOUT_TIEBREAKER)


def evaluate_overtime(
    overtime_end_time: Optional[datetime],
    now: datetime,
    team_a: TeamStanding,
    team_b: TeamStanding,
    phase: MatchPhase = MatchPhase.OVERTIME,
) -> OvertimeDecision:
    """
    Overtime poll: golden goal first, then timeout.

    A lead of 25 or more ends the match immediately, even on the poll that
    also observes the window expiring.
    """
    if phase != MatchPhase.OVERTIME:
        return NO_ACTION

    if abs(team_a.points - team_b.points) >= OVERTIME_WIN_MARGIN:
        winner, loser = _leader(team_a, team_b)
        return _finalize(winner, loser, WinCondition.GOLDEN_GOAL)

    if overtime_end_time is not None and now >= overtime_end_time:
        return resolve_timeout(team_a, team_b)

    return NO_ACTION


@dataclass(frozen=True)
class OvertimeStatus:
    is_in_overtime: bool
    team_a_id: int
    team_a_score: int
    team_b_id: int
    team_b_score: int
    current_lead: int
    leading_team_id: Optional[int]
    minutes_remaining: int
    can_win_now: bool
    golden_goal_progress: float
    overtime_start_time: Optional[datetime] = None
    overtime_end_time: Optional[datetime] = None


def overtime_status(
    team_a: TeamStanding,
    team_b: TeamStanding,
    now: datetime,
    is_in_overtime: bool,
    overtime_start_time: Optional[datetime] = None,
    overtime_end_time: Optional[datetime] = None,
) -> OvertimeStatus:
    current_lead = abs(team_a.points - team_b.points)
    if team_a.points > team_b.points:
        leading_team_id = team_a.team_id
    elif team_b.points > team_a.points:
        leading_team_id = team_b.team_id
    else:
        leading_team_id = None

    minutes_remaining = 0
    if is_in_overtime and overtime_end_time is not None:
        seconds_left = (overtime_end_time - now).total_seconds()
        minutes_remaining = max(0, math.ceil(seconds_left / 60))

    return OvertimeStatus(
        is_in_overtime=is_in_overtime,
        team_a_id=team_a.team_id,
        team_a_score=team_a.points,
        team_b_id=team_b.team_id,
        team_b_score=team_b.points,
        current_lead=current_lead,
        leading_team_id=leading_team_id,
        minutes_remaining=minutes_remaining,
        can_win_now=current_lead >= OVERTIME_WIN_MARGIN,
        golden_goal_progress=min(100.0, current_lead / OVERTIME_WIN_MARGIN * 100),
        overtime_start_time=overtime_start_time,
        overtime_end_time=overtime_end_time,
    )


def get_overtime_config() -> dict:
    return {
        "trigger_threshold": OVERTIME_TRIGGER_THRESHOLD,
        "win_margin": OVERTIME_WIN_MARGIN,
        "duration_minutes": int(OVERTIME_DURATION.total_seconds() // 60),
    }
