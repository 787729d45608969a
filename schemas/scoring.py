from pydantic import BaseModel, Field
from typing import Optional

from .common import ApiStatus

# ------------------------------- Live Events ------------------------------- #


class ScoringPlayEvent(BaseModel):
    """One asset's point increase between two scoring passes. Pushed, never stored."""

    match_id: int
    attacking_team_id: int
    attacking_team_name: str
    defending_team_id: int
    defending_team_name: str
    asset_name: str
    asset_type: str
    points_scored: float = Field(gt=0)
    attacker_new_total: float
    defender_total: float
    image_url: Optional[str] = None
    position: Optional[str] = None


class MatchResultEvent(BaseModel):
    """Payload of golden_goal / overtime_end / match_finalized events."""

    match_id: int
    winner_id: int
    winner_team_name: str
    loser_id: int
    loser_team_name: str
    final_score: int
    loser_score: int
    win_condition: str
    win_description: str


class OvertimeStartEvent(BaseModel):
    match_id: int
    overtime_start_time: str
    overtime_end_time: str
    win_margin_required: int
    message: str


class HalftimeSnapshotEvent(BaseModel):
    match_id: int
    team_a_id: int
    team_a_score: int
    team_b_id: int
    team_b_score: int
    halftime_at: str


# ------------------------------- API Responses ------------------------------- #


class SlotScoreResponse(BaseModel):
    position: str
    asset_type: str
    asset_id: int
    points: int
    breakdown: dict


class AppliedBonusResponse(BaseModel):
    name: str
    points: int
    full_points: int


class TeamScoreData(BaseModel):
    team_id: int
    period_key: str
    scope: str
    subtotal: int
    bonus_points: int
    penalty_points: int
    total_points: int
    bonuses: list[AppliedBonusResponse] = []
    slots: list[SlotScoreResponse] = []


class TeamScoreResponse(BaseModel):
    status: ApiStatus
    message: str
    data: Optional[TeamScoreData] = None

    class Config:
        use_enum_values = True


class OvertimeStatusData(BaseModel):
    match_id: int
    status: str
    is_in_overtime: bool
    team_a_id: int
    team_a_score: int
    team_b_id: int
    team_b_score: int
    current_lead: int
    leading_team_id: Optional[int] = None
    minutes_remaining: int
    can_win_now: bool
    golden_goal_progress: float
    overtime_start_time: Optional[str] = None
    overtime_end_time: Optional[str] = None
    winner_id: Optional[int] = None
    win_condition: Optional[str] = None


class OvertimeStatusResponse(BaseModel):
    status: ApiStatus
    message: str
    data: Optional[OvertimeStatusData] = None

    class Config:
        use_enum_values = True


class MatchActionData(BaseModel):
    match_id: int
    status: str
    actions: list[str] = []
    plays_queued: int = 0
    scores: dict[str, int] = {}


class MatchActionResponse(BaseModel):
    status: ApiStatus
    message: str
    data: Optional[MatchActionData] = None

    class Config:
        use_enum_values = True
