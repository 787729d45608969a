"""
Team Score Models

TeamScore holds one row per (team, period); recomputation upserts it.
ScoringBreakdownRow holds the per-slot audit detail for a TeamScore and is
replaced wholesale on every recomputation.
"""

import json
from datetime import datetime
from typing import Optional

from peewee import (
    AutoField,
    CharField,
    DateField,
    DateTimeField,
    ForeignKeyField,
    IntegerField,
    SmallIntegerField,
    TextField,
)

from db.base import BaseModel
from db.models.teams import Team


POSITION_FIELDS = (
    "mfg1_points",
    "mfg2_points",
    "cultivar1_points",
    "cultivar2_points",
    "product1_points",
    "product2_points",
    "retailer1_points",
    "retailer2_points",
    "brand_points",
    "flex_points",
)


class TeamScore(BaseModel):
    """
    A team's score for one scoring period.

    period_key is "YYYY-MM-DD" for daily scores and "YYYY-Www" for weekly
    ones; (team, period_key) is unique.
    """

    id = AutoField(primary_key=True)
    team = ForeignKeyField(Team, backref="scores", on_delete="CASCADE")
    period_key = CharField(max_length=10)
    scope = CharField(max_length=10)  # daily, weekly
    stat_date = DateField(null=True)
    iso_year = SmallIntegerField(null=True)
    iso_week = SmallIntegerField(null=True)

    # Post-scarcity slot points
    mfg1_points = IntegerField(default=0)
    mfg2_points = IntegerField(default=0)
    cultivar1_points = IntegerField(default=0)
    cultivar2_points = IntegerField(default=0)
    product1_points = IntegerField(default=0)
    product2_points = IntegerField(default=0)
    retailer1_points = IntegerField(default=0)
    retailer2_points = IntegerField(default=0)
    brand_points = IntegerField(default=0)
    flex_points = IntegerField(default=0)

    bonus_points = IntegerField(default=0)
    penalty_points = IntegerField(default=0)
    total_points = IntegerField(default=0)
    bonuses = TextField(default="[]")  # JSON list of applied team bonuses

    # Insert-only; an upsert never touches it
    created_at = DateTimeField(default=datetime.utcnow)

    class Meta:
        table_name = "team_scores"
        indexes = (
            (("team", "period_key"), True),  # Composite unique
        )

    def __repr__(self):
        return f"<TeamScore(team_id={self.team_id}, period='{self.period_key}', total={self.total_points})>"

    @property
    def subtotal(self) -> int:
        return sum(getattr(self, name) for name in POSITION_FIELDS)

    @property
    def applied_bonuses(self) -> list[dict]:
        return json.loads(self.bonuses or "[]")

    @classmethod
    def for_team(cls, team_id: int, period_key: str) -> Optional["TeamScore"]:
        return (
            cls.select()
            .where((cls.team == team_id) & (cls.period_key == period_key))
            .first()
        )

    @classmethod
    def totals_for(cls, team_ids: tuple[int, ...], period_key: str) -> dict[int, int]:
        """Current total per team; teams without a row score 0."""
        totals = {team_id: 0 for team_id in team_ids}
        query = cls.select(cls.team, cls.total_points).where(
            (cls.team.in_(list(team_ids))) & (cls.period_key == period_key)
        )
        for row in query:
            totals[row.team_id] = row.total_points
        return totals


class ScoringBreakdownRow(BaseModel):
    """Per-slot scoring detail for a TeamScore."""

    id = AutoField(primary_key=True)
    team_score = ForeignKeyField(TeamScore, backref="breakdowns", on_delete="CASCADE")
    position = CharField(max_length=20)
    asset_type = CharField(max_length=20)
    asset_id = IntegerField()
    total_points = IntegerField(default=0)
    breakdown = TextField()  # JSON: components, bonuses, penalties, subtotal, total

    class Meta:
        table_name = "scoring_breakdowns"
        indexes = (
            (("team_score", "position"), False),
        )

    def __repr__(self):
        return f"<ScoringBreakdownRow(score_id={self.team_score_id}, position={self.position}, points={self.total_points})>"

    @property
    def detail(self) -> dict:
        return json.loads(self.breakdown)

    @classmethod
    def for_score(cls, team_score_id: int) -> list["ScoringBreakdownRow"]:
        return list(
            cls.select()
            .where(cls.team_score == team_score_id)
            .order_by(cls.position)
        )

    @classmethod
    def best_asset_points(cls, team_score_id: Optional[int]) -> int:
        """Highest single-slot score for a TeamScore (overtime tiebreaker)."""
        if team_score_id is None:
            return 0
        row = (
            cls.select(cls.total_points)
            .where(cls.team_score == team_score_id)
            .order_by(cls.total_points.desc())
            .first()
        )
        return row.total_points if row else 0
