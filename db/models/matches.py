"""
Match Model

A head-to-head challenge between two teams. Created by league management;
its lifecycle (active -> overtime -> complete) is owned by the overtime
service and the match scheduler.
"""

from datetime import datetime
from typing import Optional

from peewee import (
    AutoField,
    BooleanField,
    CharField,
    DateField,
    DateTimeField,
    ForeignKeyField,
    IntegerField,
    SmallIntegerField,
)

from db.base import BaseModel, db
from db.models.teams import Team


class MatchStatus:
    ACTIVE = "active"
    COMPLETE = "complete"


class Match(BaseModel):
    """
    Head-to-head match record.

    All datetimes are naive UTC.
    """

    id = AutoField(primary_key=True)
    team_a = ForeignKeyField(Team, backref="+", on_delete="CASCADE")
    team_b = ForeignKeyField(Team, backref="+", on_delete="CASCADE")

    # Scoring period: daily matches score period_start, weekly ones its ISO week
    scope = CharField(max_length=10, default="daily")
    period_start = DateField()

    status = CharField(max_length=20, default=MatchStatus.ACTIVE, index=True)
    start_time = DateTimeField(null=True)
    end_time = DateTimeField(null=True)
    duration_hours = SmallIntegerField(default=24)

    # Halftime
    halftime_at = DateTimeField(null=True)
    is_halftime_passed = BooleanField(default=False)
    halftime_score_a = IntegerField(null=True)
    halftime_score_b = IntegerField(null=True)

    # Overtime
    is_in_overtime = BooleanField(default=False)
    overtime_start_time = DateTimeField(null=True)
    overtime_end_time = DateTimeField(null=True)

    # Outcome
    winner = ForeignKeyField(Team, null=True, backref="+")
    win_condition = CharField(max_length=30, null=True)  # regulation, golden_goal, timeout_lead, timeout_tiebreaker
    completed_at = DateTimeField(null=True)

    created_at = DateTimeField(default=datetime.utcnow)

    class Meta:
        table_name = "matches"

    def __repr__(self):
        return (
            f"<Match(id={self.id}, teams={self.team_a_id}v{self.team_b_id}, "
            f"status={self.status}, overtime={self.is_in_overtime})>"
        )

    @property
    def is_complete(self) -> bool:
        return self.status == MatchStatus.COMPLETE

    @property
    def team_ids(self) -> tuple[int, int]:
        return (self.team_a_id, self.team_b_id)

    @classmethod
    def active(cls) -> list["Match"]:
        return list(cls.select().where(cls.status == MatchStatus.ACTIVE).order_by(cls.id))

    @classmethod
    def get_by_id_or_none(cls, match_id: int) -> Optional["Match"]:
        return cls.get_or_none(cls.id == match_id)

    @classmethod
    def for_transition(cls, match_id: int) -> Optional["Match"]:
        """Load a match for a lifecycle transition, row-locked where the backend supports it."""
        query = cls.select().where(cls.id == match_id)
        if db.for_update:
            query = query.for_update()
        return query.first()

    def _transition(self, **fields) -> bool:
        """
        Apply a lifecycle change only if the row is still in the phase this
        instance was loaded in. Returns False when another evaluator got there
        first; the instance is left untouched in that case.
        """
        claimed = (
            Match.update(**fields)
            .where(
                (Match.id == self.id)
                & (Match.status == MatchStatus.ACTIVE)
                & (Match.is_in_overtime == self.is_in_overtime)
            )
            .execute()
        )
        if claimed != 1:
            return False
        for name, value in fields.items():
            setattr(self, name, value)
        return True

    def start_overtime(self, start_time: datetime, end_time: datetime) -> bool:
        if self.is_in_overtime:
            return False
        return self._transition(
            is_in_overtime=True,
            overtime_start_time=start_time,
            overtime_end_time=end_time,
        )

    def complete(self, winner_id: int, win_condition: str, now: datetime) -> bool:
        """Terminal transition; the row is never re-evaluated afterwards."""
        return self._transition(
            status=MatchStatus.COMPLETE,
            is_in_overtime=False,
            winner=winner_id,
            win_condition=win_condition,
            completed_at=now,
        )
