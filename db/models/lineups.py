from typing import Optional

from peewee import (
    AutoField,
    CharField,
    ForeignKeyField,
)
from core.logging import get_logger
from db.base import BaseModel
from db.models.assets import Asset
from db.models.teams import Team

log = get_logger(__name__)


# Fixed slot layout: (slot field, archetype). The flex slot takes any
# archetype and is scored as the archetype of the asset it holds; flex_type
# is the roster's label for it and only cross-checked.
LINEUP_SLOTS: tuple[tuple[str, Optional[str]], ...] = (
    ("mfg1", "manufacturer"),
    ("mfg2", "manufacturer"),
    ("cultivar1", "cultivar"),
    ("cultivar2", "cultivar"),
    ("product1", "product"),
    ("product2", "product"),
    ("retailer1", "retailer"),
    ("retailer2", "retailer"),
    ("brand", "brand"),
    ("flex", None),
)


class Lineup(BaseModel):
    """
    A team's slot-to-asset assignment for one scoring period.

    Owned by the roster subsystem; the scoring engine only reads it.
    """

    id = AutoField(primary_key=True)
    team = ForeignKeyField(Team, backref="lineups", on_delete="CASCADE")
    period_key = CharField(max_length=10)  # "2026-10-17" or "2026-W42"

    mfg1 = ForeignKeyField(Asset, null=True, backref="+")
    mfg2 = ForeignKeyField(Asset, null=True, backref="+")
    cultivar1 = ForeignKeyField(Asset, null=True, backref="+")
    cultivar2 = ForeignKeyField(Asset, null=True, backref="+")
    product1 = ForeignKeyField(Asset, null=True, backref="+")
    product2 = ForeignKeyField(Asset, null=True, backref="+")
    retailer1 = ForeignKeyField(Asset, null=True, backref="+")
    retailer2 = ForeignKeyField(Asset, null=True, backref="+")
    brand = ForeignKeyField(Asset, null=True, backref="+")
    flex = ForeignKeyField(Asset, null=True, backref="+")
    flex_type = CharField(max_length=20, null=True)

    class Meta:
        table_name = "lineups"
        indexes = (
            (("team", "period_key"), True),
        )

    def __repr__(self):
        return f"<Lineup(id={self.id}, team_id={self.team_id}, period='{self.period_key}')>"

    def slot_assignments(self) -> list[tuple[str, str, int]]:
        """Populated slots as (position, archetype, asset_id), in slot order."""
        assigned = []
        for slot, archetype in LINEUP_SLOTS:
            asset_id = getattr(self, f"{slot}_id")
            if asset_id is None:
                continue
            if archetype is None:
                archetype = self._flex_archetype(asset_id)
            assigned.append((slot, archetype, asset_id))
        return assigned

    def _flex_archetype(self, asset_id: int) -> str:
        asset_type = self.flex.asset_type
        if self.flex_type is None:
            log.warning("flex_type_missing", lineup_id=self.id, asset_id=asset_id, asset_type=asset_type)
        elif self.flex_type != asset_type:
            log.warning(
                "flex_type_mismatch",
                lineup_id=self.id,
                asset_id=asset_id,
                flex_type=self.flex_type,
                asset_type=asset_type,
            )
        return asset_type

    @classmethod
    def for_team(cls, team_id: int, period_key: str) -> Optional["Lineup"]:
        return (
            cls.select()
            .where((cls.team == team_id) & (cls.period_key == period_key))
            .first()
        )

    @classmethod
    def team_ids_for_period(cls, period_key: str) -> list[int]:
        return [
            row.team_id
            for row in cls.select(cls.team).where(cls.period_key == period_key).order_by(cls.team)
        ]
