"""
Asset Reference Models

Scoreable assets and the per-day metrics the upstream aggregation job writes
for them. The scoring engine only ever reads these tables.
"""

import json
from datetime import date
from typing import Optional

from peewee import (
    AutoField,
    CharField,
    DateField,
    DecimalField,
    FloatField,
    ForeignKeyField,
    IntegerField,
    SmallIntegerField,
    TextField,
    fn,
)

from db.base import BaseModel


ASSET_TYPES = ("manufacturer", "cultivar", "product", "retailer", "brand")


class Asset(BaseModel):
    """A scoreable entity: manufacturer, cultivar, product, retailer, or brand."""

    id = AutoField(primary_key=True)
    asset_type = CharField(max_length=20, index=True)
    name = CharField(max_length=200)
    image_url = CharField(max_length=500, null=True)

    class Meta:
        table_name = "assets"

    def __repr__(self):
        return f"<Asset(id={self.id}, type={self.asset_type}, name='{self.name}')>"

    @classmethod
    def pool_sizes(cls) -> dict[str, int]:
        """Count assets per archetype (drives the scarcity multiplier)."""
        query = (
            cls.select(cls.asset_type, fn.COUNT(cls.id).alias("n"))
            .group_by(cls.asset_type)
            .tuples()
        )
        return {asset_type: n for asset_type, n in query}

    @classmethod
    def names_for(cls, asset_ids: list[int]) -> dict[int, "Asset"]:
        """Bulk lookup of assets by id."""
        if not asset_ids:
            return {}
        return {a.id: a for a in cls.select().where(cls.id.in_(asset_ids))}


class AssetDailyStat(BaseModel):
    """
    One row per (asset, calendar date).

    Written by the daily aggregation job and immutable once the day is
    finalized. Optional columns are recomputed from the raw volume series
    when the job did not precompute them.
    """

    asset = ForeignKeyField(Asset, backref="daily_stats", on_delete="CASCADE")
    stat_date = DateField()

    order_count = IntegerField(default=0)
    current_rank = SmallIntegerField(default=0)  # 1-based, 0 = unranked
    previous_rank = SmallIntegerField(default=0)
    streak_days = SmallIntegerField(default=0)  # consecutive top-10 days
    market_share_percent = FloatField(default=0.0)

    # Precomputed trend features (nullable)
    trend_multiplier = FloatField(null=True)
    consistency_score = FloatField(null=True)  # 0-100
    velocity_score = FloatField(null=True)  # signed acceleration

    # Raw cumulative volumes for recomputation
    days1 = FloatField(null=True)
    days7 = FloatField(null=True)
    days14 = FloatField(null=True)
    daily_volumes = TextField(null=True)  # JSON list, last 7 days

    class Meta:
        table_name = "asset_daily_stats"
        indexes = (
            (("asset", "stat_date"), True),  # Composite unique
        )

    def __repr__(self):
        return f"<AssetDailyStat(asset_id={self.asset_id}, date={self.stat_date}, orders={self.order_count})>"

    @property
    def volume_series(self) -> Optional[list[float]]:
        if not self.daily_volumes:
            return None
        return json.loads(self.daily_volumes)

    @classmethod
    def for_asset_on(cls, asset_id: int, stat_date: date) -> Optional["AssetDailyStat"]:
        return (
            cls.select()
            .where((cls.asset == asset_id) & (cls.stat_date == stat_date))
            .first()
        )

    @classmethod
    def for_asset_between(
        cls, asset_id: int, start: date, end: date
    ) -> list["AssetDailyStat"]:
        """All rows for an asset in [start, end], oldest first."""
        return list(
            cls.select()
            .where(
                (cls.asset == asset_id)
                & (cls.stat_date >= start)
                & (cls.stat_date <= end)
            )
            .order_by(cls.stat_date)
        )


class BrandRatingStat(BaseModel):
    """Daily user-rating aggregates for brand assets."""

    asset = ForeignKeyField(Asset, backref="rating_stats", on_delete="CASCADE")
    stat_date = DateField()

    total_ratings = IntegerField(default=0)
    average_rating = DecimalField(max_digits=4, decimal_places=2, default=0)
    bayesian_average = DecimalField(max_digits=4, decimal_places=2, default=0)
    rank = SmallIntegerField(default=0)  # rank by ratings, 0 = unranked

    class Meta:
        table_name = "brand_rating_stats"
        indexes = (
            (("asset", "stat_date"), True),
        )

    def __repr__(self):
        return f"<BrandRatingStat(asset_id={self.asset_id}, date={self.stat_date}, ratings={self.total_ratings})>"

    @classmethod
    def for_asset_on(cls, asset_id: int, stat_date: date) -> Optional["BrandRatingStat"]:
        return (
            cls.select()
            .where((cls.asset == asset_id) & (cls.stat_date == stat_date))
            .first()
        )

    @classmethod
    def for_asset_between(
        cls, asset_id: int, start: date, end: date
    ) -> list["BrandRatingStat"]:
        return list(
            cls.select()
            .where(
                (cls.asset == asset_id)
                & (cls.stat_date >= start)
                & (cls.stat_date <= end)
            )
            .order_by(cls.stat_date)
        )
