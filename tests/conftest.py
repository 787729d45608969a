"""Shared test fixtures.

Settings are read at import time, so the required environment variables are
defaulted before any project module is imported. Every test that touches the
database gets its own SQLite file under tmp_path.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("PIPELINE_API_TOKEN", "test-token")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import json
from datetime import date, datetime
from pathlib import Path

import pytest

from db.base import close_db, db, init_db
from db.models import (
    Asset,
    AssetDailyStat,
    BrandRatingStat,
    Lineup,
    Match,
    Team,
)
from services.push_transport import InMemoryPushTransport
from services.team_aggregator import TeamAggregator

# Wednesday of ISO week 2026-W42 (Mon 12 Oct .. Sun 18 Oct)
SCORING_DAY = date(2026, 10, 14)
PREVIOUS_DAY = date(2026, 10, 13)
WEEK_KEY = "2026-W42"

# Pools of 100 give a scarcity multiplier of exactly 1.0
NEUTRAL_POOLS = {
    "manufacturer": 100,
    "cultivar": 100,
    "product": 100,
    "retailer": 100,
    "brand": 100,
}


# ---------------------------------------------------------------------------
# Core infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def database(tmp_path: Path):
    """Fresh SQLite database with all tables created."""
    init_db(f"sqlite:///{tmp_path / 'scoring.db'}")
    yield db
    close_db()


@pytest.fixture
def transport() -> InMemoryPushTransport:
    return InMemoryPushTransport()


@pytest.fixture
def aggregator() -> TeamAggregator:
    return TeamAggregator(pool_sizes=dict(NEUTRAL_POOLS))


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

def add_trend_stat(asset: Asset, stat_date: date, **values) -> AssetDailyStat:
    defaults = {
        "order_count": 0,
        "current_rank": 0,
        "previous_rank": 0,
        "streak_days": 0,
        "market_share_percent": 0.0,
    }
    defaults.update(values)
    if isinstance(defaults.get("daily_volumes"), list):
        defaults["daily_volumes"] = json.dumps(defaults["daily_volumes"])
    return AssetDailyStat.create(asset=asset, stat_date=stat_date, **defaults)


@pytest.fixture
def league(database) -> dict:
    """
    Two teams with daily and weekly lineups.

    Hand-computed daily scores for SCORING_DAY (neutral scarcity):
        manufacturer "Northern Labs": 187
            50 orders + 50 trend + 30 rank + 16 momentum + 11 consistency
            + 7 velocity + 8 streak + 15 market share
        brand "Green Leaf": 165
            30 rating count + 85 rating quality + 50 top brand
        manufacturer "Valley Farms": 55
            30 orders + 25 neutral trend
    """
    northern = Asset.create(asset_type="manufacturer", name="Northern Labs", image_url="https://img/n.png")
    valley = Asset.create(asset_type="manufacturer", name="Valley Farms")
    green_leaf = Asset.create(asset_type="brand", name="Green Leaf")
    no_stats = Asset.create(asset_type="product", name="Ghost Product")

    # PREVIOUS_DAY: rank 3 (from 5), 2-day streak, 3% share -> 163
    add_trend_stat(
        northern,
        PREVIOUS_DAY,
        order_count=10,
        trend_multiplier=2.0,
        current_rank=3,
        previous_rank=5,
        streak_days=2,
        market_share_percent=3.0,
        consistency_score=57,
        velocity_score=50,
    )
    # SCORING_DAY: rank 1 (from 3), 4-day streak, 9% share -> 187
    add_trend_stat(
        northern,
        SCORING_DAY,
        order_count=10,
        trend_multiplier=2.0,
        current_rank=1,
        previous_rank=3,
        streak_days=4,
        market_share_percent=9.0,
        consistency_score=57,
        velocity_score=50,
    )
    # 6 orders x 5 = 30, both volumes zero -> neutral 1.0 x 25 = 25 -> 55
    add_trend_stat(valley, SCORING_DAY, order_count=6, days1=0, days7=0)

    BrandRatingStat.create(
        asset=green_leaf,
        stat_date=SCORING_DAY,
        total_ratings=3,
        average_rating=4.5,
        bayesian_average=4.25,
        rank=1,
    )

    alpha = Team.create(name="Alpha")
    bravo = Team.create(name="Bravo")
    empty = Team.create(name="Benchwarmers")

    Lineup.create(team=alpha, period_key=SCORING_DAY.isoformat(), mfg1=northern, brand=green_leaf)
    Lineup.create(team=bravo, period_key=SCORING_DAY.isoformat(), mfg1=valley, product1=no_stats)
    Lineup.create(team=alpha, period_key=WEEK_KEY, mfg1=northern)

    return {
        "northern": northern,
        "valley": valley,
        "green_leaf": green_leaf,
        "no_stats": no_stats,
        "alpha": alpha,
        "bravo": bravo,
        "empty": empty,
    }


@pytest.fixture
def match(league) -> Match:
    """Active 24h daily match between Alpha and Bravo for SCORING_DAY."""
    return Match.create(
        team_a=league["alpha"],
        team_b=league["bravo"],
        scope="daily",
        period_start=SCORING_DAY,
        start_time=datetime(2026, 10, 14, 6, 0),
        end_time=datetime(2026, 10, 15, 6, 0),
        duration_hours=24,
    )
