"""Tests for services.score_broadcaster."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import SCORING_DAY
from scoring.periods import daily_period
from services.push_transport import InMemoryPushTransport
from services.score_broadcaster import (
    SCORING_PLAY_EVENT,
    AssetScore,
    MatchSnapshot,
    ScoreBroadcaster,
    TeamSnapshot,
    detect_scoring_plays,
    load_match_snapshot,
)

MATCH_ID = 7


def snapshot(a_assets: dict[str, float], b_assets: dict[str, float], teams=(1, 2)) -> MatchSnapshot:
    result = MatchSnapshot()
    for team_id, assets in zip(teams, (a_assets, b_assets)):
        team = TeamSnapshot(team_id=team_id, team_name=f"Team {team_id}", total_points=sum(assets.values()))
        for i, (name, points) in enumerate(assets.items()):
            entry = AssetScore("manufacturer", team_id * 100 + i, name, f"mfg{i + 1}", points)
            team.assets[entry.key] = entry
        result.teams[team_id] = team
    return result


class FailingTransport(InMemoryPushTransport):
    async def send(self, match_id, event_type, payload):
        raise ConnectionError("push endpoint unreachable")


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def broadcaster(transport, sleep):
    return ScoreBroadcaster(transport, window_minutes=10, min_interval_seconds=15, sleep=sleep)


async def _drain(broadcaster: ScoreBroadcaster) -> None:
    await asyncio.gather(*broadcaster._tasks.values())


class TestDetectScoringPlays:
    def test_no_baseline_yields_nothing(self):
        assert detect_scoring_plays(MATCH_ID, None, snapshot({"A": 10}, {"B": 10})) == []

    def test_threshold(self):
        before = snapshot({"A": 10.0, "C": 5.0}, {"B": 10.0})
        after = snapshot({"A": 10.4, "C": 5.6}, {"B": 10.0})

        plays = detect_scoring_plays(MATCH_ID, before, after)

        assert [(p.asset_name, p.points_scored) for p in plays] == [("C", 0.6)]
        assert plays[0].attacking_team_id == 1
        assert plays[0].defending_team_id == 2
        assert plays[0].defender_total == 10.0

    def test_plays_ordered_smallest_first(self):
        before = snapshot({"A": 0, "C": 0}, {"B": 0})
        after = snapshot({"A": 30, "C": 4}, {"B": 12})

        plays = detect_scoring_plays(MATCH_ID, before, after)
        assert [p.points_scored for p in plays] == [4, 12, 30]

    def test_new_asset_counts_from_zero(self):
        before = snapshot({}, {"B": 10})
        after = snapshot({"A": 8}, {"B": 10})
        (play,) = detect_scoring_plays(MATCH_ID, before, after)
        assert play.asset_name == "A" and play.points_scored == 8

    def test_drop_is_not_a_play(self):
        assert detect_scoring_plays(MATCH_ID, snapshot({"A": 20}, {"B": 5}), snapshot({"A": 12}, {"B": 5})) == []

    def test_team_mismatch_yields_nothing(self):
        before = snapshot({"A": 0}, {"B": 0}, teams=(1, 2))
        after = snapshot({"A": 50}, {"B": 50}, teams=(1, 3))
        assert detect_scoring_plays(MATCH_ID, before, after) == []


class TestScoreBroadcaster:
    @pytest.mark.asyncio
    async def test_first_pass_is_a_silent_baseline(self, broadcaster, transport):
        assert await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 10}, {"B": 10})) == 0
        assert broadcaster.has_baseline(MATCH_ID)
        assert transport.events == []

    @pytest.mark.asyncio
    async def test_small_gain_emits_nothing(self, broadcaster, transport):
        await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 10}, {"B": 10}))
        assert await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 10.4}, {"B": 10})) == 0
        assert transport.events == []

    @pytest.mark.asyncio
    async def test_single_play_sent_immediately(self, broadcaster, transport, sleep):
        await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 10}, {"B": 10}))

        assert await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 10.6}, {"B": 10})) == 1

        (event,) = transport.events
        assert event.event_type == SCORING_PLAY_EVENT
        assert event.payload["points_scored"] == 0.6
        assert broadcaster.pending_play_count(MATCH_ID) == 0
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_batch_is_paced_over_window(self, broadcaster, transport, sleep):
        await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 0, "C": 0}, {"B": 0}))
        queued = await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 30, "C": 4}, {"B": 12}))

        assert queued == 3
        assert len(transport.events) == 1
        await _drain(broadcaster)

        assert [e.payload["points_scored"] for e in transport.events] == [4, 12, 30]
        # 10 minute window over 3 plays
        assert [c.args[0] for c in sleep.await_args_list] == [200.0, 200.0]

    @pytest.mark.asyncio
    async def test_failed_delivery_is_dropped(self, sleep):
        broadcaster = ScoreBroadcaster(FailingTransport(), window_minutes=10, min_interval_seconds=15, sleep=sleep)
        await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 0}, {"B": 0}))

        assert await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 5}, {"B": 0})) == 1
        assert broadcaster.pending_play_count(MATCH_ID) == 0

    @pytest.mark.asyncio
    async def test_clear_match_forgets_everything(self, broadcaster):
        await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 0, "C": 0}, {"B": 0}))
        await broadcaster.process_snapshot(MATCH_ID, snapshot({"A": 30, "C": 4}, {"B": 12}))

        broadcaster.clear_match(MATCH_ID)

        assert not broadcaster.has_baseline(MATCH_ID)
        assert broadcaster.pending_play_count(MATCH_ID) == 0
        assert MATCH_ID not in broadcaster._tasks

    def test_interval(self, broadcaster):
        assert broadcaster.interval_for(1) == 600
        assert broadcaster.interval_for(100) == 15
        assert broadcaster.interval_for(0) == 15


class TestSnapshotLoading:
    @pytest.mark.asyncio
    async def test_incomplete_match_has_no_snapshot(self, match, broadcaster):
        assert load_match_snapshot(match, SCORING_DAY.isoformat()) is None
        assert await broadcaster.detect_and_queue_plays(match, SCORING_DAY.isoformat()) == 0
        assert not broadcaster.has_baseline(match.id)

    def test_snapshot_from_persisted_scores(self, match, aggregator):
        for team_id in match.team_ids:
            aggregator.score_team(team_id, daily_period(SCORING_DAY))

        loaded = load_match_snapshot(match, SCORING_DAY.isoformat())

        alpha = loaded.teams[match.team_a_id]
        assert alpha.team_name == "Alpha"
        assert alpha.total_points == 352.0
        names = {a.asset_name: a.points for a in alpha.assets.values()}
        assert names == {"Northern Labs": 187.0, "Green Leaf": 165.0}
