"""
Score Broadcaster

Turns successive scoring passes into a paced play-by-play feed:

1. After each rescoring pass, load the match's (team, asset) -> points snapshot
2. Diff it against the previous in-memory snapshot for that match
3. Every asset that gained more than 0.5 points becomes a ScoringPlayEvent
4. Drip-feed the plays: first one immediately, the rest spaced evenly over
   the broadcast window (never closer than the minimum interval)

Snapshots, queues and timers are process-local and ephemeral. This is a cache
with rebuild-on-miss semantics: after a restart, the next pass silently
re-baselines and emits nothing.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from core.logging import get_logger
from core.settings import settings
from db.base import run_with_connection
from db.models import Asset, Match, ScoringBreakdownRow, Team, TeamScore
from schemas.scoring import ScoringPlayEvent
from services.push_transport import PushTransport

log = get_logger(__name__)

PLAY_THRESHOLD = 0.5
SCORING_PLAY_EVENT = "scoring_play"


@dataclass(frozen=True)
class AssetScore:
    asset_type: str
    asset_id: int
    asset_name: str
    position: str
    points: float
    image_url: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.asset_type}:{self.asset_id}"


@dataclass
class TeamSnapshot:
    team_id: int
    team_name: str
    total_points: float
    assets: dict[str, AssetScore] = field(default_factory=dict)


@dataclass
class MatchSnapshot:
    teams: dict[int, TeamSnapshot] = field(default_factory=dict)


def load_match_snapshot(match: Match, period_key: str) -> Optional[MatchSnapshot]:
    """
    Current persisted scores for both teams of a match.

    Returns None until both teams have a TeamScore for the period.
    """
    scores = list(
        TeamScore.select(TeamScore, Team)
        .join(Team)
        .where(
            (TeamScore.team.in_(list(match.team_ids)))
            & (TeamScore.period_key == period_key)
        )
    )
    if len(scores) < 2:
        return None

    rows_by_score = {score.id: ScoringBreakdownRow.for_score(score.id) for score in scores}
    asset_ids = [row.asset_id for rows in rows_by_score.values() for row in rows]
    assets = Asset.names_for(asset_ids)

    snapshot = MatchSnapshot()
    for score in scores:
        team = TeamSnapshot(
            team_id=score.team_id,
            team_name=score.team.name or f"Team {score.team_id}",
            total_points=float(score.total_points or 0),
        )
        for row in rows_by_score[score.id]:
            asset = assets.get(row.asset_id)
            entry = AssetScore(
                asset_type=row.asset_type,
                asset_id=row.asset_id,
                asset_name=asset.name if asset else f"Asset {row.asset_id}",
                position=row.position or "unknown",
                points=float(row.total_points or 0),
                image_url=asset.image_url if asset else None,
            )
            team.assets[entry.key] = entry
        snapshot.teams[team.team_id] = team
    return snapshot


def detect_scoring_plays(
    match_id: int,
    previous: Optional[MatchSnapshot],
    current: MatchSnapshot,
) -> list[ScoringPlayEvent]:
    """
    Plays between two snapshots, smallest gain first.

    The first pass (no previous snapshot) and a team mismatch both yield
    nothing: the current snapshot just becomes the new baseline.
    """
    team_ids = list(current.teams)
    if len(team_ids) < 2 or previous is None:
        return []

    if set(team_ids) != set(previous.teams):
        log.warning(
            "broadcaster_team_mismatch",
            match_id=match_id,
            previous=sorted(previous.teams),
            current=sorted(team_ids),
        )
        return []

    plays = []
    for team_id, team in current.teams.items():
        opponent_id = next(t for t in team_ids if t != team_id)
        opponent = current.teams[opponent_id]
        previous_team = previous.teams[team_id]

        for key, asset in team.assets.items():
            previous_asset = previous_team.assets.get(key)
            previous_points = previous_asset.points if previous_asset else 0.0
            # A gain can never exceed what the asset holds now
            delta = min(asset.points - previous_points, asset.points)
            if delta <= PLAY_THRESHOLD:
                continue
            plays.append(
                ScoringPlayEvent(
                    match_id=match_id,
                    attacking_team_id=team_id,
                    attacking_team_name=team.team_name,
                    defending_team_id=opponent_id,
                    defending_team_name=opponent.team_name,
                    asset_name=asset.asset_name,
                    asset_type=asset.asset_type,
                    points_scored=round(delta, 1),
                    attacker_new_total=team.total_points,
                    defender_total=opponent.total_points,
                    image_url=asset.image_url,
                    position=asset.position,
                )
            )

    plays.sort(key=lambda play: play.points_scored)
    return plays


class ScoreBroadcaster:
    """Per-match snapshot diffing and paced delivery of scoring plays."""

    def __init__(
        self,
        transport: PushTransport,
        window_minutes: Optional[float] = None,
        min_interval_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.window_minutes = (
            settings.broadcast_window_minutes if window_minutes is None else window_minutes
        )
        self.min_interval_seconds = (
            settings.broadcast_min_interval_seconds
            if min_interval_seconds is None
            else min_interval_seconds
        )
        self._sleep = sleep
        self._snapshots: dict[int, MatchSnapshot] = {}
        self._pending: dict[int, deque[ScoringPlayEvent]] = {}
        self._tasks: dict[int, asyncio.Task] = {}

    def interval_for(self, play_count: int) -> float:
        """Seconds between consecutive plays of one batch."""
        if play_count <= 0:
            return self.min_interval_seconds
        return max(self.min_interval_seconds, self.window_minutes * 60 / play_count)

    async def detect_and_queue_plays(self, match: Match, period_key: str) -> int:
        """
        Load the match's current snapshot, diff it, and queue any plays.

        Broadcaster failures never propagate into scoring: they are logged
        and count as zero plays.
        """
        try:
            snapshot = await asyncio.to_thread(
                run_with_connection, load_match_snapshot, match, period_key
            )
        except Exception as e:
            log.error("broadcaster_snapshot_failed", match_id=match.id, error=str(e))
            return 0

        if snapshot is None:
            log.debug("broadcaster_snapshot_incomplete", match_id=match.id)
            return 0
        return await self.process_snapshot(match.id, snapshot)

    async def process_snapshot(self, match_id: int, snapshot: MatchSnapshot) -> int:
        previous = self._snapshots.get(match_id)
        plays = detect_scoring_plays(match_id, previous, snapshot)
        self._snapshots[match_id] = snapshot

        if previous is None:
            log.info("broadcaster_baseline_stored", match_id=match_id, teams=len(snapshot.teams))
        if not plays:
            return 0

        await self._queue_plays(match_id, plays)
        return len(plays)

    async def _queue_plays(self, match_id: int, plays: list[ScoringPlayEvent]) -> None:
        # A new batch replaces whatever is still pending for this match
        self._cancel_task(match_id)
        self._pending[match_id] = deque(plays)

        interval = self.interval_for(len(plays))
        log.info(
            "broadcaster_plays_queued",
            match_id=match_id,
            plays=len(plays),
            interval_seconds=round(interval, 1),
        )

        await self._broadcast_next(match_id)
        if self._pending.get(match_id):
            self._tasks[match_id] = asyncio.create_task(self._drip(match_id, interval))

    async def _drip(self, match_id: int, interval: float) -> None:
        try:
            while self._pending.get(match_id):
                await self._sleep(interval)
                await self._broadcast_next(match_id)
            log.info("broadcaster_batch_finished", match_id=match_id)
        finally:
            if self._tasks.get(match_id) is asyncio.current_task():
                del self._tasks[match_id]

    async def _broadcast_next(self, match_id: int) -> None:
        pending = self._pending.get(match_id)
        if not pending:
            return
        play = pending.popleft()
        try:
            await self.transport.send(match_id, SCORING_PLAY_EVENT, play.model_dump())
        except Exception as e:
            # Plays are transient: a failed delivery is dropped, not retried
            log.warning(
                "scoring_play_delivery_failed",
                match_id=match_id,
                asset=play.asset_name,
                error=str(e),
            )
            return
        log.debug(
            "scoring_play_sent",
            match_id=match_id,
            asset=play.asset_name,
            points=play.points_scored,
            remaining=len(pending),
        )

    def _cancel_task(self, match_id: int) -> None:
        task = self._tasks.pop(match_id, None)
        if task is not None and not task.done():
            task.cancel()

    def pending_play_count(self, match_id: int) -> int:
        return len(self._pending.get(match_id, ()))

    def has_baseline(self, match_id: int) -> bool:
        return match_id in self._snapshots

    def clear_match(self, match_id: int) -> None:
        """Cancel pending delivery and drop all state for a finished match."""
        self._cancel_task(match_id)
        self._snapshots.pop(match_id, None)
        self._pending.pop(match_id, None)
        log.info("broadcaster_match_cleared", match_id=match_id)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for match_id in list(self._tasks):
            self._cancel_task(match_id)
        await asyncio.gather(*tasks, return_exceptions=True)

