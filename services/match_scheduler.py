"""
Match Scheduler

One periodic loop drives every active match. Each tick runs, per match:

    1. rescoring (every rescore_interval_minutes, both teams concurrently),
       followed by the broadcaster diff
    2. halftime snapshot (once)
    3. end-of-regulation check (once, at/after the end time)
    4. overtime golden-goal / timeout poll

Matches are processed independently: an error is logged against its match
and the tick moves on. Per-match progress lives in an explicit MatchState
owned by the scheduler; completed matches drop their state and broadcaster
cache.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from core.logging import get_logger, match_context, new_correlation_id
from core.settings import settings
from db.base import run_with_connection
from db.models import Match
from scoring.periods import period_for
from services.halftime_service import HalftimeService, halftime_due
from services.overtime_service import MatchNotFoundError, OvertimeService
from services.score_broadcaster import ScoreBroadcaster
from services.team_aggregator import TeamAggregator

log = get_logger(__name__)


@dataclass
class MatchState:
    last_rescored_at: Optional[datetime] = None
    halftime_done: bool = False
    regulation_checked: bool = False


@dataclass
class TickResult:
    started_at: datetime
    matches: int = 0
    failed: list[int] = field(default_factory=list)
    completed: list[int] = field(default_factory=list)


@dataclass
class MatchActions:
    rescored: bool = False
    plays_queued: int = 0
    halftime: bool = False
    overtime_action: Optional[str] = None

    def names(self) -> list[str]:
        actions = []
        if self.rescored:
            actions.append("rescored")
        if self.halftime:
            actions.append("halftime_snapshot")
        if self.overtime_action and self.overtime_action != "none":
            actions.append(self.overtime_action)
        return actions


class MatchScheduler:
    def __init__(
        self,
        aggregator: TeamAggregator,
        broadcaster: ScoreBroadcaster,
        halftime: HalftimeService,
        overtime: OvertimeService,
        tick_seconds: Optional[int] = None,
        rescore_interval: Optional[timedelta] = None,
    ):
        self.aggregator = aggregator
        self.broadcaster = broadcaster
        self.halftime = halftime
        self.overtime = overtime
        self.tick_seconds = tick_seconds or settings.scheduler_tick_seconds
        self.rescore_interval = rescore_interval or timedelta(
            minutes=settings.rescore_interval_minutes
        )
        self._states: dict[int, MatchState] = {}
        self._task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            log.info("scheduler_already_running")
            return
        self._task = asyncio.create_task(self._run())
        log.info("scheduler_started", tick_seconds=self.tick_seconds)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.broadcaster.shutdown()
        log.info("scheduler_stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception as e:
                # A failed tick (e.g. database down) is retried on the next one
                log.error("scheduler_tick_failed", error=str(e), error_type=type(e).__name__)
            await asyncio.sleep(self.tick_seconds)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def state_for(self, match_id: int) -> MatchState:
        return self._states.setdefault(match_id, MatchState())

    async def tick(self, now: Optional[datetime] = None) -> TickResult:
        now = now or datetime.utcnow()
        new_correlation_id("tick-")
        result = TickResult(started_at=now)

        matches = await asyncio.to_thread(run_with_connection, Match.active)
        result.matches = len(matches)

        active_ids = {m.id for m in matches}
        for match_id in list(self._states):
            if match_id not in active_ids:
                self._forget(match_id)

        for match in matches:
            with match_context(match.id):
                try:
                    await self.process_match(match, now)
                except Exception as e:
                    result.failed.append(match.id)
                    log.error(
                        "match_processing_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue
            if match.is_complete:
                result.completed.append(match.id)
                self._forget(match.id)

        log.info(
            "scheduler_tick_complete",
            matches=result.matches,
            failed=len(result.failed),
            completed=len(result.completed),
        )
        return result

    def _rescore_due(self, match: Match, state: MatchState, now: datetime) -> bool:
        if state.last_rescored_at is None:
            return True
        if now - state.last_rescored_at >= self.rescore_interval:
            return True
        # Fresh totals before the end-of-regulation decision
        return (
            not state.regulation_checked
            and match.end_time is not None
            and state.last_rescored_at < match.end_time <= now
        )

    async def process_match(
        self, match: Match, now: datetime, force_rescore: bool = False
    ) -> MatchActions:
        state = self.state_for(match.id)
        actions = MatchActions()

        if force_rescore or self._rescore_due(match, state, now):
            actions.plays_queued = await self.rescore_match(match)
            actions.rescored = True
            state.last_rescored_at = now

        if not state.halftime_done:
            if match.is_halftime_passed:
                state.halftime_done = True
            elif halftime_due(match, now):
                actions.halftime = await self.halftime.take_halftime_snapshot(match, now)
                state.halftime_done = True

        if (
            not state.regulation_checked
            and not match.is_in_overtime
            and match.end_time is not None
            and now >= match.end_time
        ):
            decision = await self.overtime.check_regulation_end(match, now)
            state.regulation_checked = True
            actions.overtime_action = decision.action.value
        elif match.is_in_overtime:
            decision = await self.overtime.check_overtime(match, now)
            actions.overtime_action = decision.action.value

        return actions

    async def rescore_match(self, match: Match) -> int:
        """Rescore both teams concurrently, then diff for the broadcaster."""
        period = period_for(match.scope, match.period_start)
        results = await self.aggregator.score_teams(match.team_ids, period)
        log.info(
            "match_rescored",
            match_id=match.id,
            period=period.key,
            teams_scored=len(results),
        )
        return await self.broadcaster.detect_and_queue_plays(match, period.key)

    async def evaluate_match(self, match_id: int, now: Optional[datetime] = None) -> tuple[Match, MatchActions]:
        """
        Run one match's checks immediately.

        Raises:
            MatchNotFoundError: If the match does not exist
        """
        now = now or datetime.utcnow()
        match = await asyncio.to_thread(run_with_connection, Match.get_by_id_or_none, match_id)
        if match is None:
            raise MatchNotFoundError(f"Match {match_id} not found")
        if match.is_complete:
            return match, MatchActions()

        actions = await self.process_match(match, now)
        if match.is_complete:
            self._forget(match.id)
        return match, actions

    def _forget(self, match_id: int) -> None:
        self._states.pop(match_id, None)
        self.broadcaster.clear_match(match_id)
