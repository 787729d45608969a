"""
Halftime Service

Timing rules:
    - 24h matches: halftime at 16:20 challenge-local time on the start day,
      or the next day when the match starts at or after 16:20
    - any other duration: the exact midpoint

At halftime both team totals are stored on the match once, and a
halftime_snapshot event is pushed.
"""

import asyncio
from datetime import datetime, time, timedelta
from typing import Optional

import pytz

from core.logging import get_logger
from core.settings import settings
from db.base import run_with_connection
from db.models import Match, TeamScore
from schemas.scoring import HalftimeSnapshotEvent
from scoring.periods import period_for
from services.push_transport import PushTransport

log = get_logger(__name__)

HALFTIME_LOCAL_TIME = time(16, 20)
HALFTIME_EVENT = "halftime_snapshot"


def calculate_halftime_timestamp(
    start_time: datetime,
    duration_hours: int,
    timezone: Optional[str] = None,
) -> datetime:
    """
    Halftime for a match, as naive UTC.

    Args:
        start_time: Match start, naive UTC
        duration_hours: Match length
        timezone: Zone the 16:20 rule is evaluated in (defaults to the challenge timezone)
    """
    if duration_hours != 24:
        return start_time + timedelta(hours=duration_hours) / 2

    tz = pytz.timezone(timezone or settings.challenge_timezone)
    local_start = pytz.utc.localize(start_time).astimezone(tz)

    halftime_date = local_start.date()
    if local_start.time() >= HALFTIME_LOCAL_TIME:
        halftime_date += timedelta(days=1)

    local_halftime = tz.localize(datetime.combine(halftime_date, HALFTIME_LOCAL_TIME))
    return local_halftime.astimezone(pytz.utc).replace(tzinfo=None)


def calculate_end_time(start_time: datetime, duration_hours: int) -> datetime:
    return start_time + timedelta(hours=duration_hours)


def halftime_due(match: Match, now: datetime) -> bool:
    if match.is_complete or match.is_halftime_passed:
        return False
    halftime_at = match.halftime_at
    if halftime_at is None and match.start_time is not None:
        halftime_at = calculate_halftime_timestamp(match.start_time, match.duration_hours)
    return halftime_at is not None and now >= halftime_at


def _store_snapshot(match_id: int, now: datetime) -> Optional[Match]:
    """Record halftime totals; returns None when already taken or finished."""
    match = Match.get_by_id_or_none(match_id)
    if match is None or match.is_complete or match.is_halftime_passed:
        return None

    period = period_for(match.scope, match.period_start)
    totals = TeamScore.totals_for(match.team_ids, period.key)

    match.halftime_score_a = totals[match.team_a_id]
    match.halftime_score_b = totals[match.team_b_id]
    match.halftime_at = match.halftime_at or now
    match.is_halftime_passed = True
    match.save()
    return match


class HalftimeService:
    def __init__(self, transport: PushTransport):
        self.transport = transport

    async def take_halftime_snapshot(self, match: Match, now: datetime) -> bool:
        """
        Store both teams' halftime totals and push the snapshot event.

        Returns False when the snapshot was already taken.
        """
        updated = await asyncio.to_thread(run_with_connection, _store_snapshot, match.id, now)
        if updated is None:
            return False

        match.is_halftime_passed = True
        match.halftime_score_a = updated.halftime_score_a
        match.halftime_score_b = updated.halftime_score_b
        match.halftime_at = updated.halftime_at

        event = HalftimeSnapshotEvent(
            match_id=match.id,
            team_a_id=match.team_a_id,
            team_a_score=updated.halftime_score_a,
            team_b_id=match.team_b_id,
            team_b_score=updated.halftime_score_b,
            halftime_at=updated.halftime_at.isoformat(),
        )
        await self.transport.send(match.id, HALFTIME_EVENT, event.model_dump())

        log.info(
            "halftime_snapshot_taken",
            match_id=match.id,
            team_a_score=updated.halftime_score_a,
            team_b_score=updated.halftime_score_b,
        )
        return True
