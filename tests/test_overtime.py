"""Tests for the overtime engine (pure) and the overtime service (persistence + events)."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from conftest import SCORING_DAY
from db.models import Match, MatchStatus, TeamScore
from services.overtime import (
    NO_ACTION,
    MatchPhase,
    OvertimeAction,
    TeamStanding,
    WinCondition,
    evaluate_overtime,
    evaluate_regulation_end,
    get_overtime_config,
    overtime_status,
    resolve_timeout,
)
from services import overtime_service
from services.overtime_service import MatchNotFoundError, OvertimeService

END = datetime(2026, 10, 15, 6, 0)
AFTER_END = END + timedelta(minutes=1)


def standing(team_id: int, points: int, best: int = 0) -> TeamStanding:
    return TeamStanding(team_id=team_id, points=points, best_asset_points=best)


class TestRegulationEnd:
    def test_close_match_enters_overtime(self):
        decision = evaluate_regulation_end(END, AFTER_END, standing(1, 500), standing(2, 460))

        assert decision.action == OvertimeAction.ENTER_OVERTIME
        assert decision.overtime_start_time == AFTER_END
        assert decision.overtime_end_time == AFTER_END + timedelta(hours=1)

    def test_exactly_fifty_still_goes_to_overtime(self):
        decision = evaluate_regulation_end(END, AFTER_END, standing(1, 550), standing(2, 500))
        assert decision.action == OvertimeAction.ENTER_OVERTIME

    def test_tie_goes_to_overtime(self):
        decision = evaluate_regulation_end(END, AFTER_END, standing(1, 300), standing(2, 300))
        assert decision.action == OvertimeAction.ENTER_OVERTIME

    def test_clear_win_finalizes(self):
        decision = evaluate_regulation_end(END, AFTER_END, standing(1, 400), standing(2, 500))

        assert decision.action == OvertimeAction.FINALIZE
        assert decision.winner_id == 2
        assert decision.loser_id == 1
        assert decision.win_condition == WinCondition.REGULATION
        assert decision.lead == 100

    def test_before_end_time_does_nothing(self):
        assert evaluate_regulation_end(END, END - timedelta(seconds=1), standing(1, 900), standing(2, 0)) == NO_ACTION

    def test_not_active_does_nothing(self):
        for phase in (MatchPhase.OVERTIME, MatchPhase.COMPLETE):
            assert evaluate_regulation_end(END, AFTER_END, standing(1, 900), standing(2, 0), phase) == NO_ACTION


class TestOvertimePoll:
    def test_golden_goal_at_exact_margin(self):
        decision = evaluate_overtime(END, END - timedelta(minutes=30), standing(1, 485), standing(2, 510))

        assert decision.action == OvertimeAction.FINALIZE
        assert decision.winner_id == 2
        assert decision.win_condition == WinCondition.GOLDEN_GOAL

    def test_lead_below_margin_keeps_playing(self):
        decision = evaluate_overtime(END, END - timedelta(minutes=30), standing(1, 486), standing(2, 510))
        assert decision == NO_ACTION

    def test_golden_goal_beats_timeout_on_same_poll(self):
        decision = evaluate_overtime(END, END, standing(1, 540), standing(2, 500))
        assert decision.win_condition == WinCondition.GOLDEN_GOAL

    def test_timeout_with_lead(self):
        decision = evaluate_overtime(END, END, standing(1, 510), standing(2, 500))

        assert decision.action == OvertimeAction.FINALIZE
        assert decision.winner_id == 1
        assert decision.win_condition == WinCondition.TIMEOUT_LEAD

    def test_only_acts_in_overtime(self):
        assert evaluate_overtime(END, END, standing(1, 600), standing(2, 0), MatchPhase.COMPLETE) == NO_ACTION


class TestTimeoutTiebreak:
    def test_best_asset_decides_a_tie(self):
        decision = resolve_timeout(standing(1, 500, best=120), standing(2, 500, best=150))

        assert decision.winner_id == 2
        assert decision.win_condition == WinCondition.TIMEOUT_TIEBREAKER

    def test_full_tie_goes_to_lower_team_id(self):
        decision = resolve_timeout(standing(9, 500, best=120), standing(4, 500, best=120))

        assert decision.winner_id == 4
        assert decision.loser_id == 9
        assert decision.win_condition == WinCondition.TIMEOUT_TIEBREAKER


class TestOvertimeStatus:
    def test_status_fields(self):
        status = overtime_status(
            standing(1, 510),
            standing(2, 500),
            now=END - timedelta(minutes=20, seconds=30),
            is_in_overtime=True,
            overtime_start_time=END - timedelta(hours=1),
            overtime_end_time=END,
        )

        assert status.current_lead == 10
        assert status.leading_team_id == 1
        assert status.minutes_remaining == 21
        assert not status.can_win_now
        assert status.golden_goal_progress == pytest.approx(40.0)

    def test_progress_capped_at_hundred(self):
        status = overtime_status(standing(1, 0), standing(2, 90), now=END, is_in_overtime=False)
        assert status.golden_goal_progress == 100.0
        assert status.minutes_remaining == 0
        assert status.can_win_now

    def test_config(self):
        assert get_overtime_config() == {"trigger_threshold": 50, "win_margin": 25, "duration_minutes": 60}


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

def set_totals(match: Match, total_a: int, total_b: int) -> None:
    for team_id, total in zip(match.team_ids, (total_a, total_b)):
        TeamScore.create(
            team=team_id,
            period_key=SCORING_DAY.isoformat(),
            scope="daily",
            stat_date=SCORING_DAY,
            total_points=total,
        )


def set_total(team_id: int, total: int) -> None:
    TeamScore.update(total_points=total).where(
        (TeamScore.team == team_id) & (TeamScore.period_key == SCORING_DAY.isoformat())
    ).execute()


class TestOvertimeService:
    @pytest.mark.asyncio
    async def test_enter_overtime_persists_and_announces(self, match, transport):
        set_totals(match, 500, 460)
        service = OvertimeService(transport)

        decision = await service.check_regulation_end(match, AFTER_END)

        assert decision.action == OvertimeAction.ENTER_OVERTIME
        stored = Match.get_by_id(match.id)
        assert stored.is_in_overtime
        assert stored.overtime_end_time == AFTER_END + timedelta(hours=1)
        assert match.is_in_overtime
        (event,) = transport.of_type("overtime_start")
        assert event.payload["win_margin_required"] == 25

    @pytest.mark.asyncio
    async def test_regulation_win_completes_match(self, match, transport):
        set_totals(match, 500, 400)
        service = OvertimeService(transport)

        await service.check_regulation_end(match, AFTER_END)

        stored = Match.get_by_id(match.id)
        assert stored.status == MatchStatus.COMPLETE
        assert stored.winner_id == match.team_a_id
        assert stored.win_condition == "regulation"
        assert [e.event_type for e in transport.events] == ["match_finalized"]
        assert transport.events[0].payload["winner_team_name"] == "Alpha"

    @pytest.mark.asyncio
    async def test_golden_goal_flow(self, match, transport):
        set_totals(match, 500, 460)
        service = OvertimeService(transport)
        await service.check_regulation_end(match, AFTER_END)

        set_total(match.team_b_id, 530)
        decision = await service.check_overtime(match, AFTER_END + timedelta(minutes=10))

        assert decision.win_condition == WinCondition.GOLDEN_GOAL
        assert [e.event_type for e in transport.events] == ["overtime_start", "golden_goal", "match_finalized"]
        golden = transport.of_type("golden_goal")[0].payload
        assert golden["winner_id"] == match.team_b_id
        assert golden["winner_team_name"] == "Bravo"
        assert golden["win_condition"] == "golden_goal"
        assert match.is_complete

    @pytest.mark.asyncio
    async def test_timeout_flow(self, match, transport):
        set_totals(match, 500, 460)
        service = OvertimeService(transport)
        await service.check_regulation_end(match, AFTER_END)

        set_total(match.team_b_id, 490)
        decision = await service.check_overtime(match, AFTER_END + timedelta(hours=1))

        assert decision.win_condition == WinCondition.TIMEOUT_LEAD
        assert [e.event_type for e in transport.events][-2:] == ["overtime_end", "match_finalized"]

    @pytest.mark.asyncio
    async def test_completed_match_is_terminal(self, match, transport):
        set_totals(match, 500, 400)
        service = OvertimeService(transport)
        await service.check_regulation_end(match, AFTER_END)
        transport.clear()

        assert await service.check_regulation_end(match, AFTER_END) == NO_ACTION
        assert await service.check_overtime(match, AFTER_END + timedelta(hours=2)) == NO_ACTION
        assert transport.events == []

    @pytest.mark.asyncio
    async def test_second_evaluator_loses_the_finalization(self, match, transport, monkeypatch):
        set_totals(match, 500, 400)
        read_standings = overtime_service.load_standings

        def standings_then_finalized_elsewhere(current):
            standings = read_standings(current)
            # Another evaluator commits its result after this one has read the match
            Match.update(
                status=MatchStatus.COMPLETE,
                winner=current.team_a_id,
                win_condition="regulation",
                completed_at=AFTER_END,
            ).where(Match.id == current.id).execute()
            return standings

        monkeypatch.setattr(overtime_service, "load_standings", standings_then_finalized_elsewhere)

        decision = await OvertimeService(transport).check_regulation_end(match, AFTER_END)

        assert decision == NO_ACTION
        assert transport.events == []
        assert match.is_complete
        assert Match.get_by_id(match.id).win_condition == "regulation"

    @pytest.mark.asyncio
    async def test_overtime_entry_taken_once(self, match, transport, monkeypatch):
        set_totals(match, 500, 460)
        read_standings = overtime_service.load_standings

        def standings_then_overtime_elsewhere(current):
            standings = read_standings(current)
            Match.update(
                is_in_overtime=True,
                overtime_start_time=AFTER_END,
                overtime_end_time=AFTER_END + timedelta(hours=1),
            ).where(Match.id == current.id).execute()
            return standings

        monkeypatch.setattr(overtime_service, "load_standings", standings_then_overtime_elsewhere)

        decision = await OvertimeService(transport).check_regulation_end(match, AFTER_END)

        assert decision == NO_ACTION
        assert transport.of_type("overtime_start") == []
        assert match.is_in_overtime

    @pytest.mark.asyncio
    async def test_status_for_unknown_match(self, database, transport):
        with pytest.raises(MatchNotFoundError):
            await OvertimeService(transport).get_status(12345)

    @pytest.mark.asyncio
    async def test_status_reads_current_totals(self, match, transport):
        set_totals(match, 480, 500)
        loaded, status = await OvertimeService(transport).get_status(match.id, now=AFTER_END)

        assert loaded.id == match.id
        assert status.leading_team_id == match.team_b_id
        assert status.current_lead == 20
        assert not status.is_in_overtime
