"""Tests for scoring.breakdown and scoring.brand."""

from __future__ import annotations

from dataclasses import replace
from datetime import date

from hypothesis import given
from hypothesis import strategies as st

from scoring.brand import BrandStats, score_brand
from scoring.breakdown import (
    BreakdownBonus,
    format_brand_breakdown,
    format_rank_change,
    format_streak,
    format_trend_breakdown,
    format_trend_multiplier,
    format_weekly_breakdown,
    no_data_breakdown,
    with_adjustment,
)
from scoring.trend import TREND_SCORED_TYPES, TrendStats, score_trend


def _worked_example():
    stats = TrendStats(
        order_count=10,
        current_rank=1,
        previous_rank=3,
        streak_days=4,
        market_share_percent=9.0,
        trend_multiplier=2.0,
        consistency_score=57,
        velocity_score=50,
    )
    return score_trend("manufacturer", stats), stats


class TestTrendBreakdown:
    def test_components_and_labels(self):
        scoring, stats = _worked_example()
        detail = format_trend_breakdown(scoring, stats.order_count, stats.current_rank, stats.previous_rank)

        orders, trend = detail.components
        assert (orders.category, orders.value, orders.formula, orders.points) == (
            "Order Activity", "10 orders", "10 × 5", 50,
        )
        assert (trend.category, trend.value, trend.points) == ("Trend Bonus", "2.00x", 50)

        bonuses = {b.type: b for b in detail.bonuses}
        assert bonuses["Rank Bonus"].condition == "Rank #1"
        assert bonuses["Position Gain"].condition == "↑2 ranks"
        assert bonuses["Consistency Bonus"].condition == "Stable performance (57/100)"
        assert bonuses["Velocity Bonus"].condition == "Accelerating growth (+50)"
        assert bonuses["🔥🔥 On Fire Streak"].condition == "4 days streak (×1.25 multiplier)"
        assert bonuses["Market Share Bonus"].points == 15
        assert detail.penalties == ()

    def test_total_matches_scorer(self):
        scoring, stats = _worked_example()
        detail = format_trend_breakdown(scoring, stats.order_count, stats.current_rank, stats.previous_rank)
        assert detail.subtotal == 100
        assert detail.total == 187
        assert detail.line_sum == detail.total

    def test_rank_loss_is_a_penalty(self):
        stats = TrendStats(order_count=2, current_rank=9, previous_rank=4, days1=0, days7=0)
        scoring = score_trend("product", stats)
        detail = format_trend_breakdown(scoring, 2, 9, 4)

        assert [p.type for p in detail.penalties] == ["Position Loss"]
        assert detail.penalties[0].condition == "↓5 ranks"
        assert detail.penalties[0].points == -20
        assert detail.line_sum == detail.total

    def test_cultivar_formula_keeps_fractional_weight(self):
        scoring = score_trend("cultivar", TrendStats(order_count=3, days1=0, days7=0))
        detail = format_trend_breakdown(scoring, 3, 0, 0)
        assert detail.components[0].formula == "3 × 4.5"
        assert detail.components[0].points == 13

    def test_mismatched_total_gets_adjustment_line(self):
        scoring, stats = _worked_example()
        tampered = replace(scoring, total_points=scoring.total_points + 3)
        detail = format_trend_breakdown(tampered, stats.order_count, stats.current_rank, stats.previous_rank)

        adjustment = detail.bonuses[-1]
        assert (adjustment.type, adjustment.condition, adjustment.points) == (
            "Adjustment", "Score reconciliation", 3,
        )
        assert detail.line_sum == detail.total == 190

    @given(
        asset_type=st.sampled_from(sorted(TREND_SCORED_TYPES)),
        orders=st.integers(min_value=0, max_value=5000),
        current=st.integers(min_value=0, max_value=200),
        previous=st.integers(min_value=0, max_value=200),
        streak=st.integers(min_value=0, max_value=40),
        share=st.floats(min_value=0, max_value=100, allow_nan=False),
        multiplier=st.floats(min_value=0.05, max_value=9, allow_nan=False),
        velocity=st.floats(min_value=-50, max_value=100, allow_nan=False),
    )
    def test_lines_always_reconcile(self, asset_type, orders, current, previous, streak, share, multiplier, velocity):
        stats = TrendStats(
            order_count=orders,
            current_rank=current,
            previous_rank=previous,
            streak_days=streak,
            market_share_percent=share,
            trend_multiplier=multiplier,
            velocity_score=velocity,
        )
        scoring = score_trend(asset_type, stats)
        detail = format_trend_breakdown(scoring, orders, current, previous)
        assert detail.total == scoring.total_points
        assert detail.line_sum == detail.total
        assert all(p.points <= 0 for p in detail.penalties)


class TestBrandBreakdown:
    def test_brand_formula(self):
        scoring = score_brand(BrandStats(total_ratings=3, bayesian_average=4.25, rank=1))
        assert scoring.rating_count_points == 30
        assert scoring.rating_quality_points == 85
        assert scoring.rank_bonus_points == 50
        assert scoring.total_points == 165

    def test_only_rank_one_gets_top_brand(self):
        scoring = score_brand(BrandStats(total_ratings=1, bayesian_average=3.0, rank=2))
        detail = format_brand_breakdown(scoring)
        assert detail.bonuses == ()
        assert detail.total == 70

    def test_labels(self):
        detail = format_brand_breakdown(score_brand(BrandStats(total_ratings=3, bayesian_average=4.25, rank=1)))
        assert [c.category for c in detail.components] == ["Rating Count", "Rating Quality"]
        assert detail.components[1].value == "4.25★"
        assert detail.bonuses[0].type == "Top Brand"
        assert detail.line_sum == detail.total


class TestAdjustmentsAndWeekly:
    def test_no_data_scores_zero(self):
        detail = no_data_breakdown()
        assert detail.total == 0
        assert detail.components[0].category == "No Data"

    def test_positive_adjustment_is_a_bonus(self):
        detail = with_adjustment(no_data_breakdown(), "Scarcity Boost", "5 in pool", 4)
        assert detail.bonuses[0].points == 4
        assert detail.total == 4

    def test_negative_adjustment_is_a_penalty(self):
        detail = with_adjustment(no_data_breakdown(), "Scarcity Dampening", "400 in pool", -6)
        assert detail.penalties[0].points == -6
        assert detail.total == -6

    def test_zero_adjustment_is_dropped(self):
        detail = no_data_breakdown()
        assert with_adjustment(detail, "Scarcity Boost", "100 in pool", 0) is detail

    def test_weekly_sums_days_and_context(self):
        detail = format_weekly_breakdown(
            [(date(2026, 10, 13), 163), (date(2026, 10, 14), 187)],
            [BreakdownBonus("Weekly Rank Movement", "↑4 ranks this week", 32)],
        )
        assert [c.category for c in detail.components] == ["Tue 13 Oct", "Wed 14 Oct"]
        assert detail.subtotal == 350
        assert detail.total == 382
        assert detail.line_sum == detail.total

    def test_to_dict_shape(self):
        data = no_data_breakdown().to_dict()
        assert set(data) == {"components", "bonuses", "penalties", "subtotal", "total"}
        assert data["components"][0]["category"] == "No Data"


class TestDisplayFormatters:
    def test_trend_multiplier(self):
        assert format_trend_multiplier(5.0) == "🔥 5.0x"
        assert format_trend_multiplier(2.4) == "↗️ 2.4x"
        assert format_trend_multiplier(1.0) == "→ 1.0x"
        assert format_trend_multiplier(0.5) == "↘️ 0.5x"

    def test_rank_change(self):
        assert format_rank_change(3, None) == "#3 (new)"
        assert format_rank_change(3, 7) == "#3 (↑4)"
        assert format_rank_change(7, 3) == "#7 (↓4)"
        assert format_rank_change(3, 3) == "#3 (→)"

    def test_streak(self):
        assert format_streak(0) == ""
        assert format_streak(1) == "🔥"
        assert format_streak(5) == "🔥 5d"
        assert format_streak(9) == "🔥🔥 9d"
