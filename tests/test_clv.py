"""
Tests for closing line value, line movement and the bet gate
Run with: pytest tests/test_clv.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from betsmart.services.clv import (
    OddsObservation,
    analyze_line_movement,
    calculate_aggregate_clv,
    calculate_clv,
    categorize_clv,
    should_place_bet,
)


class TestCalculateCLV:

    def test_beating_the_close(self):
        result = calculate_clv(2.2, 1.9)

        assert result.beat_closing_line is True
        assert result.clv_percentage == pytest.approx(15.79)
        assert result.clv_category == "excellent"
        assert result.dollar_value == pytest.approx(30.0)
        assert result.implied_edge == pytest.approx(-7.18)
        assert result.is_positive()

    def test_same_price_is_zero(self):
        result = calculate_clv(1.9, 1.9)

        assert result.clv_percentage == 0
        assert result.beat_closing_line is False
        assert result.clv_category == "neutral"

    def test_opening_defaults_to_closing(self):
        assert calculate_clv(2.0, 1.95).opening_odds == 1.95
        assert calculate_clv(2.0, 1.95, opening_odds=2.05).opening_odds == 2.05

    def test_invalid_price_raises(self):
        with pytest.raises(ValueError):
            calculate_clv(1.0, 1.9)
        with pytest.raises(ValueError):
            calculate_clv(2.0, 1.9, opening_odds=0.5)


class TestCategoryBoundaries:
    """Thresholds are strict: a value exactly on a boundary falls to the lower bucket"""

    def test_exactly_five_percent_is_good(self):
        result = calculate_clv(2.1, 2.0)
        assert result.clv_percentage == 5.0
        assert result.clv_category == "good"

    def test_exactly_two_percent_is_neutral(self):
        result = calculate_clv(2.04, 2.0)
        assert result.clv_percentage == 2.0
        assert result.clv_category == "neutral"

    def test_exactly_minus_two_percent_is_poor(self):
        result = calculate_clv(1.96, 2.0)
        assert result.clv_percentage == -2.0
        assert result.clv_category == "poor"

    def test_inside_buckets(self):
        assert calculate_clv(2.12, 2.0).clv_category == "excellent"
        assert calculate_clv(2.06, 2.0).clv_category == "good"
        assert categorize_clv(-1.99) == "neutral"
        assert categorize_clv(-10.0) == "poor"


class TestLineMovement:

    def test_unordered_history_is_sorted(self):
        history = [
            ("2026-10-18T14:00:00Z", 1.80, "book_b"),
            ("2026-10-18T12:00:00Z", 2.00, "book_a"),
            ("2026-10-18T13:00:00Z", 2.05, "book_a"),
        ]
        movement = analyze_line_movement(history)

        assert movement.opening_odds == 2.00
        assert movement.closing_odds == 1.80
        assert movement.high_odds == 2.05
        assert movement.low_odds == 1.80
        assert movement.movement_direction == "down"
        assert movement.movement_percentage == pytest.approx(10.0)
        assert movement.hours_elapsed == pytest.approx(2.0)
        assert movement.observations == 3

    def test_slow_move_is_not_sharp(self):
        history = [("2026-10-18T12:00:00Z", 2.0), ("2026-10-18T14:00:00Z", 1.8)]
        assert analyze_line_movement(history).sharp_money_indicator is False

    def test_fast_large_move_is_sharp(self):
        start = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
        history = [
            OddsObservation(start, 2.0),
            OddsObservation(start + timedelta(minutes=12), 1.8),
        ]
        movement = analyze_line_movement(history)

        assert movement.sharp_money_indicator is True
        assert movement.velocity_per_hour == pytest.approx(1.0)

    def test_small_move_is_stable(self):
        history = [
            {"timestamp": "2026-10-18T12:00:00", "odds": 2.00},
            {"timestamp": "2026-10-18T18:00:00", "odds": 2.01},
        ]
        assert analyze_line_movement(history).movement_direction == "stable"

    def test_single_observation(self):
        movement = analyze_line_movement([("2026-10-18T12:00:00Z", 1.95)])
        assert movement.total_movement == 0
        assert movement.movement_direction == "stable"

    def test_empty_history_raises(self):
        with pytest.raises(ValueError):
            analyze_line_movement([])

    def test_bad_timestamp_raises(self):
        with pytest.raises(ValueError):
            analyze_line_movement([("yesterday", 1.9)])


class TestAggregateCLV:

    def test_no_bets_is_all_zero(self):
        result = calculate_aggregate_clv([])

        assert result.average_clv == 0
        assert result.median_clv == 0
        assert result.positive_clv_percentage == 0
        assert result.total_clv_value == 0
        assert result.clv_consistency == 0
        assert result.bets == 0

    def test_statistics(self):
        # CLV values: 10, -5, 5
        result = calculate_aggregate_clv([(2.2, 2.0), (1.9, 2.0), (2.1, 2.0)])

        assert result.average_clv == pytest.approx(3.33)
        assert result.median_clv == pytest.approx(5.0)
        assert result.positive_clv_percentage == pytest.approx(66.67)
        assert result.total_clv_value == pytest.approx(10.0)
        assert result.clv_consistency == pytest.approx(6.24)
        assert result.bets == 3

    def test_even_count_median_is_midpoint(self):
        result = calculate_aggregate_clv([(2.2, 2.0), (1.9, 2.0)])
        assert result.median_clv == pytest.approx(2.5)


class TestShouldPlaceBet:

    def test_price_above_fair_value_is_a_bet(self):
        decision = should_place_bet(predicted_odds=2.0, current_odds=2.2)

        assert decision.should_bet is True
        assert decision.clv_percentage == pytest.approx(10.0)
        assert decision.ev_percentage == pytest.approx(10.0)
        assert decision.reason.startswith("Good bet")

    def test_fair_price_fails_both_checks(self):
        decision = should_place_bet(predicted_odds=2.0, current_odds=2.0)

        assert decision.should_bet is False
        assert not decision.clv_check
        assert not decision.ev_check
        assert "both below" in decision.reason

    def test_ev_gate_alone_can_block(self):
        # 2.5% better than fair value clears CLV but not the 3% EV floor
        decision = should_place_bet(predicted_odds=2.0, current_odds=2.05)

        assert decision.clv_check is True
        assert decision.ev_check is False
        assert decision.should_bet is False

    def test_invalid_price_raises(self):
        with pytest.raises(ValueError):
            should_place_bet(predicted_odds=2.0, current_odds=1.0)
