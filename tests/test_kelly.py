"""
Tests for fractional Kelly staking and the bankroll simulation
Run with: pytest tests/test_kelly.py -v
"""

from dataclasses import replace

import pytest

from betsmart.core.kelly import (
    KellyConfig,
    calculate_kelly_stake,
    classify_risk,
    kelly_to_units,
    simulate_kelly_betting,
)


@pytest.fixture
def base_config():
    return KellyConfig(
        true_probability=0.55,
        bookmaker_odds=2.0,
        bankroll=1000.0,
        kelly_fraction=0.25,
        min_ev_threshold=3.0,
        max_bet_percentage=5.0,
    )


class TestKellyStake:
    """Quarter Kelly at 55% on even money"""

    def test_positive_stake_within_cap(self, base_config):
        result = calculate_kelly_stake(base_config)

        assert result.recommended_stake > 0
        assert result.recommended_stake_percentage <= 5.0

    def test_values(self, base_config):
        result = calculate_kelly_stake(base_config)

        assert result.full_kelly == pytest.approx(0.1)
        assert result.adjusted_kelly == pytest.approx(0.025)
        assert result.final_kelly == pytest.approx(0.025)
        assert result.recommended_stake == pytest.approx(25.0)
        assert result.recommended_stake_percentage == pytest.approx(2.5)
        assert result.recommended_stake_units == pytest.approx(2.5)
        assert result.ev_percentage == pytest.approx(10.0)
        assert result.expected_growth == pytest.approx(0.0022, abs=1e-4)
        assert result.risk_level == "medium"
        assert result.is_bet

    def test_explicit_unit_size(self, base_config):
        result = calculate_kelly_stake(replace(base_config, unit_size=5.0))
        assert result.recommended_stake_units == pytest.approx(5.0)


class TestNoBet:

    def test_zero_edge_stakes_nothing(self, base_config):
        result = calculate_kelly_stake(replace(base_config, true_probability=0.5))

        assert result.recommended_stake == 0
        assert result.final_kelly == 0
        assert result.is_positive_ev is False
        assert result.risk_level == "low"
        assert not result.is_bet

    def test_below_ev_threshold_stakes_nothing(self, base_config):
        # 2% EV is positive but under the 3% threshold
        result = calculate_kelly_stake(replace(base_config, true_probability=0.51))

        assert result.recommended_stake == 0
        assert result.is_positive_ev is True
        assert result.ev_percentage == pytest.approx(2.0)

    def test_negative_edge_stakes_nothing(self, base_config):
        result = calculate_kelly_stake(replace(base_config, true_probability=0.40))
        assert result.recommended_stake == 0
        assert result.expected_growth == 0.0


class TestCapAndMonotonicity:

    def test_extreme_edge_is_capped(self, base_config):
        config = replace(base_config, true_probability=0.8, kelly_fraction=1.0)
        result = calculate_kelly_stake(config)

        assert result.adjusted_kelly == pytest.approx(0.6)
        assert result.final_kelly == pytest.approx(0.05)
        assert result.recommended_stake_percentage <= 5.0
        assert result.risk_level == "high"

    def test_adjusted_kelly_grows_with_fraction(self, base_config):
        quarter = calculate_kelly_stake(base_config)
        full = calculate_kelly_stake(replace(base_config, kelly_fraction=1.0))

        assert full.adjusted_kelly >= quarter.adjusted_kelly


class TestValidation:

    @pytest.mark.parametrize(
        "changes",
        [
            {"true_probability": 1.2},
            {"true_probability": 0.0},
            {"bookmaker_odds": 1.0},
            {"bankroll": 0.0},
            {"kelly_fraction": 0.0},
            {"kelly_fraction": 1.5},
            {"unit_size": -1.0},
            {"max_bet_percentage": 0.0},
            {"max_bet_percentage": 150.0},
            {"min_ev_threshold": float("nan")},
        ],
    )
    def test_invalid_config_raises(self, base_config, changes):
        with pytest.raises(ValueError):
            calculate_kelly_stake(replace(base_config, **changes))

    def test_fraction_above_full_kelly_is_rejected(self):
        config = KellyConfig(0.9, 3.0, 1000.0, kelly_fraction=2.0, max_bet_percentage=100.0)

        with pytest.raises(ValueError, match="kelly_fraction"):
            calculate_kelly_stake(config)

    def test_full_kelly_with_no_cap_stays_below_bankroll(self):
        config = KellyConfig(0.9, 3.0, 1000.0, kelly_fraction=1.0, max_bet_percentage=100.0)

        result = calculate_kelly_stake(config)

        assert result.final_kelly == pytest.approx(0.85)
        assert result.recommended_stake == pytest.approx(850.0)


class TestHelpers:

    def test_risk_levels(self):
        assert classify_risk(0.0) == "low"
        assert classify_risk(0.019) == "low"
        assert classify_risk(0.02) == "medium"
        assert classify_risk(0.05) == "high"

    def test_kelly_to_units(self):
        assert kelly_to_units(0.025, 1000.0) == pytest.approx(2.5)
        assert kelly_to_units(0.025, 1000.0, unit_size=5.0) == pytest.approx(5.0)

    def test_kelly_to_units_needs_bankroll(self):
        with pytest.raises(ValueError):
            kelly_to_units(0.02, 0.0)


class TestSimulation:

    def test_same_seed_same_paths(self, base_config):
        first = simulate_kelly_betting(base_config, num_bets=200, num_simulations=50, seed=7)
        second = simulate_kelly_betting(base_config, num_bets=200, num_simulations=50, seed=7)

        assert first == second

    def test_summary_is_ordered(self, base_config):
        sim = simulate_kelly_betting(base_config, num_bets=200, num_simulations=50, seed=11)

        assert sim.worst_case <= sim.median_final_bankroll <= sim.best_case
        assert 0.0 <= sim.probability_of_profit <= 1.0
        assert 0.0 <= sim.probability_of_ruin <= 1.0
        assert sim.num_simulations == 50

    def test_no_bet_leaves_bankroll_untouched(self, base_config):
        sim = simulate_kelly_betting(replace(base_config, true_probability=0.5), seed=1)

        assert sim.average_final_bankroll == pytest.approx(1000.0)
        assert sim.best_case == sim.worst_case == pytest.approx(1000.0)
        assert sim.probability_of_profit == 0.0
        assert sim.probability_of_ruin == 0.0

    def test_rejects_non_positive_counts(self, base_config):
        with pytest.raises(ValueError):
            simulate_kelly_betting(base_config, num_bets=0)
