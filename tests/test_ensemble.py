"""
Tests for the ensemble layers and sequential pattern detection
Run with: pytest tests/test_ensemble.py -v
"""

import json

import pytest

from betsmart.core.league_config import LeagueConfig
from betsmart.core.strategy_interface import MarketOdds, MatchInput, TeamInput
from betsmart.services.ensemble import (
    EnsembleConfig,
    boost_residual,
    detect_sequential_pattern,
    diversity_label,
    layer_bar,
    market_home_probability,
    run_ensemble,
)
from betsmart.services.factors import compute_match_factors


def _factors(home_record="50-20", away_record="20-50", h2h=None):
    match = MatchInput(
        match_id="nba-test",
        home=TeamInput("Home", record=home_record),
        away=TeamInput("Away", record=away_record),
        league="NBA",
    )
    return compute_match_factors(match, LeagueConfig.nba(), h2h)


class TestSequentialPatterns:

    def test_win_streak(self):
        pattern = detect_sequential_pattern(["W", "W", "W", "W", "W"])

        assert pattern.type == "streak"
        assert pattern.adjustment > 0
        assert "5-game win streak" in pattern.description

    def test_loss_streak_is_negative(self):
        pattern = detect_sequential_pattern(["L", "L", "L", "L"])
        assert pattern.type == "streak"
        assert pattern.adjustment < 0

    def test_alternating(self):
        pattern = detect_sequential_pattern(["W", "L", "W", "L", "W"])

        assert pattern.type == "alternating"
        assert pattern.adjustment == pytest.approx(-2.0)

    def test_regression(self):
        pattern = detect_sequential_pattern(["W", "W", "W", "L", "L", "L"])

        assert pattern.type == "regression"
        assert pattern.adjustment == pytest.approx(3.0)

    def test_breakout(self):
        pattern = detect_sequential_pattern(["W", "W", "W", "D", "D", "L", "W"])

        assert pattern.type == "breakout"
        assert pattern.adjustment == pytest.approx(4.0)

    def test_draw_run_is_not_a_streak(self):
        assert detect_sequential_pattern(["D", "D", "D", "D"]).type == "none"

    def test_short_form_is_insufficient(self):
        pattern = detect_sequential_pattern(["W", "W"])

        assert pattern.type == "none"
        assert pattern.adjustment == 0
        assert pattern.description == "Insufficient data"

    def test_missing_form_is_not_an_error(self):
        assert detect_sequential_pattern(None).type == "none"

    def test_bad_result_raises(self):
        with pytest.raises(ValueError):
            detect_sequential_pattern(["W", "X", "L"])


class TestLayerHelpers:

    def test_bar_transform(self):
        assert layer_bar(0.0) == 50.0
        assert layer_bar(0.02) == 60.0
        assert layer_bar(-0.04) == 30.0
        assert layer_bar(0.5) == 100.0
        assert layer_bar(-0.5) == 0.0

    def test_diversity_labels(self):
        assert diversity_label(0.01) == "models strongly agree"
        assert diversity_label(0.10) == "moderate agreement"
        assert diversity_label(0.20) == "models disagree"

    def test_boosting_converges_toward_residual(self):
        assert boost_residual(0.1, 0.15, 5) == pytest.approx(0.1 * (1 - 0.85 ** 5))
        assert boost_residual(0.1, 1.0, 1) == pytest.approx(0.1)

    def test_market_anchor(self):
        assert market_home_probability(None) is None
        assert market_home_probability(MarketOdds(1.909, 1.909)) == pytest.approx(0.5)
        three_way = market_home_probability(MarketOdds(2.0, 4.0, draw=3.5))
        assert three_way == pytest.approx(2 / 3)

    def test_invalid_market_has_no_anchor(self):
        assert market_home_probability(MarketOdds(0.9, 2.0)) is None


class TestRunEnsemble:

    def test_stronger_home_team_is_picked(self):
        result = run_ensemble(_factors())

        assert result.recommended == "home"
        assert 0.5 <= result.base_learners <= 1.0
        assert result.agreement == pytest.approx(1.0)
        assert 0.0 <= result.stacked_confidence <= 100.0

    def test_stronger_away_team_is_picked(self):
        result = run_ensemble(_factors("20-50", "50-20"))
        assert result.recommended == "away"

    def test_layers_are_bounded(self):
        result = run_ensemble(
            _factors(),
            market=MarketOdds(1.20, 5.50),
            home_form=["W"] * 6,
            away_form=["L"] * 6,
        )

        assert abs(result.gradient_boosting) <= 0.10
        assert abs(result.sequential_pattern) <= 0.10
        assert abs(result.diversity_bonus) <= 0.05
        for bar in result.confidence_bars().values():
            assert 0.0 <= bar <= 100.0

    def test_patterns_never_change_the_pick(self):
        factors = _factors("36-34", "34-36")
        calm = run_ensemble(factors)
        swung = run_ensemble(factors, home_form=["L"] * 6, away_form=["W"] * 6)

        assert swung.recommended == calm.recommended
        assert swung.home_probability == calm.home_probability
        assert swung.sequential_pattern < 0

    def test_calibration_pulls_toward_center(self):
        result = run_ensemble(_factors())
        assert abs(result.calibrated_confidence - 55.0) <= abs(result.stacked_confidence - 55.0)

    def test_deterministic(self):
        assert run_ensemble(_factors()) == run_ensemble(_factors())

    def test_details_are_json_safe(self):
        details = run_ensemble(_factors(), home_form=["W", "W", "W", "W"]).to_details()

        assert json.loads(json.dumps(details)) == details
        assert set(details["confidence_bars"]) == {
            "base_learners", "gradient_boosting", "sequential_pattern", "diversity_bonus",
        }
        assert details["patterns"]["home"]["type"] == "streak"

    def test_needs_a_positive_learner_weight(self):
        config = EnsembleConfig(learner_weights={"power_index": 0.0})
        with pytest.raises(ValueError):
            run_ensemble(_factors(), config=config)
