"""
Shared test setup.

The environment is fixed before any betsmart module is imported: models.py
builds its engine from DATABASE_URL and auth.py reads the API keys at
import time.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ["API_KEY_USER1"] = "test-admin-key"
os.environ["API_KEY_USER2"] = "test-user-key"
os.environ.pop("THE_ODDS_API_KEY", None)

import pytest

from betsmart.core.strategy_interface import MarketOdds, MatchInput, Prediction, TeamInput


@pytest.fixture
def nba_match():
    return MatchInput(
        match_id="nba-2026-10-18-bos-nyk",
        home=TeamInput("Boston", record="50-20", recent_form=("W", "W", "L", "W", "W")),
        away=TeamInput("New York", record="20-50", recent_form=("L", "L", "W", "L", "L")),
        league="NBA",
        odds=MarketOdds(home_win=1.55, away_win=2.60),
    )


@pytest.fixture
def sample_prediction():
    return Prediction(
        match_id="epl-2026-10-18-ars-che",
        league="EPL",
        strategy="ensemble",
        recommended="home",
        confidence=61,
        projected_home=1.6,
        projected_away=1.1,
        true_probability=0.61,
        implied_odds=1.64,
        market_odds=1.95,
        odds_source="match_record",
        edge=0.0972,
        expected_value=0.1895,
        ev_percentage=18.95,
        is_positive_ev=True,
        kelly_fraction=0.05,
        recommended_stake=50.0,
        recommended_units=5.0,
        risk_level="high",
        factors=(
            {"name": "team_strength", "impact": 4.2, "favored": "home", "description": "Arsenal 58.1 vs Chelsea 53.9"},
        ),
        reasoning=("Ensemble favours Arsenal", "Stake 5.00% of bankroll (high risk) at 1.95"),
        details={"near_even": False, "learners": [{"name": "power_index", "confidence": 60.5}]},
        model_version="betsmart-ensemble-v2",
        generated_at="2026-10-18T12:00:00+00:00",
    )
