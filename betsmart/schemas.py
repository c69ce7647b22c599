"""
Pydantic request/response schemas for the BetSmart API.

Request models convert to the engine's frozen dataclasses via
``to_domain()``; the engine never sees pydantic objects.  Domain validation
(probabilities, decimal prices, bankroll) stays in ``betsmart.core`` and is
surfaced as HTTP 422 by the ValueError handler in ``main.py``.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from betsmart.core.kelly import (
    DEFAULT_KELLY_FRACTION,
    DEFAULT_MAX_BET_PERCENTAGE,
    DEFAULT_MIN_EV_THRESHOLD,
    KellyConfig,
)
from betsmart.core.strategy_interface import (
    HeadToHead,
    MarketOdds,
    MatchInput,
    Prediction,
    TeamInput,
)


# ---------------------------------------------------------------------------
# Prediction requests
# ---------------------------------------------------------------------------

class TeamPayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    record: Optional[str] = Field(None, description='Season record, e.g. "42-30"')
    recent_form: List[str] = Field(
        default_factory=list, description="Most recent first, each W, L or D"
    )
    team_id: Optional[str] = None

    @field_validator("recent_form")
    @classmethod
    def validate_form(cls, v: List[str]) -> List[str]:
        normalized = [r.strip().upper() for r in v]
        bad = [r for r in normalized if r not in ("W", "L", "D")]
        if bad:
            raise ValueError(f"recent_form entries must be W, L or D, got {bad}")
        return normalized

    def to_domain(self) -> TeamInput:
        return TeamInput(
            name=self.name,
            record=self.record,
            recent_form=tuple(self.recent_form),
            team_id=self.team_id,
        )


class OddsPayload(BaseModel):
    home_win: float = Field(..., description="Decimal odds for the home side")
    away_win: float = Field(..., description="Decimal odds for the away side")
    draw: Optional[float] = Field(None, description="Decimal odds for the draw, three-way markets only")

    def to_domain(self) -> MarketOdds:
        return MarketOdds(home_win=self.home_win, away_win=self.away_win, draw=self.draw)


class HeadToHeadPayload(BaseModel):
    games_played: int = Field(0, ge=0)
    home_wins: int = Field(0, ge=0)
    away_wins: int = Field(0, ge=0)
    draws: int = Field(0, ge=0)

    def to_domain(self) -> HeadToHead:
        return HeadToHead(
            games_played=self.games_played,
            home_wins=self.home_wins,
            away_wins=self.away_wins,
            draws=self.draws,
        )


class MatchPayload(BaseModel):
    """
    Payload for POST /api/predictions/generate and /regenerate.

    match_id is the lock key: the first successful request for an id fixes
    the prediction for good, later payloads for the same id are ignored.
    """

    match_id: str = Field(..., min_length=1, max_length=200)
    league: str = Field(..., min_length=2, max_length=20)
    home_team: TeamPayload
    away_team: TeamPayload
    odds: Optional[OddsPayload] = None
    historical: Optional[HeadToHeadPayload] = None

    def to_domain(self) -> Tuple[MatchInput, Optional[HeadToHead]]:
        match = MatchInput(
            match_id=self.match_id,
            home=self.home_team.to_domain(),
            away=self.away_team.to_domain(),
            league=self.league,
            odds=self.odds.to_domain() if self.odds else None,
        )
        return match, self.historical.to_domain() if self.historical else None

    model_config = {
        "json_schema_extra": {
            "example": {
                "match_id": "nba-2026-10-18-bos-nyk",
                "league": "NBA",
                "home_team": {"name": "Boston", "record": "48-20", "recent_form": ["W", "W", "L", "W", "W"]},
                "away_team": {"name": "New York", "record": "39-29", "recent_form": ["L", "W", "L", "L", "W"]},
                "odds": {"home_win": 1.62, "away_win": 2.45},
                "historical": {"games_played": 6, "home_wins": 4, "away_wins": 2},
            }
        }
    }


class BatchPayload(BaseModel):
    matches: List[MatchPayload] = Field(..., min_length=1, max_length=100)


# ---------------------------------------------------------------------------
# Prediction response
# ---------------------------------------------------------------------------

class PredictionResponse(BaseModel):
    match_id: str
    league: str
    strategy: str
    recommended: Literal["home", "away", "draw"]
    confidence: int = Field(..., description="Integer percent, 0-100")
    projected_score: dict
    true_probability: float
    implied_odds: float
    market_odds: float
    odds_source: str
    edge: float
    expected_value: float
    ev_percentage: float
    is_positive_ev: bool
    kelly_fraction: float = Field(..., description="Fraction of bankroll, 0-1")
    recommended_stake: float
    recommended_units: float
    risk_level: Literal["low", "medium", "high"]
    factors: List[dict]
    reasoning: List[str]
    details: dict
    model_version: str
    generated_at: str

    @classmethod
    def from_prediction(cls, p: Prediction) -> "PredictionResponse":
        data = p.to_dict()
        data["projected_score"] = {
            "home": data.pop("projected_home"),
            "away": data.pop("projected_away"),
        }
        return cls(**data)


# ---------------------------------------------------------------------------
# Betting math
# ---------------------------------------------------------------------------

class ExpectedValueRequest(BaseModel):
    true_probability: float
    bookmaker_odds: float


class KellyRequest(BaseModel):
    true_probability: float
    bookmaker_odds: float
    bankroll: float
    kelly_fraction: float = DEFAULT_KELLY_FRACTION
    unit_size: Optional[float] = None
    min_ev_threshold: float = DEFAULT_MIN_EV_THRESHOLD
    max_bet_percentage: float = DEFAULT_MAX_BET_PERCENTAGE

    def to_domain(self) -> KellyConfig:
        return KellyConfig(**self.model_dump())

    model_config = {
        "json_schema_extra": {
            "example": {
                "true_probability": 0.55,
                "bookmaker_odds": 2.0,
                "bankroll": 1000,
                "kelly_fraction": 0.25,
                "min_ev_threshold": 3,
                "max_bet_percentage": 5,
            }
        }
    }


class KellySimulationRequest(BaseModel):
    config: KellyRequest
    num_bets: int = Field(1000, ge=1, le=10000)
    num_simulations: int = Field(100, ge=1, le=2000)
    seed: Optional[int] = None


# ---------------------------------------------------------------------------
# CLV
# ---------------------------------------------------------------------------

class CLVRequest(BaseModel):
    predicted_odds: float
    closing_odds: float
    opening_odds: Optional[float] = None


class OddsObservationPayload(BaseModel):
    timestamp: datetime
    odds: float
    source: str = ""


class LineMovementRequest(BaseModel):
    observations: List[OddsObservationPayload]


class BetPricePayload(BaseModel):
    predicted_odds: float
    closing_odds: float


class AggregateCLVRequest(BaseModel):
    bets: List[BetPricePayload] = Field(default_factory=list)


class ShouldBetRequest(BaseModel):
    predicted_odds: float
    current_odds: float
    min_clv: float = 2.0
    min_ev: float = 3.0
