"""Dependency-injection interfaces for per-league prediction strategies.

This module defines the contract that **every** prediction strategy must
satisfy, and the data-transfer objects that flow through the prediction
pipeline.  The orchestrator
(:class:`~betsmart.services.prediction_service.PredictionService`) selects a
strategy by league code and never branches on the league itself.  This
enables:

* **League extension** — a dedicated baseball path lives beside the generic
  ensemble path without an inline conditional in the pipeline.
* **Unit testing** — inject a stub strategy returning a fixed
  :class:`StrategyPick` to exercise locking without any modelling.

Design choices
--------------
* :class:`PredictionStrategy` is an ABC rather than a ``typing.Protocol``
  because the strategy registry checks ``isinstance`` at registration time.
* :class:`Prediction` is frozen all the way down: ``factors`` and
  ``details`` are stored as read-only mappings and tuples, so a record handed
  out by the cache or the store cannot be edited in place by a caller.
  :meth:`Prediction.to_dict` / :meth:`Prediction.from_dict`
  round-trip through JSON to an equal object, which is what lets a record
  read back from the persisted store compare equal to the one that was
  written.
* Sides are plain strings (``"home"``, ``"away"``, ``"draw"``), matching the
  API payloads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal, Optional

if TYPE_CHECKING:
    from betsmart.core.league_config import EngineSettings, LeagueConfig

Side = Literal["home", "away", "draw"]

SIDES: tuple[str, ...] = ("home", "away", "draw")


def freeze(value: Any) -> Any:
    """Read-only copy of a JSON-like value: mappings become ``MappingProxyType``,
    lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze`, producing plain dicts and lists."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TeamInput:
    """One side of a match.

    Attributes:
        name: Display name; also used to match odds-provider outcomes.
        record: Season record ``"W-L"`` or ``"W-L-D"``.  ``None`` = no games.
        recent_form: Results, **most recent first**, each ``"W"``, ``"L"``
            or ``"D"``.
        team_id: Optional upstream identifier.
    """

    name: str
    record: Optional[str] = None
    recent_form: tuple[str, ...] = ()
    team_id: Optional[str] = None


@dataclass(frozen=True)
class MarketOdds:
    """Decimal moneyline prices for a match.  ``draw`` only for three-way markets."""

    home_win: float
    away_win: float
    draw: Optional[float] = None

    def price_for(self, side: str) -> Optional[float]:
        if side == "home":
            return self.home_win
        if side == "away":
            return self.away_win
        if side == "draw":
            return self.draw
        raise ValueError(f"Unknown side {side!r}; expected one of {SIDES}")

    def is_valid(self) -> bool:
        prices = [self.home_win, self.away_win] + ([self.draw] if self.draw is not None else [])
        return all(isinstance(p, (int, float)) and p > 1.0 for p in prices)


@dataclass(frozen=True)
class HeadToHead:
    """Historical head-to-head aggregate, from the home team's perspective."""

    games_played: int = 0
    home_wins: int = 0
    away_wins: int = 0
    draws: int = 0

    def __post_init__(self) -> None:
        if self.games_played < 0 or self.home_wins < 0 or self.away_wins < 0 or self.draws < 0:
            raise ValueError(f"Head-to-head counts must be non-negative, got {self!r}")
        if self.home_wins + self.away_wins + self.draws > self.games_played:
            raise ValueError(
                f"Head-to-head results exceed games played: {self!r}"
            )


@dataclass(frozen=True)
class MatchInput:
    """A match to predict.

    Attributes:
        match_id: Unique identifier; the locking key.
        home: Home team.
        away: Away team.
        league: League code (``"NBA"``, ``"MLB"``, ...).
        odds: Last-known market prices carried on the match record.  Used
            when the live odds provider is absent or times out.
    """

    match_id: str
    home: TeamInput
    away: TeamInput
    league: str
    odds: Optional[MarketOdds] = None

    def __post_init__(self) -> None:
        if not self.match_id or not str(self.match_id).strip():
            raise ValueError("match_id must be a non-empty string")


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StrategyPick:
    """What a strategy decides before pricing and staking.

    Attributes:
        recommended: Side to back.
        confidence: Integer percent, already inside the league's bounds.
        true_probability: Model probability of ``recommended`` winning.
        projected_home: Projected home score.
        projected_away: Projected away score.
        factors: Factor breakdown, one JSON-friendly dict per factor.
        reasoning: Human-readable explanation lines.
        details: Strategy-specific breakdown (ensemble layers, run rates).
    """

    recommended: str
    confidence: int
    true_probability: float
    projected_home: float
    projected_away: float
    factors: tuple[dict, ...] = ()
    reasoning: tuple[str, ...] = ()
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Prediction:
    """A locked prediction for one match.

    Units: ``confidence`` is an integer percent (0–100); ``true_probability``
    and ``kelly_fraction`` are fractions (0–1); ``recommended_stake`` is in
    currency (2 dp); ``recommended_units`` is in betting units (2 dp);
    ``ev_percentage`` is percent (2 dp).
    """

    match_id: str
    league: str
    strategy: str
    recommended: str
    confidence: int
    projected_home: float
    projected_away: float
    true_probability: float
    implied_odds: float
    market_odds: float
    odds_source: str
    edge: float
    expected_value: float
    ev_percentage: float
    is_positive_ev: bool
    kelly_fraction: float
    recommended_stake: float
    recommended_units: float
    risk_level: str
    factors: tuple[Mapping[str, Any], ...] = ()
    reasoning: tuple[str, ...] = ()
    details: Mapping[str, Any] = field(default_factory=dict)
    model_version: str = ""
    generated_at: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "factors", tuple(freeze(f) for f in self.factors))
        object.__setattr__(self, "reasoning", tuple(self.reasoning))
        object.__setattr__(self, "details", freeze(self.details))

    @property
    def projected_score(self) -> tuple[float, float]:
        return (self.projected_home, self.projected_away)

    def to_dict(self) -> dict[str, Any]:
        payload = {f.name: getattr(self, f.name) for f in fields(self)}
        payload["factors"] = thaw(self.factors)
        payload["reasoning"] = list(self.reasoning)
        payload["details"] = thaw(self.details)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Prediction:
        data = dict(payload)
        data["factors"] = tuple(data.get("factors") or ())
        data["reasoning"] = tuple(data.get("reasoning") or ())
        data["details"] = data.get("details") or {}
        return cls(**data)


# ---------------------------------------------------------------------------
# Strategy contract
# ---------------------------------------------------------------------------


class PredictionStrategy(ABC):
    """Abstract base class for per-league prediction strategies.

    Implementations must be deterministic: the same inputs always yield the
    same :class:`StrategyPick`.  They must not perform I/O; market prices are
    resolved by the orchestrator and passed in.
    """

    #: Identifier stored on every :class:`Prediction` this strategy produces.
    name: str = ""

    @abstractmethod
    def predict(
        self,
        match: MatchInput,
        league: LeagueConfig,
        *,
        market: Optional[MarketOdds],
        history: Optional[HeadToHead],
        settings: EngineSettings,
    ) -> StrategyPick:
        """Decide side, confidence and projected score for ``match``.

        Raises:
            ValueError: If team inputs are malformed (e.g. an unparseable
                record).  Missing history is not an error.
        """
