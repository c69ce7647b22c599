"""
Team and context factors, the first stage of the prediction pipeline.

Turns raw team references (season record, recent results) and the optional
head-to-head aggregate into the numeric differentials the ensemble's base
learners consume:

    strength_diff   home.overall − away.overall           (0–100 scale)
    home_advantage  league home edge                      (confidence points)
    momentum_diff   home.momentum − away.momentum         (0–100 scale)
    h2h_impact      (home_wins / games − 0.5) · 20        (±10)

Nothing here raises on *missing* data: a team with no record is a .500 team,
a team with no recent form has neutral momentum.  Malformed data (a record
like ``"ten-3"``, a form entry of ``"X"``) is a ValueError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from betsmart.core.league_config import LeagueConfig
from betsmart.core.strategy_interface import HeadToHead, MatchInput, TeamInput

logger = logging.getLogger(__name__)

# Recency decay for recent form: result i (0 = most recent) weighs FORM_DECAY**i
FORM_DECAY = 0.85

# Rating clamps
RATING_MIN, RATING_MAX = 25.0, 95.0
MOMENTUM_MIN, MOMENTUM_MAX = 20.0, 95.0

_FORM_VALUES = {"W": 1.0, "D": 0.5, "L": 0.0}


@dataclass(frozen=True)
class TeamRecord:
    wins: int = 0
    losses: int = 0
    draws: int = 0

    @property
    def games(self) -> int:
        return self.wins + self.losses + self.draws

    @property
    def win_pct(self) -> float:
        """Win share with draws as half a win; 0.5 with no games played."""
        if self.games == 0:
            return 0.5
        return (self.wins + 0.5 * self.draws) / self.games


@dataclass(frozen=True)
class TeamStrength:
    offense: float
    defense: float
    momentum: float

    @property
    def overall(self) -> float:
        return 0.4 * self.offense + 0.4 * self.defense + 0.2 * self.momentum


@dataclass(frozen=True)
class MatchFactors:
    """Differentials consumed by the base learners, home perspective."""

    home: TeamStrength
    away: TeamStrength
    strength_diff: float
    home_advantage: float
    momentum_diff: float
    h2h_impact: float
    h2h_games: int


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def parse_record(record: Optional[str]) -> TeamRecord:
    """Parse ``"W-L"`` or ``"W-L-D"``.  ``None`` or blank means no games."""
    if record is None or not record.strip():
        return TeamRecord()
    parts = record.strip().split("-")
    if len(parts) not in (2, 3):
        raise ValueError(f"Record must look like 'W-L' or 'W-L-D', got {record!r}")
    try:
        numbers = [int(p) for p in parts]
    except ValueError:
        raise ValueError(f"Record must contain integers, got {record!r}") from None
    if any(n < 0 for n in numbers):
        raise ValueError(f"Record counts must be non-negative, got {record!r}")
    return TeamRecord(*numbers)


def normalize_form(form: Iterable[str]) -> list[str]:
    results = [str(r).strip().upper() for r in form]
    for r in results:
        if r not in _FORM_VALUES:
            raise ValueError(f"Recent form entries must be W, L or D, got {r!r}")
    return results


def recent_form_score(form: Iterable[str]) -> float:
    """Recency-weighted win share in [0, 1]; most recent result first."""
    results = normalize_form(form)
    if not results:
        return 0.5
    weights = [FORM_DECAY ** i for i in range(len(results))]
    total = sum(w * _FORM_VALUES[r] for w, r in zip(weights, results))
    return total / sum(weights)


def calculate_team_strength(team: TeamInput) -> TeamStrength:
    record = parse_record(team.record)
    rating = 50.0 + (record.win_pct - 0.5) * 40.0
    momentum = 50.0 + (recent_form_score(team.recent_form) - 0.5) * 50.0
    return TeamStrength(
        offense=_clamp(rating, RATING_MIN, RATING_MAX),
        defense=_clamp(rating, RATING_MIN, RATING_MAX),
        momentum=_clamp(momentum, MOMENTUM_MIN, MOMENTUM_MAX),
    )


def head_to_head_impact(h2h: Optional[HeadToHead]) -> float:
    """Home-perspective head-to-head signal in [−10, 10]; 0 without meetings."""
    if h2h is None or h2h.games_played == 0:
        return 0.0
    return (h2h.home_wins / h2h.games_played - 0.5) * 20.0


def compute_match_factors(
    match: MatchInput,
    league: LeagueConfig,
    history: Optional[HeadToHead] = None,
) -> MatchFactors:
    home = calculate_team_strength(match.home)
    away = calculate_team_strength(match.away)
    logger.debug(
        "Factors %s: home %.1f vs away %.1f overall", match.match_id, home.overall, away.overall
    )
    return MatchFactors(
        home=home,
        away=away,
        strength_diff=home.overall - away.overall,
        home_advantage=league.home_advantage,
        momentum_diff=home.momentum - away.momentum,
        h2h_impact=head_to_head_impact(history),
        h2h_games=history.games_played if history else 0,
    )


def project_score(
    team: TeamStrength,
    opponent: TeamStrength,
    is_home: bool,
    league: LeagueConfig,
) -> float:
    """Projected points for ``team`` against ``opponent``, one decimal."""
    multiplier = (
        1.0
        + (team.offense - 50.0) / 100.0
        + (50.0 - opponent.defense) / 100.0
        + (team.momentum - 50.0) / 200.0
    )
    score = league.base_score * multiplier
    if is_home:
        score *= 1.02
    return max(0.0, round(score, 1))


def _favored(impact: float) -> str:
    if impact > 0:
        return "home"
    if impact < 0:
        return "away"
    return "neutral"


def build_factor_breakdown(match: MatchInput, factors: MatchFactors) -> list[dict]:
    """JSON-friendly factor list for the prediction record."""
    rows = [
        ("team_strength", factors.strength_diff,
         f"{match.home.name} {factors.home.overall:.1f} vs "
         f"{match.away.name} {factors.away.overall:.1f} overall rating"),
        ("home_advantage", factors.home_advantage,
         f"{match.home.name} home edge of {factors.home_advantage:.1f}"),
        ("momentum", factors.momentum_diff,
         f"Recent form {factors.home.momentum:.1f} vs {factors.away.momentum:.1f}"),
    ]
    if factors.h2h_games:
        rows.append(
            ("head_to_head", factors.h2h_impact,
             f"{factors.h2h_games} previous meetings")
        )
    return [
        {
            "name": name,
            "impact": round(impact, 2),
            "favored": _favored(round(impact, 2)),
            "description": description,
        }
        for name, impact, description in rows
    ]
