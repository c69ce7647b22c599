"""League-level and engine-level configuration — all tunable constants in one place.

This module is the **registry** for every constant that differs between
leagues (base scoring rate, home advantage, draw support, confidence bounds)
and for the engine-wide staking and caching defaults.  Nowhere else in the
codebase should league averages or Kelly defaults be hard-coded.

Architecture
------------
:class:`LeagueConfig` is a frozen dataclass.  Named constructors
(:meth:`LeagueConfig.nba`, :meth:`LeagueConfig.mlb`, ...) return
pre-populated instances and :func:`for_league` resolves a league code from
an incoming match record.  Unknown codes fall back to
:meth:`LeagueConfig.default` carrying the requested code.

:class:`EngineSettings` carries bankroll, Kelly and cache defaults.
:meth:`EngineSettings.from_env` reads them from the environment (``.env``
loaded via python-dotenv).  Tests construct it directly or override a
single field::

    from dataclasses import replace
    settings = replace(EngineSettings(), kelly_fraction=0.5)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Final, Optional

from dotenv import load_dotenv

from betsmart.core.kelly import (
    DEFAULT_KELLY_FRACTION,
    DEFAULT_MAX_BET_PERCENTAGE,
    DEFAULT_MIN_EV_THRESHOLD,
)

#: Strategy identifiers resolved by ``betsmart.services.strategies``.
STRATEGY_ENSEMBLE: Final[str] = "ensemble"
STRATEGY_BASEBALL: Final[str] = "baseball"

#: Confidence range of the general path, integer percent.
GENERAL_CONFIDENCE_BOUNDS: Final[tuple[int, int]] = (40, 88)


@dataclass(frozen=True)
class LeagueConfig:
    """Immutable configuration bundle for a single league.

    Attributes:
        league_code: Upper-case code as it appears on match records.
        league_name: Human-readable name for logging.
        base_score: League-average points (runs, goals) per team per game.
            Anchor of :func:`~betsmart.services.factors.project_score`.
        home_advantage: Home-edge input to the base learners, in the same
            confidence-point scale as the strength differential.
        allows_draw: Whether a regulation draw is a settled outcome.
        draw_rate: Long-run share of drawn matches; the true probability
            used for a draw recommendation.  0.0 when draws are impossible.
        confidence_bounds: Inclusive integer range for the published
            confidence of this league's predictions.
        odds_api_sport_key: Sport key for The Odds API.
        strategy: Which :class:`~betsmart.core.strategy_interface.PredictionStrategy`
            handles this league.
    """

    league_code: str
    league_name: str
    base_score: float
    home_advantage: float
    allows_draw: bool = False
    draw_rate: float = 0.0
    confidence_bounds: tuple[int, int] = GENERAL_CONFIDENCE_BOUNDS
    odds_api_sport_key: str = ""
    strategy: str = STRATEGY_ENSEMBLE

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def nba(cls) -> LeagueConfig:
        return cls("NBA", "NBA", base_score=110.0, home_advantage=2.5,
                   odds_api_sport_key="basketball_nba")

    @classmethod
    def nfl(cls) -> LeagueConfig:
        return cls("NFL", "NFL", base_score=22.0, home_advantage=2.8,
                   odds_api_sport_key="americanfootball_nfl")

    @classmethod
    def mlb(cls) -> LeagueConfig:
        """MLB uses the dedicated run-based path with a tighter [45, 75] range."""
        return cls("MLB", "MLB", base_score=4.5, home_advantage=1.5,
                   confidence_bounds=(45, 75),
                   odds_api_sport_key="baseball_mlb",
                   strategy=STRATEGY_BASEBALL)

    @classmethod
    def nhl(cls) -> LeagueConfig:
        return cls("NHL", "NHL", base_score=2.8, home_advantage=2.2,
                   odds_api_sport_key="icehockey_nhl")

    @classmethod
    def ncaab(cls) -> LeagueConfig:
        return cls("NCAAB", "NCAA Basketball", base_score=72.0, home_advantage=3.5,
                   odds_api_sport_key="basketball_ncaab")

    @classmethod
    def ncaaf(cls) -> LeagueConfig:
        return cls("NCAAF", "NCAA Football", base_score=24.0, home_advantage=3.0,
                   odds_api_sport_key="americanfootball_ncaaf")

    @classmethod
    def soccer(cls) -> LeagueConfig:
        return cls("SOCCER", "Soccer", base_score=1.3, home_advantage=2.0,
                   allows_draw=True, draw_rate=0.26,
                   odds_api_sport_key="soccer_uefa_champs_league")

    @classmethod
    def epl(cls) -> LeagueConfig:
        return cls("EPL", "English Premier League", base_score=1.4, home_advantage=2.0,
                   allows_draw=True, draw_rate=0.24,
                   odds_api_sport_key="soccer_epl")

    @classmethod
    def mls(cls) -> LeagueConfig:
        return cls("MLS", "Major League Soccer", base_score=1.5, home_advantage=2.2,
                   allows_draw=True, draw_rate=0.24,
                   odds_api_sport_key="soccer_usa_mls")

    @classmethod
    def default(cls, league_code: str = "DEFAULT") -> LeagueConfig:
        return cls(league_code.upper(), league_code.upper(), base_score=2.0,
                   home_advantage=2.0)

    def __repr__(self) -> str:
        return (
            f"LeagueConfig(league_code={self.league_code!r}, "
            f"strategy={self.strategy!r}, bounds={self.confidence_bounds})"
        )


_LEAGUES: Final[dict[str, Callable[[], LeagueConfig]]] = {
    "NBA": LeagueConfig.nba,
    "NFL": LeagueConfig.nfl,
    "MLB": LeagueConfig.mlb,
    "NHL": LeagueConfig.nhl,
    "NCAAB": LeagueConfig.ncaab,
    "NCAAF": LeagueConfig.ncaaf,
    "SOCCER": LeagueConfig.soccer,
    "EPL": LeagueConfig.epl,
    "MLS": LeagueConfig.mls,
}


def for_league(league_code: Optional[str]) -> LeagueConfig:
    """Resolve a league code (case-insensitive) to its configuration."""
    code = (league_code or "").strip().upper()
    factory = _LEAGUES.get(code)
    if factory is None:
        return LeagueConfig.default(code or "DEFAULT")
    return factory()


def known_leagues() -> list[str]:
    return sorted(_LEAGUES)


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Engine-wide defaults for staking, odds lookup and the local cache.

    Attributes:
        bankroll: Bankroll used to size every locked prediction's stake.
        kelly_fraction: Fractional Kelly multiplier.
        min_ev_threshold: Minimum EV percent before a stake is recommended.
        max_bet_percentage: Cap on a single stake, percent of bankroll.
        unit_size: Currency per betting unit; ``None`` → bankroll / 100.
        odds_timeout_seconds: Upper bound on one market-odds lookup.
        fallback_decimal_odds: Price used when neither the provider nor the
            match record supplies one (−110, the standard vig line).
        cache_ttl_seconds: Lifetime of a local cache entry.
        cache_max_size: Entries kept before the oldest 10 % are evicted.
        near_even_margin: Distance of the consensus home probability from
            0.5 under which a game counts as near-even.
        near_even_bounds: Confidence range applied to near-even games.
    """

    bankroll: float = 1000.0
    kelly_fraction: float = DEFAULT_KELLY_FRACTION
    min_ev_threshold: float = DEFAULT_MIN_EV_THRESHOLD
    max_bet_percentage: float = DEFAULT_MAX_BET_PERCENTAGE
    unit_size: Optional[float] = None
    odds_timeout_seconds: float = 3.0
    fallback_decimal_odds: float = 1.91
    cache_ttl_seconds: float = 30 * 60.0
    cache_max_size: int = 500
    near_even_margin: float = 0.03
    near_even_bounds: tuple[int, int] = (45, 62)

    @classmethod
    def from_env(cls) -> EngineSettings:
        """Build settings from environment variables, loading ``.env`` first."""
        load_dotenv()
        unit_size = os.getenv("UNIT_SIZE")
        return cls(
            bankroll=float(os.getenv("BANKROLL", "1000")),
            kelly_fraction=float(os.getenv("KELLY_FRACTION", str(DEFAULT_KELLY_FRACTION))),
            min_ev_threshold=float(os.getenv("MIN_EV_THRESHOLD", str(DEFAULT_MIN_EV_THRESHOLD))),
            max_bet_percentage=float(
                os.getenv("MAX_BET_PERCENTAGE", str(DEFAULT_MAX_BET_PERCENTAGE))
            ),
            unit_size=float(unit_size) if unit_size else None,
            odds_timeout_seconds=float(os.getenv("ODDS_TIMEOUT_SECONDS", "3.0")),
            fallback_decimal_odds=float(os.getenv("FALLBACK_DECIMAL_ODDS", "1.91")),
            cache_ttl_seconds=float(os.getenv("PREDICTION_CACHE_TTL_MIN", "30")) * 60.0,
            cache_max_size=int(os.getenv("PREDICTION_CACHE_MAX", "500")),
            near_even_margin=float(os.getenv("NEAR_EVEN_MARGIN", "0.03")),
        )
