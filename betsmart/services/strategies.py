"""
Per-league prediction strategies and the registry that selects them.

GenericEnsembleStrategy
    factors -> ensemble -> side and bounded confidence.  Draw-capable
    leagues may switch a near-even pick to the draw when the quoted draw
    price is positive EV at the league's draw rate.

BaseballStrategy
    Run-based model: record, run differential, recent form, head-to-head,
    a one-point home-field edge and a small deterministic tie-break seeded
    from the match id.  Confidence is bounded to the league range
    (MLB [45, 75]).  The Skellam probability that the projected home run
    rate beats the away rate is reported alongside.

The registry resolves a league's ``strategy`` name; unknown names fall back
to the generic strategy.
"""

from __future__ import annotations

import logging
import zlib
from typing import Optional

import numpy as np
from scipy.stats import skellam

from betsmart.core.edge import raw_expected_value
from betsmart.core.league_config import (
    STRATEGY_BASEBALL,
    STRATEGY_ENSEMBLE,
    EngineSettings,
    LeagueConfig,
)
from betsmart.core.strategy_interface import (
    HeadToHead,
    MarketOdds,
    MatchInput,
    PredictionStrategy,
    StrategyPick,
)
from betsmart.services.ensemble import EnsembleConfig, run_ensemble
from betsmart.services.factors import (
    build_factor_breakdown,
    compute_match_factors,
    parse_record,
    project_score,
    recent_form_score,
)

logger = logging.getLogger(__name__)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _team_label(match: MatchInput, side: str) -> str:
    if side == "home":
        return match.home.name
    if side == "away":
        return match.away.name
    return "Draw"


# ============================================================================
# GENERIC ENSEMBLE PATH
# ============================================================================

class GenericEnsembleStrategy(PredictionStrategy):
    name = STRATEGY_ENSEMBLE

    def __init__(self, config: Optional[EnsembleConfig] = None):
        self.config = config or EnsembleConfig()

    def predict(
        self,
        match: MatchInput,
        league: LeagueConfig,
        *,
        market: Optional[MarketOdds],
        history: Optional[HeadToHead],
        settings: EngineSettings,
    ) -> StrategyPick:
        factors = compute_match_factors(match, league, history)
        result = run_ensemble(
            factors,
            market=market,
            home_form=match.home.recent_form,
            away_form=match.away.recent_form,
            config=self.config,
        )

        near_even = abs(result.home_probability - 0.5) < settings.near_even_margin
        low, high = settings.near_even_bounds if near_even else league.confidence_bounds
        confidence = int(round(_clamp(result.calibrated_confidence, low, high)))
        recommended = result.recommended
        true_probability = confidence / 100.0

        reasoning = [
            f"Ensemble favours {_team_label(match, recommended)} "
            f"({result.base_learners:.1%} base learner consensus)",
            f"Model diversity {result.diversity_score:.3f}: {result.diversity_label}",
        ]
        for side, pattern in (("home", result.home_pattern), ("away", result.away_pattern)):
            if pattern.type != "none":
                reasoning.append(f"{_team_label(match, side)}: {pattern.description}")

        if league.allows_draw and near_even and market is not None and market.draw:
            draw_ev = raw_expected_value(league.draw_rate, market.draw)
            pick_ev = raw_expected_value(true_probability, market.price_for(recommended))
            if draw_ev > 0.0 and draw_ev > pick_ev:
                reasoning.append(
                    f"Near-even match: draw at {market.draw:.2f} beats the side price "
                    f"at a {league.draw_rate:.0%} draw rate"
                )
                recommended = "draw"
                true_probability = league.draw_rate

        if near_even:
            reasoning.append("Near-even matchup: confidence range tightened")

        details = result.to_details()
        details["near_even"] = near_even

        return StrategyPick(
            recommended=recommended,
            confidence=confidence,
            true_probability=true_probability,
            projected_home=project_score(factors.home, factors.away, True, league),
            projected_away=project_score(factors.away, factors.home, False, league),
            factors=tuple(build_factor_breakdown(match, factors)),
            reasoning=tuple(reasoning),
            details=details,
        )


# ============================================================================
# BASEBALL PATH
# ============================================================================

class BaseballStrategy(PredictionStrategy):
    """Dedicated run-based path for baseball leagues."""

    name = STRATEGY_BASEBALL

    BASE_RUNS = 4.1
    HOME_FIELD_EDGE = 1.0
    TIE_BREAK_RANGE = 2.0

    @staticmethod
    def run_differential(win_pct: float) -> int:
        return round((win_pct - 0.5) * 120)

    @classmethod
    def tie_break(cls, match_id: str) -> float:
        """Deterministic offset in [-2, 2), identical for a match id on every host."""
        rng = np.random.default_rng(zlib.crc32(match_id.encode("utf-8")))
        return float(rng.uniform(-cls.TIE_BREAK_RANGE, cls.TIE_BREAK_RANGE))

    def predict(
        self,
        match: MatchInput,
        league: LeagueConfig,
        *,
        market: Optional[MarketOdds],
        history: Optional[HeadToHead],
        settings: EngineSettings,
    ) -> StrategyPick:
        home_record = parse_record(match.home.record)
        away_record = parse_record(match.away.record)
        home_rd = self.run_differential(home_record.win_pct)
        away_rd = self.run_differential(away_record.win_pct)
        home_form = recent_form_score(match.home.recent_form)
        away_form = recent_form_score(match.away.recent_form)

        factor_rows = []
        lean = 50.0
        if home_record.games and away_record.games:
            record_impact = (home_record.win_pct - away_record.win_pct) * 25.0
            lean += record_impact
            factor_rows.append(("record", record_impact,
                                f"{match.home.record} vs {match.away.record}"))
        run_diff_impact = (home_rd - away_rd) * 0.15
        form_impact = (home_form - away_form) * 5.0
        lean += run_diff_impact + form_impact
        factor_rows.append(("run_differential", run_diff_impact,
                            f"Run differential {home_rd:+d} vs {away_rd:+d}"))
        factor_rows.append(("recent_form", form_impact,
                            f"Weighted form {home_form:.2f} vs {away_form:.2f}"))

        if history is not None and history.games_played > 2:
            h2h_impact = (history.home_wins / history.games_played - 0.5) * 15.0
            lean += h2h_impact
            factor_rows.append(("head_to_head", h2h_impact,
                                f"{history.games_played} previous meetings"))

        lean += self.HOME_FIELD_EDGE
        factor_rows.append(("home_field", self.HOME_FIELD_EDGE, "Home field edge"))
        tie_break = self.tie_break(match.match_id)
        lean += tie_break

        recommended = "home" if lean >= 50.0 else "away"
        low, high = league.confidence_bounds
        confidence = int(round(_clamp(max(lean, 100.0 - lean), low, high)))

        home_runs = max(0.0, round(self.BASE_RUNS + home_rd / 100.0, 1))
        away_runs = max(0.0, round(self.BASE_RUNS + away_rd / 100.0, 1))
        run_line_prob = float(
            skellam.sf(0, home_runs, away_runs) + 0.5 * skellam.pmf(0, home_runs, away_runs)
        )

        factors = tuple(
            {
                "name": name,
                "impact": round(impact, 2),
                "favored": "home" if impact > 0 else "away" if impact < 0 else "neutral",
                "description": description,
            }
            for name, impact, description in factor_rows
        )
        reasoning = (
            f"{_team_label(match, recommended)} favoured on record and run differential",
            f"Projected runs {home_runs:.1f} - {away_runs:.1f}; "
            f"run-rate home win probability {run_line_prob:.1%}",
        )
        logger.debug("Baseball %s: lean=%.2f tie_break=%+.3f", match.match_id, lean, tie_break)

        return StrategyPick(
            recommended=recommended,
            confidence=confidence,
            true_probability=confidence / 100.0,
            projected_home=home_runs,
            projected_away=away_runs,
            factors=factors,
            reasoning=reasoning,
            details={
                "home_run_differential": home_rd,
                "away_run_differential": away_rd,
                "tie_break": round(tie_break, 4),
                "run_line_home_win_prob": round(run_line_prob, 4),
                "raw_lean": round(lean, 2),
            },
        )


# ============================================================================
# REGISTRY
# ============================================================================

class StrategyRegistry:
    """Maps strategy names (``LeagueConfig.strategy``) to strategy instances."""

    def __init__(self, default: Optional[PredictionStrategy] = None):
        self._default = default or GenericEnsembleStrategy()
        self._strategies: dict[str, PredictionStrategy] = {self._default.name: self._default}

    def register(self, strategy: PredictionStrategy) -> None:
        if not isinstance(strategy, PredictionStrategy):
            raise TypeError(
                f"strategy must be a PredictionStrategy, got {type(strategy).__name__}"
            )
        self._strategies[strategy.name] = strategy

    def for_league(self, league: LeagueConfig) -> PredictionStrategy:
        return self._strategies.get(league.strategy, self._default)

    def names(self) -> list[str]:
        return sorted(self._strategies)


def default_registry() -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.register(BaseballStrategy())
    return registry
