"""
Ensemble scoring engine — stacks four signal layers into one confidence.

Layers, in the order they are computed:

1. **Base learners** — three weighted scoring models over the match factor
   differentials (power index, value finder, statistical edge).  Their
   learner-weighted home probability decides the pick; ``base_learners`` is
   the probability of the picked side, in [0.5, 1].
2. **Gradient boosting** — a residual correction toward a market anchor
   (no-vig home probability when prices are known, otherwise the unweighted
   learner mean), fitted over ``boosting_rounds`` with shrinkage
   ``boosting_learning_rate``.
3. **Sequential pattern** — streak / breakout / alternating / regression
   detector on each team's recent results.  It only moves confidence; it is
   applied after the pick is fixed and cannot change it.
4. **Diversity bonus** — low dispersion across learners earns a bonus, high
   dispersion a penalty.

Layers 2–4 are signed fractions *toward the pick* (positive = agrees with
the base pick) and are combined with fixed stacking weights::

    stacked = clamp(100·base + 100·(0.6·gb + 0.8·seq + 1.0·div), 0, 100)

Each layer is also mapped onto a [0, 100] display bar by the fixed affine
transform ``clamp(50 + 500·adjustment, 0, 100)``.

Everything here is a pure function of its inputs.  Missing recent form is a
``none`` pattern with zero contribution, never an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

import numpy as np

from betsmart.core.edge import calculate_expected_value
from betsmart.core.odds_math import remove_vig
from betsmart.core.strategy_interface import MarketOdds
from betsmart.services.factors import MatchFactors, normalize_form

logger = logging.getLogger(__name__)

# Stacking weights applied to the signed layer adjustments
STACKING_WEIGHTS = {
    "gradient_boosting": 0.6,
    "sequential_pattern": 0.8,
    "diversity_bonus": 1.0,
}

# Each adjustment layer is bounded to this magnitude before stacking
MAX_LAYER_ADJUSTMENT = 0.10
MAX_DIVERSITY_BONUS = 0.05

# Diversity score at which the bonus crosses zero
DIVERSITY_PIVOT = 0.10

# Labels for diversity_score
STRONG_AGREEMENT_BELOW = 0.05
MODERATE_AGREEMENT_BELOW = 0.15

# Calibration pulls the stacked value toward this centre
CALIBRATION_CENTER = 55.0

# Display bar transform: 50 + adjustment * BAR_SCALE
BAR_SCALE = 500.0


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True)
class EnsembleConfig:
    boosting_learning_rate: float = 0.15
    boosting_rounds: int = 5
    sequential_decay_rate: float = 0.9
    diversity_weight: float = 0.5
    calibration_strength: float = 0.3
    learner_weights: Mapping[str, float] = field(
        default_factory=lambda: {
            "power_index": 1.0,
            "value_finder": 1.0,
            "statistical_edge": 1.0,
        }
    )


# ============================================================================
# BASE LEARNERS
# ============================================================================

@dataclass(frozen=True)
class LearnerOutput:
    name: str
    home_probability: float
    recommended: str
    confidence: float
    ev_percentage: Optional[float] = None


@dataclass(frozen=True)
class BaseLearner:
    """
    Linear scoring model over the match factor differentials.

    home_lean = 50 + strength_diff·w_strength + home_advantage·w_home
                + momentum_diff·w_momentum·0.1 + h2h_impact·w_h2h

    Optional behaviours:
        momentum_swing   (threshold, bonus) — push further toward the lean
                         when |momentum_diff| exceeds threshold
        value_bonus      (ev_pct, bonus) — push toward the pick when its EV
                         at the learner's own confidence exceeds ev_pct
        h2h_boost        (min_games, multiplier) — weigh head-to-head harder
                         once enough meetings exist
    """

    name: str
    w_strength: float
    w_home: float
    w_momentum: float
    w_h2h: float
    max_confidence: float = 88.0
    momentum_swing: Optional[tuple[float, float]] = None
    value_bonus: Optional[tuple[float, float]] = None
    h2h_boost: Optional[tuple[int, float]] = None

    def score(self, factors: MatchFactors, market: Optional[MarketOdds] = None) -> LearnerOutput:
        h2h = factors.h2h_impact
        if self.h2h_boost and factors.h2h_games >= self.h2h_boost[0]:
            h2h *= self.h2h_boost[1]

        lean = (
            50.0
            + factors.strength_diff * self.w_strength
            + factors.home_advantage * self.w_home
            + factors.momentum_diff * self.w_momentum * 0.1
            + h2h * self.w_h2h
        )
        direction = 1.0 if lean >= 50.0 else -1.0

        if self.momentum_swing and abs(factors.momentum_diff) > self.momentum_swing[0]:
            lean += direction * self.momentum_swing[1]

        recommended = "home" if lean >= 50.0 else "away"
        confidence = min(self.max_confidence, max(lean, 100.0 - lean))

        ev_pct = None
        if market is not None and market.is_valid():
            price = market.price_for(recommended)
            ev_pct = calculate_expected_value(confidence / 100.0, price).ev_percentage
            if self.value_bonus and ev_pct > self.value_bonus[0]:
                confidence = min(self.max_confidence, confidence + self.value_bonus[1])

        home_probability = confidence / 100.0 if recommended == "home" else 1.0 - confidence / 100.0
        return LearnerOutput(
            name=self.name,
            home_probability=home_probability,
            recommended=recommended,
            confidence=confidence,
            ev_percentage=ev_pct,
        )


DEFAULT_LEARNERS: tuple[BaseLearner, ...] = (
    BaseLearner("power_index", w_strength=0.35, w_home=0.12, w_momentum=0.25, w_h2h=0.18,
                momentum_swing=(20.0, 3.0)),
    BaseLearner("value_finder", w_strength=0.25, w_home=0.10, w_momentum=0.15, w_h2h=0.10,
                max_confidence=85.0, value_bonus=(5.0, 5.0)),
    BaseLearner("statistical_edge", w_strength=0.30, w_home=0.20, w_momentum=0.15, w_h2h=0.25,
                h2h_boost=(5, 1.5)),
)


# ============================================================================
# SEQUENTIAL PATTERNS
# ============================================================================

@dataclass(frozen=True)
class SequentialPattern:
    """Classification of a team's recent results.  ``adjustment`` is in confidence points."""

    type: str = "none"
    strength: float = 0.0
    adjustment: float = 0.0
    description: str = "Insufficient data"


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def detect_sequential_pattern(
    recent_form: Optional[Iterable[str]],
    decay_rate: float = 0.9,
) -> SequentialPattern:
    """
    Classify recent results (most recent first) into one pattern.

    Precedence: streak, alternating, regression, breakout, none.
    Fewer than three results is 'none' with zero adjustment.
    """
    results = normalize_form(recent_form or ())
    if len(results) < 3:
        return SequentialPattern()

    encoded = [1 if r == "W" else -1 if r == "L" else 0 for r in results]

    streak_len = 1
    for value in encoded[1:]:
        if value != encoded[0]:
            break
        streak_len += 1
    streak_strength = min(1.0, streak_len / 6.0)

    alternations = sum(
        1
        for prev, cur in zip(encoded, encoded[1:])
        if cur != prev and cur != 0 and prev != 0
    )
    alternating_ratio = alternations / (len(encoded) - 1)

    half = len(encoded) // 2
    first_avg = _mean(encoded[:half])
    second_avg = _mean(encoded[half:])
    regression_signal = abs(first_avg - second_avg)

    older = encoded[3:]
    breakout_signal = _mean(encoded[:3]) - _mean(older)

    if streak_len >= 4 and streak_strength > 0.5 and encoded[0] != 0:
        adjustment = encoded[0] * streak_strength * 3.0 * decay_rate
        return SequentialPattern(
            type="streak",
            strength=streak_strength,
            adjustment=max(-8.0, min(8.0, adjustment)),
            description=(
                f"{streak_len}-game {'win' if encoded[0] == 1 else 'loss'} streak "
                "(dampened for regression)"
            ),
        )

    if alternating_ratio > 0.7:
        return SequentialPattern(
            type="alternating",
            strength=alternating_ratio,
            adjustment=-encoded[0] * 2.0,
            description=f"Alternating pattern detected ({round(alternating_ratio * 100)}% alternation rate)",
        )

    if regression_signal > 0.6 and first_avg * second_avg < 0:
        return SequentialPattern(
            type="regression",
            strength=regression_signal,
            adjustment=-second_avg * 3.0,
            description=f"Regression to mean: reversing from {'hot' if second_avg > 0 else 'cold'} streak",
        )

    if abs(breakout_signal) > 0.5 and len(older) >= 2:
        return SequentialPattern(
            type="breakout",
            strength=abs(breakout_signal),
            adjustment=breakout_signal * 4.0,
            description=(
                f"Breakout {'upward' if breakout_signal > 0 else 'downward'}: "
                "recent form diverging from baseline"
            ),
        )

    return SequentialPattern(description="No strong sequential pattern")


# ============================================================================
# LAYER MATH
# ============================================================================

def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _toward_pick(home_value: float, recommended: str) -> float:
    return home_value if recommended == "home" else -home_value


def layer_bar(adjustment: float) -> float:
    """Fixed display transform of a signed layer adjustment onto [0, 100]."""
    return round(_clamp(50.0 + adjustment * BAR_SCALE, 0.0, 100.0), 1)


def diversity_label(score: float) -> str:
    if score < STRONG_AGREEMENT_BELOW:
        return "models strongly agree"
    if score < MODERATE_AGREEMENT_BELOW:
        return "moderate agreement"
    return "models disagree"


def boost_residual(residual: float, learning_rate: float, rounds: int) -> float:
    """Total correction after fitting ``residual`` for ``rounds`` shrinkage steps."""
    adjustment = 0.0
    for _ in range(rounds):
        step = residual * learning_rate
        adjustment += step
        residual -= step
    return adjustment


def market_home_probability(market: Optional[MarketOdds]) -> Optional[float]:
    """No-vig home probability of the two-way (home vs away) market."""
    if market is None or not market.is_valid():
        return None
    if market.draw is not None:
        home, away, _ = remove_vig(market.home_win, market.away_win, market.draw)
        return home / (home + away)
    return remove_vig(market.home_win, market.away_win)[0]


@dataclass(frozen=True)
class EnsembleResult:
    recommended: str
    home_probability: float
    agreement: float
    base_learners: float
    gradient_boosting: float
    sequential_pattern: float
    diversity_bonus: float
    diversity_score: float
    stacked_confidence: float
    calibrated_confidence: float
    home_pattern: SequentialPattern
    away_pattern: SequentialPattern
    learners: tuple[LearnerOutput, ...]

    @property
    def diversity_label(self) -> str:
        return diversity_label(self.diversity_score)

    def confidence_bars(self) -> dict[str, float]:
        return {
            "base_learners": round(self.base_learners * 100.0, 1),
            "gradient_boosting": layer_bar(self.gradient_boosting),
            "sequential_pattern": layer_bar(self.sequential_pattern),
            "diversity_bonus": layer_bar(self.diversity_bonus),
        }

    def to_details(self) -> dict:
        """JSON-friendly breakdown stored on the prediction record."""
        return {
            "layer_contributions": {
                "base_learners": round(self.base_learners, 4),
                "gradient_boosting": round(self.gradient_boosting, 4),
                "sequential_pattern": round(self.sequential_pattern, 4),
                "diversity_bonus": round(self.diversity_bonus, 4),
            },
            "confidence_bars": self.confidence_bars(),
            "stacked_confidence": round(self.stacked_confidence, 2),
            "calibrated_confidence": round(self.calibrated_confidence, 2),
            "diversity_score": round(self.diversity_score, 4),
            "diversity_label": self.diversity_label,
            "agreement": round(self.agreement, 4),
            "patterns": {
                side: {
                    "type": pattern.type,
                    "strength": round(pattern.strength, 4),
                    "adjustment": round(pattern.adjustment, 4),
                    "description": pattern.description,
                }
                for side, pattern in (("home", self.home_pattern), ("away", self.away_pattern))
            },
            "learners": [
                {
                    "name": out.name,
                    "recommended": out.recommended,
                    "confidence": round(out.confidence, 2),
                    "ev_percentage": out.ev_percentage,
                }
                for out in self.learners
            ],
        }


# ============================================================================
# STACKING
# ============================================================================

def run_ensemble(
    factors: MatchFactors,
    *,
    market: Optional[MarketOdds] = None,
    home_form: Iterable[str] = (),
    away_form: Iterable[str] = (),
    config: Optional[EnsembleConfig] = None,
    learners: tuple[BaseLearner, ...] = DEFAULT_LEARNERS,
) -> EnsembleResult:
    """Run every layer and stack them into one confidence for the picked side."""
    config = config or EnsembleConfig()
    outputs = tuple(learner.score(factors, market) for learner in learners)

    weights = np.array([config.learner_weights.get(out.name, 0.0) for out in outputs])
    if weights.sum() <= 0:
        raise ValueError(f"learner_weights must include a positive weight, got {config.learner_weights!r}")
    weights = weights / weights.sum()
    probs = np.array([out.home_probability for out in outputs])

    home_probability = float(np.dot(weights, probs))
    recommended = "home" if home_probability >= 0.5 else "away"
    base = max(home_probability, 1.0 - home_probability)
    agreement = float(sum(w for w, out in zip(weights, outputs) if out.recommended == recommended))

    # Layer 2: boosting toward the market anchor
    anchor = market_home_probability(market)
    if anchor is None:
        anchor = float(np.mean(probs))
    boosted = 0.5 * boost_residual(
        anchor - home_probability, config.boosting_learning_rate, config.boosting_rounds
    )
    gradient_boosting = _clamp(
        _toward_pick(boosted, recommended), -MAX_LAYER_ADJUSTMENT, MAX_LAYER_ADJUSTMENT
    )

    # Layer 3: sequential patterns, home minus away
    home_pattern = detect_sequential_pattern(home_form, config.sequential_decay_rate)
    away_pattern = detect_sequential_pattern(away_form, config.sequential_decay_rate)
    pattern_home = (home_pattern.adjustment - away_pattern.adjustment) * 0.4 / 100.0
    sequential_pattern = _clamp(
        _toward_pick(pattern_home, recommended), -MAX_LAYER_ADJUSTMENT, MAX_LAYER_ADJUSTMENT
    )

    # Layer 4: diversity
    diversity_score = float(np.std(probs)) + 0.1 * (1.0 - agreement)
    diversity_bonus = _clamp(
        config.diversity_weight * (DIVERSITY_PIVOT - diversity_score),
        -MAX_DIVERSITY_BONUS,
        MAX_DIVERSITY_BONUS,
    )

    stacked = _clamp(
        base * 100.0
        + 100.0 * (
            STACKING_WEIGHTS["gradient_boosting"] * gradient_boosting
            + STACKING_WEIGHTS["sequential_pattern"] * sequential_pattern
            + STACKING_WEIGHTS["diversity_bonus"] * diversity_bonus
        ),
        0.0,
        100.0,
    )
    calibrated = stacked + (CALIBRATION_CENTER - stacked) * config.calibration_strength * 0.1

    logger.debug(
        "Ensemble: pick=%s base=%.3f gb=%+.4f seq=%+.4f div=%+.4f -> %.2f",
        recommended, base, gradient_boosting, sequential_pattern, diversity_bonus, stacked,
    )

    return EnsembleResult(
        recommended=recommended,
        home_probability=home_probability,
        agreement=agreement,
        base_learners=base,
        gradient_boosting=gradient_boosting,
        sequential_pattern=sequential_pattern,
        diversity_bonus=diversity_bonus,
        diversity_score=diversity_score,
        stacked_confidence=stacked,
        calibrated_confidence=calibrated,
        home_pattern=home_pattern,
        away_pattern=away_pattern,
        learners=outputs,
    )
