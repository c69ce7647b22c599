"""Kelly criterion staking — the single source of truth for bet sizing math.

All functions here are **pure**: no I/O, no database, no logging.
Import from this module; never reimplement Kelly locally in services.

:func:`calculate_kelly_stake` turns a :class:`KellyConfig` into a
:class:`KellyResult` in eight fixed steps::

    1. validate                       (fail fast, never clamp inputs)
    2. EV gate                        (no-bet below min_ev_threshold)
    3. full   = (b·p − q) / b
    4. adj    = max(0, full · kelly_fraction)
    5. final  = min(adj, max_bet_percentage / 100)
    6. stake  = bankroll · final      (+ percentage, + units)
    7. growth = p·ln(1 + b·final) + q·ln(1 − final)
    8. risk   = low < 2 % ≤ medium < 5 % ≤ high

Design decisions
----------------
* **Fractional Kelly** at 1/4 is the default.  Full Kelly maximises long-run
  log-wealth only when the edge is known exactly; our ensemble confidence is
  an estimate, and overbetting is punished asymmetrically (geometric ruin vs.
  forgone EV).
* The **max-bet cap** is the one value that *is* clamped by design.  It
  bounds the output, not the inputs: a true probability of 1.2 is still a
  ``ValueError``.
* A bet that fails the EV gate returns a well-formed zero-stake result
  rather than raising; "no bet" is a normal answer, not an error.
* :func:`simulate_kelly_betting` uses ``numpy.random.default_rng(seed)``
  so a fixed seed reproduces the same bankroll paths.

Run tests with::

    pytest tests/test_kelly.py -v
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Final, Literal, Optional

import numpy as np

from betsmart.core.edge import raw_expected_value
from betsmart.core.odds_math import validate_decimal_odds, validate_probability

RiskLevel = Literal["low", "medium", "high"]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default fractional multiplier (quarter Kelly).
DEFAULT_KELLY_FRACTION: Final[float] = 0.25

#: Default minimum EV, in percent, before any stake is recommended.
DEFAULT_MIN_EV_THRESHOLD: Final[float] = 3.0

#: Default hard cap on a single stake, in percent of bankroll.
DEFAULT_MAX_BET_PERCENTAGE: Final[float] = 5.0

#: Units per bankroll when no explicit unit size is configured (1 unit = 1 %).
_DEFAULT_UNITS_PER_BANKROLL: Final[float] = 100.0

#: Risk-level boundaries on the final Kelly fraction.
_LOW_RISK_CEILING: Final[float] = 0.02
_MEDIUM_RISK_CEILING: Final[float] = 0.05

#: Ruin threshold for the Monte Carlo: below 10 % of starting bankroll.
_RUIN_FRACTION: Final[float] = 0.10


# ---------------------------------------------------------------------------
# Data transfer objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KellyConfig:
    """Inputs to a single staking decision.

    Attributes:
        true_probability: Model probability of the selection winning, in ``(0, 1)``.
        bookmaker_odds: Decimal price on offer, ``> 1.0``.
        bankroll: Current bankroll in currency units, ``> 0``.
        kelly_fraction: Multiplier on full Kelly in ``(0, 1]`` (0.25 = quarter
            Kelly).  Above 1 the stake can reach the whole bankroll.
        unit_size: Currency value of one betting unit.  ``None`` means
            ``bankroll / 100``.
        min_ev_threshold: Minimum EV percentage required to bet.
        max_bet_percentage: Cap on the stake, in percent of bankroll.
    """

    true_probability: float
    bookmaker_odds: float
    bankroll: float
    kelly_fraction: float = DEFAULT_KELLY_FRACTION
    unit_size: Optional[float] = None
    min_ev_threshold: float = DEFAULT_MIN_EV_THRESHOLD
    max_bet_percentage: float = DEFAULT_MAX_BET_PERCENTAGE

    @property
    def effective_unit_size(self) -> float:
        if self.unit_size is None:
            return self.bankroll / _DEFAULT_UNITS_PER_BANKROLL
        return self.unit_size

    def validate(self) -> None:
        """Raise ``ValueError`` on any out-of-domain field."""
        validate_probability(self.true_probability, "true_probability")
        validate_decimal_odds(self.bookmaker_odds, "bookmaker_odds")
        if not math.isfinite(self.bankroll) or self.bankroll <= 0:
            raise ValueError(f"bankroll must be positive, got {self.bankroll!r}")
        if not math.isfinite(self.kelly_fraction) or not 0.0 < self.kelly_fraction <= 1.0:
            raise ValueError(
                f"kelly_fraction must be in (0, 1], got {self.kelly_fraction!r}"
            )
        if self.unit_size is not None and (
            not math.isfinite(self.unit_size) or self.unit_size <= 0
        ):
            raise ValueError(f"unit_size must be positive, got {self.unit_size!r}")
        if not math.isfinite(self.min_ev_threshold):
            raise ValueError(
                f"min_ev_threshold must be finite, got {self.min_ev_threshold!r}"
            )
        if not 0.0 < self.max_bet_percentage <= 100.0:
            raise ValueError(
                f"max_bet_percentage must be in (0, 100], got {self.max_bet_percentage!r}"
            )


@dataclass(frozen=True)
class KellyResult:
    """Staking recommendation.

    ``full_kelly``, ``adjusted_kelly`` and ``final_kelly`` are fractions of
    bankroll (0–1).  ``final_kelly`` is the one that is actually staked.
    """

    full_kelly: float
    adjusted_kelly: float
    final_kelly: float
    recommended_stake: float
    recommended_stake_percentage: float
    recommended_stake_units: float
    expected_value: float
    ev_percentage: float
    expected_growth: float
    is_positive_ev: bool
    risk_level: RiskLevel

    @property
    def is_bet(self) -> bool:
        return self.recommended_stake > 0


@dataclass(frozen=True)
class KellySimulation:
    """Summary of a Monte Carlo bankroll simulation."""

    starting_bankroll: float
    average_final_bankroll: float
    median_final_bankroll: float
    best_case: float
    worst_case: float
    probability_of_profit: float
    probability_of_ruin: float
    num_bets: int
    num_simulations: int


# ---------------------------------------------------------------------------
# Staking
# ---------------------------------------------------------------------------


def classify_risk(final_kelly: float) -> RiskLevel:
    """Bucket a staked bankroll fraction into low / medium / high."""
    if final_kelly < _LOW_RISK_CEILING:
        return "low"
    if final_kelly < _MEDIUM_RISK_CEILING:
        return "medium"
    return "high"


def calculate_kelly_stake(config: KellyConfig) -> KellyResult:
    """Compute a fractional-Kelly stake for one bet.

    Args:
        config: Staking inputs.  Validated before any arithmetic.

    Returns:
        :class:`KellyResult`.  When the bet is not positive-EV, or its EV
        percentage is below ``config.min_ev_threshold``, every stake and
        fraction field is 0 and ``risk_level`` is ``"low"``; EV fields are
        still reported so callers can explain the no-bet.

    Raises:
        ValueError: On any invalid field of ``config``.

    Examples::

        calculate_kelly_stake(KellyConfig(0.55, 2.0, 1000))
            → final_kelly=0.025, recommended_stake=25.0, risk_level="medium"
        calculate_kelly_stake(KellyConfig(0.50, 2.0, 1000))
            → recommended_stake=0.0   (zero edge)
    """
    config.validate()

    p = config.true_probability
    q = 1.0 - p
    b = config.bookmaker_odds - 1.0
    ev = raw_expected_value(p, config.bookmaker_odds)
    ev_pct = ev * 100.0

    if ev <= 0.0 or ev_pct < config.min_ev_threshold:
        return KellyResult(
            full_kelly=0.0,
            adjusted_kelly=0.0,
            final_kelly=0.0,
            recommended_stake=0.0,
            recommended_stake_percentage=0.0,
            recommended_stake_units=0.0,
            expected_value=round(ev, 4),
            ev_percentage=round(ev_pct, 2),
            expected_growth=0.0,
            is_positive_ev=ev > 0.0,
            risk_level="low",
        )

    full = (b * p - q) / b
    adjusted = max(0.0, full * config.kelly_fraction)
    final = min(adjusted, config.max_bet_percentage / 100.0)

    stake = config.bankroll * final
    growth = p * math.log(1.0 + b * final) + q * math.log(1.0 - final)

    return KellyResult(
        full_kelly=round(full, 4),
        adjusted_kelly=round(adjusted, 4),
        final_kelly=round(final, 4),
        recommended_stake=round(stake, 2),
        recommended_stake_percentage=round(final * 100.0, 2),
        recommended_stake_units=round(stake / config.effective_unit_size, 2),
        expected_value=round(ev, 4),
        ev_percentage=round(ev_pct, 2),
        expected_growth=round(growth, 4),
        is_positive_ev=True,
        risk_level=classify_risk(final),
    )


def kelly_to_units(final_kelly: float, bankroll: float, unit_size: Optional[float] = None) -> float:
    """Convert a bankroll fraction to betting units (1 unit = 1 % by default)."""
    if bankroll <= 0:
        raise ValueError(f"bankroll must be positive, got {bankroll!r}")
    size = unit_size if unit_size is not None else bankroll / _DEFAULT_UNITS_PER_BANKROLL
    return round(final_kelly * bankroll / size, 2)


# ---------------------------------------------------------------------------
# Monte Carlo bankroll simulation
# ---------------------------------------------------------------------------


def simulate_kelly_betting(
    config: KellyConfig,
    num_bets: int = 1000,
    num_simulations: int = 100,
    *,
    seed: Optional[int] = None,
) -> KellySimulation:
    """Simulate repeated staking of ``config``'s final Kelly fraction.

    Each simulation places ``num_bets`` independent bets at the same price
    and probability, restaking ``final_kelly`` of the *current* bankroll
    every time.  All simulations advance together as one numpy vector.

    Args:
        config: Staking inputs; the stake fraction is taken from
            :func:`calculate_kelly_stake`.
        num_bets: Bets per simulated path.
        num_simulations: Number of independent paths.
        seed: Seed for ``numpy.random.default_rng``.

    Returns:
        :class:`KellySimulation`.  Ruin means finishing below 10 % of the
        starting bankroll.

    Raises:
        ValueError: On invalid ``config`` or non-positive counts.
    """
    if num_bets <= 0 or num_simulations <= 0:
        raise ValueError(
            f"num_bets and num_simulations must be positive, "
            f"got {num_bets!r} and {num_simulations!r}"
        )
    result = calculate_kelly_stake(config)
    fraction = result.final_kelly
    b = config.bookmaker_odds - 1.0

    rng = np.random.default_rng(seed)
    bankrolls = np.full(num_simulations, float(config.bankroll))

    if fraction > 0.0:
        for _ in range(num_bets):
            stakes = bankrolls * fraction
            wins = rng.random(num_simulations) < config.true_probability
            bankrolls = bankrolls + np.where(wins, stakes * b, -stakes)

    start = float(config.bankroll)
    return KellySimulation(
        starting_bankroll=round(start, 2),
        average_final_bankroll=round(float(np.mean(bankrolls)), 2),
        median_final_bankroll=round(float(np.median(bankrolls)), 2),
        best_case=round(float(np.max(bankrolls)), 2),
        worst_case=round(float(np.min(bankrolls)), 2),
        probability_of_profit=round(float(np.mean(bankrolls > start)), 4),
        probability_of_ruin=round(float(np.mean(bankrolls < start * _RUIN_FRACTION)), 4),
        num_bets=num_bets,
        num_simulations=num_simulations,
    )
