"""Edge and expected value of a priced selection.

Given a model probability ``p`` and a bookmaker decimal price ``d``::

    b = d − 1                  net odds (profit per unit on a win)
    q = 1 − p                  loss probability
    edge = p − 1/d             probability advantage over the market
    ev   = p·b − q             expected profit per unit staked

At the break-even probability ``p = 1/d`` the EV is exactly zero.  Float
arithmetic leaves residue of order 1e-16 there, so results inside
:data:`_EV_ZERO_TOL` are snapped to ``0.0``; otherwise a zero-edge bet could
report ``is_positive_ev=True``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from betsmart.core.odds_math import (
    decimal_to_implied_prob,
    validate_decimal_odds,
    validate_probability,
)

#: |ev| below this is treated as exactly break-even.
_EV_ZERO_TOL: Final[float] = 1e-12


@dataclass(frozen=True)
class ExpectedValue:
    """EV of one unit staked.

    Attributes:
        ev: Expected profit per unit staked (4 dp).
        ev_percentage: ``100 · ev`` (2 dp).
        is_positive_ev: ``ev > 0`` on the unrounded value.
    """

    ev: float
    ev_percentage: float
    is_positive_ev: bool


def calculate_edge(true_probability: float, decimal_odds: float) -> float:
    """Model probability minus the market's implied probability.

    Raises:
        ValueError: If ``true_probability ∉ (0, 1)`` or ``decimal_odds ≤ 1``.
    """
    p = validate_probability(true_probability, "true_probability")
    return p - decimal_to_implied_prob(decimal_odds)


def raw_expected_value(true_probability: float, decimal_odds: float) -> float:
    """Unrounded ``p·b − q`` with break-even residue snapped to zero."""
    p = validate_probability(true_probability, "true_probability")
    d = validate_decimal_odds(decimal_odds, "bookmaker_odds")
    ev = p * (d - 1.0) - (1.0 - p)
    if abs(ev) < _EV_ZERO_TOL:
        return 0.0
    return ev


def calculate_expected_value(true_probability: float, decimal_odds: float) -> ExpectedValue:
    """Expected value of a one-unit bet.

    Examples::

        calculate_expected_value(0.55, 2.0)  → ev=0.1, ev_percentage=10.0
        calculate_expected_value(0.50, 2.0)  → ev=0.0, is_positive_ev=False

    Raises:
        ValueError: If ``true_probability ∉ (0, 1)`` or ``decimal_odds ≤ 1``.
    """
    ev = raw_expected_value(true_probability, decimal_odds)
    return ExpectedValue(
        ev=round(ev, 4),
        ev_percentage=round(ev * 100.0, 2),
        is_positive_ev=ev > 0.0,
    )
