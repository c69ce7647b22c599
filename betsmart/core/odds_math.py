"""Odds conversion — the single source of truth for price arithmetic.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement a conversion locally in a
service or strategy.

Three representations of the same wager price are supported:

1. **American** — ``±N`` integers (−150, +200).  Never in ``(−100, 100)``.
2. **Decimal** — total payout per unit staked, strictly greater than 1.0.
3. **Implied probability** — ``1 / decimal``, strictly inside ``(0, 1)``.

Design decisions
----------------
* Out-of-domain inputs raise :class:`ValueError` immediately.  Nothing is
  clamped: a decimal price of 1.0 or an American price of −50 is a data
  error upstream, not a value to be rounded into range.
* :func:`remove_vig` uses proportional normalisation.  It is only used as a
  market *anchor* for the ensemble's boosting layer, where the
  favourite-longshot bias of proportional normalisation is immaterial, and
  unlike the Shin method it extends to three-way (draw) markets.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import math
from typing import Final

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: American-odds magnitude floor.  No line is quoted inside (−100, 100).
_MIN_ODDS_MAGNITUDE: Final[int] = 100

#: Decimal odds must be strictly above this to carry any payout.
_MIN_DECIMAL_ODDS: Final[float] = 1.0


# ---------------------------------------------------------------------------
# Validation guards
# ---------------------------------------------------------------------------


def validate_probability(p: float, name: str = "probability") -> float:
    """Return ``p`` unchanged if it lies strictly inside ``(0, 1)``.

    Raises:
        ValueError: If ``p`` is not finite or is outside the open interval.
    """
    if not isinstance(p, (int, float)) or not math.isfinite(p) or not 0.0 < p < 1.0:
        raise ValueError(f"{name} must be in the open interval (0, 1), got {p!r}")
    return float(p)


def validate_decimal_odds(d: float, name: str = "decimal odds") -> float:
    """Return ``d`` unchanged if it is a finite decimal price above 1.0.

    Raises:
        ValueError: If ``d`` is not finite or ``d <= 1.0``.
    """
    if not isinstance(d, (int, float)) or not math.isfinite(d) or d <= _MIN_DECIMAL_ODDS:
        raise ValueError(f"{name} must be greater than 1.0, got {d!r}")
    return float(d)


# ---------------------------------------------------------------------------
# Odds conversion
# ---------------------------------------------------------------------------


def american_to_decimal(american: int | float) -> float:
    """Convert American odds to decimal (European) format.

    Decimal odds represent the total payout per unit staked, **including**
    the return of the stake itself.  Examples::

        american_to_decimal(-110) → 1.9091   (risk 110 to win 100)
        american_to_decimal(+150) → 2.5000   (risk 100 to win 150)

    Args:
        american: American odds.  Negative = favourite, positive = underdog.

    Returns:
        Decimal odds, always ≥ 2.0 for ``+N`` and in ``(1.0, 2.0]`` for ``−N``.

    Raises:
        ValueError: If ``american`` is not finite or lies in ``(−100, 100)``.
    """
    if not math.isfinite(american) or abs(american) < _MIN_ODDS_MAGNITUDE:
        raise ValueError(
            f"Invalid American odds {american!r}: magnitude must be ≥ 100. "
            "Check upstream odds parsing for data errors."
        )
    if american > 0:
        return american / 100.0 + 1.0
    # Negative: risk |american| to win 100
    return 100.0 / abs(american) + 1.0


def decimal_to_american(decimal_odds: float) -> int:
    """Convert decimal odds to the nearest American integer.

    Inverse of :func:`american_to_decimal` within rounding; use the result
    for display and logging, not for further arithmetic.

    Raises:
        ValueError: If ``decimal_odds <= 1.0``.
    """
    validate_decimal_odds(decimal_odds)
    if decimal_odds >= 2.0:
        return round((decimal_odds - 1.0) * 100)
    return round(-100.0 / (decimal_odds - 1.0))


def decimal_to_implied_prob(decimal_odds: float) -> float:
    """Implied probability of a decimal price (vig-inclusive).

    Examples::

        decimal_to_implied_prob(1.909) → 0.5238
        decimal_to_implied_prob(2.50)  → 0.4000

    Raises:
        ValueError: If ``decimal_odds <= 1.0``.
    """
    return 1.0 / validate_decimal_odds(decimal_odds)


def implied_prob(american: int | float) -> float:
    """Raw implied probability from American odds (vig-inclusive)."""
    return 1.0 / american_to_decimal(american)


def probability_to_fair_odds(p: float) -> float:
    """Fair (zero-margin) decimal odds for a win probability.

    Exact inverse of :func:`decimal_to_implied_prob`.

    Raises:
        ValueError: If ``p`` is outside ``(0, 1)``.
    """
    return 1.0 / validate_probability(p)


# ---------------------------------------------------------------------------
# Vig removal
# ---------------------------------------------------------------------------


def remove_vig(*decimal_odds: float) -> tuple[float, ...]:
    """No-vig probabilities for a complete market by proportional normalisation.

    Args:
        *decimal_odds: Decimal prices for every outcome of the market
            (two for moneyline, three when a draw is quoted).

    Returns:
        Probabilities in the same order, summing to 1.0.

    Raises:
        ValueError: If fewer than two prices are given or any is ≤ 1.0.

    Examples::

        remove_vig(1.909, 1.909) → (0.5, 0.5)
        remove_vig(1.50, 2.60)   → (0.634, 0.366)
    """
    if len(decimal_odds) < 2:
        raise ValueError(
            f"remove_vig needs at least two outcomes, got {len(decimal_odds)}"
        )
    raw = [decimal_to_implied_prob(d) for d in decimal_odds]
    overround = sum(raw)
    return tuple(p / overround for p in raw)
