"""
Closing Line Value (CLV) calculation service.

CLV is the primary edge-validation metric in sports betting.  Positive CLV
means we obtained a longer price than where the market ultimately settled
(the closing line), which is correlated with long-term profitability
independent of win/loss outcomes.

All prices here are decimal odds.

    clv_percentage = 100 · (predicted − closing) / closing
    implied_edge   = 100 · (1/predicted − 1/closing)
    dollar_value   = profit on $100 at predicted − profit on $100 at closing

Category convention
-------------------
Thresholds are strict and applied to the 2-dp rounded percentage that is
reported, so a value lands in exactly one bucket however it was computed::

    > 5    excellent
    > 2    good
    > −2   neutral
    else   poor

Exactly 5.00 is "good", 2.00 is "neutral", −2.00 is "poor".

Also here:

    analyze_line_movement   opening/closing/high/low and sharp-money flag
                            from a (timestamp, odds, source) history
    calculate_aggregate_clv mean/median/std of CLV across bets
    should_place_bet        CLV and EV gate for a live price
"""

import math
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from betsmart.core.odds_math import decimal_to_implied_prob, validate_decimal_odds

logger = logging.getLogger(__name__)

EXCELLENT_ABOVE = 5.0
GOOD_ABOVE = 2.0
NEUTRAL_ABOVE = -2.0

# Line movement thresholds
STABLE_MOVEMENT_PCT = 1.0
SHARP_MOVEMENT_PCT = 3.0
SHARP_VELOCITY_PER_HOUR = 0.5
MIN_ELAPSED_HOURS = 0.1

NOTIONAL_STAKE = 100.0


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------

@dataclass
class CLVResult:
    """CLV metrics for a single price against the close."""

    predicted_odds: float
    opening_odds: float
    closing_odds: float
    clv_percentage: float
    beat_closing_line: bool
    clv_category: str
    implied_edge: float
    dollar_value: float

    def is_positive(self) -> bool:
        return self.clv_percentage > 0


@dataclass
class OddsObservation:
    """One observed price.  ``timestamp`` may be a datetime or ISO-8601 string."""

    timestamp: Union[datetime, str]
    odds: float
    source: str = ""


@dataclass
class LineMovement:
    opening_odds: float
    closing_odds: float
    high_odds: float
    low_odds: float
    total_movement: float
    movement_percentage: float
    movement_direction: str
    velocity_per_hour: float
    sharp_money_indicator: bool
    observations: int
    hours_elapsed: float


@dataclass
class AggregateCLV:
    average_clv: float = 0.0
    median_clv: float = 0.0
    positive_clv_percentage: float = 0.0
    total_clv_value: float = 0.0
    clv_consistency: float = 0.0
    bets: int = 0


@dataclass
class BetDecision:
    should_bet: bool
    reason: str
    clv_check: bool
    ev_check: bool
    clv_percentage: float
    ev_percentage: float


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def categorize_clv(clv_percentage: float) -> str:
    if clv_percentage > EXCELLENT_ABOVE:
        return "excellent"
    if clv_percentage > GOOD_ABOVE:
        return "good"
    if clv_percentage > NEUTRAL_ABOVE:
        return "neutral"
    return "poor"


def _median(values: List[float]) -> float:
    s = sorted(values)
    n = len(s)
    mid = n // 2
    return s[mid] if n % 2 else (s[mid - 1] + s[mid]) / 2.0


def _parse_timestamp(value: Union[datetime, str]) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"Unparseable odds timestamp {value!r}") from None
    if not isinstance(value, datetime):
        raise ValueError(f"Odds timestamp must be a datetime or ISO string, got {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _coerce_observation(item) -> OddsObservation:
    if isinstance(item, OddsObservation):
        return item
    if isinstance(item, dict):
        return OddsObservation(item["timestamp"], item["odds"], item.get("source", ""))
    timestamp, odds, *rest = item
    return OddsObservation(timestamp, odds, rest[0] if rest else "")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def calculate_clv(
    predicted_odds: float,
    closing_odds: float,
    opening_odds: Optional[float] = None,
) -> CLVResult:
    """
    Compare a bet (or model) price against the closing price.

    Args:
        predicted_odds: Decimal price we bet at (or the model's price).
        closing_odds:   Decimal closing price.
        opening_odds:   Decimal opening price; defaults to closing_odds.

    Raises:
        ValueError: If any price is ≤ 1.0.

    Examples:
        calculate_clv(2.2, 1.9)  → clv_percentage=15.79, beat_closing_line=True
        calculate_clv(1.9, 1.9)  → clv_percentage=0.0,   beat_closing_line=False
    """
    validate_decimal_odds(predicted_odds, "predicted_odds")
    validate_decimal_odds(closing_odds, "closing_odds")
    if opening_odds is None:
        opening_odds = closing_odds
    validate_decimal_odds(opening_odds, "opening_odds")

    clv_pct = round(100.0 * (predicted_odds - closing_odds) / closing_odds, 2)
    implied_edge = 100.0 * (
        decimal_to_implied_prob(predicted_odds) - decimal_to_implied_prob(closing_odds)
    )
    dollar_value = (predicted_odds - 1.0) * NOTIONAL_STAKE - (closing_odds - 1.0) * NOTIONAL_STAKE

    return CLVResult(
        predicted_odds=predicted_odds,
        opening_odds=opening_odds,
        closing_odds=closing_odds,
        clv_percentage=clv_pct,
        beat_closing_line=predicted_odds > closing_odds,
        clv_category=categorize_clv(clv_pct),
        implied_edge=round(implied_edge, 2),
        dollar_value=round(dollar_value, 2),
    )


def analyze_line_movement(odds_history: Iterable) -> LineMovement:
    """
    Summarise how a price moved between its first and last observation.

    Observations may arrive in any order; they are sorted by timestamp.
    Each item is an OddsObservation, a dict with timestamp/odds/source
    keys, or a (timestamp, odds[, source]) tuple.

    Direction is 'stable' when the move is under 1 % of the opening price.
    The sharp-money flag needs a move above 3 % AND more than 0.5 odds
    points per hour; elapsed time is floored at 0.1 h.

    Raises:
        ValueError: If the history is empty or contains an invalid price
            or timestamp.
    """
    observations = [_coerce_observation(item) for item in odds_history]
    if not observations:
        raise ValueError("Line movement analysis requires at least one odds observation")

    timed: List[Tuple[datetime, float]] = []
    for obs in observations:
        timed.append((_parse_timestamp(obs.timestamp), validate_decimal_odds(obs.odds, "odds")))
    timed.sort(key=lambda pair: pair[0])

    prices = [price for _, price in timed]
    opening, closing = prices[0], prices[-1]
    total_movement = abs(closing - opening)
    movement_pct = total_movement / opening * 100.0

    if movement_pct < STABLE_MOVEMENT_PCT:
        direction = "stable"
    elif closing > opening:
        direction = "up"
    else:
        direction = "down"

    hours = (timed[-1][0] - timed[0][0]).total_seconds() / 3600.0
    velocity = total_movement / max(hours, MIN_ELAPSED_HOURS)
    sharp = movement_pct > SHARP_MOVEMENT_PCT and velocity > SHARP_VELOCITY_PER_HOUR

    if sharp:
        logger.info(
            "Sharp line movement: %.2f -> %.2f (%.1f%% in %.1fh)",
            opening, closing, movement_pct, hours,
        )

    return LineMovement(
        opening_odds=opening,
        closing_odds=closing,
        high_odds=max(prices),
        low_odds=min(prices),
        total_movement=round(total_movement, 4),
        movement_percentage=round(movement_pct, 2),
        movement_direction=direction,
        velocity_per_hour=round(velocity, 3),
        sharp_money_indicator=sharp,
        observations=len(timed),
        hours_elapsed=round(hours, 2),
    )


def calculate_aggregate_clv(bets: Sequence[Tuple[float, float]]) -> AggregateCLV:
    """
    Aggregate CLV across bets given as (predicted_odds, closing_odds) pairs.

    No bets is a valid "no data yet" state and returns all zeros.
    clv_consistency is the population standard deviation.
    """
    if not bets:
        return AggregateCLV()

    values = [calculate_clv(predicted, closing).clv_percentage for predicted, closing in bets]
    n = len(values)
    average = sum(values) / n
    variance = sum((v - average) ** 2 for v in values) / n

    return AggregateCLV(
        average_clv=round(average, 2),
        median_clv=round(_median(values), 2),
        positive_clv_percentage=round(sum(1 for v in values if v > 0) / n * 100.0, 2),
        total_clv_value=round(sum(values), 2),
        clv_consistency=round(math.sqrt(variance), 2),
        bets=n,
    )


def should_place_bet(
    predicted_odds: float,
    current_odds: float,
    min_clv: float = 2.0,
    min_ev: float = 3.0,
) -> BetDecision:
    """
    Gate a live price on both CLV and EV.

    predicted_odds is the model's fair price.  The price on offer is graded
    against it the way a bet is graded against the close, and EV prices the
    model probability 1 / predicted_odds at current_odds.  Both checks are
    inclusive.
    """
    clv = calculate_clv(current_odds, predicted_odds)
    clv_check = clv.clv_percentage >= min_clv

    p = 1.0 / predicted_odds
    ev_pct = (p * (current_odds - 1.0) - (1.0 - p)) * 100.0
    ev_check = ev_pct >= min_ev

    should_bet = clv_check and ev_check
    if should_bet:
        reason = f"Good bet: CLV {clv.clv_percentage:.2f}%, EV {ev_pct:.2f}%"
    elif not clv_check and not ev_check:
        reason = f"CLV ({clv.clv_percentage:.2f}%) and EV ({ev_pct:.2f}%) both below thresholds"
    elif not clv_check:
        reason = f"CLV ({clv.clv_percentage:.2f}%) below {min_clv}% threshold"
    else:
        reason = f"EV ({ev_pct:.2f}%) below {min_ev}% threshold"

    return BetDecision(
        should_bet=should_bet,
        reason=reason,
        clv_check=clv_check,
        ev_check=ev_check,
        clv_percentage=clv.clv_percentage,
        ev_percentage=round(ev_pct, 2),
    )
