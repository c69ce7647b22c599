"""
The Odds API integration for live moneyline prices.
https://the-odds-api.com/

Used by the prediction pipeline as the *current market odds* source.  Every
request carries a timeout, and every failure (network error, HTTP error,
unknown event, unparseable payload) is logged and returned as ``None``.
The caller falls back to the match record's last-known prices or the
configured default price; a missing live quote never blocks a prediction.

Best available price per side is taken across all bookmakers (line
shopping).  Prices are requested in decimal format.
"""

import logging
import os
from typing import Callable, Dict, List, Optional

import requests

from betsmart.core.league_config import for_league
from betsmart.core.strategy_interface import MarketOdds, MatchInput

logger = logging.getLogger(__name__)

API_KEY = os.getenv("THE_ODDS_API_KEY")
BASE_URL = "https://api.the-odds-api.com/v4"
REQUEST_TIMEOUT_SECONDS = float(os.getenv("ODDS_API_TIMEOUT", "5"))
DEFAULT_REGIONS = "us,eu"


class OddsAPIClient:
    """Client for The Odds API"""

    def __init__(self, api_key: Optional[str] = None, timeout: float = REQUEST_TIMEOUT_SECONDS):
        self.api_key = api_key or API_KEY
        if not self.api_key:
            raise ValueError("THE_ODDS_API_KEY not set in environment")
        self.timeout = timeout

    def get_event_odds(
        self,
        sport_key: str,
        event_id: str,
        regions: Optional[str] = None,
    ) -> Optional[Dict]:
        """
        Fetch h2h odds for a single event.

        ``regions`` defaults to $ODDS_API_REGIONS, read on each call.

        Returns the raw event payload, or None on any request failure.
        """
        regions = regions or os.getenv("ODDS_API_REGIONS", DEFAULT_REGIONS)
        url = f"{BASE_URL}/sports/{sport_key}/events/{event_id}/odds"
        params = {
            "apiKey": self.api_key,
            "regions": regions,
            "markets": "h2h",
            "oddsFormat": "decimal",
        }

        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()

            logger.info(
                "Odds API: event %s fetched. Quota remaining: %s",
                event_id, response.headers.get("x-requests-remaining"),
            )
            return data

        except requests.exceptions.RequestException as e:
            logger.error("Odds API error for event %s: %s", event_id, e)
            return None

    @staticmethod
    def parse_best_prices(event: Dict, home_team: str, away_team: str) -> Optional[MarketOdds]:
        """Best decimal price per outcome across bookmakers, or None if a side is missing."""
        best: Dict[str, float] = {}
        bookmakers: List[Dict] = event.get("bookmakers") or []
        for book in bookmakers:
            for market in book.get("markets") or []:
                if market.get("key") != "h2h":
                    continue
                for outcome in market.get("outcomes") or []:
                    name = outcome.get("name")
                    price = outcome.get("price")
                    if name is None or not isinstance(price, (int, float)):
                        continue
                    if name == home_team:
                        side = "home"
                    elif name == away_team:
                        side = "away"
                    elif name.lower() == "draw":
                        side = "draw"
                    else:
                        continue
                    if price > best.get(side, 0.0):
                        best[side] = float(price)

        if "home" not in best or "away" not in best:
            return None
        odds = MarketOdds(home_win=best["home"], away_win=best["away"], draw=best.get("draw"))
        return odds if odds.is_valid() else None

    def get_market_odds(self, match: MatchInput) -> Optional[MarketOdds]:
        """Live prices for ``match`` (its match_id is the Odds API event id)."""
        league = for_league(match.league)
        if not league.odds_api_sport_key:
            logger.warning("No Odds API sport key for league %s", match.league)
            return None

        event = self.get_event_odds(league.odds_api_sport_key, match.match_id)
        if not event:
            return None
        return self.parse_best_prices(event, match.home.name, match.away.name)


def build_odds_provider() -> Optional[Callable[[MatchInput], Optional[MarketOdds]]]:
    """Live odds callable when an API key is configured, else None."""
    if not os.getenv("THE_ODDS_API_KEY"):
        logger.info("THE_ODDS_API_KEY not set; predictions use match-record odds")
        return None
    return OddsAPIClient(api_key=os.getenv("THE_ODDS_API_KEY")).get_market_odds
