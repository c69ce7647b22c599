"""
Prediction lock/cache: orchestrates the prediction pipeline.

Each match id moves through two states, Unlocked -> Locked, exactly once.

generate_prediction(match, history):
    1. local cache hit                         -> return it
    2. take the per-match lock, re-check cache
    3. persisted record in the store           -> cache it, return it
    4. resolve market odds (bounded by a timeout, deterministic fallback)
       -> league strategy -> edge / EV -> Kelly stake
       -> store.insert_if_absent(...)          -> cache and return the winner

Concurrency
-----------
Locks are per match id, so different matches never wait on each other.
Within one process the per-match lock gives at-most-once computation.
A per-match lock lives only while some thread holds or waits on it, so the
lock table stays as small as the number of matches in flight.
Across processes the store's ``insert_if_absent`` is the arbiter: a writer
that loses the race discards its own result and returns the stored one.

regenerate_prediction only evicts the local cache entry.  It goes back
through step 3, so a record already locked in the store is returned as is
and never overwritten.

The local cache holds entries for ``cache_ttl_seconds`` (default 30 min)
and evicts the oldest 10 % once ``cache_max_size`` (default 500) is reached.
Expiry only drops the local copy; the persisted lock is unaffected.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, Mapping, Optional

from betsmart.core.edge import calculate_edge, calculate_expected_value
from betsmart.core.kelly import KellyConfig, calculate_kelly_stake
from betsmart.core.league_config import EngineSettings, for_league
from betsmart.core.odds_math import probability_to_fair_odds
from betsmart.core.strategy_interface import (
    HeadToHead,
    MarketOdds,
    MatchInput,
    Prediction,
)
from betsmart.services.odds import build_odds_provider
from betsmart.services.prediction_store import PredictionStore, SqlPredictionStore
from betsmart.services.strategies import StrategyRegistry, default_registry

logger = logging.getLogger(__name__)

MODEL_VERSION = "betsmart-ensemble-v2"

OddsProvider = Callable[[MatchInput], Optional[MarketOdds]]

# Odds source labels stored on each prediction
ODDS_LIVE = "live"
ODDS_MATCH_RECORD = "match_record"
ODDS_DEFAULT = "default"


@dataclass
class _CacheEntry:
    prediction: Prediction
    cached_at: float


@dataclass
class _KeyLock:
    lock: threading.Lock
    users: int = 0


class PredictionService:
    """Generates each match's prediction once and serves the locked copy thereafter."""

    def __init__(
        self,
        store: PredictionStore,
        *,
        settings: Optional[EngineSettings] = None,
        registry: Optional[StrategyRegistry] = None,
        odds_provider: Optional[OddsProvider] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.settings = settings or EngineSettings()
        self.registry = registry or default_registry()
        self.odds_provider = odds_provider
        self._clock = clock

        self._cache: "OrderedDict[str, _CacheEntry]" = OrderedDict()
        self._cache_lock = threading.Lock()
        self._key_locks: dict[str, _KeyLock] = {}
        self._key_locks_guard = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

        self._stats = {"cache_hits": 0, "store_hits": 0, "computed": 0, "lost_races": 0}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_prediction(
        self,
        match: MatchInput,
        history: Optional[HeadToHead] = None,
    ) -> Prediction:
        """Return the locked prediction for ``match``, computing it at most once.

        Raises:
            ValueError: On invalid match inputs.  Nothing is cached or
                stored in that case and the match stays unlocked.
        """
        match_id = match.match_id
        cached = self._cache_get(match_id)
        if cached is not None:
            self._bump("cache_hits")
            return cached

        with self._match_lock(match_id):
            cached = self._cache_get(match_id)
            if cached is not None:
                self._bump("cache_hits")
                return cached

            stored = self.store.get(match_id)
            if stored is not None:
                logger.debug("Match %s already locked in store", match_id)
                self._bump("store_hits")
                self._cache_put(stored)
                return stored

            prediction = self._run_pipeline(match, history)
            self._bump("computed")
            winner = self.store.insert_if_absent(prediction)
            if winner is not prediction:
                self._bump("lost_races")
                logger.warning(
                    "Match %s was locked concurrently; discarding freshly computed prediction",
                    match_id,
                )
            self._cache_put(winner)
            return winner

    def regenerate_prediction(
        self,
        match: MatchInput,
        history: Optional[HeadToHead] = None,
    ) -> Prediction:
        """Drop the local cache entry and re-resolve through the store."""
        with self._cache_lock:
            self._cache.pop(match.match_id, None)
        logger.info("Local cache cleared for match %s; re-checking persisted lock", match.match_id)
        return self.generate_prediction(match, history)

    def get_prediction(self, match_id: str) -> Optional[Prediction]:
        """Locked prediction for ``match_id`` if one exists; never computes."""
        cached = self._cache_get(match_id)
        if cached is not None:
            self._bump("cache_hits")
            return cached
        stored = self.store.get(match_id)
        if stored is not None:
            self._bump("store_hits")
            self._cache_put(stored)
        return stored

    def generate_batch(
        self,
        matches: Iterable[MatchInput],
        histories: Optional[Mapping[str, HeadToHead]] = None,
    ) -> list[Prediction]:
        histories = histories or {}
        return [self.generate_prediction(m, histories.get(m.match_id)) for m in matches]

    def clear_cache(self) -> int:
        """Empty the local cache.  Persisted locks are untouched."""
        with self._cache_lock:
            cleared = len(self._cache)
            self._cache.clear()
        logger.info("Prediction cache cleared (%d entries)", cleared)
        return cleared

    def prune_expired(self) -> int:
        now = self._clock()
        with self._cache_lock:
            expired = [
                key for key, entry in self._cache.items()
                if now - entry.cached_at >= self.settings.cache_ttl_seconds
            ]
            for key in expired:
                del self._cache[key]
        if expired:
            logger.info("Pruned %d expired prediction cache entries", len(expired))
        return len(expired)

    def cache_stats(self) -> dict:
        with self._cache_lock:
            size = len(self._cache)
            stats = dict(self._stats)
        with self._key_locks_guard:
            active_locks = len(self._key_locks)
        return {
            "size": size,
            "max_size": self.settings.cache_max_size,
            "ttl_seconds": self.settings.cache_ttl_seconds,
            "active_locks": active_locks,
            **stats,
        }

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _run_pipeline(self, match: MatchInput, history: Optional[HeadToHead]) -> Prediction:
        league = for_league(match.league)
        strategy = self.registry.for_league(league)
        market, odds_source = self._resolve_market_odds(match)

        pick = strategy.predict(
            match, league, market=market, history=history, settings=self.settings
        )

        price = market.price_for(pick.recommended) if market is not None else None
        if price is None:
            price = self.settings.fallback_decimal_odds
            odds_source = ODDS_DEFAULT

        ev = calculate_expected_value(pick.true_probability, price)
        kelly = calculate_kelly_stake(
            KellyConfig(
                true_probability=pick.true_probability,
                bookmaker_odds=price,
                bankroll=self.settings.bankroll,
                kelly_fraction=self.settings.kelly_fraction,
                unit_size=self.settings.unit_size,
                min_ev_threshold=self.settings.min_ev_threshold,
                max_bet_percentage=self.settings.max_bet_percentage,
            )
        )

        reasoning = list(pick.reasoning)
        if kelly.is_bet:
            reasoning.append(
                f"Stake {kelly.recommended_stake_percentage:.2f}% of bankroll "
                f"({kelly.risk_level} risk) at {price:.2f}"
            )
        else:
            reasoning.append(
                f"No bet: EV {ev.ev_percentage:+.2f}% at {price:.2f} is below the "
                f"{self.settings.min_ev_threshold:.1f}% threshold"
            )

        logger.info(
            "Prediction %s (%s/%s): %s @ %d%%, EV %+.2f%%, stake %.2f",
            match.match_id, league.league_code, strategy.name, pick.recommended,
            pick.confidence, ev.ev_percentage, kelly.recommended_stake,
        )

        return Prediction(
            match_id=match.match_id,
            league=league.league_code,
            strategy=strategy.name,
            recommended=pick.recommended,
            confidence=pick.confidence,
            projected_home=pick.projected_home,
            projected_away=pick.projected_away,
            true_probability=round(pick.true_probability, 4),
            implied_odds=round(probability_to_fair_odds(pick.true_probability), 2),
            market_odds=round(price, 4),
            odds_source=odds_source,
            edge=round(calculate_edge(pick.true_probability, price), 4),
            expected_value=ev.ev,
            ev_percentage=ev.ev_percentage,
            is_positive_ev=ev.is_positive_ev,
            kelly_fraction=kelly.final_kelly,
            recommended_stake=kelly.recommended_stake,
            recommended_units=kelly.recommended_stake_units,
            risk_level=kelly.risk_level,
            factors=pick.factors,
            reasoning=tuple(reasoning),
            details=pick.details,
            model_version=MODEL_VERSION,
            generated_at=datetime.now(timezone.utc).isoformat(),
        )

    def _resolve_market_odds(self, match: MatchInput) -> tuple[Optional[MarketOdds], str]:
        """Live odds within the timeout, else the match record's odds, else none."""
        if match.odds is not None and not match.odds.is_valid():
            raise ValueError(
                f"Match {match.match_id!r} carries invalid odds {match.odds!r}; "
                "decimal prices must be greater than 1.0"
            )

        if self.odds_provider is not None:
            live = self._fetch_live_odds(match)
            if live is not None and live.is_valid():
                return live, ODDS_LIVE
            if live is not None:
                logger.warning("Ignoring invalid live odds for match %s: %r", match.match_id, live)

        if match.odds is not None:
            return match.odds, ODDS_MATCH_RECORD
        return None, ODDS_DEFAULT

    def _fetch_live_odds(self, match: MatchInput) -> Optional[MarketOdds]:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="odds-lookup")
        future = self._executor.submit(self.odds_provider, match)
        timeout = self.settings.odds_timeout_seconds
        try:
            return future.result(timeout=timeout)
        except FuturesTimeout:
            future.cancel()
            logger.warning(
                "Odds lookup for match %s timed out after %.1fs; using fallback odds",
                match.match_id, timeout,
            )
        except Exception as exc:
            logger.warning(
                "Odds lookup for match %s failed: %s; using fallback odds",
                match.match_id, exc, exc_info=True,
            )
        return None

    # ------------------------------------------------------------------
    # Locks and local cache
    # ------------------------------------------------------------------

    @contextmanager
    def _match_lock(self, match_id: str) -> Iterator[None]:
        """Hold the lock for ``match_id``; the entry is dropped by its last user."""
        with self._key_locks_guard:
            entry = self._key_locks.get(match_id)
            if entry is None:
                entry = self._key_locks[match_id] = _KeyLock(threading.Lock())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._key_locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._key_locks[match_id]

    def _bump(self, counter: str) -> None:
        with self._cache_lock:
            self._stats[counter] += 1

    def _cache_get(self, match_id: str) -> Optional[Prediction]:
        with self._cache_lock:
            entry = self._cache.get(match_id)
            if entry is None:
                return None
            if self._clock() - entry.cached_at >= self.settings.cache_ttl_seconds:
                del self._cache[match_id]
                return None
            return entry.prediction

    def _cache_put(self, prediction: Prediction) -> None:
        with self._cache_lock:
            if prediction.match_id not in self._cache and len(self._cache) >= self.settings.cache_max_size:
                evict = max(1, self.settings.cache_max_size // 10)
                for _ in range(min(evict, len(self._cache))):
                    self._cache.popitem(last=False)
                logger.debug("Prediction cache full; evicted %d oldest entries", evict)
            self._cache[prediction.match_id] = _CacheEntry(prediction, self._clock())
            self._cache.move_to_end(prediction.match_id)


# ============================================================================
# SINGLETON
# ============================================================================

_prediction_service: Optional[PredictionService] = None
_singleton_lock = threading.Lock()


def get_prediction_service() -> PredictionService:
    """Process-wide service backed by the SQL store and environment settings."""
    global _prediction_service
    with _singleton_lock:
        if _prediction_service is None:
            _prediction_service = PredictionService(
                SqlPredictionStore(),
                settings=EngineSettings.from_env(),
                odds_provider=build_odds_provider(),
            )
        return _prediction_service
