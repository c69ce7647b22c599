"""
Persisted write-once store of locked predictions.

Contract (keyed by match id):

    exists(match_id)              -> bool
    get(match_id)                 -> Prediction | None
    insert_if_absent(prediction)  -> Prediction   (the stored winner)

There is no update or delete.  ``insert_if_absent`` is the atomic
check-and-set: when a record already exists, the argument is discarded and
the existing record is returned, so a writer that lost a race always ends up
holding the winner's prediction.

InMemoryPredictionStore
    Process-local dict guarded by a lock.  Tests and single-process use.

SqlPredictionStore
    ``locked_predictions`` table with a UNIQUE match_id.  The database
    enforces the lock, so it holds across processes and hosts.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from betsmart.core.strategy_interface import Prediction
from betsmart.models import LockedPrediction, SessionLocal

logger = logging.getLogger(__name__)


class PredictionStore(ABC):
    """Abstract write-once store of locked predictions."""

    @abstractmethod
    def exists(self, match_id: str) -> bool:
        ...

    @abstractmethod
    def get(self, match_id: str) -> Optional[Prediction]:
        ...

    @abstractmethod
    def insert_if_absent(self, prediction: Prediction) -> Prediction:
        """Store ``prediction`` unless ``match_id`` is taken; return whichever is stored."""


class InMemoryPredictionStore(PredictionStore):
    def __init__(self):
        self._records: dict[str, Prediction] = {}
        self._lock = threading.Lock()

    def exists(self, match_id: str) -> bool:
        with self._lock:
            return match_id in self._records

    def get(self, match_id: str) -> Optional[Prediction]:
        with self._lock:
            return self._records.get(match_id)

    def insert_if_absent(self, prediction: Prediction) -> Prediction:
        with self._lock:
            return self._records.setdefault(prediction.match_id, prediction)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class SqlPredictionStore(PredictionStore):
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def exists(self, match_id: str) -> bool:
        db = self._session_factory()
        try:
            row = (
                db.query(LockedPrediction.id)
                .filter(LockedPrediction.match_id == match_id)
                .first()
            )
            return row is not None
        finally:
            db.close()

    def get(self, match_id: str) -> Optional[Prediction]:
        db = self._session_factory()
        try:
            row = (
                db.query(LockedPrediction)
                .filter(LockedPrediction.match_id == match_id)
                .first()
            )
            if row is None:
                return None
            return Prediction.from_dict(row.payload)
        finally:
            db.close()

    def insert_if_absent(self, prediction: Prediction) -> Prediction:
        db = self._session_factory()
        try:
            db.add(LockedPrediction.from_prediction(prediction))
            db.commit()
            logger.info("Locked prediction for match %s", prediction.match_id)
            return prediction
        except IntegrityError:
            db.rollback()
            logger.info(
                "Match %s already locked by another writer; keeping existing record",
                prediction.match_id,
            )
        finally:
            db.close()

        winner = self.get(prediction.match_id)
        if winner is None:
            raise RuntimeError(
                f"Insert for match {prediction.match_id!r} conflicted but no record was found"
            )
        return winner
