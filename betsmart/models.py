"""
Database models for the BetSmart prediction engine
SQLAlchemy ORM with PostgreSQL
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime, timezone
import os
from dotenv import load_dotenv

# Load .env before reading DATABASE_URL
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://postgres@127.0.0.1:5432/betsmart")

# pool_pre_ping keeps long-lived connections to the database container alive
engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=False)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LockedPrediction(Base):
    """Write-once prediction per match; the UNIQUE match_id is the lock"""

    __tablename__ = "locked_predictions"

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(String, nullable=False, index=True)
    league = Column(String, nullable=False)
    strategy = Column(String, nullable=False)

    # Denormalised headline fields for querying; payload is authoritative
    recommended = Column(String, nullable=False)
    confidence = Column(Integer, nullable=False)
    ev_percentage = Column(Float)
    recommended_stake = Column(Float)
    model_version = Column(String)

    # Full Prediction.to_dict() payload
    payload = Column(JSON, nullable=False)

    locked_at = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("match_id", name="uq_locked_predictions_match_id"),
    )

    @classmethod
    def from_prediction(cls, prediction) -> "LockedPrediction":
        return cls(
            match_id=prediction.match_id,
            league=prediction.league,
            strategy=prediction.strategy,
            recommended=prediction.recommended,
            confidence=prediction.confidence,
            ev_percentage=prediction.ev_percentage,
            recommended_stake=prediction.recommended_stake,
            model_version=prediction.model_version,
            payload=prediction.to_dict(),
        )
