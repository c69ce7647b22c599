"""
FastAPI application for the BetSmart prediction engine
Locked predictions, staking math, CLV analytics and cache maintenance
"""

from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, timezone
import logging
import os

from betsmart.models import Base, engine, get_db
from betsmart.auth import verify_api_key, verify_admin_api_key
from betsmart.core.edge import calculate_edge, calculate_expected_value
from betsmart.core.kelly import calculate_kelly_stake, simulate_kelly_betting
from betsmart.core.odds_math import decimal_to_implied_prob
from betsmart.services.clv import (
    analyze_line_movement,
    calculate_aggregate_clv,
    calculate_clv,
    should_place_bet,
)
from betsmart.services.prediction_service import (
    MODEL_VERSION,
    PredictionService,
    get_prediction_service,
)
from betsmart.schemas import (
    AggregateCLVRequest,
    BatchPayload,
    CLVRequest,
    ExpectedValueRequest,
    KellyRequest,
    KellySimulationRequest,
    LineMovementRequest,
    MatchPayload,
    PredictionResponse,
    ShouldBetRequest,
)

APP_NAME = "BetSmart Prediction Engine"
APP_VERSION = "2.0"

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Scheduler instance
scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting %s", APP_NAME)
    Base.metadata.create_all(bind=engine)

    prune_minutes = int(os.getenv("CACHE_PRUNE_INTERVAL_MIN", "5"))
    scheduler.add_job(
        _prune_cache_job,
        IntervalTrigger(minutes=prune_minutes),
        id="prune_prediction_cache",
        name="Prune Expired Prediction Cache Entries",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started: cache prune every %dmin", prune_minutes)

    yield

    logger.info("Shutting down %s", APP_NAME)
    scheduler.shutdown()
    get_prediction_service().close()


app = FastAPI(
    title=APP_NAME,
    description="Prediction ensemble, locking and staking engine",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# SCHEDULED JOB
# ============================================================================

def _prune_cache_job():
    """Drop expired local cache entries; persisted locks are untouched."""
    try:
        pruned = get_prediction_service().prune_expired()
        if pruned:
            logger.info("Cache prune: %d entries removed", pruned)
    except Exception as exc:
        logger.error("Cache prune job failed: %s", exc, exc_info=True)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    return {
        "app": APP_NAME,
        "version": APP_VERSION,
        "model_version": MODEL_VERSION,
        "status": "operational",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    health = {"status": "healthy", "database": "connected", "scheduler": "running"}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"

    if not scheduler.running:
        health["status"] = "degraded"
        health["scheduler"] = "stopped"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - PREDICTIONS
# ============================================================================

@app.post("/api/predictions/generate", response_model=PredictionResponse)
def generate_prediction(
    payload: MatchPayload,
    user: str = Depends(verify_api_key),
    service: PredictionService = Depends(get_prediction_service),
):
    """Return the locked prediction for a match, computing it on first request."""
    match, history = payload.to_domain()
    return PredictionResponse.from_prediction(service.generate_prediction(match, history))


@app.post("/api/predictions/regenerate", response_model=PredictionResponse)
def regenerate_prediction(
    payload: MatchPayload,
    user: str = Depends(verify_api_key),
    service: PredictionService = Depends(get_prediction_service),
):
    """Bust the local cache for a match; an already-locked record is returned unchanged."""
    match, history = payload.to_domain()
    return PredictionResponse.from_prediction(service.regenerate_prediction(match, history))


@app.post("/api/predictions/batch", response_model=list[PredictionResponse])
def generate_predictions_batch(
    payload: BatchPayload,
    user: str = Depends(verify_api_key),
    service: PredictionService = Depends(get_prediction_service),
):
    predictions = []
    for item in payload.matches:
        match, history = item.to_domain()
        predictions.append(service.generate_prediction(match, history))
    return [PredictionResponse.from_prediction(p) for p in predictions]


@app.get("/api/predictions/{match_id}", response_model=PredictionResponse)
def get_prediction(
    match_id: str,
    user: str = Depends(verify_api_key),
    service: PredictionService = Depends(get_prediction_service),
):
    prediction = service.get_prediction(match_id)
    if prediction is None:
        raise HTTPException(status_code=404, detail=f"No locked prediction for match {match_id}")
    return PredictionResponse.from_prediction(prediction)


# ============================================================================
# AUTHENTICATED ENDPOINTS - BETTING MATH
# ============================================================================

@app.post("/api/betting/expected-value")
async def expected_value(payload: ExpectedValueRequest, user: str = Depends(verify_api_key)):
    ev = calculate_expected_value(payload.true_probability, payload.bookmaker_odds)
    return {
        **asdict(ev),
        "edge": round(calculate_edge(payload.true_probability, payload.bookmaker_odds), 4),
        "implied_probability": round(decimal_to_implied_prob(payload.bookmaker_odds), 4),
    }


@app.post("/api/betting/kelly")
async def kelly_stake(payload: KellyRequest, user: str = Depends(verify_api_key)):
    return asdict(calculate_kelly_stake(payload.to_domain()))


@app.post("/api/betting/kelly/simulate")
def kelly_simulation(payload: KellySimulationRequest, user: str = Depends(verify_api_key)):
    result = simulate_kelly_betting(
        payload.config.to_domain(),
        num_bets=payload.num_bets,
        num_simulations=payload.num_simulations,
        seed=payload.seed,
    )
    return asdict(result)


# ============================================================================
# AUTHENTICATED ENDPOINTS - CLV
# ============================================================================

@app.post("/api/clv")
async def closing_line_value(payload: CLVRequest, user: str = Depends(verify_api_key)):
    return asdict(calculate_clv(payload.predicted_odds, payload.closing_odds, payload.opening_odds))


@app.post("/api/clv/line-movement")
async def line_movement(payload: LineMovementRequest, user: str = Depends(verify_api_key)):
    history = [(o.timestamp, o.odds, o.source) for o in payload.observations]
    return asdict(analyze_line_movement(history))


@app.post("/api/clv/aggregate")
async def aggregate_clv(payload: AggregateCLVRequest, user: str = Depends(verify_api_key)):
    bets = [(b.predicted_odds, b.closing_odds) for b in payload.bets]
    return asdict(calculate_aggregate_clv(bets))


@app.post("/api/clv/should-bet")
async def should_bet(payload: ShouldBetRequest, user: str = Depends(verify_api_key)):
    return asdict(
        should_place_bet(payload.predicted_odds, payload.current_odds, payload.min_clv, payload.min_ev)
    )


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.get("/admin/cache/stats")
async def cache_stats(
    user: str = Depends(verify_admin_api_key),
    service: PredictionService = Depends(get_prediction_service),
):
    return service.cache_stats()


@app.post("/admin/cache/clear")
async def clear_cache(
    user: str = Depends(verify_admin_api_key),
    service: PredictionService = Depends(get_prediction_service),
):
    """Clear the local prediction cache.  Locked records in the database are kept."""
    cleared = service.clear_cache()
    return {"message": "Prediction cache cleared", "entries_cleared": cleared}


@app.get("/admin/scheduler/status")
async def get_scheduler_status(user: str = Depends(verify_admin_api_key)):
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(ValueError)
async def validation_exception_handler(request, exc):
    """Domain validation failures (bad odds, probability, bankroll, empty history)"""
    logger.info("Rejected request to %s: %s", request.url.path, exc)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
