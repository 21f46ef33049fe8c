"""
backend/app/main.py

Purpose:
    FastAPI application bootstrap, middleware/router wiring, optional scheduler
    lifecycle for the odds, scores and settlement triggers.

Dependencies:
    - app.database
    - app.routers.engine
    - app.workers
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    OperationFailure,
    PyMongoError,
    ServerSelectionTimeoutError,
)

import app.database as _db
from app.config import settings
from app.database import close_db, connect_db
from app.middleware.logging import StructuredLoggingMiddleware, setup_logging
from app.services.errors import EngineError

logger = logging.getLogger("freebet")
scheduler = AsyncIOScheduler()


def _build_job_specs() -> list[dict]:
    from app.workers.match_settler import settle
    from app.workers.odds_poller import sync_odds
    from app.workers.scores_poller import sync_scores

    return [
        {"id": "odds_sync", "func": sync_odds, "minutes": settings.ODDS_SYNC_INTERVAL_MINUTES},
        {"id": "scores_sync", "func": sync_scores, "minutes": settings.SCORES_SYNC_INTERVAL_MINUTES},
        {"id": "settlement", "func": settle, "minutes": settings.SETTLEMENT_INTERVAL_MINUTES},
    ]


def _guarded(job_id: str, func):
    async def run():
        try:
            await func()
        except (EngineError, PyMongoError) as exc:
            logger.error("Scheduled %s failed: %s", job_id, exc)
    return run


def register_jobs() -> int:
    added = 0
    for spec in _build_job_specs():
        if scheduler.get_job(spec["id"]):
            continue
        scheduler.add_job(
            _guarded(spec["id"], spec["func"]),
            "interval",
            id=spec["id"],
            minutes=spec["minutes"],
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        added += 1
    return added


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()

    if settings.ENGINE_AUTOMATION_ENABLED:
        added = register_jobs()
        scheduler.start()
        logger.info("Background scheduler started with %d jobs", added)
    else:
        logger.info("Automated triggers disabled. Use /api/engine to run them.")

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)

    from app.providers.odds_api import odds_provider
    from app.providers.telegram import telegram_notifier

    await odds_provider.aclose()
    await telegram_notifier.aclose()
    await close_db()


app = FastAPI(
    title="FreeBet Engine",
    description="Match lifecycle and wager settlement engine",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from app.routers.engine import router as engine_router

app.include_router(engine_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        field = ".".join(str(part) for part in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check -- verifies DB connection and feed circuit status."""
    from app.providers.odds_api import odds_provider

    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except PyMongoError:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "odds_provider": {
            "circuit_open": odds_provider.circuit_open,
        },
    }
