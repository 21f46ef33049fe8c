"""
backend/app/database.py

Purpose:
    MongoDB connection bootstrap and index management for the engine's
    collections (matches, wagers, users, balance_transactions, worker_state).

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - app.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, OperationFailure

from app.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("freebet.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=2,
        timeoutMS=settings.MONGO_TIMEOUT_MS,
        serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
        tz_aware=True,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent."""

    # ---- Matches ----
    try:
        await db.matches.create_index("external_id", unique=True)
    except (DuplicateKeyError, OperationFailure) as exc:
        # Upserts still work without it, but same-id races could then duplicate rows.
        logger.error("Could not create unique matches.external_id index: %s", exc)
    # Settlement candidate scan
    await db.matches.create_index([("completed", 1), ("calculated", 1)])
    # Upcoming fixtures listing
    await db.matches.create_index("commence_time")

    # ---- Wagers ----
    await db.wagers.create_index([("match_external_id", 1), ("status", 1)])
    await db.wagers.create_index([("user_id", 1), ("created_at", -1)])
    await db.wagers.create_index("settlement_token", sparse=True)

    # ---- Ledger audit trail ----
    await db.balance_transactions.create_index([("user_id", 1), ("created_at", -1)])
    await db.balance_transactions.create_index("reference_id")

    logger.info("Indexes ensured for %s", settings.MONGO_DB)
