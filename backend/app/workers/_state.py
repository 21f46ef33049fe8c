"""Persistent worker state: last run time and summary metrics per trigger.

Uses a lightweight `worker_state` collection in MongoDB so operators can see
when odds, scores and settlement last ran and what they did.
"""

import app.database as _db
from app.utils import utcnow


async def set_synced(worker_id: str, metrics: dict | None = None) -> None:
    """Mark a worker as just synced, keeping the run's summary metrics."""
    update: dict = {"synced_at": utcnow()}
    if metrics is not None:
        update["last_metrics"] = metrics
    await _db.db.worker_state.update_one(
        {"_id": worker_id},
        {"$set": update},
        upsert=True,
    )


async def get_worker_states() -> dict[str, dict]:
    docs = await _db.db.worker_state.find({}).to_list(length=50)
    return {
        str(doc["_id"]): {
            "synced_at": doc.get("synced_at"),
            "last_metrics": doc.get("last_metrics", {}),
        }
        for doc in docs
    }
