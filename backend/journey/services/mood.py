# mood recording: every sample is written twice
# mood_snapshots feeds trends and streaks, mood_entries keeps the legacy feed populated.
# the two inserts run concurrently; if either fails the error is surfaced and the
# surviving record is logged as orphaned.

import asyncio
import logging
from datetime import datetime
from typing import Optional

from journey.errors import InternalError
from journey.services.clock import isoformat, utcnow
from journey.services.db import Database

logger = logging.getLogger(__name__)

MOOD_TYPES = ("baseline", "pulse-check", "journaling", "post-activity", "morning", "evening", "triggered")


async def record_mood_sample(
    db: Database,
    user_id: str,
    score: int,
    type: str = "pulse-check",
    context: Optional[str] = None,
    activity_type: Optional[str] = None,
    improvement: Optional[float] = None,
    triggers: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> dict:
    """insert the snapshot and its legacy entry, returning the snapshot document"""
    stamp = isoformat(now or utcnow())
    snapshot = {
        "user_id": user_id,
        "score": score,
        "type": type,
        "context": context,
        "activity_type": activity_type,
        "improvement": improvement,
        "timestamp": stamp,
    }
    legacy = {
        "user_id": user_id,
        "mood_score": score,
        "note": context or "Pulse Check",
        "triggers": triggers or [],
        "created_at": stamp,
    }

    snapshot_result, legacy_result = await asyncio.gather(
        db.mood_snapshots.insert_one(snapshot),
        db.mood_entries.insert_one(legacy),
        return_exceptions=True,
    )

    snapshot_failed = isinstance(snapshot_result, Exception)
    legacy_failed = isinstance(legacy_result, Exception)
    if snapshot_failed and legacy_failed:
        logger.error(f"Mood write failed for user {user_id[:8]}: {snapshot_result}; {legacy_result}")
        raise InternalError("Failed to record mood")
    if snapshot_failed:
        logger.error(
            f"Mood snapshot insert failed for user {user_id[:8]}: {snapshot_result}. "
            f"Orphaned mood_entries record {legacy_result.inserted_id}"
        )
        raise InternalError("Failed to record mood")
    if legacy_failed:
        logger.error(
            f"Legacy mood entry insert failed for user {user_id[:8]}: {legacy_result}. "
            f"Orphaned mood_snapshots record {snapshot_result.inserted_id}"
        )
        raise InternalError("Failed to record mood")

    return snapshot
