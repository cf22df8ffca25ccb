# mood router: pulse checks and other mood samples

import logging

from fastapi import APIRouter, Depends, Response, status

from journey.dependencies import get_current_user
from journey.models.mood import MoodSnapshotCreate, MoodSnapshotResponse
from journey.services.db import Database, get_db
from journey.services.mood import record_mood_sample
from journey.services.rate_limiter import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/mood", tags=["mood"])


@router.post("/snapshot", response_model=MoodSnapshotResponse, status_code=status.HTTP_201_CREATED)
async def create_snapshot(
    body: MoodSnapshotCreate,
    response: Response,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """record a mood sample (snapshot plus legacy mood entry)"""
    limit = limiter.enforce("mood", current_user["id"])
    response.headers["X-RateLimit-Remaining"] = str(limit.remaining)

    snapshot = await record_mood_sample(
        db,
        current_user["id"],
        body.score,
        type=body.type,
        context=body.context,
        activity_type=body.activity_type,
        improvement=body.improvement,
        triggers=body.triggers,
    )
    return MoodSnapshotResponse(
        userId=snapshot["user_id"],
        score=snapshot["score"],
        type=snapshot["type"],
        context=snapshot["context"],
        activityType=snapshot["activity_type"],
        improvement=snapshot["improvement"],
        timestamp=snapshot["timestamp"],
    )
