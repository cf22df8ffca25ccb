# cbt router: save completed thought-challenge exercises
# the exercise count drives the coach's cbt milestones and recent exercises feed chat context

import hashlib
import logging

from fastapi import APIRouter, Depends, Response, status

from journey.dependencies import get_current_user
from journey.models.cbt import CBTExerciseCreate, CBTExerciseResponse
from journey.services.clock import isoformat, utcnow
from journey.services.db import Database, get_db
from journey.services.rate_limiter import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cbt", tags=["cbt"])


@router.post("/exercises", response_model=CBTExerciseResponse, status_code=status.HTTP_201_CREATED)
async def save_exercise(
    body: CBTExerciseCreate,
    response: Response,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    user_id = current_user["id"]
    limit = limiter.enforce("cbt", user_id)
    response.headers["X-RateLimit-Remaining"] = str(limit.remaining)

    now = isoformat(utcnow())
    exercise_id = hashlib.md5(f"{user_id}:{body.original_thought}:{now}".encode()).hexdigest()[:12]
    await db.therapy_exercises.insert_one({
        "exercise_id": exercise_id,
        "user_id": user_id,
        "type": "thought-challenging",
        "original_thought": body.original_thought,
        "reframed_thought": body.reframed_thought,
        "conversation": [qa.model_dump() for qa in body.conversation],
        "created_at": now,
    })
    total = await db.therapy_exercises.count_documents({"user_id": user_id, "type": "thought-challenging"})
    logger.info(f"CBT exercise {exercise_id} saved for user {user_id[:8]} ({total} total)")

    return CBTExerciseResponse(
        id=exercise_id,
        originalThought=body.original_thought,
        reframedThought=body.reframed_thought,
        createdAt=now,
        totalExercises=total,
    )
