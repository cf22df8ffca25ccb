# journals router: submit, list, edit and delete entries with their analysis state
# submission returns before analysis; the entry carries placeholder feedback until
# the queued analysis job applies the real result

import hashlib
import logging

from fastapi import APIRouter, Depends, Query, Response, status

from journey.dependencies import get_current_user
from journey.errors import NotFoundError
from journey.models.journal import (
    JournalCreate,
    JournalEntryResponse,
    JournalListResponse,
    JournalSubmitResponse,
)
from journey.services.analysis import placeholder_analysis, submit_analysis
from journey.services.clock import isoformat, utcnow
from journey.services.db import Database, get_db
from journey.services.inference import InferenceClient, get_inference_client
from journey.services.mood import record_mood_sample
from journey.services.rate_limiter import RateLimiter, get_rate_limiter
from journey.services.tasks import TaskQueue, get_task_queue

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/journal", tags=["journal"])


def _doc_to_journal(doc: dict) -> JournalEntryResponse:
    """convert a mongodb journal document to response model"""
    return JournalEntryResponse(
        id=doc.get("journal_id", str(doc.get("_id", ""))),
        title=doc.get("title", ""),
        content=doc.get("content", ""),
        moodRating=doc.get("mood_rating", 0),
        activities=doc.get("activities") or [],
        sentiment=doc.get("sentiment") or 0.0,
        sentimentLabel=doc.get("sentiment_label") or "neutral",
        feedback=doc.get("feedback") or "",
        analysisStatus=doc.get("analysis_status", "complete"),
        createdAt=doc.get("created_at", ""),
    )


@router.post("", response_model=JournalSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_journal(
    body: JournalCreate,
    response: Response,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    inference: InferenceClient = Depends(get_inference_client),
    limiter: RateLimiter = Depends(get_rate_limiter),
    queue: TaskQueue = Depends(get_task_queue),
):
    """save a journal entry, record its mood, and queue the analysis"""
    user_id = current_user["id"]
    limit = limiter.enforce("journal", user_id)
    response.headers["X-RateLimit-Remaining"] = str(limit.remaining)

    now = utcnow()
    # journal_id as md5 hash of user id + title + timestamp
    raw = f"{user_id}:{body.title}:{now.isoformat()}"
    journal_id = hashlib.md5(raw.encode()).hexdigest()[:12]

    doc = {
        "journal_id": journal_id,
        "user_id": user_id,
        "title": body.title,
        "content": body.content,
        "mood_rating": body.mood_rating,
        "activities": body.activities,
        **placeholder_analysis(),
        "created_at": isoformat(now),
    }
    await db.journals.insert_one(doc)

    await record_mood_sample(
        db, user_id, body.mood_rating,
        type="journaling", context=body.title, triggers=body.activities, now=now,
    )

    submit_analysis(queue, db, inference, journal_id)
    logger.info(f"Journal {journal_id} created by user {user_id[:8]}, analysis queued")
    return JournalSubmitResponse(entry=_doc_to_journal(doc))


@router.get("", response_model=JournalListResponse)
async def list_journals(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, alias="pageSize", ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """list the user's entries, newest first"""
    query = {"user_id": current_user["id"]}
    total = await db.journals.count_documents(query)
    cursor = db.journals.find(query).sort("created_at", -1).skip((page - 1) * page_size).limit(page_size)

    entries = []
    async for doc in cursor:
        entries.append(_doc_to_journal(doc))
    return JournalListResponse(entries=entries, total=total, page=page, pageSize=page_size)


@router.get("/{journal_id}", response_model=JournalEntryResponse)
async def get_journal(
    journal_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    doc = await db.journals.find_one({"journal_id": journal_id, "user_id": current_user["id"]})
    if not doc:
        raise NotFoundError("Journal entry not found")
    return _doc_to_journal(doc)


@router.patch("/{journal_id}", response_model=JournalEntryResponse)
async def edit_journal(
    journal_id: str,
    body: JournalCreate,
    response: Response,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    inference: InferenceClient = Depends(get_inference_client),
    limiter: RateLimiter = Depends(get_rate_limiter),
    queue: TaskQueue = Depends(get_task_queue),
):
    """edit an existing journal entry. the analysis is reset and queued again."""
    user_id = current_user["id"]
    limit = limiter.enforce("journal", user_id)
    response.headers["X-RateLimit-Remaining"] = str(limit.remaining)

    journal = await db.journals.find_one({"journal_id": journal_id, "user_id": user_id})
    if not journal:
        raise NotFoundError("Journal entry not found")

    update_fields = {
        "title": body.title,
        "content": body.content,
        "mood_rating": body.mood_rating,
        "activities": body.activities,
        **placeholder_analysis(),
        "updated_at": isoformat(utcnow()),
    }
    await db.journals.update_one(
        {"journal_id": journal_id, "user_id": user_id},
        {"$set": update_fields},
    )

    submit_analysis(queue, db, inference, journal_id, schedule_detection=False)
    logger.info(f"Journal edited: {journal_id} by user {user_id[:8]}, analysis queued")
    return _doc_to_journal({**journal, **update_fields})


@router.delete("/{journal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_journal(
    journal_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """delete a journal entry. streaks and pattern eligibility no longer count it."""
    user_id = current_user["id"]
    result = await db.journals.delete_one({"journal_id": journal_id, "user_id": user_id})
    if not result.deleted_count:
        raise NotFoundError("Journal entry not found")
    logger.info(f"Journal deleted: {journal_id} by user {user_id[:8]}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
