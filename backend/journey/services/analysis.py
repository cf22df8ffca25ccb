# journal analysis: sentiment and feedback applied after the entry is saved
#
# read-after-write contract: POST /journal returns before analysis runs. until the
# queued job completes, reads see PLACEHOLDER_FEEDBACK, sentiment 0, label neutral
# and analysis_status "pending". the result is applied once, guarded on that status.

import logging
from typing import Any, Optional

from bson import ObjectId

from journey.errors import CollaboratorError, CollaboratorTimeoutError, NotFoundError
from journey.services import patterns
from journey.services.clock import isoformat, utcnow
from journey.services.db import Database
from journey.services.inference import InferenceClient
from journey.services.tasks import TaskQueue

logger = logging.getLogger(__name__)

PLACEHOLDER_FEEDBACK = "AI is analyzing your entry..."
FALLBACK_FEEDBACK = "Thanks for taking a moment to check in with yourself today. That takes intention, and it matters."
SENTIMENT_LABELS = ("positive", "neutral", "negative")
MAX_FEEDBACK_CHARS = 500


def placeholder_analysis() -> dict:
    return {
        "sentiment": 0.0,
        "sentiment_label": "neutral",
        "feedback": PLACEHOLDER_FEEDBACK,
        "analysis_status": "pending",
    }


def fallback_analysis() -> dict:
    return {"sentiment": 0.0, "sentiment_label": "neutral", "feedback": FALLBACK_FEEDBACK}


def _label_for(score: float) -> str:
    if score > 0.2:
        return "positive"
    if score < -0.2:
        return "negative"
    return "neutral"


def normalize_analysis(raw: Any) -> dict:
    """coerce a collaborator reply into a bounded sentiment triple"""
    if not isinstance(raw, dict):
        return fallback_analysis()

    score = raw.get("sentiment")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or score != score:
        score = 0.0
    score = max(-1.0, min(1.0, float(score)))

    label = str(raw.get("sentimentLabel") or raw.get("sentiment_label") or "").lower()
    if label not in SENTIMENT_LABELS:
        label = _label_for(score)

    feedback = raw.get("feedback")
    if not isinstance(feedback, str) or not feedback.strip():
        feedback = FALLBACK_FEEDBACK
    return {"sentiment": score, "sentiment_label": label, "feedback": feedback.strip()[:MAX_FEEDBACK_CHARS]}


async def _load_profile(db: Database, user_id: str) -> Optional[dict]:
    try:
        user = await db.users.find_one({"_id": ObjectId(user_id)}, {"profile": 1})
    except Exception:
        user = None
    return (user or {}).get("profile")


async def analyze_entry(
    db: Database,
    inference: InferenceClient,
    journal_id: str,
    queue: Optional[TaskQueue] = None,
) -> dict:
    """analyze one journal entry and store the result.

    collaborator timeouts and errors fall back to a neutral analysis. a missing
    entry raises so the queue retries and eventually dead-letters the job.
    """
    entry = await db.journals.find_one({"journal_id": journal_id})
    if not entry:
        raise NotFoundError(f"Journal entry {journal_id} not found")
    if entry.get("analysis_status") != "pending":
        logger.info(f"Journal {journal_id} already analyzed, skipping")
        return entry

    try:
        raw = await inference.analyze_sentiment(
            entry.get("title", ""), entry.get("content", ""), entry.get("activities") or []
        )
        result = normalize_analysis(raw)
    except CollaboratorTimeoutError:
        logger.warning(f"Sentiment analysis timed out for journal {journal_id}, using neutral fallback")
        result = fallback_analysis()
    except CollaboratorError as e:
        logger.warning(f"Sentiment analysis failed for journal {journal_id}: {e}, using neutral fallback")
        result = fallback_analysis()

    update = await db.journals.update_one(
        {"journal_id": journal_id, "analysis_status": "pending"},
        {"$set": {**result, "analysis_status": "complete", "analyzed_at": isoformat(utcnow())}},
    )
    if update.modified_count == 0:
        logger.info(f"Journal {journal_id} was analyzed concurrently, result discarded")
        return entry
    logger.info(f"Journal {journal_id} analyzed: {result['sentiment_label']} ({result['sentiment']:.2f})")

    if queue is not None:
        await schedule_periodic_detection(db, inference, queue, entry["user_id"])
    return {**entry, **result, "analysis_status": "complete"}


async def schedule_periodic_detection(db: Database, inference: InferenceClient, queue: TaskQueue, user_id: str) -> bool:
    """enqueue pattern detection every PATTERN_DETECTION_INTERVAL entries"""
    total = await db.journals.count_documents({"user_id": user_id})
    if not patterns.due_for_periodic_detection(total):
        return False

    profile = await _load_profile(db, user_id)
    queue.submit(f"patterns:{user_id}", lambda: patterns.detect(db, inference, user_id, profile))
    return True


def submit_analysis(
    queue: TaskQueue,
    db: Database,
    inference: InferenceClient,
    journal_id: str,
    schedule_detection: bool = True,
) -> None:
    """queue analysis of an entry. edits pass schedule_detection=False so the
    periodic pattern trigger only counts new entries."""
    follow_up = queue if schedule_detection else None
    queue.submit(f"analysis:{journal_id}", lambda: analyze_entry(db, inference, journal_id, follow_up))
