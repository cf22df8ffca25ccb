# pattern engine: gates, validates, deduplicates and persists behavioral patterns
#
# lifecycle:
#   1. eligibility: >= PATTERN_MIN_ENTRIES journal entries in the lookback window
#   2. candidates from the inference collaborator, parsed at the boundary
#   3. staleness: old active patterns are deactivated, old inactive ones deleted,
#      only once the collaborator has answered
#   4. dedup against existing patterns of the same type and the batch itself
#   5. one insert per admitted candidate
#
# only patterns with confidence >= PATTERN_SURFACE_CONFIDENCE are surfaced; the
# rest are kept for later re-evaluation. dismissal is permanent.

import hashlib
import logging
import math
import re
from collections import defaultdict
from datetime import datetime, timedelta
from difflib import SequenceMatcher
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from journey.config import settings
from journey.errors import CollaboratorError, CollaboratorTimeoutError, NotFoundError
from journey.services.clock import isoformat, parse_timestamp, reference_timezone, utcnow
from journey.services.db import Database
from journey.services.inference import InferenceClient
from journey.services.sanitizer import anonymize_text
from journey.services.trends import MoodSample, load_mood_samples

logger = logging.getLogger(__name__)

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
NON_WORD = re.compile(r"[^a-z0-9]+")
NAME_MAX_LENGTH = 80


class PatternCandidate(BaseModel):
    """a pattern proposed by the inference collaborator, validated before admission"""
    type: str = Field(..., min_length=1, max_length=40)
    description: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=1.0)
    name: Optional[str] = Field(None, max_length=NAME_MAX_LENGTH)
    insights: Optional[str] = None
    suggestions: Optional[str] = None
    evidence: Optional[dict[str, Any]] = None

    @field_validator("type", "description", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("type")
    @classmethod
    def lower_type(cls, v: str) -> str:
        return v.lower()

    # optional fields never cost a candidate its admission
    @field_validator("name", mode="before")
    @classmethod
    def clip_name(cls, v):
        if not isinstance(v, str) or not v.strip():
            return None
        return v.strip()[:NAME_MAX_LENGTH]

    @field_validator("insights", "suggestions", mode="before")
    @classmethod
    def text_or_none(cls, v):
        return v if isinstance(v, str) else None

    @field_validator("evidence", mode="before")
    @classmethod
    def evidence_or_none(cls, v):
        if not isinstance(v, dict):
            return None
        return {str(k): val for k, val in v.items()}

    @field_validator("confidence", mode="before")
    @classmethod
    def confidence_is_real_number(cls, v):
        # bool is an int subclass and strings would be coerced, reject both
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("confidence must be a number")
        if not math.isfinite(v):
            raise ValueError("confidence must be finite")
        return v


def parse_candidates(raw: Iterable[Any]) -> list[PatternCandidate]:
    """parse-or-reject each raw candidate; malformed ones are dropped and logged"""
    parsed = []
    for item in raw or []:
        if not isinstance(item, dict):
            logger.warning(f"Rejected pattern candidate of type {type(item).__name__}")
            continue
        try:
            parsed.append(PatternCandidate.model_validate(item))
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
            logger.warning(f"Rejected pattern candidate ({fields})")
    return parsed


def normalize_description(text: str) -> str:
    return NON_WORD.sub(" ", (text or "").lower()).strip()


def description_similarity(a: str, b: str) -> float:
    return SequenceMatcher(None, normalize_description(a), normalize_description(b)).ratio()


def dedup_pool(existing: Iterable[dict], include_dismissed: bool) -> list[dict]:
    """existing patterns a new candidate is compared against"""
    pool = []
    for doc in existing:
        if doc.get("dismissed"):
            if include_dismissed:
                pool.append(doc)
        elif doc.get("is_active"):
            pool.append(doc)
    return pool


def select_admissible(
    candidates: list[PatternCandidate],
    existing: Iterable[dict],
    include_dismissed: Optional[bool] = None,
    threshold: Optional[float] = None,
) -> list[PatternCandidate]:
    """candidates that do not duplicate an existing pattern or an earlier candidate.

    a duplicate is a same-type pattern whose normalized description has a
    similarity ratio >= threshold.
    """
    if include_dismissed is None:
        include_dismissed = settings.PATTERN_DEDUP_INCLUDE_DISMISSED
    threshold = settings.PATTERN_SIMILARITY_THRESHOLD if threshold is None else threshold

    seen: list[tuple[str, str]] = [
        (str(doc.get("type", "")).lower(), doc.get("description", ""))
        for doc in dedup_pool(existing, include_dismissed)
    ]
    admitted = []
    for candidate in candidates:
        duplicate = any(
            kind == candidate.type and description_similarity(desc, candidate.description) >= threshold
            for kind, desc in seen
        )
        if duplicate:
            logger.info(f"Skipped duplicate {candidate.type} pattern: {candidate.description[:40]}")
            continue
        admitted.append(candidate)
        seen.append((candidate.type, candidate.description))
    return admitted


def is_surfaced(doc: dict, min_confidence: Optional[float] = None) -> bool:
    threshold = settings.PATTERN_SURFACE_CONFIDENCE if min_confidence is None else min_confidence
    return bool(doc.get("is_active")) and not doc.get("dismissed") and doc.get("confidence", 0) >= threshold


def build_history_summary(entries: list[dict], moods: list[MoodSample], tz=None) -> str:
    """anonymized plain-text summary of recent journal and mood history"""
    tz = tz or reference_timezone()
    if not entries:
        return "No journal entries."

    dated = [(parse_timestamp(e.get("created_at")), e) for e in entries]
    dated = [(ts, e) for ts, e in dated if ts is not None]
    dated.sort(key=lambda pair: pair[0])

    by_day: dict[str, list[int]] = defaultdict(list)
    by_activity: dict[str, list[int]] = defaultdict(list)
    for ts, entry in dated:
        mood = entry.get("mood_rating") or 0
        by_day[DAY_NAMES[ts.astimezone(tz).weekday()]].append(mood)
        for activity in entry.get("activities") or []:
            by_activity[activity].append(mood)

    day_lines = "\n".join(
        f"{day}: {len(moods_)} entries, avg mood {sum(moods_) / len(moods_):.1f}/10"
        for day, moods_ in sorted(by_day.items(), key=lambda kv: DAY_NAMES.index(kv[0]))
    )
    activity_lines = "\n".join(
        f"{activity}: {len(vals)} times, avg mood {sum(vals) / len(vals):.1f}/10"
        for activity, vals in sorted(by_activity.items(), key=lambda kv: len(kv[1]), reverse=True)[:8]
    ) or "No activities tracked"
    recent_lines = "\n".join(
        f"{ts.astimezone(tz):%b %d}: \"{anonymize_text(entry.get('title') or '')[:50]}\" "
        f"(mood: {entry.get('mood_rating')}/10, sentiment: {entry.get('sentiment_label') or 'neutral'})"
        for ts, entry in dated[-10:]
    )

    ratings = [e.get("mood_rating") or 0 for _, e in dated]
    sentiments = [e["sentiment"] for _, e in dated if e.get("sentiment") is not None]
    avg_sentiment = sum(sentiments) / len(sentiments) if sentiments else 0.0

    mood_line = "No mood check-ins"
    if moods:
        mood_line = f"{len(moods)} check-ins, avg {sum(m.score for m in moods) / len(moods):.1f}/10"

    first, last = dated[0][0].astimezone(tz), dated[-1][0].astimezone(tz)
    return f"""OVERVIEW:
- Total journal entries: {len(dated)}
- Date range: {first:%b %d} to {last:%b %d}
- Average mood: {sum(ratings) / len(ratings):.1f}/10
- Average sentiment: {avg_sentiment:.2f} (-1 to 1 scale)
- Mood check-ins: {mood_line}

DAY OF WEEK PATTERNS:
{day_lines}

ACTIVITY CORRELATIONS:
{activity_lines}

RECENT JOURNAL THEMES (Anonymized):
{recent_lines}"""


def _pattern_id(user_id: str, candidate: PatternCandidate, now: datetime) -> str:
    raw = f"{user_id}:{candidate.type}:{candidate.description}:{now.isoformat()}"
    return hashlib.md5(raw.encode()).hexdigest()[:12]


def _candidate_to_doc(user_id: str, candidate: PatternCandidate, now: datetime) -> dict:
    return {
        "pattern_id": _pattern_id(user_id, candidate, now),
        "user_id": user_id,
        "type": candidate.type,
        "name": candidate.name or candidate.type.title(),
        "description": candidate.description,
        "confidence": candidate.confidence,
        "evidence": candidate.evidence or {},
        "insights": candidate.insights or "",
        "suggestions": candidate.suggestions or "",
        "is_active": True,
        "dismissed": False,
        "dismissed_at": None,
        "created_at": isoformat(now),
    }


async def count_recent_entries(db: Database, user_id: str, now: datetime, days: Optional[int] = None) -> int:
    since = now - timedelta(days=days or settings.PATTERN_LOOKBACK_DAYS)
    return await db.journals.count_documents({"user_id": user_id, "created_at": {"$gte": isoformat(since)}})


async def retire_stale_patterns(db: Database, user_id: str, now: datetime) -> None:
    """deactivate old active patterns and delete long-inactive ones.
    dismissed patterns are kept so dedup can still see them."""
    stale_cutoff = isoformat(now - timedelta(days=settings.PATTERN_STALE_DAYS))
    retention_cutoff = isoformat(now - timedelta(days=settings.PATTERN_RETENTION_DAYS))

    deactivated = await db.patterns.update_many(
        {"user_id": user_id, "is_active": True, "created_at": {"$lt": stale_cutoff}},
        {"$set": {"is_active": False}},
    )
    deleted = await db.patterns.delete_many(
        {"user_id": user_id, "is_active": False, "dismissed": False, "created_at": {"$lt": retention_cutoff}},
    )
    if deactivated.modified_count or deleted.deleted_count:
        logger.info(
            f"Pattern cleanup for user {user_id[:8]}: "
            f"{deactivated.modified_count} deactivated, {deleted.deleted_count} deleted"
        )


async def gather_history(db: Database, user_id: str, now: datetime) -> tuple[list[dict], list[MoodSample]]:
    since = now - timedelta(days=settings.PATTERN_LOOKBACK_DAYS)
    entries = []
    cursor = db.journals.find(
        {"user_id": user_id, "created_at": {"$gte": isoformat(since)}},
        {"title": 1, "mood_rating": 1, "sentiment": 1, "sentiment_label": 1, "activities": 1, "created_at": 1},
    ).sort("created_at", 1)
    async for doc in cursor:
        entries.append(doc)
    moods = await load_mood_samples(db, user_id, since=since)
    return entries, moods


async def detect(
    db: Database,
    inference: InferenceClient,
    user_id: str,
    profile: Optional[dict] = None,
    strict: bool = False,
    now: Optional[datetime] = None,
) -> list[dict]:
    """run detection for a user and return the newly saved pattern documents.

    collaborator timeouts and failures return [] and leave stored patterns as they
    were. with strict=True a hard collaborator failure is re-raised.
    """
    now = now or utcnow()

    recent = await count_recent_entries(db, user_id, now)
    if recent < settings.PATTERN_MIN_ENTRIES:
        logger.info(f"Pattern detection skipped for user {user_id[:8]}: {recent} recent entries")
        return []

    entries, moods = await gather_history(db, user_id, now)
    summary = build_history_summary(entries, moods)

    try:
        raw = await inference.propose_patterns(summary, profile)
    except CollaboratorTimeoutError:
        logger.warning(f"Pattern detection timed out for user {user_id[:8]}, keeping existing patterns")
        return []
    except CollaboratorError as e:
        logger.error(f"Pattern detection failed for user {user_id[:8]}: {e}")
        if strict:
            raise
        return []

    candidates = parse_candidates(raw)
    await retire_stale_patterns(db, user_id, now)

    existing = []
    async for doc in db.patterns.find({"user_id": user_id}):
        existing.append(doc)
    admitted = select_admissible(candidates, existing)

    saved = []
    for candidate in admitted:
        doc = _candidate_to_doc(user_id, candidate, now)
        try:
            await db.patterns.insert_one(doc)
        except Exception as e:
            logger.error(f"Failed to save {candidate.type} pattern for user {user_id[:8]}: {e}")
            continue
        saved.append(doc)

    logger.info(
        f"Pattern detection for user {user_id[:8]}: {len(raw)} proposed, "
        f"{len(candidates)} valid, {len(saved)} saved"
    )
    return saved


async def list_active(db: Database, user_id: str, limit: Optional[int] = None) -> list[dict]:
    """surfaced patterns, highest confidence first, newest first within a tie"""
    cursor = db.patterns.find({
        "user_id": user_id,
        "is_active": True,
        "dismissed": False,
        "confidence": {"$gte": settings.PATTERN_SURFACE_CONFIDENCE},
    }).sort([("confidence", -1), ("created_at", -1)])
    if limit:
        cursor = cursor.limit(limit)

    patterns = []
    async for doc in cursor:
        patterns.append(doc)
    return patterns


async def dismiss(db: Database, user_id: str, pattern_id: str, now: Optional[datetime] = None) -> dict:
    pattern = await db.patterns.find_one({"pattern_id": pattern_id, "user_id": user_id})
    if not pattern:
        raise NotFoundError("Pattern not found")
    if pattern.get("dismissed"):
        return pattern

    dismissed_at = isoformat(now or utcnow())
    await db.patterns.update_one(
        {"pattern_id": pattern_id, "user_id": user_id},
        {"$set": {"dismissed": True, "dismissed_at": dismissed_at}},
    )
    logger.info(f"Pattern {pattern_id} dismissed by user {user_id[:8]}")
    return {**pattern, "dismissed": True, "dismissed_at": dismissed_at}


def due_for_periodic_detection(total_entries: int) -> bool:
    interval = settings.PATTERN_DETECTION_INTERVAL
    return total_entries > 0 and interval > 0 and total_entries % interval == 0


def build_prompt_context(patterns: list[dict], last_entry: Optional[dict], goals: list[str], tz=None) -> str:
    """anonymized context lines for a smart journaling prompt"""
    tz = tz or reference_timezone()
    sections = []
    if patterns:
        lines = "\n".join(
            f"- {anonymize_text(p.get('name') or p.get('type', ''))}: "
            f"{anonymize_text(p.get('insights') or p.get('description', ''))[:120]}"
            for p in patterns
        )
        sections.append(f"Active Behavioral Patterns:\n{lines}")
    if goals:
        sections.append("Active Goals:\n" + "\n".join(f"- {anonymize_text(g)}" for g in goals[:5]))
    if last_entry:
        created = parse_timestamp(last_entry.get("created_at"))
        when = f" ({created.astimezone(tz):%b %d})" if created else ""
        title = anonymize_text(last_entry.get("title") or "")[:80]
        sections.append(f"Last Journal Entry{when}: \"{title}\" (mood: {last_entry.get('mood_rating')}/10)")
    return "\n\n".join(sections)


async def generate_smart_prompt(
    db: Database,
    inference: InferenceClient,
    user_id: str,
    profile: Optional[dict] = None,
) -> Optional[str]:
    """a journaling prompt shaped by surfaced patterns, goals and the last entry.

    returns None when there is nothing to personalize from, or when the
    collaborator times out or fails.
    """
    patterns = await list_active(db, user_id, limit=3)
    goals = (profile or {}).get("primary_goals") or []
    if not patterns and not goals:
        return None

    last_entry = await db.journals.find_one({"user_id": user_id}, sort=[("created_at", -1)])
    prompt_context = build_prompt_context(patterns, last_entry, goals)

    try:
        prompt = await inference.smart_prompt(prompt_context, profile)
    except CollaboratorError as e:
        logger.warning(f"Smart prompt unavailable for user {user_id[:8]}: {e}")
        return None
    return prompt or None
