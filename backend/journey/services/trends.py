# trend aggregator: windowed mood averages and trend classification
#
# "recent" is the last N days, "previous" the N days before that. a trend is only
# claimed when both windows have samples; callers get None otherwise and must not
# read that as "stable".
#
# threshold by call site:
#   /stats/mood-trend      TREND_THRESHOLD (0.5)
#   coach insights         COACH_TREND_THRESHOLD (0.5)
#   context synthesis      CONTEXT_TREND_THRESHOLD (0.3)

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from journey.config import settings
from journey.services.clock import isoformat, parse_timestamp, utcnow
from journey.services.db import Database

logger = logging.getLogger(__name__)

# "what works" looks at this many of the latest post-activity samples
ACTIVITY_SAMPLE_SIZE = 20


@dataclass(frozen=True)
class MoodSample:
    timestamp: datetime
    score: int
    type: str = "pulse-check"
    activity_type: Optional[str] = None
    improvement: Optional[float] = None


@dataclass(frozen=True)
class TrendResult:
    current_avg: float
    previous_avg: float
    change: float
    trend: str  # improving | declining | stable


@dataclass(frozen=True)
class ActivityImpact:
    activity: str
    improvement: float
    samples: int


def classify_change(change: float, threshold: float) -> str:
    if change > threshold:
        return "improving"
    if change < -threshold:
        return "declining"
    return "stable"


def compute_trend(
    samples: Iterable[MoodSample],
    now: Optional[datetime] = None,
    window_days: Optional[int] = None,
    threshold: Optional[float] = None,
) -> Optional[TrendResult]:
    now = now or utcnow()
    window = timedelta(days=window_days or settings.TREND_WINDOW_DAYS)
    threshold = settings.TREND_THRESHOLD if threshold is None else threshold

    recent_start = now - window
    previous_start = recent_start - window

    recent: list[int] = []
    previous: list[int] = []
    for sample in samples:
        if recent_start <= sample.timestamp <= now:
            recent.append(sample.score)
        elif previous_start <= sample.timestamp < recent_start:
            previous.append(sample.score)

    if not recent or not previous:
        return None

    current_avg = sum(recent) / len(recent)
    previous_avg = sum(previous) / len(previous)
    change = current_avg - previous_avg
    return TrendResult(
        current_avg=current_avg,
        previous_avg=previous_avg,
        change=change,
        trend=classify_change(change, threshold),
    )


def top_activities(samples: Iterable[MoodSample], limit: int = 3) -> list[ActivityImpact]:
    """activities ranked by average mood improvement over the latest post-activity samples"""
    latest = sorted(
        (s for s in samples
         if s.type == "post-activity" and s.activity_type and s.improvement is not None),
        key=lambda s: s.timestamp,
        reverse=True,
    )[:ACTIVITY_SAMPLE_SIZE]

    by_activity: dict[str, list[float]] = defaultdict(list)
    for sample in latest:
        by_activity[sample.activity_type].append(sample.improvement)

    ranked = [
        ActivityImpact(activity=name, improvement=sum(vals) / len(vals), samples=len(vals))
        for name, vals in by_activity.items()
    ]
    ranked.sort(key=lambda a: a.improvement, reverse=True)
    return ranked[:limit]


def _doc_to_sample(doc: dict) -> Optional[MoodSample]:
    ts = parse_timestamp(doc.get("timestamp"))
    score = doc.get("score")
    if ts is None or score is None:
        return None
    return MoodSample(
        timestamp=ts,
        score=int(score),
        type=doc.get("type", "pulse-check"),
        activity_type=doc.get("activity_type"),
        improvement=doc.get("improvement"),
    )


async def load_mood_samples(db: Database, user_id: str, since: Optional[datetime] = None, query: Optional[dict] = None) -> list[MoodSample]:
    """mood snapshots for a user, oldest first"""
    filters = {"user_id": user_id}
    if since is not None:
        filters["timestamp"] = {"$gte": isoformat(since)}
    if query:
        filters.update(query)

    samples = []
    cursor = db.mood_snapshots.find(filters).sort("timestamp", 1)
    async for doc in cursor:
        sample = _doc_to_sample(doc)
        if sample is not None:
            samples.append(sample)
    return samples


async def get_mood_trend(
    db: Database,
    user_id: str,
    threshold: Optional[float] = None,
    now: Optional[datetime] = None,
) -> Optional[TrendResult]:
    now = now or utcnow()
    window_days = settings.TREND_WINDOW_DAYS
    since = now - timedelta(days=window_days * 2)
    samples = await load_mood_samples(db, user_id, since=since)
    return compute_trend(samples, now=now, window_days=window_days, threshold=threshold)


async def get_top_activities(db: Database, user_id: str, limit: int = 3) -> list[ActivityImpact]:
    cursor = (
        db.mood_snapshots.find({
            "user_id": user_id,
            "type": "post-activity",
            "improvement": {"$ne": None},
        })
        .sort("timestamp", -1)
        .limit(ACTIVITY_SAMPLE_SIZE)
    )
    samples = []
    async for doc in cursor:
        sample = _doc_to_sample(doc)
        if sample is not None:
            samples.append(sample)
    return top_activities(samples, limit=limit)
