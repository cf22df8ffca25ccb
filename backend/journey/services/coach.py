# proactive coach: short messages derived from recent activity signals
# inactivity, mood trend, cbt and streak milestones, and a surfaced pattern

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from journey.config import settings
from journey.services import streaks
from journey.services.clock import parse_timestamp, utcnow
from journey.services.db import Database
from journey.services.trends import TrendResult, get_mood_trend

logger = logging.getLogger(__name__)

# used when the user has never written an entry
NO_ENTRY_DAYS = 999
PATTERN_RECENCY_DAYS = 3
PATTERN_MESSAGE_CHARS = 100
MAX_MESSAGES = 3

# (min days inactive, message, priority), checked from the longest gap down
INACTIVITY_TIERS = [
    (30, "It's been a while - I'm genuinely glad to see you back. Ready to start fresh whenever you are.", 5),
    (14, "Welcome back! Life gets busy, and that's okay. The fact that you're here now is what matters.", 5),
    (7, "A week has flown by! No pressure at all - whenever you want to chat, I'm here. What's been on your mind?", 4),
    (3, "Hey! It's been a few days. Even a quick one-sentence check-in counts - how are you really doing?", 3),
]

STREAK_MILESTONES = {
    3: ("3 days in a row! You're building momentum. Keep showing up for yourself!", 3),
    7: ("A whole week of showing up for yourself! That takes real commitment. Proud of you.", 4),
    14: ("Two weeks strong! This is becoming a real habit. Your future self will thank you.", 4),
    30: ("30 days! You've officially built a sustainable practice. This is huge.", 5),
}


@dataclass
class CoachMessage:
    type: str
    message: str
    priority: int


@dataclass
class SuggestedAction:
    text: str
    link: str


@dataclass
class CoachInsights:
    messages: list[CoachMessage]
    suggested_action: Optional[SuggestedAction]

    def to_dict(self) -> dict:
        return {
            "messages": [{"type": m.type, "message": m.message} for m in self.messages],
            "suggestedAction": asdict(self.suggested_action) if self.suggested_action else None,
        }


def inactivity_message(days_since_entry: int) -> Optional[CoachMessage]:
    for min_days, text, priority in INACTIVITY_TIERS:
        if days_since_entry >= min_days:
            return CoachMessage("inactivity", text, priority)
    return None


def trend_message(trend: Optional[TrendResult]) -> Optional[CoachMessage]:
    if trend is None:
        return None
    if trend.trend == "improving":
        return CoachMessage(
            "improvement",
            f"Your mood's been trending up! ({trend.previous_avg:.1f} -> {trend.current_avg:.1f}) "
            "Something's working - any idea what it might be?",
            4,
        )
    if trend.trend == "declining":
        return CoachMessage(
            "decline",
            f"Things have felt a bit heavier this week (mood at {trend.current_avg:.1f}). That's okay - "
            "want to try a quick thought challenge? Sometimes it helps shift things.",
            3,
        )
    return None


def cbt_milestone_message(cbt_count: int) -> Optional[CoachMessage]:
    if cbt_count <= 0 or cbt_count % 3 != 0:
        return None
    if cbt_count == 3:
        text = "3 thought challenges done! You're getting really good at catching those tricky thoughts."
    else:
        text = f"{cbt_count} thought challenges! You've built a real skill here."
    return CoachMessage("achievement", text, 4)


def streak_message(streak_current: int) -> Optional[CoachMessage]:
    milestone = STREAK_MILESTONES.get(streak_current)
    if milestone is None:
        return None
    text, priority = milestone
    return CoachMessage("streak", text, priority)


def pattern_message(description: Optional[str], days_since_entry: int) -> Optional[CoachMessage]:
    if not description or days_since_entry >= PATTERN_RECENCY_DAYS:
        return None
    if len(description) > PATTERN_MESSAGE_CHARS:
        description = description[:PATTERN_MESSAGE_CHARS] + "..."
    return CoachMessage("pattern", f"I spotted something interesting: {description} Tap to learn more!", 3)


def build_coach_messages(
    days_since_entry: int,
    trend: Optional[TrendResult],
    cbt_count: int,
    streak_current: int,
    pattern_description: Optional[str],
) -> list[CoachMessage]:
    """candidate messages, highest priority first, capped at MAX_MESSAGES"""
    candidates = [
        inactivity_message(days_since_entry),
        trend_message(trend),
        cbt_milestone_message(cbt_count),
        streak_message(streak_current),
        pattern_message(pattern_description, days_since_entry),
    ]
    messages = [m for m in candidates if m is not None]
    messages.sort(key=lambda m: m.priority, reverse=True)
    return messages[:MAX_MESSAGES]


def suggested_action(days_since_entry: int, trend: Optional[TrendResult], has_pattern: bool) -> Optional[SuggestedAction]:
    if days_since_entry >= 3:
        return SuggestedAction("Quick Check-In (30 sec)", "/dashboard")
    if trend is not None and trend.trend == "declining":
        return SuggestedAction("Try a Thought Challenge", "/dashboard/cbt")
    if has_pattern:
        return SuggestedAction("See Your Patterns", "/dashboard/insights")
    return None


async def _days_since_last_entry(db: Database, user_id: str, now: datetime) -> int:
    last = await db.journals.find_one({"user_id": user_id}, {"created_at": 1}, sort=[("created_at", -1)])
    ts = parse_timestamp(last.get("created_at")) if last else None
    if ts is None:
        return NO_ENTRY_DAYS
    return max(0, (now - ts).days)


async def _latest_surfaced_pattern(db: Database, user_id: str) -> Optional[str]:
    pattern = await db.patterns.find_one(
        {
            "user_id": user_id,
            "is_active": True,
            "dismissed": False,
            "confidence": {"$gte": settings.PATTERN_SURFACE_CONFIDENCE},
        },
        {"description": 1},
        sort=[("created_at", -1)],
    )
    return pattern.get("description") if pattern else None


async def _current_streak(db: Database, user_id: str, now: datetime) -> int:
    stamps = await streaks.activity_timestamps(db, user_id)
    return streaks.compute_streak(stamps, now=now).current


async def get_coach_insights(db: Database, user_id: str, now: Optional[datetime] = None) -> CoachInsights:
    now = now or utcnow()
    days_since_entry, trend, cbt_count, pattern, streak_current = await asyncio.gather(
        _days_since_last_entry(db, user_id, now),
        get_mood_trend(db, user_id, threshold=settings.COACH_TREND_THRESHOLD, now=now),
        db.therapy_exercises.count_documents({"user_id": user_id, "type": "thought-challenging"}),
        _latest_surfaced_pattern(db, user_id),
        _current_streak(db, user_id, now),
    )

    messages = build_coach_messages(days_since_entry, trend, cbt_count, streak_current, pattern)
    return CoachInsights(
        messages=messages,
        suggested_action=suggested_action(days_since_entry, trend, pattern is not None),
    )
