# context synthesizer: a length-bounded summary of the user's journey for chat prompts
#
# assembly is a greedy budgeted append: starting from HEADER, each section in `order`
# is rendered and appended only if len(running) + len(section) < max_chars, otherwise
# dropped. FOOTER is always appended, so len(output) <= max_chars + len(FOOTER).
# a budget that cannot hold HEADER is rejected.
#
# FETCH_ORDER is the historical order. PRIORITY_ORDER tries the small high-value
# sections (mood trend, what works) first so they cannot be crowded out.

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence

from journey.config import settings
from journey.services.clock import parse_timestamp, utcnow
from journey.services.db import Database
from journey.services.sanitizer import anonymize_text
from journey.services.trends import ActivityImpact, TrendResult, get_mood_trend, get_top_activities

logger = logging.getLogger(__name__)

HEADER = "\n\n=== USER JOURNEY CONTEXT ===\n"
FOOTER = "\n=== END CONTEXT ===\n"

FETCH_ORDER = ("patterns", "cbt", "reflection", "mood_trend", "what_works")
PRIORITY_ORDER = ("mood_trend", "what_works", "patterns", "cbt", "reflection")

# per-field caps for free text
PATTERN_DESCRIPTION_CHARS = 100
THOUGHT_CHARS = 50
BEST_MOMENT_CHARS = 80
# the reflection's mood line is only included while the running text is shorter
REFLECTION_MOOD_LINE_BELOW = 800

RECENT_PATTERNS = 2
RECENT_EXERCISES = 2
TOP_ACTIVITIES = 3


@dataclass
class ContextSources:
    patterns: list[dict] = field(default_factory=list)
    exercises: list[dict] = field(default_factory=list)
    reflection: Optional[dict] = None
    trend: Optional[TrendResult] = None
    activities: list[ActivityImpact] = field(default_factory=list)


def _clip(text: Optional[str], limit: int) -> str:
    return anonymize_text(text or "")[:limit]


def render_patterns(sources: ContextSources, running_len: int) -> str:
    if not sources.patterns:
        return ""
    text = "\nDETECTED PATTERNS:\n"
    for p in sources.patterns:
        text += (
            f"- {p.get('type', 'pattern')}: \"{_clip(p.get('description'), PATTERN_DESCRIPTION_CHARS)}...\" "
            f"(Confidence: {float(p.get('confidence', 0)):.2f})\n"
        )
    return text


def render_cbt(sources: ContextSources, running_len: int) -> str:
    if not sources.exercises:
        return ""
    text = "\nCOMPLETED CBT EXERCISES:\n"
    for ex in sources.exercises:
        text += (
            f"- Challenged thought: \"{_clip(ex.get('original_thought'), THOUGHT_CHARS)}...\" -> "
            f"\"{_clip(ex.get('reframed_thought'), THOUGHT_CHARS)}...\"\n"
        )
    return text


def render_reflection(sources: ContextSources, running_len: int) -> str:
    reflection = sources.reflection
    if not reflection:
        return ""
    week_of = parse_timestamp(reflection.get("week_of"))
    heading = f" ({week_of:%b %d})" if week_of else ""
    text = f"\nLATEST WEEKLY REFLECTION{heading}:\n"
    text += f"- Best moment: {_clip(reflection.get('best_moment'), BEST_MOMENT_CHARS)}...\n"
    if running_len < REFLECTION_MOOD_LINE_BELOW and reflection.get("mood_trend"):
        avg = reflection.get("avg_mood")
        avg_text = f" (Avg: {float(avg):.1f})" if avg is not None else ""
        text += f"- Mood trend: {reflection['mood_trend']}{avg_text}\n"
    return text


def render_mood_trend(sources: ContextSources, running_len: int) -> str:
    trend = sources.trend
    if trend is None:
        return ""
    sign = "+" if trend.change > 0 else ""
    return f"\nMOOD TRENDS (Last 2 weeks):\n- Change: {sign}{trend.change:.1f} ({trend.trend})\n"


def render_what_works(sources: ContextSources, running_len: int) -> str:
    if not sources.activities:
        return ""
    text = "\nWHAT WORKS FOR THIS USER:\n"
    for a in sources.activities:
        text += f"- {anonymize_text(a.activity)}: +{a.improvement:.1f} mood\n"
    return text


RENDERERS: dict[str, Callable[[ContextSources, int], str]] = {
    "patterns": render_patterns,
    "cbt": render_cbt,
    "reflection": render_reflection,
    "mood_trend": render_mood_trend,
    "what_works": render_what_works,
}


def assemble_context(
    sources: ContextSources,
    max_chars: Optional[int] = None,
    order: Optional[Sequence[str]] = None,
) -> str:
    """greedy budgeted append of rendered sections between HEADER and FOOTER"""
    max_chars = settings.MAX_CONTEXT_CHARS if max_chars is None else max_chars
    if max_chars < len(HEADER):
        raise ValueError(f"Context budget {max_chars} is smaller than the header ({len(HEADER)} chars)")
    order = order or settings.CONTEXT_SECTION_ORDER
    unknown = [name for name in order if name not in RENDERERS]
    if unknown:
        raise ValueError(f"Unknown context sections: {', '.join(unknown)}")

    context = HEADER
    for name in order:
        section = RENDERERS[name](sources, len(context))
        if not section:
            continue
        if len(context) + len(section) < max_chars:
            context += section
        else:
            logger.debug(f"Context section {name} dropped ({len(section)} chars over budget)")
    return context + FOOTER


async def _recent_patterns(db: Database, user_id: str) -> list[dict]:
    cursor = (
        db.patterns.find({"user_id": user_id, "is_active": True, "dismissed": False})
        .sort("created_at", -1)
        .limit(RECENT_PATTERNS)
    )
    return [doc async for doc in cursor]


async def _recent_exercises(db: Database, user_id: str) -> list[dict]:
    cursor = (
        db.therapy_exercises.find({"user_id": user_id, "type": "thought-challenging"})
        .sort("created_at", -1)
        .limit(RECENT_EXERCISES)
    )
    return [doc async for doc in cursor]


async def _latest_reflection(db: Database, user_id: str) -> Optional[dict]:
    return await db.weekly_reflections.find_one({"user_id": user_id}, sort=[("week_of", -1)])


async def _fetch(name: str, coro, default):
    """run one source fetch; a failure drops only that section"""
    try:
        return await coro
    except Exception as e:
        logger.warning(f"Context source {name} unavailable: {e}")
        return default


async def fetch_sources(db: Database, user_id: str, now: Optional[datetime] = None) -> ContextSources:
    now = now or utcnow()
    patterns, exercises, reflection, trend, activities = await asyncio.gather(
        _fetch("patterns", _recent_patterns(db, user_id), []),
        _fetch("cbt", _recent_exercises(db, user_id), []),
        _fetch("reflection", _latest_reflection(db, user_id), None),
        _fetch("mood_trend", get_mood_trend(db, user_id, threshold=settings.CONTEXT_TREND_THRESHOLD, now=now), None),
        _fetch("what_works", get_top_activities(db, user_id, limit=TOP_ACTIVITIES), []),
    )
    return ContextSources(
        patterns=patterns,
        exercises=exercises,
        reflection=reflection,
        trend=trend,
        activities=activities,
    )


def build_user_summary(
    name: Optional[str],
    mood_scores: list[int],
    entry_count: int,
    journal_entry: Optional[dict] = None,
) -> str:
    """short factual lines about the user placed ahead of the journey context"""
    lines = []
    if mood_scores:
        lines.append(f"- Average mood recently: {sum(mood_scores) / len(mood_scores):.1f}/10")
    else:
        lines.append("- No recent mood data")
    lines.append(f"- Recent journal entries: {entry_count}" if entry_count else "- No recent journal entries")
    if name:
        lines.append(f"- User name: {name}")

    if journal_entry:
        lines.append("")
        lines.append("The user wants to discuss a specific journal entry:")
        lines.append(f"- Title: \"{journal_entry.get('title', '')}\"")
        lines.append(f"- Content: \"{(journal_entry.get('content') or '')[:1000]}\"")
        lines.append(f"- Mood Rating: {journal_entry.get('mood_rating')}/10")
        lines.append(f"- Sentiment: {journal_entry.get('sentiment_label') or 'neutral'}")
        if journal_entry.get("analysis_status") == "complete" and journal_entry.get("feedback"):
            lines.append(f"- Previous AI Feedback: \"{journal_entry['feedback']}\"")
        lines.append("Please reference this entry and help them reflect on it.")
    return "\n".join(lines)


async def fetch_user_summary(db: Database, user: dict, entry_id: Optional[str] = None) -> str:
    user_id = user["id"]
    mood_cursor = db.mood_snapshots.find({"user_id": user_id}, {"score": 1}).sort("timestamp", -1).limit(10)
    mood_scores = [doc["score"] async for doc in mood_cursor if doc.get("score") is not None]
    entry_count = len([doc async for doc in db.journals.find({"user_id": user_id}, {"_id": 1}).sort("created_at", -1).limit(5)])

    journal_entry = None
    if entry_id:
        journal_entry = await db.journals.find_one({"journal_id": entry_id, "user_id": user_id})
    return build_user_summary(user.get("name"), mood_scores, entry_count, journal_entry)


async def build_context(
    db: Database,
    user_id: str,
    now: Optional[datetime] = None,
    order: Optional[Sequence[str]] = None,
    max_chars: Optional[int] = None,
) -> str:
    sources = await fetch_sources(db, user_id, now=now)
    return assemble_context(sources, max_chars=max_chars, order=order)
