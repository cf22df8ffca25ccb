# streak tracker: consecutive activity days from mood samples and journal entries
#
# a day qualifies when at least one mood sample or journal entry falls inside it,
# with day boundaries taken in the reference timezone so a streak does not flicker
# with server location.

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, Optional

from journey.config import settings
from journey.services.clock import parse_timestamp, reference_timezone, utcnow
from journey.services.db import Database

logger = logging.getLogger(__name__)

MILESTONES = [7, 14, 21, 30, 60, 90, 180, 365]


@dataclass(frozen=True)
class Streak:
    current: int
    longest: int


@dataclass
class MilestoneProgress:
    next_milestone: int
    days_to_go: int
    percent_complete: int


@dataclass
class StreakSummary:
    current: int
    longest: int
    total_days: int = 0
    last_active_date: Optional[date] = None
    is_active_today: bool = False
    weekly_average: float = 0.0
    milestone: MilestoneProgress = field(default_factory=lambda: milestone_progress(0))


def qualifying_days(timestamps: Iterable[datetime], tz: tzinfo) -> set[date]:
    """calendar dates (in tz) that contain at least one timestamp"""
    return {ts.astimezone(tz).date() for ts in timestamps if ts is not None}


def current_streak(days: set[date], today: date, max_lookback: int) -> int:
    # not having logged yet today does not break an active streak
    day = today if today in days else today - timedelta(days=1)
    streak = 0
    for _ in range(max_lookback):
        if day not in days:
            break
        streak += 1
        day -= timedelta(days=1)
    return streak


def longest_run(days: set[date]) -> int:
    longest = 0
    run = 0
    previous = None
    for day in sorted(days):
        if previous is not None and day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


def compute_streak(
    timestamps: Iterable[datetime],
    tz: Optional[tzinfo] = None,
    now: Optional[datetime] = None,
    max_lookback: Optional[int] = None,
) -> Streak:
    tz = tz or reference_timezone()
    now = now or utcnow()
    lookback = max_lookback or settings.STREAK_MAX_LOOKBACK_DAYS

    days = qualifying_days(timestamps, tz)
    if not days:
        return Streak(current=0, longest=0)

    today = now.astimezone(tz).date()
    current = current_streak(days, today, lookback)
    return Streak(current=current, longest=max(longest_run(days), current))


def milestone_progress(current: int) -> MilestoneProgress:
    """progress toward the next streak milestone; past a year, milestones are yearly"""
    upcoming = [m for m in MILESTONES if m > current]
    next_milestone = upcoming[0] if upcoming else (current // 365 + 1) * 365
    reached = [m for m in MILESTONES if m <= current]
    previous = reached[-1] if reached else 0
    if next_milestone > 365:
        previous = (current // 365) * 365

    span = next_milestone - previous
    percent = round((current - previous) / span * 100) if span > 0 else 100
    return MilestoneProgress(
        next_milestone=next_milestone,
        days_to_go=next_milestone - current,
        percent_complete=percent,
    )


def summarize_streak(
    timestamps: Iterable[datetime],
    tz: Optional[tzinfo] = None,
    now: Optional[datetime] = None,
) -> StreakSummary:
    tz = tz or reference_timezone()
    now = now or utcnow()
    stamps = [ts for ts in timestamps if ts is not None]
    days = qualifying_days(stamps, tz)
    streak = compute_streak(stamps, tz=tz, now=now)
    if not days:
        return StreakSummary(current=0, longest=0)

    today = now.astimezone(tz).date()
    four_weeks_ago = today - timedelta(days=28)
    recent_days = [d for d in days if d > four_weeks_ago]

    return StreakSummary(
        current=streak.current,
        longest=streak.longest,
        total_days=len(days),
        last_active_date=max(days),
        is_active_today=today in days,
        weekly_average=round(len(recent_days) / 4, 1),
        milestone=milestone_progress(streak.current),
    )


async def activity_timestamps(db: Database, user_id: str) -> list[datetime]:
    """timestamps of every journal entry and mood sample for the user"""
    stamps: list[datetime] = []
    cursor = db.journals.find({"user_id": user_id}, {"created_at": 1, "_id": 0})
    async for doc in cursor:
        stamps.append(parse_timestamp(doc.get("created_at")))
    cursor = db.mood_snapshots.find({"user_id": user_id}, {"timestamp": 1, "_id": 0})
    async for doc in cursor:
        stamps.append(parse_timestamp(doc.get("timestamp")))
    return [ts for ts in stamps if ts is not None]


async def get_streak_summary(db: Database, user_id: str, now: Optional[datetime] = None) -> StreakSummary:
    stamps = await activity_timestamps(db, user_id)
    summary = summarize_streak(stamps, now=now)
    logger.info(f"Streak for user {user_id[:8]}: current={summary.current} longest={summary.longest}")
    return summary
