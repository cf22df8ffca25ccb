# stats router: streaks, mood trend and proactive coach insights

import logging
import time

from fastapi import APIRouter, Depends, Response

from journey.config import settings
from journey.dependencies import get_current_user
from journey.models.stats import (
    ActivityImpactResponse,
    CoachInsightsResponse,
    MilestoneResponse,
    MoodTrendResponse,
    StreakResponse,
)
from journey.services.coach import get_coach_insights
from journey.services.db import Database, get_db
from journey.services.streaks import get_streak_summary
from journey.services.trends import get_mood_trend, get_top_activities

logger = logging.getLogger(__name__)
router = APIRouter(tags=["stats"])


@router.get("/stats/streak", response_model=StreakResponse)
async def streak(
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    summary = await get_streak_summary(db, current_user["id"])
    return StreakResponse(
        current=summary.current,
        longest=summary.longest,
        totalDays=summary.total_days,
        lastActiveDate=summary.last_active_date.isoformat() if summary.last_active_date else None,
        isActiveToday=summary.is_active_today,
        weeklyAverage=summary.weekly_average,
        milestone=MilestoneResponse(
            nextMilestone=summary.milestone.next_milestone,
            daysToGo=summary.milestone.days_to_go,
            percentComplete=summary.milestone.percent_complete,
        ),
    )


@router.get("/stats/mood-trend", response_model=MoodTrendResponse)
async def mood_trend(
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """week over week mood change; all trend fields are null without data in both weeks"""
    trend = await get_mood_trend(db, current_user["id"], threshold=settings.TREND_THRESHOLD)
    activities = await get_top_activities(db, current_user["id"])
    what_works = [
        ActivityImpactResponse(activity=a.activity, improvement=round(a.improvement, 2), samples=a.samples)
        for a in activities
    ]
    if trend is None:
        return MoodTrendResponse(whatWorks=what_works)
    return MoodTrendResponse(
        currentAvg=round(trend.current_avg, 2),
        previousAvg=round(trend.previous_avg, 2),
        change=round(trend.change, 2),
        trend=trend.trend,
        whatWorks=what_works,
    )


@router.get("/coach-insights", response_model=CoachInsightsResponse)
async def coach_insights(
    response: Response,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    start = time.monotonic()
    insights = await get_coach_insights(db, current_user["id"])
    elapsed = (time.monotonic() - start) * 1000
    response.headers["X-Response-Time"] = f"{elapsed:.0f}ms"
    logger.info(f"Coach insights for user {current_user['id'][:8]} in {elapsed:.0f}ms")
    return CoachInsightsResponse.model_validate(insights.to_dict())
