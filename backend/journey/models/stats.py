# stats models: streaks, mood trends and coach insights

from typing import Optional
from pydantic import BaseModel, Field


class MilestoneResponse(BaseModel):
    next_milestone: int = Field(..., alias="nextMilestone")
    days_to_go: int = Field(..., alias="daysToGo")
    percent_complete: int = Field(..., alias="percentComplete")

    model_config = {"populate_by_name": True}


class StreakResponse(BaseModel):
    current: int
    longest: int
    total_days: int = Field(0, alias="totalDays")
    last_active_date: Optional[str] = Field(None, alias="lastActiveDate")
    is_active_today: bool = Field(False, alias="isActiveToday")
    weekly_average: float = Field(0.0, alias="weeklyAverage")
    milestone: MilestoneResponse

    model_config = {"populate_by_name": True}


class ActivityImpactResponse(BaseModel):
    activity: str
    improvement: float
    samples: int


class MoodTrendResponse(BaseModel):
    """trend is null when either window has no samples"""
    current_avg: Optional[float] = Field(None, alias="currentAvg")
    previous_avg: Optional[float] = Field(None, alias="previousAvg")
    change: Optional[float] = None
    trend: Optional[str] = None
    what_works: list[ActivityImpactResponse] = Field(default_factory=list, alias="whatWorks")

    model_config = {"populate_by_name": True}


class CoachMessageResponse(BaseModel):
    type: str
    message: str


class SuggestedActionResponse(BaseModel):
    text: str
    link: str


class CoachInsightsResponse(BaseModel):
    messages: list[CoachMessageResponse]
    suggested_action: Optional[SuggestedActionResponse] = Field(None, alias="suggestedAction")

    model_config = {"populate_by_name": True}
