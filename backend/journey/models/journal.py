# journal models: entry creation and response schemas

from typing import Optional
from pydantic import BaseModel, Field, field_validator

from journey.services.sanitizer import clean_text, contains_injection


class JournalCreate(BaseModel):
    """payload for a new journal entry"""
    title: str = Field(..., min_length=1, max_length=200, description="entry title")
    content: str = Field(..., min_length=1, max_length=10000, description="journal entry text")
    mood_rating: int = Field(..., alias="moodRating", ge=1, le=10, description="mood score 1-10")
    activities: list[str] = Field(default_factory=list, max_length=10, description="activities done today")

    model_config = {"populate_by_name": True}

    @field_validator("title", "content")
    @classmethod
    def safe_text(cls, v: str) -> str:
        v = clean_text(v)
        if not v:
            raise ValueError("Text must not be blank")
        if contains_injection(v):
            raise ValueError("Input contains invalid patterns")
        return v

    @field_validator("activities")
    @classmethod
    def normalize_activities(cls, v: list[str]) -> list[str]:
        cleaned = [a.strip().lower() for a in v if a and a.strip()]
        if any(len(a) > 50 for a in cleaned):
            raise ValueError("Activity names must be at most 50 characters")
        return cleaned


class JournalEntryResponse(BaseModel):
    """journal entry as stored, including its analysis state"""
    id: str
    title: str
    content: str
    mood_rating: int = Field(..., alias="moodRating")
    activities: list[str] = Field(default_factory=list)
    sentiment: float = 0.0
    sentiment_label: str = Field("neutral", alias="sentimentLabel")
    feedback: str = ""
    analysis_status: str = Field("pending", alias="analysisStatus")
    created_at: str = Field(..., alias="createdAt")

    model_config = {"populate_by_name": True}


class JournalSubmitResponse(BaseModel):
    """returned immediately after submission, before analysis runs"""
    entry: JournalEntryResponse
    message: str = "Journal entry created. AI analysis in progress..."


class JournalListResponse(BaseModel):
    entries: list[JournalEntryResponse]
    total: int
    page: int
    page_size: int = Field(..., alias="pageSize")

    model_config = {"populate_by_name": True}
