# mood models: pulse checks and other mood samples

from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator

from journey.services.sanitizer import clean_text

MoodType = Literal["baseline", "pulse-check", "journaling", "post-activity", "morning", "evening", "triggered"]


class MoodSnapshotCreate(BaseModel):
    score: int = Field(..., ge=1, le=10, description="mood score 1-10")
    type: MoodType = "pulse-check"
    context: Optional[str] = Field(None, max_length=500)
    activity_type: Optional[str] = Field(None, alias="activityType", max_length=50)
    improvement: Optional[float] = Field(None, ge=-9, le=9, description="mood delta after an activity")
    triggers: list[str] = Field(default_factory=list, max_length=5)

    model_config = {"populate_by_name": True}

    @field_validator("context")
    @classmethod
    def clean_context(cls, v: Optional[str]) -> Optional[str]:
        return clean_text(v) if v else v


class MoodSnapshotResponse(BaseModel):
    user_id: str = Field(..., alias="userId")
    score: int
    type: str
    context: Optional[str] = None
    activity_type: Optional[str] = Field(None, alias="activityType")
    improvement: Optional[float] = None
    timestamp: str

    model_config = {"populate_by_name": True}
