# pattern models: surfaced behavioral patterns

from typing import Any, Optional
from pydantic import BaseModel, Field


class PatternResponse(BaseModel):
    id: str
    type: str
    name: str = ""
    description: str
    confidence: float
    insights: str = ""
    suggestions: str = ""
    evidence: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = Field(True, alias="isActive")
    dismissed: bool = False
    dismissed_at: Optional[str] = Field(None, alias="dismissedAt")
    created_at: str = Field(..., alias="createdAt")

    model_config = {"populate_by_name": True}


class PatternListResponse(BaseModel):
    patterns: list[PatternResponse]


class PatternDetectResponse(BaseModel):
    message: str
    patterns: list[PatternResponse]


class PatternDismissResponse(BaseModel):
    message: str
    pattern: PatternResponse
