# cbt models: completed thought-challenge exercises

from pydantic import BaseModel, Field, field_validator

from journey.services.sanitizer import clean_text, contains_injection


class QAPair(BaseModel):
    question: str = Field(..., max_length=500)
    answer: str = Field(..., max_length=1000)


class CBTExerciseCreate(BaseModel):
    original_thought: str = Field(..., alias="originalThought", min_length=10, max_length=1000)
    reframed_thought: str = Field(..., alias="reframedThought", min_length=10, max_length=1000)
    conversation: list[QAPair] = Field(..., min_length=1, max_length=5)

    model_config = {"populate_by_name": True}

    @field_validator("original_thought", "reframed_thought")
    @classmethod
    def safe_thought(cls, v: str) -> str:
        v = clean_text(v)
        if contains_injection(v):
            raise ValueError("Input contains invalid patterns")
        return v


class CBTExerciseResponse(BaseModel):
    id: str
    original_thought: str = Field(..., alias="originalThought")
    reframed_thought: str = Field(..., alias="reframedThought")
    created_at: str = Field(..., alias="createdAt")
    total_exercises: int = Field(..., alias="totalExercises")

    model_config = {"populate_by_name": True}
