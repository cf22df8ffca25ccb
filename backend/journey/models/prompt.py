# prompt models: smart journaling prompts

from pydantic import BaseModel, Field


class SmartPromptResponse(BaseModel):
    """journaling prompt for today; hasContext is false when the generic prompt is used"""
    prompt: str
    has_context: bool = Field(False, alias="hasContext")

    model_config = {"populate_by_name": True}
