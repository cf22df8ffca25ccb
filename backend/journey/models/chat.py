# chat models: companion chat request and response

from typing import Literal, Optional
from pydantic import BaseModel, Field

from journey.config import settings


class ChatTurn(BaseModel):
    """single message in a conversation history turn"""
    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=settings.CHAT_MESSAGE_MAX_LENGTH)


class ChatContext(BaseModel):
    """where the chat was opened from"""
    page: Optional[str] = Field(None, max_length=50)
    entry_id: Optional[str] = Field(None, alias="entryId", max_length=64)

    model_config = {"populate_by_name": True}


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=settings.CHAT_MESSAGE_MAX_LENGTH)
    conversation_history: list[ChatTurn] = Field(
        default_factory=list,
        alias="conversationHistory",
        max_length=settings.CHAT_HISTORY_MAX_TURNS,
    )
    context: Optional[ChatContext] = None

    model_config = {"populate_by_name": True}


class ChatResponse(BaseModel):
    response: str
    created_at: str = Field(..., alias="createdAt")

    model_config = {"populate_by_name": True}
