# chat router: companion chat guarded by the rate limiter and sanitizer
# order: rate limit -> json parse -> message type -> sanitize -> schema -> context -> reply

import json
import logging
import time

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError as PydanticValidationError

from journey.dependencies import get_current_user
from journey.errors import CollaboratorError, ValidationError, field_errors
from journey.models.chat import ChatRequest, ChatResponse
from journey.services.clock import isoformat, utcnow
from journey.services.context import build_context, fetch_user_summary
from journey.services.db import Database, get_db
from journey.services.inference import InferenceClient, get_inference_client
from journey.services.rate_limiter import RateLimiter, get_rate_limiter
from journey.services.sanitizer import sanitize

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])


async def _parse_chat_request(request: Request) -> ChatRequest:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON in request body", code="INVALID_JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object", code="INVALID_JSON")

    raw = body.get("message")
    if not isinstance(raw, str):
        raise ValidationError("Message must be a string", code="INVALID_MESSAGE")

    message = sanitize(raw)
    if not message:
        raise ValidationError("Message cannot be empty", code="EMPTY_MESSAGE")

    try:
        return ChatRequest.model_validate({**body, "message": message})
    except PydanticValidationError as e:
        raise ValidationError("Invalid chat request", details=field_errors(e.errors()))


@router.post("", response_model=ChatResponse)
async def chat(
    request: Request,
    response: Response,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    inference: InferenceClient = Depends(get_inference_client),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """reply to a chat message using the user's synthesized journey context"""
    start = time.monotonic()
    user_id = current_user["id"]

    limit = limiter.enforce("chat", user_id)
    body = await _parse_chat_request(request)

    entry_id = body.context.entry_id if body.context else None
    user_summary = await fetch_user_summary(db, current_user, entry_id)
    journey_context = await build_context(db, user_id)
    history = [turn.model_dump() for turn in body.conversation_history]

    try:
        reply = await inference.chat_reply(
            body.message, history, user_summary, journey_context, current_user.get("profile")
        )
    except CollaboratorError:
        elapsed = (time.monotonic() - start) * 1000
        logger.error(f"Chat failed for user {user_id[:8]} after {elapsed:.0f}ms")
        raise

    now = isoformat(utcnow())
    await db.chat_messages.insert_one({"user_id": user_id, "role": "user", "content": body.message, "created_at": now})
    await db.chat_messages.insert_one({"user_id": user_id, "role": "assistant", "content": reply, "created_at": now})

    elapsed = (time.monotonic() - start) * 1000
    response.headers["X-RateLimit-Remaining"] = str(limit.remaining)
    response.headers["X-Response-Time"] = f"{elapsed:.0f}ms"
    logger.info(f"Chat reply for user {user_id[:8]} in {elapsed:.0f}ms")
    return ChatResponse(response=reply, createdAt=now)
