# prompts router: a journaling prompt personalized from patterns and goals
# always answers 200; without context or collaborator the generic prompt is used

import logging

from fastapi import APIRouter, Depends

from journey.dependencies import get_current_user
from journey.models.prompt import SmartPromptResponse
from journey.services import patterns as pattern_engine
from journey.services.db import Database, get_db
from journey.services.inference import InferenceClient, get_inference_client

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/prompts", tags=["prompts"])

DEFAULT_PROMPT = "How are you feeling today? What's on your mind?"


@router.get("/smart", response_model=SmartPromptResponse)
async def smart_prompt(
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    inference: InferenceClient = Depends(get_inference_client),
):
    prompt = await pattern_engine.generate_smart_prompt(
        db, inference, current_user["id"], current_user.get("profile")
    )
    return SmartPromptResponse(prompt=prompt or DEFAULT_PROMPT, hasContext=prompt is not None)
