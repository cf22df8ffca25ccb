# patterns router: list surfaced patterns, trigger detection, dismiss

import logging

from fastapi import APIRouter, Depends, Response

from journey.dependencies import get_current_user
from journey.models.pattern import (
    PatternDetectResponse,
    PatternDismissResponse,
    PatternListResponse,
    PatternResponse,
)
from journey.services import patterns as pattern_engine
from journey.services.db import Database, get_db
from journey.services.inference import InferenceClient, get_inference_client
from journey.services.rate_limiter import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/patterns", tags=["patterns"])


def _doc_to_pattern(doc: dict) -> PatternResponse:
    """convert a mongodb pattern document to response model"""
    return PatternResponse(
        id=doc.get("pattern_id", str(doc.get("_id", ""))),
        type=doc.get("type", ""),
        name=doc.get("name") or "",
        description=doc.get("description", ""),
        confidence=doc.get("confidence", 0.0),
        insights=doc.get("insights") or "",
        suggestions=doc.get("suggestions") or "",
        evidence=doc.get("evidence") or {},
        isActive=doc.get("is_active", False),
        dismissed=doc.get("dismissed", False),
        dismissedAt=doc.get("dismissed_at"),
        createdAt=doc.get("created_at", ""),
    )


@router.get("", response_model=PatternListResponse)
async def list_patterns(
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """surfaced patterns: active, not dismissed, confident enough to show"""
    docs = await pattern_engine.list_active(db, current_user["id"])
    return PatternListResponse(patterns=[_doc_to_pattern(d) for d in docs])


@router.post("", response_model=PatternDetectResponse)
async def detect_patterns(
    response: Response,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    inference: InferenceClient = Depends(get_inference_client),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """run pattern detection now and return only the newly saved patterns"""
    limit = limiter.enforce("pattern", current_user["id"])
    response.headers["X-RateLimit-Remaining"] = str(limit.remaining)

    saved = await pattern_engine.detect(
        db, inference, current_user["id"], current_user.get("profile"), strict=True
    )
    if saved:
        message = f"Detected {len(saved)} new pattern{'s' if len(saved) != 1 else ''}"
    else:
        message = "No new patterns detected. Keep journaling to reveal more insights."
    return PatternDetectResponse(message=message, patterns=[_doc_to_pattern(d) for d in saved])


@router.post("/{pattern_id}/dismiss", response_model=PatternDismissResponse)
async def dismiss_pattern(
    pattern_id: str,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """permanently hide a pattern from the user"""
    doc = await pattern_engine.dismiss(db, current_user["id"], pattern_id)
    return PatternDismissResponse(message="Pattern dismissed", pattern=_doc_to_pattern(doc))
