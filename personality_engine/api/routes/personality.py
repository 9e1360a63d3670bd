"""
Personality endpoints.

Profile listing plus two rewrite endpoints for replies produced outside the
chat stream: ``/transform`` (explicit) and ``/intercept`` (pass-through that
never fails the caller).
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from personality_engine.auth.dependencies import require_valid_token
from personality_engine.auth.tokens import TokenClaims
from personality_engine.config import NEUTRAL_PERSONALITY, settings
from personality_engine.db import get_db
from personality_engine.models.requests import InterceptRequest, TransformRequest
from personality_engine.models.responses import (
    ProfileSummary,
    ProfilesResponse,
    TransformResponse,
)
from personality_engine.personality.engine import StyleTransformer, get_style_transformer
from personality_engine.personality.profiles import get_profile_store
from personality_engine.services.conversations import format_history, get_recent_messages

router = APIRouter()
logger = logging.getLogger(__name__)


async def _history_excerpt(
    db: AsyncSession,
    conversation_id: str | None,
    user_id: str,
    limit: int,
    user_message: str | None = None,
) -> str:
    """Recent transcript for the rewrite prompt.  Fetch failures are skipped."""
    messages = []
    if conversation_id:
        try:
            messages = await get_recent_messages(db, conversation_id, user_id, limit)
        except Exception as e:
            logger.warning(f"Could not fetch conversation history: {e}")
    return format_history(messages, user_message)


@router.get("/personality/profiles", response_model=ProfilesResponse)
async def list_profiles(
    token_claims: TokenClaims = Depends(require_valid_token),
) -> Any:
    """All available personality profiles, in definition order."""
    try:
        store = get_profile_store()
        personalities = [ProfileSummary(**p.summary()) for p in store.list()]
    except Exception as e:
        logger.error(f"Error fetching personalities: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to fetch personality profiles"},
        )
    return ProfilesResponse(personalities=personalities)


@router.post("/personality/transform", response_model=TransformResponse)
async def transform_response(
    body: TransformRequest,
    token_claims: TokenClaims = Depends(require_valid_token),
    db: AsyncSession = Depends(get_db),
    transformer: StyleTransformer = Depends(get_style_transformer),
) -> Any:
    """Rewrite ``originalResponse`` in the voice of ``personalityId``."""
    if not body.original_response or not body.personality_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing required fields: originalResponse and personalityId"},
        )

    try:
        history = await _history_excerpt(
            db, body.conversation_id, token_claims["sub"], settings.history_limit
        )
        transformed = await transformer.transform(
            body.original_response,
            body.personality_id,
            history,
            settings.transform_context_label,
        )
    except Exception as e:
        logger.exception(f"Personality transformation error: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to transform response", "details": str(e)},
        )

    return TransformResponse(
        original_response=body.original_response,
        transformed_response=transformed,
        personality_id=body.personality_id,
        success=True,
    )


@router.post("/personality/intercept")
async def intercept_response(
    body: InterceptRequest,
    token_claims: TokenClaims = Depends(require_valid_token),
    db: AsyncSession = Depends(get_db),
    transformer: StyleTransformer = Depends(get_style_transformer),
) -> dict[str, Any]:
    """Rewrite a reply on its way to the client.  Always answers 200."""
    if not body.personality_id or body.personality_id == NEUTRAL_PERSONALITY:
        return {"response": body.response, "transformed": False}

    try:
        # One slot of the window is taken by the current user message
        history = await _history_excerpt(
            db,
            body.conversation_id,
            token_claims["sub"],
            settings.history_limit - 1,
            body.user_message,
        )
        transformed = await transformer.transform(
            body.response or "",
            body.personality_id,
            history,
            settings.transform_context_label,
        )
    except Exception as e:
        logger.error(f"Personality interception error: {e}")
        return {"response": body.response, "transformed": False, "error": str(e)}

    return {
        "response": transformed,
        "original": body.response,
        "transformed": True,
        "personalityId": body.personality_id,
    }
