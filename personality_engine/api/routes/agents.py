"""
Agent chat endpoints.

``POST /agents/chat`` starts a chat session as a background task and
streams its events (SSE).  ``POST /agents/chat/abort`` cancels a running
session by abort key and returns what it had produced so far.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from personality_engine.auth.dependencies import require_valid_token
from personality_engine.auth.tokens import TokenClaims
from personality_engine.config import settings
from personality_engine.core.cancellation import get_cancellation_registry
from personality_engine.core.orchestrator import (
    SessionOrchestrator,
    abort_key_owner,
    new_abort_key,
)
from personality_engine.core.session import SessionStatus
from personality_engine.core.sse_utils import SSEChannel
from personality_engine.models.requests import AbortRequest, ChatRequest
from personality_engine.models.responses import AbortResponse
from personality_engine.personality.engine import get_style_transformer
from personality_engine.services.agent_client import initialize_client
from personality_engine.services.conversations import persist_message
from personality_engine.services.errors import report_error
from personality_engine.services.titles import add_title

router = APIRouter()
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

# Running sessions keyed by abort key; entries remove themselves when done.
_session_tasks: dict[str, asyncio.Task[SessionStatus]] = {}


def get_session_orchestrator() -> SessionOrchestrator:
    """FastAPI dependency: orchestrator wired to the default collaborators."""
    return SessionOrchestrator(
        initialize_client=initialize_client,
        save_message=persist_message,
        add_title=add_title,
        report_error=report_error,
        transformer=get_style_transformer(),
    )


def active_session_count() -> int:
    return len(_session_tasks)


@router.post("/agents/chat")
@limiter.limit(settings.chat_rate_limit)
async def chat(
    request: Request,
    chat_request: ChatRequest,
    x_personality: Optional[str] = Header(None, alias="X-Personality"),
    token_claims: TokenClaims = Depends(require_valid_token),
    orchestrator: SessionOrchestrator = Depends(get_session_orchestrator),
) -> StreamingResponse:
    """Streaming chat endpoint (SSE)."""
    user_id = token_claims["sub"]
    abort_key = new_abort_key(user_id)
    channel = SSEChannel(name=abort_key)

    logger.info(
        f"🔌 Chat stream opened: {abort_key}, text_len={len(chat_request.text)}, "
        f"personality={chat_request.personality or x_personality or 'neutral'}"
    )

    task = asyncio.create_task(
        orchestrator.run(channel, chat_request, user_id, x_personality, abort_key)
    )
    _session_tasks[abort_key] = task
    task.add_done_callback(lambda _t: _session_tasks.pop(abort_key, None))

    return StreamingResponse(
        channel.stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/agents/chat/abort", response_model=AbortResponse)
async def abort_chat(
    body: AbortRequest,
    token_claims: TokenClaims = Depends(require_valid_token),
) -> Any:
    """Cancel a running chat session and return its partial reply."""
    registry = get_cancellation_registry()
    if body.abort_key not in registry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active chat session for this abort key",
        )
    if abort_key_owner(body.abort_key) != token_claims["sub"]:
        logger.warning(f"Abort attempt on another user's session: {body.abort_key}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Abort key belongs to another user",
        )

    snapshot = registry.snapshot(body.abort_key)
    registry.signal(body.abort_key)
    logger.info(f"⏹️ Abort requested: {body.abort_key}")

    return AbortResponse(
        aborted=True,
        abort_key=body.abort_key,
        partial=snapshot.to_wire() if snapshot else None,
    )
