"""Request models for the Personality Engine API."""
from __future__ import annotations

from typing import Optional

from pydantic import Field

from personality_engine.models.base import CamelModel

# Generous limit on chat input; larger payloads are rejected by validation.
_MAX_TEXT_CHARS = 32_768


class ChatRequest(CamelModel):
    """One user turn sent to the generation backend."""

    text: str = Field(
        ...,
        min_length=1,
        max_length=_MAX_TEXT_CHARS,
        description="The user's message",
    )
    conversation_id: Optional[str] = Field(
        default=None,
        description="Existing conversation to continue. Omit to start a new one.",
    )
    parent_message_id: Optional[str] = Field(
        default=None,
        description="Message this turn replies to. Defaults to the conversation root.",
    )
    override_parent_message_id: Optional[str] = None
    response_message_id: Optional[str] = Field(
        default=None,
        description="Reuse an existing response id (edits and continuations).",
    )
    is_regenerate: bool = False
    is_continued: bool = False
    edited_content: Optional[str] = None
    endpoint: str = "agents"
    model: Optional[str] = Field(
        default=None,
        description="LLM model to use. Uses the server default if not specified.",
    )
    personality: Optional[str] = Field(
        default=None,
        description="Personality profile id used to rewrite the reply ('neutral' skips).",
    )


class AbortRequest(CamelModel):
    """Explicit cancellation of an in-flight chat stream."""

    abort_key: str = Field(..., min_length=1)


class TransformRequest(CamelModel):
    """Rewrite an existing reply.  Required fields are checked by the route
    so a missing field yields 400 rather than 422."""

    original_response: Optional[str] = None
    personality_id: Optional[str] = None
    conversation_id: Optional[str] = None


class InterceptRequest(CamelModel):
    """Pass a reply through the personality layer on its way to the client."""

    response: Optional[str] = None
    personality_id: Optional[str] = "neutral"
    conversation_id: Optional[str] = None
    user_message: Optional[str] = None
