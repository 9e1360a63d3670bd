"""Pydantic models for the Personality Engine API."""
from __future__ import annotations

from personality_engine.models.messages import ChatMessage, ContentPart, ConversationInfo
from personality_engine.models.requests import (
    AbortRequest,
    ChatRequest,
    InterceptRequest,
    TransformRequest,
)
from personality_engine.models.responses import (
    AbortResponse,
    ProfileSummary,
    ProfilesResponse,
    TransformResponse,
)

__all__ = [
    "AbortRequest",
    "AbortResponse",
    "ChatMessage",
    "ChatRequest",
    "ContentPart",
    "ConversationInfo",
    "InterceptRequest",
    "ProfileSummary",
    "ProfilesResponse",
    "TransformRequest",
    "TransformResponse",
]
