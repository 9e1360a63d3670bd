"""Chat stream event models: single source of truth for the SSE wire format.

Every event the chat stream emits is an instance of a StreamEvent subclass.
Raw dicts are forbidden; the emitter validates and serializes through
these models.

Wire format rules:
  - All keys are camelCase (via CamelModel alias_generator)
  - Every event has ``type`` and ``seq`` (``seq`` injected by SSESequencer)
  - JSON serialization uses model_dump(by_alias=True, exclude_none=True)
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import ConfigDict

from personality_engine.models.base import CamelModel


class StreamEvent(CamelModel):
    """Base class for all chat stream events.

    ``seq`` is injected by the sequencer, not by event constructors.
    """

    model_config = ConfigDict(extra="forbid")

    type: str
    seq: int = -1


class CreatedEvent(StreamEvent):
    """Generation started. Carries the user message and the abort key."""

    type: Literal["created"] = "created"
    message: dict[str, Any]
    abort_key: str


class ContentEvent(StreamEvent):
    """Incremental reply text (pre-transformation)."""

    type: Literal["content"] = "content"
    text: str
    message_id: Optional[str] = None


class FinalEvent(StreamEvent):
    """The response envelope. Sent at most once per session."""

    type: Literal["final"] = "final"
    final: bool = True
    conversation: dict[str, Any]
    title: Optional[str] = None
    request_message: Optional[dict[str, Any]] = None
    response_message: dict[str, Any]
    transformed: bool = False


class ErrorEvent(StreamEvent):
    """Generation failed. Terminates the stream."""

    type: Literal["error"] = "error"
    message: str
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    parent_message_id: Optional[str] = None
    code: Optional[str] = None


EVENT_REGISTRY: dict[str, type[StreamEvent]] = {
    "created": CreatedEvent,
    "content": ContentEvent,
    "final": FinalEvent,
    "error": ErrorEvent,
}
