"""Chat stream protocol: typed events and their SSE serialization."""

from personality_engine.protocol.emitter import (
    ProtocolSerializationError,
    emit,
    parse_event,
)
from personality_engine.protocol.events import (
    EVENT_REGISTRY,
    ContentEvent,
    CreatedEvent,
    ErrorEvent,
    FinalEvent,
    StreamEvent,
)

__all__ = [
    "EVENT_REGISTRY",
    "ContentEvent",
    "CreatedEvent",
    "ErrorEvent",
    "FinalEvent",
    "ProtocolSerializationError",
    "StreamEvent",
    "emit",
    "parse_event",
]
