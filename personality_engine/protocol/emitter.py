"""Typed SSE event emitter and parser.

  ``emit(StreamEvent)``  : serialize a typed event to SSE wire format.
  ``parse_event(dict)``  : deserialize a wire-format dict back into the
                            concrete StreamEvent subclass (inverse of
                            ``emit``). Used by tests and typed consumers.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping

from personality_engine.protocol.events import EVENT_REGISTRY, StreamEvent

logger = logging.getLogger(__name__)


class ProtocolSerializationError(Exception):
    """Raised when an event dict fails protocol validation."""


def emit(event: StreamEvent) -> str:
    """Serialize a StreamEvent to ``data: {json}\\n\\n``.

    Raises TypeError for non-StreamEvent arguments and ValueError for
    unregistered event types.
    """
    if not isinstance(event, StreamEvent):
        raise TypeError(f"emit() requires a StreamEvent, got {type(event).__name__}.")

    if event.type not in EVENT_REGISTRY:
        raise ValueError(f"Unknown event type '{event.type}'.")

    data = event.model_dump(by_alias=True, exclude_none=True)
    return f"data: {json.dumps(data, separators=(',', ':'), ensure_ascii=False)}\n\n"


def parse_event(data: Mapping[str, object]) -> StreamEvent:
    """Deserialize a wire-format dict into its StreamEvent subclass.

    Raises ``ProtocolSerializationError`` for unknown or malformed events.
    """
    event_type = data.get("type")
    if not isinstance(event_type, str):
        raise ProtocolSerializationError("Event dict missing 'type' field")

    model_class = EVENT_REGISTRY.get(event_type)
    if model_class is None:
        raise ProtocolSerializationError(
            f"Unknown event type '{event_type}'. Cannot deserialize."
        )
    try:
        return model_class.model_validate(data)
    except Exception as exc:
        raise ProtocolSerializationError(
            f"Event '{event_type}' failed deserialization: {exc}"
        ) from exc
