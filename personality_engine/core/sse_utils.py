"""
SSE helpers for the chat stream.

``SSEChannel`` is the client-facing side of a chat session: the
orchestrator pushes typed events into it and the route streams them out.
When the HTTP stream ends for any reason (normal end, client disconnect,
server cancellation) the channel is closed and its close listeners fire.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Callable, Optional

from personality_engine.protocol.emitter import emit
from personality_engine.protocol.events import StreamEvent

logger = logging.getLogger(__name__)

CloseListener = Callable[[], None]


class SSESequencer:
    """Injects a monotonic ``seq`` counter into SSE ``data:`` frames.

    Each stream creates its own instance so counters are independent.
    The first ``data:`` frame gets seq 0.  SSE comments pass through
    unchanged.
    """

    def __init__(self) -> None:
        self._seq: int = -1

    def __call__(self, event_str: str) -> str:
        if not event_str.startswith("data: "):
            return event_str
        self._seq += 1
        data = json.loads(event_str[6:].strip())
        data["seq"] = self._seq
        return f"data: {json.dumps(data, separators=(',', ':'), ensure_ascii=False)}\n\n"

    @property
    def count(self) -> int:
        """Last seq handed out (-1 before the first frame)."""
        return self._seq


class SSEChannel:
    """Queue-backed SSE stream with a close event."""

    def __init__(self, name: str = "chat") -> None:
        self.name = name
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._ended = False
        self._closed = False
        self._listeners: list[CloseListener] = []

    @property
    def closed(self) -> bool:
        """True once the consumer side has gone away."""
        return self._closed

    @property
    def ended(self) -> bool:
        return self._ended

    def send(self, event: StreamEvent) -> bool:
        """Queue ``event`` for the client.  False if the stream is over."""
        if self._ended or self._closed:
            logger.debug(f"[{self.name}] Dropping {event.type} event: stream is over")
            return False
        self._queue.put_nowait(emit(event))
        return True

    def end(self) -> None:
        """Finish the stream after all queued events are written."""
        if self._ended:
            return
        self._ended = True
        self._queue.put_nowait(None)

    def on_close(self, listener: CloseListener) -> None:
        self._listeners.append(listener)

    def remove_close_listener(self, listener: CloseListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    async def stream(self) -> AsyncIterator[str]:
        """Yield sequenced SSE frames until ``end()`` or disconnect."""
        sequencer = SSESequencer()
        try:
            while True:
                frame = await self._queue.get()
                if frame is None:
                    break
                yield sequencer(frame)
            logger.debug(f"[{self.name}] Stream finished after {sequencer.count + 1} events")
        finally:
            self._close()

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._ended = True
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception(f"[{self.name}] Error in close listener")
