"""Per-request cancellation tokens.

Every chat session registers a ``CancellationToken`` under an abort key.
The token is signaled when the client's stream closes or when the client
calls the abort endpoint; the orchestrator polls it before every
externally visible side effect.

Token lifecycle:
    ARMED → SIGNALED   (client went away / explicit abort)
    ARMED → COMPLETED  (final response delivered; signal disarmed)

Once a token has left ARMED, ``signal()`` is a no-op.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class AbortSnapshot:
    """Session data an abort reporter may read without holding the session."""

    sender: Optional[str] = None
    content: list[dict[str, Any]] = field(default_factory=list)
    prompt_tokens: int = 0
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    parent_message_id: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(
            part.get("text", "") for part in self.content if part.get("type") == "text"
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "text": self.text,
            "content": self.content,
            "promptTokens": self.prompt_tokens,
            "conversationId": self.conversation_id,
            "messageId": self.message_id,
            "parentMessageId": self.parent_message_id,
        }


ContextProvider = Callable[[], AbortSnapshot]
OnStartHook = Callable[[dict[str, Any]], None]


class CancellationToken:
    """Cooperative cancellation signal plus a completion flag."""

    def __init__(self, key: str) -> None:
        self.key = key
        self._signaled = False
        self._completed = False
        self._event = asyncio.Event()

    @property
    def is_signaled(self) -> bool:
        return self._signaled

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def is_armed(self) -> bool:
        return not (self._signaled or self._completed)

    def signal(self) -> bool:
        """Signal cancellation.  Returns True only on the first effective call."""
        if not self.is_armed:
            return False
        self._signaled = True
        self._event.set()
        logger.debug(f"Cancellation signaled for {self.key}")
        return True

    def mark_completed(self) -> bool:
        """Disarm the token after a normal finish.  No-op once signaled."""
        if not self.is_armed:
            return False
        self._completed = True
        return True

    async def wait(self) -> None:
        """Block until the token is signaled."""
        await self._event.wait()


@dataclass
class _Entry:
    token: CancellationToken
    context_provider: ContextProvider
    on_created: Optional[Callable[[dict[str, Any]], Any]] = None
    started_at: Optional[float] = None
    registered_at: float = field(default_factory=time.monotonic)


class CancellationRegistry:
    """Abort-key → token lookup shared by sessions and the abort endpoint."""

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    def register(
        self,
        key: str,
        context_provider: ContextProvider,
        on_created: Optional[Callable[[dict[str, Any]], Any]] = None,
    ) -> tuple[CancellationToken, OnStartHook]:
        """Create a token for ``key`` and return it with its on-start hook.

        The hook is handed to the generation client, which calls it with the
        user message once generation begins.
        """
        if key in self._entries:
            raise ValueError(f"Abort key already registered: {key}")

        token = CancellationToken(key)
        entry = _Entry(token=token, context_provider=context_provider, on_created=on_created)
        self._entries[key] = entry

        def on_start(user_message: dict[str, Any]) -> None:
            if entry.started_at is not None or not token.is_armed:
                return
            entry.started_at = time.monotonic()
            if entry.on_created is not None:
                entry.on_created(user_message)

        return token, on_start

    def get(self, key: str) -> Optional[CancellationToken]:
        entry = self._entries.get(key)
        return entry.token if entry else None

    def signal(self, key: str) -> bool:
        """Signal the token for ``key``.  Unknown keys and repeats are no-ops."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        return entry.token.signal()

    def snapshot(self, key: str) -> Optional[AbortSnapshot]:
        """Current session data for ``key`` via its context provider."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return entry.context_provider()

    def clear(self, key: str) -> None:
        """Drop the entry for ``key``; the token itself is left as-is."""
        entry = self._entries.pop(key, None)
        if entry is not None:
            entry.on_created = None

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


_registry: CancellationRegistry | None = None


def get_cancellation_registry() -> CancellationRegistry:
    """Get the singleton CancellationRegistry instance."""
    global _registry
    if _registry is None:
        _registry = CancellationRegistry()
    return _registry


def reset_cancellation_registry() -> None:
    """Reset the singleton (for testing)."""
    global _registry
    _registry = None
