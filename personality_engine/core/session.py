"""
Chat session state and lifecycle.

Explicit state transitions for one chat exchange.  Never set a session's
status directly; always go through ``RequestSession.transition()``.

States:
    IDLE                 Session object exists; nothing acquired
    INITIALIZING         Acquiring the generation client and abort token
    AWAITING_GENERATION  Backend call in flight
    TRANSFORMING         Personality rewrite in flight
    DELIVERING           Final event sent; persisting and titling
    CLEANING_UP          Running the cleanup registry
    DONE                 Reply delivered
    ABORTED              Client went away or asked to stop; nothing delivered
    FAILED               Unhandled error; error reported

Invariants:
    1. Any non-terminal state may move to CLEANING_UP.
    2. Only CLEANING_UP reaches a terminal state.
    3. Terminal states (DONE/ABORTED/FAILED) are final.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from personality_engine.core.cancellation import AbortSnapshot, CancellationToken
from personality_engine.models.messages import ChatMessage, ConversationInfo

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    """Chat session lifecycle states."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    AWAITING_GENERATION = "awaiting_generation"
    TRANSFORMING = "transforming"
    DELIVERING = "delivering"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


TERMINAL_STATES: frozenset[SessionStatus] = frozenset({
    SessionStatus.DONE,
    SessionStatus.ABORTED,
    SessionStatus.FAILED,
})

_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.IDLE: frozenset({
        SessionStatus.INITIALIZING,
        SessionStatus.CLEANING_UP,
    }),
    SessionStatus.INITIALIZING: frozenset({
        SessionStatus.AWAITING_GENERATION,
        SessionStatus.CLEANING_UP,
    }),
    SessionStatus.AWAITING_GENERATION: frozenset({
        SessionStatus.TRANSFORMING,
        SessionStatus.DELIVERING,
        SessionStatus.CLEANING_UP,
    }),
    SessionStatus.TRANSFORMING: frozenset({
        SessionStatus.DELIVERING,
        SessionStatus.CLEANING_UP,
    }),
    SessionStatus.DELIVERING: frozenset({
        SessionStatus.CLEANING_UP,
    }),
    SessionStatus.CLEANING_UP: frozenset({
        SessionStatus.DONE,
        SessionStatus.ABORTED,
        SessionStatus.FAILED,
    }),
    SessionStatus.DONE: frozenset(),
    SessionStatus.ABORTED: frozenset(),
    SessionStatus.FAILED: frozenset(),
}


class InvalidTransitionError(Exception):
    """Raised when a state transition violates the state machine."""

    def __init__(self, from_state: SessionStatus, to_state: SessionStatus):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} → {to_state.value}")


def assert_transition(from_state: SessionStatus, to_state: SessionStatus) -> None:
    """Raise InvalidTransitionError if ``from_state → to_state`` is not allowed."""
    if to_state not in _TRANSITIONS.get(from_state, frozenset()):
        raise InvalidTransitionError(from_state, to_state)


def is_terminal(status: SessionStatus) -> bool:
    return status in TERMINAL_STATES


class SessionField(str, Enum):
    """Fields the generation client may set on the session."""

    USER_MESSAGE = "user_message"
    RESPONSE_MESSAGE_ID = "response_message_id"
    PROMPT_TOKENS = "prompt_tokens"
    SENDER = "sender"
    ABORT_KEY = "abort_key"
    CONVERSATION_ID = "conversation_id"


class UnknownSessionFieldError(ValueError):
    """Raised when a request-data update names a field outside SessionField."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown session field: {name}")


@dataclass
class RequestSession:
    """Mutable per-request state owned by the orchestrator."""

    user_id: Optional[str] = None
    conversation_id: Optional[str] = None
    parent_message_id: Optional[str] = None
    override_parent_message_id: Optional[str] = None
    response_message_id: Optional[str] = None
    user_message_id: Optional[str] = None
    sender: Optional[str] = None
    user_message: Optional[ChatMessage] = None
    prompt_tokens: int = 0
    abort_key: Optional[str] = None
    client: Optional["GenerationClient"] = None
    status: SessionStatus = SessionStatus.IDLE

    def transition(self, to_state: SessionStatus) -> None:
        assert_transition(self.status, to_state)
        logger.debug(f"Session {self.abort_key}: {self.status.value} → {to_state.value}")
        self.status = to_state

    @property
    def reply_parent_id(self) -> Optional[str]:
        """Parent of the reply: override, then the user turn, then the request parent."""
        return self.override_parent_message_id or self.user_message_id or self.parent_message_id

    def apply(self, **fields: Any) -> None:
        """Merge request data reported by the generation client.

        ``conversation_id`` is only taken when the session has none yet.
        """
        for name in fields:
            try:
                SessionField(name)
            except ValueError:
                raise UnknownSessionFieldError(name) from None

        for name, value in fields.items():
            if name == SessionField.CONVERSATION_ID.value:
                if self.conversation_id is None and value:
                    self.conversation_id = value
                continue
            if name == SessionField.USER_MESSAGE.value:
                self.user_message = value
                if value is not None:
                    self.user_message_id = value.message_id
                continue
            setattr(self, name, value)

    def snapshot(self) -> AbortSnapshot:
        """Partial-response view handed out by the abort endpoint."""
        content = list(self.client.content_parts) if self.client is not None else []
        return AbortSnapshot(
            sender=self.sender,
            content=content,
            prompt_tokens=self.prompt_tokens,
            conversation_id=self.conversation_id,
            message_id=self.response_message_id,
            parent_message_id=self.reply_parent_id,
        )

    def clear(self) -> None:
        """Drop every reference the session holds."""
        self.conversation_id = None
        self.parent_message_id = None
        self.override_parent_message_id = None
        self.response_message_id = None
        self.user_message_id = None
        self.sender = None
        self.user_message = None
        self.prompt_tokens = 0
        self.client = None


@dataclass(frozen=True)
class ErrorContext:
    """Identifiers the error reporter needs to build its error message."""

    conversation_id: Optional[str]
    sender: Optional[str]
    message_id: Optional[str]
    parent_message_id: Optional[str]
    user_message_id: Optional[str]
    user_id: Optional[str] = None
    override_parent_message_id: Optional[str] = None

    @property
    def reply_parent_id(self) -> Optional[str]:
        return self.override_parent_message_id or self.user_message_id or self.parent_message_id


@dataclass
class MessageOptions:
    """Everything the generation client needs for one send."""

    user_id: str
    conversation_id: Optional[str]
    parent_message_id: Optional[str]
    abort_token: CancellationToken
    on_start: Callable[[dict[str, Any]], None]
    get_req_data: Callable[..., None]
    on_progress: Optional[Callable[[str], None]] = None
    override_parent_message_id: Optional[str] = None
    response_message_id: Optional[str] = None
    is_regenerate: bool = False
    is_continued: bool = False
    edited_content: Optional[str] = None
    endpoint: str = "agents"
    model: Optional[str] = None


@dataclass
class GenerationResult:
    """What a generation client returns from ``send_message``."""

    response: ChatMessage
    conversation: Optional[ConversationInfo] = None


class GenerationClient(Protocol):
    """Contract between the orchestrator and a generation backend."""

    saved_message_ids: set[str]
    skip_save_user_message: bool
    content_parts: list[dict[str, Any]]

    async def send_message(self, text: str, options: MessageOptions) -> GenerationResult:
        ...

    async def close(self) -> None:
        ...
