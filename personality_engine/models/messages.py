"""Chat message and conversation shapes shared by the stream, the
persistence layer and the personality routes."""
from __future__ import annotations

from typing import Any, Optional

from personality_engine.models.base import CamelModel


class ContentPart(CamelModel):
    """One typed piece of message content (only ``text`` parts are produced)."""

    type: str = "text"
    text: Optional[str] = None


class ChatMessage(CamelModel):
    """A user or assistant message as sent to the client and persisted."""

    message_id: str
    conversation_id: str
    parent_message_id: Optional[str] = None
    sender: str
    text: Optional[str] = None
    content: Optional[list[ContentPart]] = None
    is_created_by_user: bool = False
    endpoint: Optional[str] = None
    model: Optional[str] = None
    token_count: Optional[int] = None
    error: bool = False

    def primary_text(self) -> Optional[str]:
        """The reply text: ``text`` if set, else the first content part's text."""
        if self.text:
            return self.text
        if self.content and self.content[0].text:
            return self.content[0].text
        return None

    def replace_text(self, new_text: str) -> None:
        """Overwrite whichever text carriers are populated."""
        if self.text:
            self.text = new_text
        if self.content and self.content[0].text:
            self.content[0].text = new_text

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ConversationInfo(CamelModel):
    """Conversation metadata returned with the final envelope."""

    conversation_id: str
    title: Optional[str] = None
    endpoint: Optional[str] = None
    model: Optional[str] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
