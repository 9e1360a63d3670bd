"""
Default generation client for the chat endpoint.

Streams a chat completion from OpenRouter over the conversation's recent
history.  The abort token is checked between streamed chunks; when it is
signaled the client stops reading and returns what it has so far.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

from personality_engine.config import NO_PARENT, settings
from personality_engine.core.llm_client import LLMClient
from personality_engine.core.session import GenerationResult, MessageOptions
from personality_engine.models.messages import ChatMessage, ContentPart, ConversationInfo
from personality_engine.services.conversations import (
    load_chat_history,
    load_conversation_info,
)

logger = logging.getLogger(__name__)

ASSISTANT_SENDER = "Assistant"
USER_SENDER = "User"

HistoryLoader = Callable[[str, str, int], Awaitable[list[dict[str, Any]]]]
ConversationLoader = Callable[..., Awaitable[ConversationInfo]]


class AgentClient:
    """LLM-backed generation client (one instance per chat session)."""

    def __init__(
        self,
        llm: LLMClient,
        history_loader: HistoryLoader = load_chat_history,
        conversation_loader: ConversationLoader = load_conversation_info,
        sender: str = ASSISTANT_SENDER,
    ) -> None:
        self.llm = llm
        self.sender = sender
        self._history_loader = history_loader
        self._conversation_loader = conversation_loader
        self.saved_message_ids: set[str] = set()
        self.skip_save_user_message = False
        self.content_parts: list[dict[str, Any]] = []

    def _append_text(self, text: str) -> None:
        if not self.content_parts:
            self.content_parts.append({"type": "text", "text": ""})
        self.content_parts[0]["text"] += text

    def _build_user_message(
        self, text: str, options: MessageOptions, conversation_id: str
    ) -> ChatMessage:
        parent = options.override_parent_message_id or options.parent_message_id or NO_PARENT
        if (options.is_regenerate or options.is_continued) and options.parent_message_id:
            # Reuse the existing user turn instead of creating a new one
            message_id = options.parent_message_id
            parent = options.override_parent_message_id or NO_PARENT
        else:
            message_id = str(uuid.uuid4())
        return ChatMessage(
            message_id=message_id,
            conversation_id=conversation_id,
            parent_message_id=parent,
            sender=USER_SENDER,
            text=text,
            is_created_by_user=True,
            endpoint=options.endpoint,
            model=self.llm.model,
        )

    async def send_message(self, text: str, options: MessageOptions) -> GenerationResult:
        is_new_conversation = not options.conversation_id
        conversation_id = options.conversation_id or str(uuid.uuid4())
        response_message_id = options.response_message_id or str(uuid.uuid4())
        self.skip_save_user_message = options.is_regenerate or options.is_continued

        user_message = self._build_user_message(text, options, conversation_id)
        options.get_req_data(
            user_message=user_message,
            conversation_id=conversation_id,
            response_message_id=response_message_id,
            sender=self.sender,
        )
        options.on_start(user_message.to_wire())

        history: list[dict[str, Any]] = []
        if not is_new_conversation:
            history = await self._history_loader(
                conversation_id, options.user_id, settings.chat_history_limit
            )

        messages = [*history]
        if not options.is_continued:
            messages.append({"role": "user", "content": text})
        if options.is_continued and options.edited_content:
            messages.append({"role": "assistant", "content": options.edited_content})
            self._append_text(options.edited_content)

        logger.info(
            f"💬 Generating reply: conversation={conversation_id[:8]}, "
            f"{len(messages)} messages, model={self.llm.model}"
        )

        usage: dict[str, Any] = {}
        async for event in self.llm.chat_completion_stream(messages=messages):
            if options.abort_token.is_signaled:
                logger.info(f"⏹️ Generation stopped: {options.abort_token.key}")
                break
            if event["type"] == "content_delta":
                self._append_text(event["text"])
                if options.on_progress is not None:
                    options.on_progress(event["text"])
            elif event["type"] == "done":
                usage = event.get("usage") or {}

        prompt_tokens = int(usage.get("prompt_tokens", 0) or 0)
        if prompt_tokens:
            options.get_req_data(prompt_tokens=prompt_tokens)

        reply = self.content_parts[0]["text"] if self.content_parts else ""
        response = ChatMessage(
            message_id=response_message_id,
            conversation_id=conversation_id,
            parent_message_id=user_message.message_id,
            sender=self.sender,
            text=reply,
            content=[ContentPart(text=reply)],
            endpoint=options.endpoint,
            model=self.llm.model,
            token_count=usage.get("completion_tokens"),
        )

        if is_new_conversation:
            conversation = ConversationInfo(
                conversation_id=conversation_id,
                title=None,
                endpoint=options.endpoint,
                model=self.llm.model,
            )
        else:
            conversation = await self._conversation_loader(
                conversation_id, options.user_id, options.endpoint, self.llm.model
            )
        return GenerationResult(response=response, conversation=conversation)

    async def close(self) -> None:
        await self.llm.close()


async def initialize_client(model: Optional[str] = None) -> AgentClient:
    """Build the generation client for one chat session."""
    return AgentClient(LLMClient(model=model or settings.llm_model))
