"""
Conversation title generation.

Runs as a detached task after the first exchange of a new conversation.
The final event has already been delivered by then, so a failure here is
logged and never reaches the client.
"""
from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from personality_engine.config import settings
from personality_engine.core.llm_client import LLMClient
from personality_engine.core.session import RequestSession
from personality_engine.models.messages import ChatMessage
from personality_engine.services.conversations import persist_title

logger = logging.getLogger(__name__)

_MAX_TITLE_CHARS = 80

TITLE_PROMPT = (
    "Write a concise title (5 words or fewer) for a conversation that starts "
    "with the exchange below. Reply with the title only, no quotes and no "
    "trailing punctuation.\n\n"
    "User: {text}\n"
    "Assistant: {response}"
)


def _default_llm_factory() -> LLMClient:
    return LLMClient(model=settings.title_model)


def clean_title(raw: Optional[str]) -> Optional[str]:
    """Normalize a generated title; ``None`` when nothing usable is left."""
    if not raw:
        return None
    title = raw.strip().splitlines()[0] if raw.strip() else ""
    title = re.sub(r"^(title\s*:\s*)", "", title, flags=re.IGNORECASE)
    title = title.strip().strip("\"'`").rstrip(".!?:;").strip()
    if not title:
        return None
    return title[:_MAX_TITLE_CHARS]


async def generate_title(
    text: str,
    response_text: str,
    llm_factory: Callable[[], LLMClient] = _default_llm_factory,
) -> Optional[str]:
    llm = llm_factory()
    try:
        result = await llm.chat_completion(
            messages=[{
                "role": "user",
                "content": TITLE_PROMPT.format(text=text, response=response_text[:2000]),
            }],
            temperature=0.2,
            max_tokens=settings.title_max_tokens,
        )
    finally:
        await llm.close()
    return clean_title(result.content)


async def add_title(session: RequestSession, text: str, response: ChatMessage) -> Optional[str]:
    """Generate and store a title for the session's conversation."""
    conversation_id = session.conversation_id or response.conversation_id
    if not conversation_id or not session.user_id:
        return None

    title = await generate_title(text, response.primary_text() or "")
    if title is None:
        logger.warning(f"Title generation returned nothing for {conversation_id[:8]}")
        return None

    await persist_title(conversation_id, session.user_id, title)
    return title
