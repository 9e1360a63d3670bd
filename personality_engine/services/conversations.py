"""
Conversation persistence service.

Saves chat messages, reads recent history for the personality routes and
the generation client, and records conversation titles.  Every read is
scoped to the owning user.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from personality_engine.core.session import RequestSession
from personality_engine.db.database import AsyncSessionLocal
from personality_engine.db.models import Conversation, Message
from personality_engine.models.messages import ChatMessage, ConversationInfo
from personality_engine.personality.prompt import ROLE_STUDENT, format_history_line

logger = logging.getLogger(__name__)


# =============================================================================
# Conversations
# =============================================================================

async def get_conversation(
    db: AsyncSession,
    conversation_id: str,
    user_id: str,
) -> Optional[Conversation]:
    """Get a conversation by ID, verifying ownership."""
    result = await db.execute(
        select(Conversation).where(
            Conversation.id == conversation_id,
            Conversation.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def set_title(
    db: AsyncSession,
    conversation_id: str,
    user_id: str,
    title: str,
) -> bool:
    """Set a conversation's title.  False if the conversation isn't the user's."""
    conversation = await get_conversation(db, conversation_id, user_id)
    if conversation is None:
        return False
    conversation.title = title
    await db.flush()
    logger.info(f"Titled conversation {conversation_id[:8]}: '{title}'")
    return True


def conversation_info(
    conversation: Optional[Conversation],
    conversation_id: str,
    endpoint: Optional[str] = None,
    model: Optional[str] = None,
) -> ConversationInfo:
    """Wire metadata for the final event.  An untitled conversation reports ``None``."""
    if conversation is None:
        return ConversationInfo(
            conversation_id=conversation_id,
            title=None,
            endpoint=endpoint,
            model=model,
        )
    return ConversationInfo(
        conversation_id=conversation.id,
        title=conversation.title or None,
        endpoint=conversation.endpoint or endpoint,
        model=conversation.model or model,
    )


# =============================================================================
# Messages
# =============================================================================

async def save_message(
    db: AsyncSession,
    user_id: str,
    message: ChatMessage,
) -> Message:
    """Insert or update ``message``, creating its conversation if needed."""
    conversation = await db.get(Conversation, message.conversation_id)
    if conversation is None:
        conversation = Conversation(
            id=message.conversation_id,
            user_id=user_id,
            endpoint=message.endpoint,
            model=message.model,
        )
        db.add(conversation)
    elif conversation.user_id != user_id:
        raise PermissionError(
            f"Conversation {message.conversation_id} does not belong to user"
        )

    text = message.primary_text() or ""
    row = await db.get(Message, message.message_id)
    if row is None:
        row = Message(
            id=message.message_id,
            conversation_id=message.conversation_id,
            user_id=user_id,
            parent_message_id=message.parent_message_id,
            sender=message.sender,
            text=text,
            is_created_by_user=message.is_created_by_user,
            endpoint=message.endpoint,
            model=message.model,
            token_count=message.token_count,
            error=message.error,
        )
        db.add(row)
    else:
        row.text = text
        row.token_count = message.token_count
        row.error = message.error

    await db.flush()
    return row


async def get_recent_messages(
    db: AsyncSession,
    conversation_id: str,
    user_id: str,
    limit: int,
) -> list[Message]:
    """The last ``limit`` messages of a conversation, oldest first."""
    result = await db.execute(
        select(Message)
        .join(Conversation, Conversation.id == Message.conversation_id)
        .where(
            Message.conversation_id == conversation_id,
            Conversation.user_id == user_id,
        )
        .order_by(desc(Message.created_at))
        .limit(limit)
    )
    messages = list(result.scalars().all())
    messages.reverse()
    return messages


def format_history(messages: Sequence[Message], user_message: Optional[str] = None) -> str:
    """Transcript lines for the rewrite prompt, newline-joined."""
    lines = [format_history_line(m.is_created_by_user, m.text) for m in messages]
    if user_message:
        lines.append(f"{ROLE_STUDENT}: {user_message}")
    return "\n".join(lines)


# =============================================================================
# Session-task helpers (open their own DB session)
# =============================================================================

async def load_chat_history(
    conversation_id: str,
    user_id: str,
    limit: int,
) -> list[dict[str, Any]]:
    """Recent messages as chat-completion turns."""
    async with AsyncSessionLocal() as db:
        messages = await get_recent_messages(db, conversation_id, user_id, limit)
    return [
        {
            "role": "user" if m.is_created_by_user else "assistant",
            "content": m.text,
        }
        for m in messages
        if not m.error
    ]


async def load_conversation_info(
    conversation_id: str,
    user_id: str,
    endpoint: Optional[str] = None,
    model: Optional[str] = None,
) -> ConversationInfo:
    async with AsyncSessionLocal() as db:
        conversation = await get_conversation(db, conversation_id, user_id)
    return conversation_info(conversation, conversation_id, endpoint, model)


async def persist_message(session: RequestSession, message: ChatMessage, context: str) -> None:
    """Save ``message`` for the session's user in its own transaction."""
    if not session.user_id:
        raise ValueError("Cannot save a message for a session without a user")
    async with AsyncSessionLocal() as db:
        await save_message(db, session.user_id, message)
        await db.commit()
    logger.debug(f"Saved message {message.message_id[:8]} ({context})")


async def persist_title(conversation_id: str, user_id: str, title: str) -> bool:
    async with AsyncSessionLocal() as db:
        updated = await set_title(db, conversation_id, user_id, title)
        await db.commit()
    return updated
