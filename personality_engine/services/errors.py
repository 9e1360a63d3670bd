"""
Error reporting for failed chat sessions.

Sends an ``error`` event to the client, ends the stream and, when the
session got far enough to have ids, records an error reply so the
conversation shows what happened.
"""
from __future__ import annotations

import logging

from personality_engine.core.session import ErrorContext
from personality_engine.core.sse_utils import SSEChannel
from personality_engine.db.database import AsyncSessionLocal
from personality_engine.models.messages import ChatMessage
from personality_engine.protocol.events import ErrorEvent
from personality_engine.services.conversations import save_message

logger = logging.getLogger(__name__)

GENERIC_ERROR_TEXT = "An error occurred while processing the request."


def error_text(error: BaseException) -> str:
    detail = str(error).strip()
    return f"{GENERIC_ERROR_TEXT} {detail}" if detail else GENERIC_ERROR_TEXT


async def report_error(channel: SSEChannel, error: BaseException, context: ErrorContext) -> None:
    """Tell the client the session failed, then end its stream."""
    text = error_text(error)
    channel.send(ErrorEvent(
        message=text,
        conversation_id=context.conversation_id,
        message_id=context.message_id,
        parent_message_id=context.reply_parent_id,
    ))
    channel.end()

    if not (context.user_id and context.conversation_id and context.message_id):
        return

    message = ChatMessage(
        message_id=context.message_id,
        conversation_id=context.conversation_id,
        parent_message_id=context.reply_parent_id,
        sender=context.sender or "Assistant",
        text=text,
        error=True,
    )
    try:
        async with AsyncSessionLocal() as db:
            await save_message(db, context.user_id, message)
            await db.commit()
    except Exception as e:
        logger.warning(f"Could not save error message for {context.conversation_id[:8]}: {e}")
