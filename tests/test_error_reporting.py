"""Tests for chat session error reporting."""
from __future__ import annotations

import json

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from personality_engine.core.session import ErrorContext
from personality_engine.core.sse_utils import SSEChannel
from personality_engine.db.models import Message
from personality_engine.services.errors import GENERIC_ERROR_TEXT, error_text, report_error


async def _events(channel: SSEChannel) -> list[dict]:
    return [json.loads(frame[6:]) async for frame in channel.stream()]


def test_error_text() -> None:
    assert error_text(RuntimeError("upstream 503")) == f"{GENERIC_ERROR_TEXT} upstream 503"
    assert error_text(RuntimeError()) == GENERIC_ERROR_TEXT


@pytest.mark.anyio
async def test_sends_error_and_ends_stream() -> None:
    channel = SSEChannel()
    context = ErrorContext(
        conversation_id="c1",
        sender="Assistant",
        message_id="r1",
        parent_message_id="p0",
        user_message_id="u1",
    )
    await report_error(channel, RuntimeError("boom"), context)

    assert channel.ended
    events = await _events(channel)
    assert len(events) == 1
    event = events[0]
    assert event["type"] == "error"
    assert event["conversationId"] == "c1"
    assert event["messageId"] == "r1"
    assert event["parentMessageId"] == "u1"
    assert "boom" in event["message"]


@pytest.mark.anyio
async def test_error_reply_persisted(db_session: AsyncSession) -> None:
    channel = SSEChannel()
    context = ErrorContext(
        conversation_id="c1",
        sender="Assistant",
        message_id="r1",
        parent_message_id="p0",
        user_message_id="u1",
        user_id="user-1",
    )
    await report_error(channel, RuntimeError("boom"), context)

    row = await db_session.get(Message, "r1")
    assert row is not None
    assert row.error is True
    assert row.parent_message_id == "u1"


@pytest.mark.anyio
async def test_nothing_persisted_without_ids(db_session: AsyncSession) -> None:
    channel = SSEChannel()
    context = ErrorContext(
        conversation_id=None,
        sender=None,
        message_id=None,
        parent_message_id=None,
        user_message_id=None,
        user_id="user-1",
    )
    await report_error(channel, RuntimeError("early"), context)
    events = await _events(channel)
    assert events[0]["type"] == "error"
    assert "conversationId" not in events[0]


@pytest.mark.anyio
async def test_override_parent_wins(db_session: AsyncSession) -> None:
    channel = SSEChannel()
    context = ErrorContext(
        conversation_id="c1",
        sender="Assistant",
        message_id="r2",
        parent_message_id="p0",
        user_message_id="u1",
        user_id="user-1",
        override_parent_message_id="edited-1",
    )
    await report_error(channel, RuntimeError("boom"), context)

    events = await _events(channel)
    assert events[0]["parentMessageId"] == "edited-1"
    row = await db_session.get(Message, "r2")
    assert row is not None
    assert row.parent_message_id == "edited-1"
