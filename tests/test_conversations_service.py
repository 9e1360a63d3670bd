"""Tests for the conversation persistence service."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from personality_engine.config import NO_PARENT
from personality_engine.core.session import RequestSession
from personality_engine.db.models import Conversation, Message
from personality_engine.models.messages import ChatMessage, ContentPart
from personality_engine.services.conversations import (
    conversation_info,
    format_history,
    get_conversation,
    get_recent_messages,
    load_chat_history,
    load_conversation_info,
    persist_message,
    persist_title,
    save_message,
    set_title,
)

USER = "user-1"
OTHER = "user-2"
BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


async def _seed(db: AsyncSession, conversation_id: str, turns: list[tuple[bool, str]], user_id: str = USER) -> None:
    """Insert a conversation with one message per turn, one second apart."""
    db.add(Conversation(id=conversation_id, user_id=user_id, endpoint="agents"))
    for i, (by_user, text) in enumerate(turns):
        db.add(Message(
            id=f"{conversation_id}-m{i}",
            conversation_id=conversation_id,
            user_id=user_id,
            sender="User" if by_user else "Assistant",
            text=text,
            is_created_by_user=by_user,
            created_at=BASE_TIME + timedelta(seconds=i),
        ))
    await db.commit()


def _message(message_id: str, conversation_id: str = "c1", **kwargs) -> ChatMessage:
    fields = dict(
        message_id=message_id,
        conversation_id=conversation_id,
        parent_message_id=NO_PARENT,
        sender="User",
        text="hello",
        is_created_by_user=True,
    )
    fields.update(kwargs)
    return ChatMessage(**fields)


class TestSaveMessage:

    @pytest.mark.anyio
    async def test_creates_conversation_and_message(self, db_session: AsyncSession) -> None:

        await save_message(db_session, USER, _message("m1", endpoint="agents"))
        await db_session.commit()

        conversation = await get_conversation(db_session, "c1", USER)
        assert conversation is not None
        assert conversation.endpoint == "agents"
        assert conversation.title is None
        row = await db_session.get(Message, "m1")
        assert row.text == "hello"
        assert row.is_created_by_user is True

    @pytest.mark.anyio
    async def test_upsert_updates_text(self, db_session: AsyncSession) -> None:

        await save_message(db_session, USER, _message("m1"))
        await save_message(db_session, USER, _message("m1", text="edited", token_count=7))
        await db_session.commit()

        row = await db_session.get(Message, "m1")
        assert row.text == "edited"
        assert row.token_count == 7

    @pytest.mark.anyio
    async def test_text_from_content_parts(self, db_session: AsyncSession) -> None:

        message = _message("m2", text=None, content=[ContentPart(text="from parts")], is_created_by_user=False)
        row = await save_message(db_session, USER, message)
        assert row.text == "from parts"

    @pytest.mark.anyio
    async def test_other_users_conversation_rejected(self, db_session: AsyncSession) -> None:

        await save_message(db_session, OTHER, _message("m1"))
        with pytest.raises(PermissionError):
            await save_message(db_session, USER, _message("m2"))


class TestRecentMessages:

    @pytest.mark.anyio
    async def test_oldest_first_and_limited(self, db_session: AsyncSession) -> None:

        await _seed(db_session, "c1", [(True, "q1"), (False, "a1"), (True, "q2"), (False, "a2")])

        messages = await get_recent_messages(db_session, "c1", USER, limit=3)
        assert [m.text for m in messages] == ["a1", "q2", "a2"]

    @pytest.mark.anyio
    async def test_scoped_to_owner(self, db_session: AsyncSession) -> None:

        await _seed(db_session, "c1", [(True, "secret")], user_id=OTHER)
        assert await get_recent_messages(db_session, "c1", USER, limit=5) == []

    @pytest.mark.anyio
    async def test_load_chat_history_skips_errors(self, db_session: AsyncSession) -> None:

        await _seed(db_session, "c1", [(True, "q1"), (False, "a1")])
        db_session.add(Message(
            id="c1-err", conversation_id="c1", user_id=USER, sender="Assistant",
            text="An error occurred", error=True, created_at=BASE_TIME + timedelta(seconds=5),
        ))
        await db_session.commit()

        history = await load_chat_history("c1", USER, limit=10)
        assert history == [
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
        ]


class TestFormatHistory:

    @pytest.mark.anyio
    async def test_transcript_lines(self, db_session: AsyncSession) -> None:

        await _seed(db_session, "c1", [(True, "What is 2+2?"), (False, "4.")])
        messages = await get_recent_messages(db_session, "c1", USER, limit=5)

        assert format_history(messages) == "Student: What is 2+2?\nAI Assistant: 4."
        assert format_history(messages, "And 3+3?").endswith("\nStudent: And 3+3?")

    def test_empty(self) -> None:

        assert format_history([]) == ""
        assert format_history([], "hi") == "Student: hi"


class TestTitles:

    @pytest.mark.anyio
    async def test_set_title(self, db_session: AsyncSession) -> None:

        await _seed(db_session, "c1", [])
        assert await set_title(db_session, "c1", USER, "Prime numbers")
        assert not await set_title(db_session, "c1", OTHER, "Hijack")
        conversation = await get_conversation(db_session, "c1", USER)
        assert conversation.title == "Prime numbers"

    @pytest.mark.anyio
    async def test_persist_title_own_session(self, db_session: AsyncSession) -> None:

        await _seed(db_session, "c1", [])
        assert await persist_title("c1", USER, "Fractions")
        info = await load_conversation_info("c1", USER)
        assert info.title == "Fractions"


class TestConversationInfo:

    def test_unknown_conversation(self) -> None:

        info = conversation_info(None, "c9", endpoint="agents", model="m")
        assert info.to_wire() == {
            "conversationId": "c9", "title": None, "endpoint": "agents", "model": "m",
        }

    def test_empty_title_reported_as_none(self) -> None:

        info = conversation_info(Conversation(id="c1", user_id=USER, title=""), "c1")
        assert info.title is None


class TestPersistMessage:

    @pytest.mark.anyio
    async def test_saves_for_session_user(self, db_session: AsyncSession) -> None:

        session = RequestSession(user_id=USER)
        await persist_message(session, _message("m1"), "test")
        messages = await get_recent_messages(db_session, "c1", USER, limit=5)
        assert [m.id for m in messages] == ["m1"]

    @pytest.mark.anyio
    async def test_requires_user(self, db_session: AsyncSession) -> None:

        with pytest.raises(ValueError):
            await persist_message(RequestSession(), _message("m1"), "test")
