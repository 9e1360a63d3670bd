"""Pytest configuration and fixtures."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from personality_engine.api.routes import agents
from personality_engine.config import NO_PARENT, settings
from personality_engine.core.cancellation import (
    CancellationRegistry,
    reset_cancellation_registry,
)
from personality_engine.core.orchestrator import SessionOrchestrator
from personality_engine.core.session import GenerationResult, MessageOptions
from personality_engine.db import database
from personality_engine.db.database import Base, get_db
from personality_engine.main import app
from personality_engine.models.messages import ChatMessage, ContentPart, ConversationInfo

TEST_SECRET = "test_secret_32chars_for_unit_tests!!"
TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"
OTHER_USER_ID = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _test_settings():
    """Signing secret and a dummy OpenRouter key for every test."""
    with patch.object(settings, "access_token_secret", TEST_SECRET), \
            patch.object(settings, "openrouter_api_key", "sk-test"):
        yield


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset process-wide state between tests to prevent cross-test pollution."""
    yield
    reset_cancellation_registry()
    agents.limiter.reset()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def db_session():
    """Create an in-memory test database session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    # Inject so AsyncSessionLocal() in the services uses the test DB
    old_engine = database._engine
    old_factory = database._session_factory
    database._engine = engine
    database._session_factory = async_session_factory
    try:
        async with async_session_factory() as session:
            async def override_get_db():
                yield session
            app.dependency_overrides[get_db] = override_get_db
            yield session
            app.dependency_overrides.pop(get_db, None)
    finally:
        database._engine = old_engine
        database._session_factory = old_factory
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db_session):
    """Create an async test client backed by the test database."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# -----------------------------------------------------------------------------
# Auth fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def auth_token():
    """JWT for the test user (1 hour)."""
    from personality_engine.auth.tokens import create_access_token
    return create_access_token(user_id=TEST_USER_ID, expires_hours=1)


@pytest.fixture
def auth_headers(auth_token):
    """Headers with Bearer token and JSON content type."""
    return {
        "Authorization": f"Bearer {auth_token}",
        "Content-Type": "application/json",
    }


@pytest.fixture
def other_auth_headers():
    """Headers for a second user."""
    from personality_engine.auth.tokens import create_access_token
    token = create_access_token(user_id=OTHER_USER_ID, expires_hours=1)
    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}


# -----------------------------------------------------------------------------
# Chat session fakes
# -----------------------------------------------------------------------------

class FakeGenerationClient:
    """Scripted generation client.

    ``on_generate`` runs after ``on_start`` and before any chunk is produced,
    which is where tests simulate aborts and disconnects.
    """

    def __init__(
        self,
        chunks: Sequence[str] = ("Hello", " there!"),
        error: Optional[BaseException] = None,
        on_generate: Optional[Callable[[MessageOptions], Awaitable[None]]] = None,
        prompt_tokens: int = 12,
        title: Optional[str] = None,
    ) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.on_generate = on_generate
        self.prompt_tokens = prompt_tokens
        self.title = title
        self.saved_message_ids: set[str] = set()
        self.skip_save_user_message = False
        self.content_parts: list[dict[str, Any]] = []
        self.sent: list[tuple[str, MessageOptions]] = []
        self.close = AsyncMock()

    async def send_message(self, text: str, options: MessageOptions) -> GenerationResult:
        self.sent.append((text, options))
        conversation_id = options.conversation_id or "conv-1"
        user_message = ChatMessage(
            message_id="user-msg-1",
            conversation_id=conversation_id,
            parent_message_id=options.parent_message_id or NO_PARENT,
            sender="User",
            text=text,
            is_created_by_user=True,
        )
        options.get_req_data(
            user_message=user_message,
            conversation_id=conversation_id,
            response_message_id="resp-msg-1",
            sender="Assistant",
        )
        options.on_start(user_message.to_wire())

        if self.on_generate is not None:
            await self.on_generate(options)
        if self.error is not None:
            raise self.error

        for chunk in self.chunks:
            if options.abort_token.is_signaled:
                break
            if not self.content_parts:
                self.content_parts.append({"type": "text", "text": ""})
            self.content_parts[0]["text"] += chunk
            if options.on_progress is not None:
                options.on_progress(chunk)
        options.get_req_data(prompt_tokens=self.prompt_tokens)

        reply = self.content_parts[0]["text"] if self.content_parts else ""
        return GenerationResult(
            response=ChatMessage(
                message_id="resp-msg-1",
                conversation_id=conversation_id,
                parent_message_id="user-msg-1",
                sender="Assistant",
                text=reply,
                content=[ContentPart(text=reply)],
            ),
            conversation=ConversationInfo(conversation_id=conversation_id, title=self.title),
        )


@dataclass
class OrchestratorHarness:
    orchestrator: SessionOrchestrator
    client: FakeGenerationClient
    initialize_client: AsyncMock
    save_message: AsyncMock
    add_title: AsyncMock
    report_error: AsyncMock
    transformer: MagicMock
    registry: CancellationRegistry


def _end_channel(channel, error, context):
    channel.end()


@pytest.fixture
def make_harness():
    """Build a SessionOrchestrator over a FakeGenerationClient and mock collaborators."""

    def _make(
        client: Optional[FakeGenerationClient] = None,
        rewrite: Optional[Callable[..., Any]] = None,
        registry: Optional[CancellationRegistry] = None,
    ) -> OrchestratorHarness:
        client = client or FakeGenerationClient()
        if registry is None:
            registry = CancellationRegistry()
        transformer = MagicMock()
        transformer.transform = AsyncMock(
            side_effect=rewrite or (lambda text, profile_id, *args, **kwargs: text)
        )
        initialize_client = AsyncMock(return_value=client)
        save_message = AsyncMock()
        add_title = AsyncMock(return_value="Greeting")
        report_error = AsyncMock(side_effect=_end_channel)
        orchestrator = SessionOrchestrator(
            initialize_client=initialize_client,
            save_message=save_message,
            add_title=add_title,
            report_error=report_error,
            transformer=transformer,
            registry=registry,
        )
        return OrchestratorHarness(
            orchestrator=orchestrator,
            client=client,
            initialize_client=initialize_client,
            save_message=save_message,
            add_title=add_title,
            report_error=report_error,
            transformer=transformer,
            registry=registry,
        )

    return _make


@pytest.fixture
def fake_client_cls():
    return FakeGenerationClient
