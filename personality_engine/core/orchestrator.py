"""
Chat session orchestrator.

Drives one chat exchange from request to cleanup:

    INITIALIZING         acquire the generation client, register the abort
                         token, watch the client's stream for disconnects
    AWAITING_GENERATION  run the backend
    TRANSFORMING         personality rewrite (best-effort, optional)
    DELIVERING           send the final event, persist, start the title task
    CLEANING_UP          release everything registered above

Every session ends in exactly one of DONE, ABORTED or FAILED, and the
cleanup registry runs exactly once on all three paths.  The abort token is
re-checked before every externally visible side effect.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Awaitable, Callable, Optional

from personality_engine.config import NEUTRAL_PERSONALITY, NO_PARENT
from personality_engine.core.cancellation import (
    CancellationRegistry,
    CancellationToken,
    get_cancellation_registry,
)
from personality_engine.core.cleanup import CleanupRegistry, dispose_client, idempotent
from personality_engine.core.session import (
    ErrorContext,
    GenerationClient,
    MessageOptions,
    RequestSession,
    SessionStatus,
)
from personality_engine.core.sse_utils import SSEChannel
from personality_engine.models.messages import ChatMessage, ConversationInfo
from personality_engine.models.requests import ChatRequest
from personality_engine.personality.engine import StyleTransformer, should_skip
from personality_engine.protocol.events import ContentEvent, CreatedEvent, FinalEvent

logger = logging.getLogger(__name__)

InitializeClient = Callable[[Optional[str]], Awaitable[GenerationClient]]
SaveMessage = Callable[[RequestSession, ChatMessage, str], Awaitable[None]]
AddTitle = Callable[[RequestSession, str, ChatMessage], Awaitable[Optional[str]]]
ReportError = Callable[[SSEChannel, BaseException, ErrorContext], Awaitable[None]]


def new_abort_key(user_id: str) -> str:
    return f"{user_id}:{uuid.uuid4().hex}"


def abort_key_owner(abort_key: str) -> str:
    """User id an abort key was issued to."""
    return abort_key.rsplit(":", 1)[0]


def resolve_personality(body_value: Optional[str], header_value: Optional[str]) -> str:
    """Body field first, then the X-Personality header, else neutral."""
    return body_value or header_value or NEUTRAL_PERSONALITY


class SessionOrchestrator:
    """Runs chat sessions against injected collaborators."""

    def __init__(
        self,
        initialize_client: InitializeClient,
        save_message: SaveMessage,
        add_title: AddTitle,
        report_error: ReportError,
        transformer: StyleTransformer,
        registry: Optional[CancellationRegistry] = None,
    ) -> None:
        self._initialize_client = initialize_client
        self._save_message = save_message
        self._add_title = add_title
        self._report_error = report_error
        self._transformer = transformer
        self._registry = registry if registry is not None else get_cancellation_registry()

    async def run(
        self,
        channel: SSEChannel,
        request: ChatRequest,
        user_id: str,
        personality_header: Optional[str] = None,
        abort_key: Optional[str] = None,
    ) -> SessionStatus:
        """Run one session to a terminal state and return that state."""
        key = abort_key or new_abort_key(user_id)
        session = RequestSession(
            user_id=user_id,
            conversation_id=request.conversation_id,
            parent_message_id=request.parent_message_id,
            override_parent_message_id=request.override_parent_message_id,
            abort_key=key,
        )
        cleanup = CleanupRegistry(name=key)
        token: Optional[CancellationToken] = None
        title_task: Optional[asyncio.Task[Optional[str]]] = None
        outcome = SessionStatus.FAILED
        started = time.monotonic()

        try:
            session.transition(SessionStatus.INITIALIZING)
            client = await self._initialize_client(request.model)
            session.client = client

            async def _dispose() -> None:
                await dispose_client(client)

            cleanup.push(idempotent(_dispose))

            def _on_created(user_message: dict) -> None:
                channel.send(CreatedEvent(message=user_message, abort_key=key))

            token, on_start = self._registry.register(key, session.snapshot, _on_created)
            cleanup.push(idempotent(lambda: self._registry.clear(key)))

            def _on_close() -> None:
                if token is not None and token.is_armed:
                    logger.info(f"🔌 Client stream closed before completion: {key}")
                    token.signal()

            channel.on_close(_on_close)
            cleanup.push(idempotent(lambda: channel.remove_close_listener(_on_close)))

            def _on_progress(text: str) -> None:
                if token is not None and not token.is_signaled:
                    channel.send(ContentEvent(text=text, message_id=session.response_message_id))

            session.transition(SessionStatus.AWAITING_GENERATION)
            result = await client.send_message(
                request.text,
                MessageOptions(
                    user_id=user_id,
                    conversation_id=request.conversation_id,
                    parent_message_id=request.parent_message_id,
                    abort_token=token,
                    on_start=on_start,
                    get_req_data=session.apply,
                    on_progress=_on_progress,
                    override_parent_message_id=request.override_parent_message_id,
                    response_message_id=request.response_message_id,
                    is_regenerate=request.is_regenerate,
                    is_continued=request.is_continued,
                    edited_content=request.edited_content,
                    endpoint=request.endpoint,
                    model=request.model,
                ),
            )

            if token.is_signaled:
                outcome = SessionStatus.ABORTED
                logger.info(f"⏹️ Session aborted during generation: {key}")
            else:
                response = result.response
                transformed = False
                original_text = response.primary_text()
                profile_id = resolve_personality(request.personality, personality_header)

                if not should_skip(original_text, profile_id):
                    session.transition(SessionStatus.TRANSFORMING)
                    try:
                        rewritten = await self._transformer.transform(original_text, profile_id)  # type: ignore[arg-type]
                    except Exception as e:
                        logger.error(f"❌ Personality rewrite raised: {e}")
                        rewritten = original_text
                    if rewritten and rewritten != original_text:
                        response.replace_text(rewritten)
                        transformed = True

                session.transition(SessionStatus.DELIVERING)
                if token.is_signaled:
                    outcome = SessionStatus.ABORTED
                    logger.info(f"⏹️ Session aborted before delivery: {key}")
                else:
                    conversation = result.conversation or ConversationInfo(
                        conversation_id=response.conversation_id,
                    )
                    user_message = session.user_message
                    channel.send(FinalEvent(
                        conversation=conversation.to_wire(),
                        title=conversation.title,
                        request_message=user_message.to_wire() if user_message else None,
                        response_message=response.to_wire(),
                        transformed=transformed,
                    ))
                    token.mark_completed()
                    channel.end()
                    outcome = SessionStatus.DONE

                    if response.message_id not in client.saved_message_ids and not token.is_signaled:
                        await self._save_message(session, response, "api/agents/chat - response end")
                        client.saved_message_ids.add(response.message_id)

                    if (
                        user_message is not None
                        and not client.skip_save_user_message
                        and not token.is_signaled
                    ):
                        await self._save_message(session, user_message, "api/agents/chat - user message")

                    is_new_conversation = not request.conversation_id
                    if (request.parent_message_id or NO_PARENT) == NO_PARENT and is_new_conversation:
                        title_task = asyncio.create_task(
                            self._add_title(session, request.text, response)
                        )

        except Exception as e:
            outcome = SessionStatus.FAILED
            logger.error(f"❌ Chat session {key} failed: {e}")
            context = ErrorContext(
                conversation_id=session.conversation_id,
                sender=session.sender,
                message_id=session.response_message_id,
                parent_message_id=session.parent_message_id,
                user_message_id=session.user_message_id,
                override_parent_message_id=session.override_parent_message_id,
                user_id=user_id,
            )
            try:
                await self._report_error(channel, e, context)
            except Exception as report_exc:
                logger.error(f"Error reporter failed for {key}: {report_exc}")

        except asyncio.CancelledError:
            # Server shutdown; nothing more reaches the client
            outcome = SessionStatus.ABORTED
            logger.info(f"⏹️ Session task cancelled: {key}")
            raise

        finally:
            try:
                if title_task is not None:
                    try:
                        title = await title_task
                        if title:
                            logger.info(f"📝 Conversation titled: '{title}'")
                    except Exception as e:
                        logger.warning(f"Title generation failed for {key}: {e}")
            finally:
                await self._clean_up(session, cleanup, token, channel, outcome, started)

        return outcome

    async def _clean_up(
        self,
        session: RequestSession,
        cleanup: CleanupRegistry,
        token: Optional[CancellationToken],
        channel: SSEChannel,
        outcome: SessionStatus,
        started: float,
    ) -> None:
        """CLEANING_UP: runs on every outcome, including task cancellation."""
        session.transition(SessionStatus.CLEANING_UP)
        failures = await cleanup.run_all()
        if token is not None and not token.is_signaled:
            token.mark_completed()
        channel.end()
        session.transition(outcome)
        session.clear()

        elapsed = time.monotonic() - started
        logger.info(
            f"🏁 Session {session.abort_key} finished: {outcome.value} in {elapsed:.1f}s"
            + (f", {failures} cleanup failures" if failures else "")
        )
