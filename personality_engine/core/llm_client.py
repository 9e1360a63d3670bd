"""
LLM Client for the Personality Engine.

Provides a thin interface over OpenRouter's OpenAI-compatible API:
- Non-streaming completions with retry (personality rewrites, titles)
- Streaming completions (chat generation) yielding content deltas
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Optional

import httpx

from personality_engine.config import settings

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM provider (OpenRouter only)."""
    OPENROUTER = "openrouter"


@dataclass
class LLMResponse:
    """Response from the LLM."""
    content: Optional[str] = None
    finish_reason: Optional[str] = None
    usage: Optional[dict[str, Any]] = None

    @property
    def prompt_tokens(self) -> int:
        return int((self.usage or {}).get("prompt_tokens", 0) or 0)

    @property
    def completion_tokens(self) -> int:
        return int((self.usage or {}).get("completion_tokens", 0) or 0)


class LLMClient:
    """
    Async OpenRouter client.

    One instance owns one ``httpx.AsyncClient``; call ``close()`` when done.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.provider = provider or settings.llm_provider
        self.api_key = api_key or self._get_api_key()
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout
        self.base_url = self._get_base_url()
        self._client: Optional[httpx.AsyncClient] = None

    def _get_api_key(self) -> str:
        if self.provider == LLMProvider.OPENROUTER:
            key = settings.openrouter_api_key
            if key is None:
                raise ValueError("OpenRouter API key not configured")
            return key
        raise ValueError(f"No API key configured for provider: {self.provider}")

    def _get_base_url(self) -> str:
        if self.provider == LLMProvider.OPENROUTER:
            return "https://openrouter.ai/api"
        raise ValueError(f"Unknown provider: {self.provider}")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self.api_key}"}
            if self.provider == LLMProvider.OPENROUTER:
                headers["X-Title"] = settings.app_name
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=headers)
        return self._client

    @property
    def is_closed(self) -> bool:
        return self._client is None

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def chat_completion(
        self,
        messages: list[dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        max_retries: int = 2,
    ) -> LLMResponse:
        """Send a chat completion request with retry logic."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else settings.llm_temperature,
            "max_tokens": max_tokens or settings.llm_max_tokens,
            "stream": False,
        }

        logger.debug(f"LLM request: model={self.model}, {len(messages)} messages")

        last_error: Optional[Exception] = None
        for attempt in range(max_retries + 1):
            if attempt > 0:
                backoff = 2 ** attempt
                logger.warning(f"Retry {attempt}/{max_retries} after {backoff}s")
                await asyncio.sleep(backoff)

            start = time.time()
            try:
                response = await self.client.post(
                    f"{self.base_url}/v1/chat/completions",
                    json=payload,
                )
                response.raise_for_status()

                duration = time.time() - start
                data = response.json()
                usage = data.get("usage", {})
                logger.info(
                    f"LLM: {duration:.2f}s, {usage.get('prompt_tokens', 0)} prompt, "
                    f"{usage.get('completion_tokens', 0)} completion tokens"
                )
                return self._parse_response(data)

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code == 400:
                    logger.error(f"400 Bad Request: {e.response.text[:500]}")
                if e.response.status_code in (429, 500, 502, 503, 504):
                    continue
                raise
            except httpx.TransportError as e:
                last_error = e
                continue

        raise last_error or RuntimeError("LLM request failed after retries")

    async def chat_completion_stream(
        self,
        messages: list[dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a chat completion.

        Yields ``{"type": "content_delta", "text": ...}`` for each content
        chunk and a final ``{"type": "done", "content", "finish_reason",
        "usage"}``.
        """
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature if temperature is not None else settings.llm_temperature,
            "max_tokens": max_tokens or settings.llm_max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }

        accumulated_content: list[str] = []
        finish_reason = None
        usage: dict[str, Any] = {}

        try:
            async with self.client.stream(
                "POST", f"{self.base_url}/v1/chat/completions", json=payload
            ) as response:
                if response.status_code != 200:
                    error_text = await response.aread()
                    logger.error(
                        f"Stream error {response.status_code}: {error_text.decode()[:500]}"
                    )
                    response.raise_for_status()

                async for line in response.aiter_lines():
                    if not line or not line.startswith("data: "):
                        continue

                    data_str = line[6:]
                    if data_str.strip() == "[DONE]":
                        break

                    try:
                        chunk = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue

                    choices = chunk.get("choices") or [{}]
                    delta = choices[0].get("delta", {})

                    if delta.get("content"):
                        content = delta["content"]
                        accumulated_content.append(content)
                        yield {"type": "content_delta", "text": content}

                    if choices[0].get("finish_reason"):
                        finish_reason = choices[0]["finish_reason"]

                    if chunk.get("usage"):
                        usage = chunk["usage"]

        except httpx.HTTPError as e:
            logger.error(f"Stream HTTP error: {e}")
            raise

        yield {
            "type": "done",
            "content": "".join(accumulated_content) if accumulated_content else None,
            "finish_reason": finish_reason,
            "usage": usage,
        }

    def _parse_response(self, data: dict[str, Any]) -> LLMResponse:
        """Parse OpenAI-compatible response."""
        choices = data.get("choices") or [{}]
        message = choices[0].get("message") or {}
        return LLMResponse(
            content=message.get("content"),
            finish_reason=choices[0].get("finish_reason"),
            usage=data.get("usage"),
        )
