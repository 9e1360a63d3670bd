"""
Style transformation stage.

Rewrites an assistant reply so its tone matches a personality profile.
Strictly best-effort: every failure path returns the original text.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from personality_engine.config import NEUTRAL_PERSONALITY, settings
from personality_engine.core.llm_client import LLMClient
from personality_engine.personality.profiles import (
    StyleProfileStore,
    get_profile_store,
)
from personality_engine.personality.prompt import TransformationRequest

logger = logging.getLogger(__name__)

LLMFactory = Callable[[], LLMClient]


def _default_llm_factory() -> LLMClient:
    return LLMClient(model=settings.personality_model)


def should_skip(text: Optional[str], profile_id: Optional[str]) -> bool:
    """True when no rewrite should be attempted (and no call made)."""
    return not text or not profile_id or profile_id == NEUTRAL_PERSONALITY


class StyleTransformer:
    """Personality rewrite backed by an external chat completion."""

    def __init__(
        self,
        store: StyleProfileStore,
        llm_factory: LLMFactory = _default_llm_factory,
        context_label: Optional[str] = None,
    ) -> None:
        self._store = store
        self._llm_factory = llm_factory
        self._context_label = context_label or settings.transform_context_label

    async def transform(
        self,
        text: str,
        profile_id: Optional[str],
        history: str = "",
        context_label: Optional[str] = None,
    ) -> str:
        """Return ``text`` rewritten for ``profile_id``, or ``text`` unchanged.

        Never raises.  Neutral/empty inputs skip the external call entirely.
        """
        if should_skip(text, profile_id):
            return text

        logger.info(
            f"🎭 Transforming response: personality={profile_id}, {len(text)} chars"
        )
        llm: Optional[LLMClient] = None
        try:
            request = TransformationRequest(
                original_text=text,
                profile=self._store.get(profile_id),  # type: ignore[arg-type]
                history=history or "",
                context_label=context_label or self._context_label,
            )
            prompt = request.to_prompt()
            logger.debug(f"Personality prompt: {len(prompt)} chars")

            llm = self._llm_factory()
            response = await llm.chat_completion(
                messages=[{"role": "user", "content": prompt}],
                temperature=settings.personality_temperature,
                max_tokens=settings.personality_max_tokens,
            )
            if not isinstance(response.content, str):
                raise ValueError("Personality rewrite returned no text")
            rewritten = response.content.strip()
            if not rewritten:
                raise ValueError("Personality rewrite returned empty text")

            logger.info(
                f"✅ Personality rewrite applied: {profile_id}, {len(rewritten)} chars"
            )
            return rewritten
        except LookupError as e:
            logger.warning(f"Personality rewrite skipped: {e}")
            return text
        except Exception as e:
            logger.error(f"❌ Personality rewrite failed ({profile_id}): {e}")
            return text
        finally:
            if llm is not None:
                try:
                    await llm.close()
                except Exception as e:
                    logger.warning(f"Failed to close personality LLM client: {e}")


def get_style_transformer() -> StyleTransformer:
    """FastAPI dependency: transformer over the process-wide profile store."""
    return StyleTransformer(get_profile_store())
