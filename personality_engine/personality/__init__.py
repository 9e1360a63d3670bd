"""Personality profiles, prompt composition and the rewrite stage."""

from personality_engine.personality.engine import StyleTransformer, get_style_transformer
from personality_engine.personality.profiles import (
    ProfileLoadError,
    ProfileNotFoundError,
    StyleProfile,
    StyleProfileStore,
    get_profile_store,
)
from personality_engine.personality.prompt import TransformationRequest, compose_prompt

__all__ = [
    "ProfileLoadError",
    "ProfileNotFoundError",
    "StyleProfile",
    "StyleProfileStore",
    "StyleTransformer",
    "TransformationRequest",
    "compose_prompt",
    "get_profile_store",
    "get_style_transformer",
]
