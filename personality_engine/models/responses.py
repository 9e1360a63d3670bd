"""Response models for the Personality Engine API."""
from __future__ import annotations

from typing import Any, Optional

from personality_engine.models.base import CamelModel


class ProfileSummary(CamelModel):
    id: str
    name: str
    description: str


class ProfilesResponse(CamelModel):
    personalities: list[ProfileSummary]


class TransformResponse(CamelModel):
    original_response: str
    transformed_response: str
    personality_id: str
    success: bool = True


class AbortResponse(CamelModel):
    aborted: bool
    abort_key: str
    partial: Optional[dict[str, Any]] = None
