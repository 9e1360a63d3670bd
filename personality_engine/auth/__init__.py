"""
Authentication module for the Personality Engine.

Provides JWT-based access token generation and validation.
"""
from __future__ import annotations

from personality_engine.auth.dependencies import require_valid_token
from personality_engine.auth.tokens import (
    AccessCodeError,
    TokenClaims,
    create_access_token,
    generate_access_code,
    validate_access_code,
)

__all__ = [
    "AccessCodeError",
    "TokenClaims",
    "create_access_token",
    "generate_access_code",
    "require_valid_token",
    "validate_access_code",
]
