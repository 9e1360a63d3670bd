"""
Bearer tokens for the chat API.

A token is an HS-signed JWT of type ``access``.  Its ``sub`` claim is the
user id that owns conversations, abort keys and style profiles; nothing
about it is stored server side.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from typing_extensions import Required, TypedDict

from personality_engine.config import settings

TOKEN_TYPE = "access"


class AccessCodeError(Exception):
    """A token could not be issued or did not verify."""


class TokenClaims(TypedDict, total=False):
    type: Required[str]
    iat: Required[int]
    exp: Required[int]
    sub: str


def _signing_key() -> str:
    key = settings.access_token_secret
    if not key:
        raise AccessCodeError("PERSONA_ACCESS_TOKEN_SECRET is not configured")
    return key


def generate_access_code(
    user_id: str | None = None,
    duration_hours: int | None = None,
    duration_days: int | None = None,
    duration_minutes: int | None = None,
) -> str:
    """Issue a token for ``user_id`` valid for the summed duration."""
    key = _signing_key()

    lifetime = timedelta(
        days=duration_days or 0,
        hours=duration_hours or 0,
        minutes=duration_minutes or 0,
    )
    if lifetime <= timedelta(0):
        raise AccessCodeError(
            "Token lifetime needs at least one of duration_hours, duration_days, duration_minutes"
        )

    issued = datetime.now(timezone.utc)
    payload: dict[str, object] = {
        "type": TOKEN_TYPE,
        "iat": int(issued.timestamp()),
        "exp": int((issued + lifetime).timestamp()),
    }
    if user_id:
        payload["sub"] = user_id
    return jwt.encode(payload, key, algorithm=settings.access_token_algorithm)


def create_access_token(
    user_id: str | None = None,
    expires_hours: int | None = None,
    expires_days: int | None = None,
) -> str:
    return generate_access_code(
        user_id=user_id,
        duration_hours=expires_hours,
        duration_days=expires_days,
    )


def validate_access_code(token: str) -> TokenClaims:
    """Verify signature, expiry and claim types; return the claims."""
    key = _signing_key()

    try:
        payload = jwt.decode(token, key, algorithms=[settings.access_token_algorithm])
    except jwt.ExpiredSignatureError:
        raise AccessCodeError("Access code has expired") from None
    except jwt.InvalidTokenError as e:
        raise AccessCodeError(f"Invalid access code: {e}") from e

    if payload.get("type") != TOKEN_TYPE:
        raise AccessCodeError("Invalid token type")

    iat, exp = payload.get("iat", 0), payload.get("exp", 0)
    if not (isinstance(iat, int) and isinstance(exp, int)):
        raise AccessCodeError("Malformed token: iat and exp must be integers")
    claims = TokenClaims(type=TOKEN_TYPE, iat=iat, exp=exp)

    sub = payload.get("sub")
    if sub is not None:
        if not isinstance(sub, str):
            raise AccessCodeError("Malformed token: sub must be a string")
        claims["sub"] = sub
    return claims
