"""Tests for access token generation, validation and the auth dependency."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from personality_engine.auth.dependencies import require_valid_token
from personality_engine.auth.tokens import (
    AccessCodeError,
    create_access_token,
    generate_access_code,
    validate_access_code,
)
from personality_engine.config import settings

TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"


def _encode(payload: dict) -> str:
    return jwt.encode(payload, settings.access_token_secret, algorithm="HS256")


def _creds(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestGenerateAccessCode:

    def test_round_trip_with_user(self) -> None:

        token = generate_access_code(user_id=TEST_USER_ID, duration_hours=1)
        claims = validate_access_code(token)
        assert claims["type"] == "access"
        assert claims["sub"] == TEST_USER_ID
        assert claims["exp"] - claims["iat"] == 3600

    def test_durations_add_up(self) -> None:

        token = generate_access_code(duration_days=1, duration_minutes=30)
        claims = validate_access_code(token)
        assert claims["exp"] - claims["iat"] == 24 * 3600 + 1800
        assert "sub" not in claims

    def test_duration_required(self) -> None:

        with pytest.raises(AccessCodeError, match="at least one"):
            generate_access_code(user_id=TEST_USER_ID)

    def test_secret_required(self) -> None:

        with patch.object(settings, "access_token_secret", None):
            with pytest.raises(AccessCodeError, match="not configured"):
                generate_access_code(duration_hours=1)

    def test_create_access_token_alias(self) -> None:

        claims = validate_access_code(create_access_token(user_id="u1", expires_days=2))
        assert claims["sub"] == "u1"


class TestValidateAccessCode:

    def test_expired(self) -> None:

        now = datetime.now(timezone.utc)
        token = _encode({
            "type": "access",
            "iat": int((now - timedelta(hours=2)).timestamp()),
            "exp": int((now - timedelta(hours=1)).timestamp()),
        })
        with pytest.raises(AccessCodeError, match="expired"):
            validate_access_code(token)

    def test_wrong_signature(self) -> None:

        token = jwt.encode({"type": "access", "iat": 0, "exp": 2**31}, "other-secret-other-secret-123456", algorithm="HS256")
        with pytest.raises(AccessCodeError, match="Invalid access code"):
            validate_access_code(token)

    def test_wrong_type(self) -> None:

        now = int(datetime.now(timezone.utc).timestamp())
        with pytest.raises(AccessCodeError, match="Invalid token type"):
            validate_access_code(_encode({"type": "refresh", "iat": now, "exp": now + 60}))

    def test_non_string_sub(self) -> None:

        now = int(datetime.now(timezone.utc).timestamp())
        token = _encode({"type": "access", "iat": now, "exp": now + 60, "sub": 42})
        with pytest.raises(AccessCodeError):
            validate_access_code(token)

    def test_garbage(self) -> None:

        with pytest.raises(AccessCodeError):
            validate_access_code("not.a.jwt")


class TestRequireValidToken:

    @pytest.mark.asyncio
    async def test_valid_token(self) -> None:

        claims = await require_valid_token(_creds(create_access_token(TEST_USER_ID, expires_hours=1)))
        assert claims["sub"] == TEST_USER_ID

    @pytest.mark.asyncio
    async def test_missing_credentials(self) -> None:

        with pytest.raises(HTTPException) as exc_info:
            await require_valid_token(None)
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    @pytest.mark.asyncio
    async def test_invalid_token(self) -> None:

        with pytest.raises(HTTPException) as exc_info:
            await require_valid_token(_creds("garbage"))
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_token_without_user(self) -> None:

        with pytest.raises(HTTPException) as exc_info:
            await require_valid_token(_creds(generate_access_code(duration_hours=1)))
        assert exc_info.value.status_code == 401
        assert "not bound to a user" in exc_info.value.detail
