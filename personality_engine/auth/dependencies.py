"""
FastAPI Authentication Dependencies

Protects the personality and agent endpoints with access token validation.
"""
from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from personality_engine.auth.tokens import AccessCodeError, TokenClaims, validate_access_code

logger = logging.getLogger(__name__)

# auto_error=False so missing credentials get our own 401 message
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_valid_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> TokenClaims:
    """
    FastAPI dependency that validates access tokens.

    Checks:
    1. Token is present
    2. Token signature is valid
    3. Token has not expired
    4. Token names a user (``sub``)

    Raises:
        HTTPException 401: If any check fails
    """
    if credentials is None:
        logger.warning("Access attempt without token")
        raise _unauthorized("Access code required. Please provide a valid access code.")

    try:
        claims = validate_access_code(credentials.credentials)
    except AccessCodeError as e:
        logger.warning("Invalid token: %s", e)
        raise _unauthorized("Invalid or expired access code.")

    if not claims.get("sub"):
        logger.warning("Token without user id rejected")
        raise _unauthorized("Access code is not bound to a user.")

    logger.debug(f"Valid token, expires at {claims['exp']}")
    return claims
