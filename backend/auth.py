"""
Authentication for Enfield.

Resolves the owner identity of a request: a signed session JWT first, then
(development only) the X-User-Id header, the userId query parameter and
DEFAULT_USER_ID.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Annotated

import jwt
from fastapi import Cookie, Header, HTTPException, Query, status

from backend import config


def create_jwt(owner_id: str) -> str:
    """
    Create a JWT for an owner session.

    Args:
        owner_id: Identity string to encode as `sub`

    Returns:
        Signed JWT string
    """
    now = datetime.now(UTC)
    payload = {
        "sub": owner_id,
        "exp": now + timedelta(hours=config.settings.JWT_EXPIRY_HOURS),
        "iat": now,
    }
    return jwt.encode(payload, config.settings.JWT_SECRET, algorithm=config.settings.JWT_ALGORITHM)


def decode_jwt(token: str) -> dict:
    """
    Decode and verify a JWT.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(token, config.settings.JWT_SECRET, algorithms=[config.settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please sign in again.",
        ) from e
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token. Please sign in again.",
        ) from e


def owner_from_token(token: str) -> str:
    payload = decode_jwt(token)
    owner_id = payload.get("sub")
    if not isinstance(owner_id, str) or not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token. Please sign in again.",
        )
    return owner_id


async def get_current_owner(
    session: Annotated[str | None, Cookie()] = None,
    authorization: Annotated[str | None, Header()] = None,
    x_user_id: Annotated[str | None, Header()] = None,
    user_id: Annotated[str | None, Query(alias="userId")] = None,
) -> str:
    """
    FastAPI dependency returning the owner id for the request.

    Tries the Bearer token (CLI), then the session cookie (browser). When
    header identity is allowed, falls back to X-User-Id, then ?userId=,
    then DEFAULT_USER_ID.

    Raises:
        HTTPException: If no identity can be established
    """
    if authorization and authorization.startswith("Bearer "):
        return owner_from_token(authorization.removeprefix("Bearer ").strip())

    if session:
        return owner_from_token(session)

    if config.settings.ALLOW_HEADER_IDENTITY:
        return x_user_id or user_id or config.settings.DEFAULT_USER_ID

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated. Please sign in.",
    )
