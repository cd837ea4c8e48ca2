# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication: JWT issuance, signed OAuth state and request identity resolution."""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skyrden_portal.config import settings
from skyrden_portal.database import get_db
from skyrden_portal.errors import AuthenticationRequired, AuthorizationDenied
from skyrden_portal.models import User

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = "skyrden_auth"
AUTH_COOKIE_MAX_AGE = 7 * 24 * 60 * 60
SESSION_USER_KEY = "user_id"
GITHUB_STATE_PURPOSE = "github-link"
GITHUB_STATE_TTL = timedelta(hours=1)

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
        return payload
    except JWTError:
        return None


def create_user_token(user: User) -> str:
    """Auth token for the cookie and the redirect fallback. Claims are informational;
    permissions are always re-read from the database."""
    return create_access_token(
        {
            "sub": str(user.id),
            "username": user.discord_username,
            "is_admin": user.is_admin,
            "roblox_username": user.roblox_username,
        }
    )


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        AUTH_COOKIE_NAME,
        token,
        max_age=AUTH_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="none" if settings.cookie_secure else "lax",
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        AUTH_COOKIE_NAME,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="none" if settings.cookie_secure else "lax",
    )


def create_github_state(user: User) -> str:
    """Signed, self-contained OAuth state for the GitHub link flow.

    No session is assumed to survive the round trip, so the initiating user is
    carried inside the state itself and protected by the token signature.
    """
    return create_access_token(
        {
            "purpose": GITHUB_STATE_PURPOSE,
            "user_id": user.id,
            "discord_id": user.discord_id,
            "nonce": secrets.token_urlsafe(16),
        },
        expires_delta=GITHUB_STATE_TTL,
    )


def verify_github_state(state: str | None) -> dict[str, Any] | None:
    """Return the state payload if the signature, expiry and purpose all check out."""
    if not state:
        return None
    payload = decode_token(state)
    if not payload or payload.get("purpose") != GITHUB_STATE_PURPOSE:
        return None
    if not isinstance(payload.get("user_id"), int) or not payload.get("discord_id"):
        return None
    return payload


def user_id_from_token(token: str | None) -> int | None:
    if not token:
        return None
    payload = decode_token(token)
    if not payload or payload.get("purpose"):
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None


async def load_user(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def resolve_user(
    request: Request,
    db: AsyncSession,
    credentials: HTTPAuthorizationCredentials | None = None,
) -> User | None:
    """Session first, then the auth cookie, then a Bearer header.

    A valid token re-hydrates the session. Bad tokens mean "not logged in".
    """
    session_user_id = request.session.get(SESSION_USER_KEY)
    if session_user_id is not None:
        user = await load_user(db, int(session_user_id))
        if user:
            return user
        request.session.pop(SESSION_USER_KEY, None)

    for token in (
        request.cookies.get(AUTH_COOKIE_NAME),
        credentials.credentials if credentials else None,
    ):
        user_id = user_id_from_token(token)
        if user_id is None:
            continue
        user = await load_user(db, user_id)
        if user:
            request.session[SESSION_USER_KEY] = user.id
            return user
    return None


async def get_optional_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Current user if any; never raises."""
    return await resolve_user(request, db, credentials)


async def get_current_user(
    user: User | None = Depends(get_optional_user),
) -> User:
    """Current user. Raises 401 if not logged in."""
    if user is None:
        raise AuthenticationRequired()
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency: require admin user."""
    if not user.is_admin:
        raise AuthorizationDenied()
    return user
