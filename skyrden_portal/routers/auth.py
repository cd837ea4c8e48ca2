# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication API routes: Discord login, Roblox/GitHub linking, token fallback, logout."""

import logging
import secrets
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from skyrden_portal.api.schemas import AuthStatus, TokenLogin, UserResponse
from skyrden_portal.auth import (
    SESSION_USER_KEY,
    clear_auth_cookie,
    create_github_state,
    create_user_token,
    get_optional_user,
    load_user,
    set_auth_cookie,
    user_id_from_token,
    verify_github_state,
)
from skyrden_portal.config import settings
from skyrden_portal.database import get_db
from skyrden_portal.errors import AuthenticationRequired, UpstreamProviderError
from skyrden_portal.models import User
from skyrden_portal.models.timestamp import utcnow
from skyrden_portal.rate_limit import rate_limit_dep
from skyrden_portal.services import whitelist
from skyrden_portal.services.oauth import (
    DiscordOAuth,
    GitHubOAuth,
    OAuthProfile,
    RobloxOAuth,
    get_discord_oauth,
    get_github_oauth,
    get_roblox_oauth,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

DISCORD_STATE_KEY = "discord_oauth_state"
ROBLOX_STATE_KEY = "roblox_oauth_state"
ADMIN_LOGIN_KEY = "admin_login"
POST_LOGIN_REDIRECT_KEY = "post_login_redirect"


def _client_redirect(path: str = "/", **params: str | None) -> RedirectResponse:
    """Redirect back to the front end; OAuth errors travel as ?error=<code>."""
    base = urlsplit(settings.client_url.rstrip("/"))
    target = urlsplit(path)
    # Keep any query the stored post-login path already carries
    query = parse_qsl(target.query, keep_blank_values=True)
    query += [(k, v) for k, v in params.items() if v is not None]
    url = urlunsplit(
        (base.scheme, base.netloc, base.path + target.path, urlencode(query), target.fragment)
    )
    return RedirectResponse(url, status_code=302)


def _safe_redirect_path(value: str | None) -> str | None:
    """Only same-site relative paths are kept as post-login targets."""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return None
    return value


def _state_matches(expected: str | None, received: str | None) -> bool:
    if not expected or not received:
        return False
    return secrets.compare_digest(expected, received)


async def _upsert_discord_user(db: AsyncSession, profile: OAuthProfile) -> User:
    result = await db.execute(select(User).where(User.discord_id == profile.id))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(
            discord_id=profile.id,
            discord_username=profile.username,
            discord_avatar=profile.extra.get("avatar"),
            discord_email=profile.extra.get("email"),
        )
        db.add(user)
        logger.info("Creating user for discord_id=%s", profile.id)
    else:
        user.discord_username = profile.username
        user.discord_avatar = profile.extra.get("avatar")
        user.discord_email = profile.extra.get("email")
        user.last_login = utcnow()
    await db.flush()
    return user


@router.get("/status", response_model=AuthStatus)
async def auth_status(user: User | None = Depends(get_optional_user)) -> AuthStatus:
    """Who is logged in, from the session or the auth cookie. Never fails."""
    if user is None:
        return AuthStatus(authenticated=False)
    return AuthStatus(authenticated=True, user=UserResponse.model_validate(user))


@router.get("/discord", name="discord_login")
async def discord_login(
    request: Request,
    redirect: str | None = None,
    oauth: DiscordOAuth = Depends(get_discord_oauth),
) -> RedirectResponse:
    """Start Discord OAuth. Optional ?redirect=/path is where the front end lands afterwards."""
    state = secrets.token_urlsafe(24)
    request.session[DISCORD_STATE_KEY] = state
    path = _safe_redirect_path(redirect)
    if path:
        request.session[POST_LOGIN_REDIRECT_KEY] = path
    return RedirectResponse(oauth.authorization_url(state), status_code=302)


@router.get("/admin")
async def admin_login(request: Request) -> RedirectResponse:
    """Discord login that lands on the admin panel, or fails with not_admin."""
    request.session[ADMIN_LOGIN_KEY] = True
    return RedirectResponse(str(request.url_for("discord_login")), status_code=302)


@router.get("/discord/callback")
async def discord_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: AsyncSession = Depends(get_db),
    oauth: DiscordOAuth = Depends(get_discord_oauth),
) -> RedirectResponse:
    expected = request.session.pop(DISCORD_STATE_KEY, None)
    admin_login_requested = request.session.pop(ADMIN_LOGIN_KEY, False)
    path = request.session.pop(POST_LOGIN_REDIRECT_KEY, None) or "/"

    if error:
        logger.warning("Discord OAuth returned error: %s", error)
        return _client_redirect(error="discord_oauth_failed")
    if not _state_matches(expected, state):
        logger.warning("Discord callback with missing or mismatched state")
        return _client_redirect(error="invalid_state")
    if not code:
        return _client_redirect(error="no_code")
    try:
        profile = await oauth.authenticate(code)
    except UpstreamProviderError:
        return _client_redirect(error="auth_failed")

    user = await _upsert_discord_user(db, profile)
    await whitelist.reconcile_admin(db, user)
    await db.commit()
    request.session[SESSION_USER_KEY] = user.id
    logger.info("Discord login: %s (admin=%s)", user.discord_username, user.is_admin)

    if admin_login_requested:
        path = "/admin" if user.is_admin else "/"
    token = create_user_token(user)
    if admin_login_requested and not user.is_admin:
        response = _client_redirect(path, error="not_admin")
    else:
        # Token in the URL is the fallback when the cross-site cookie is dropped
        response = _client_redirect(
            path,
            auth="success",
            token=token,
            id=str(user.id),
            username=user.discord_username,
            is_admin="true" if user.is_admin else "false",
        )
    set_auth_cookie(response, token)
    return response


@router.post("/token-login", response_model=AuthStatus, dependencies=[Depends(rate_limit_dep)])
async def token_login(
    body: TokenLogin,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> AuthStatus:
    """Establish a session from the token handed over in the redirect URL."""
    user_id = user_id_from_token(body.token)
    user = await load_user(db, user_id) if user_id is not None else None
    if user is None:
        raise AuthenticationRequired("Invalid or expired token")
    request.session[SESSION_USER_KEY] = user.id
    set_auth_cookie(response, body.token)
    return AuthStatus(authenticated=True, user=UserResponse.model_validate(user))


@router.get("/roblox")
async def roblox_link(
    request: Request,
    user: User | None = Depends(get_optional_user),
    oauth: RobloxOAuth = Depends(get_roblox_oauth),
) -> RedirectResponse:
    """Start Roblox OAuth for the logged-in Discord user."""
    if user is None:
        return _client_redirect(error="discord_first")
    state = secrets.token_urlsafe(24)
    request.session[ROBLOX_STATE_KEY] = state
    return RedirectResponse(oauth.authorization_url(state), status_code=302)


@router.get("/roblox/callback")
async def roblox_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    oauth: RobloxOAuth = Depends(get_roblox_oauth),
) -> RedirectResponse:
    expected = request.session.pop(ROBLOX_STATE_KEY, None)
    if user is None:
        return _client_redirect(error="discord_first")
    if error:
        logger.warning("Roblox OAuth returned error: %s", error)
        return _client_redirect(error="roblox_oauth_failed")
    if not _state_matches(expected, state):
        return _client_redirect(error="invalid_state")
    if not code:
        return _client_redirect(error="no_code")
    try:
        profile = await oauth.authenticate(code)
    except UpstreamProviderError:
        return _client_redirect(error="roblox_linking_failed")

    user.roblox_id = profile.id
    user.roblox_username = profile.username
    await db.commit()
    logger.info("Roblox account %s linked to %s", profile.username, user.discord_username)
    response = _client_redirect(roblox_linked="true", username=profile.username)
    # Re-issue so the cookie carries the linked username
    set_auth_cookie(response, create_user_token(user))
    return response


@router.get("/github-link")
async def github_link(
    user: User | None = Depends(get_optional_user),
    oauth: GitHubOAuth = Depends(get_github_oauth),
) -> RedirectResponse:
    """Start GitHub OAuth. The signed state identifies the user; no session is needed on return."""
    if user is None:
        return _client_redirect(error="discord_first")
    return RedirectResponse(oauth.authorization_url(create_github_state(user)), status_code=302)


@router.get("/github-callback")
async def github_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: AsyncSession = Depends(get_db),
    oauth: GitHubOAuth = Depends(get_github_oauth),
) -> RedirectResponse:
    if error:
        logger.warning("GitHub OAuth returned error: %s", error)
        return _client_redirect(error="github_oauth_failed")
    payload = verify_github_state(state)
    if payload is None:
        logger.warning("GitHub callback with invalid, tampered or expired state")
        return _client_redirect(error="invalid_state")
    user = await load_user(db, payload["user_id"])
    if user is None or user.discord_id != payload["discord_id"]:
        return _client_redirect(error="invalid_state")
    if not code:
        return _client_redirect(error="no_code")
    try:
        profile = await oauth.authenticate(code)
    except UpstreamProviderError:
        return _client_redirect(error="github_linking_failed")

    user.github_id = profile.id
    user.github_username = profile.username
    await db.commit()
    logger.info("GitHub account %s linked to %s", profile.username, user.discord_username)
    return _client_redirect(github_linked="true", username=profile.username)


@router.post("/logout")
async def logout(request: Request, response: Response) -> dict:
    """Drop the session and the auth cookie. Always succeeds."""
    request.session.clear()
    clear_auth_cookie(response)
    return {"success": True}
