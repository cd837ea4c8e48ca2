# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Auth endpoint tests: Discord login, admin login, token fallback, account linking."""

from datetime import datetime, timedelta, timezone

import httpx
from httpx import AsyncClient
from jose import jwt
from sqlalchemy import select

from skyrden_portal.auth import (
    AUTH_COOKIE_NAME,
    GITHUB_STATE_PURPOSE,
    create_github_state,
    create_user_token,
)
from skyrden_portal.config import settings
from skyrden_portal.models import AdminWhitelist, User

from conftest import APPLICANT_DISCORD_ID


async def _start_discord_login(client: AsyncClient, path: str = "/api/auth/discord") -> str:
    r = await client.get(path)
    assert r.status_code == 302
    location = httpx.URL(r.headers["location"])
    assert location.host == "discord.com"
    return location.params["state"]


def _redirect_params(r: httpx.Response) -> httpx.QueryParams:
    assert r.status_code == 302
    return httpx.URL(r.headers["location"]).params


async def test_status_anonymous(client: AsyncClient):
    """GET /api/auth/status without a session reports unauthenticated."""
    r = await client.get("/api/auth/status")
    assert r.status_code == 200
    assert r.json() == {"authenticated": False, "user": None}


async def test_discord_login_creates_user_and_session(client: AsyncClient, session_maker):
    """Discord callback creates the user, sets the cookie and starts a session."""
    state = await _start_discord_login(client)
    r = await client.get("/api/auth/discord/callback", params={"code": "abc", "state": state})
    params = _redirect_params(r)
    assert params["auth"] == "success"
    assert params["username"] == "pilot"
    assert params["is_admin"] == "false"
    assert params["token"]
    assert AUTH_COOKIE_NAME in r.cookies

    status = await client.get("/api/auth/status")
    body = status.json()
    assert body["authenticated"] is True
    assert body["user"]["discord_id"] == APPLICANT_DISCORD_ID
    assert body["user"]["is_admin"] is False

    async with session_maker() as session:
        user = (await session.execute(select(User))).scalar_one()
        assert user.discord_email == "pilot@example.com"


async def test_whitelisted_user_is_admin_after_login(client: AsyncClient, session_maker):
    """A whitelisted Discord id logs in as admin."""
    async with session_maker() as session:
        session.add(AdminWhitelist(discord_id=APPLICANT_DISCORD_ID, added_by="system"))
        await session.commit()

    state = await _start_discord_login(client)
    r = await client.get("/api/auth/discord/callback", params={"code": "abc", "state": state})
    assert _redirect_params(r)["is_admin"] == "true"

    forms = await client.get("/api/admin/forms")
    assert forms.status_code == 200


async def test_admin_login_rejects_non_admin(client: AsyncClient):
    """Admin login by a non-whitelisted user redirects with not_admin and no token."""
    r = await client.get("/api/auth/admin")
    assert r.status_code == 302
    assert httpx.URL(r.headers["location"]).path == "/api/auth/discord"

    state = await _start_discord_login(client)
    r = await client.get("/api/auth/discord/callback", params={"code": "abc", "state": state})
    params = _redirect_params(r)
    assert params["error"] == "not_admin"
    assert "token" not in params


async def test_admin_login_lands_whitelisted_user_on_admin_panel(
    client: AsyncClient, session_maker
):
    """Admin login by a whitelisted user lands on /admin."""
    async with session_maker() as session:
        session.add(AdminWhitelist(discord_id=APPLICANT_DISCORD_ID, added_by="system"))
        await session.commit()

    await client.get("/api/auth/admin")
    state = await _start_discord_login(client)
    r = await client.get("/api/auth/discord/callback", params={"code": "abc", "state": state})
    location = httpx.URL(r.headers["location"])
    assert location.path == "/admin"
    assert location.params["is_admin"] == "true"


async def test_login_redirect_keeps_existing_query(client: AsyncClient):
    """A post-login path with its own query string gets the login params merged in."""
    r = await client.get("/api/auth/discord", params={"redirect": "/apply?form=3"})
    state = httpx.URL(r.headers["location"]).params["state"]
    r = await client.get("/api/auth/discord/callback", params={"code": "abc", "state": state})
    location = httpx.URL(r.headers["location"])
    assert location.path == "/apply"
    assert location.params["form"] == "3"
    assert location.params["auth"] == "success"
    assert location.params["token"]
    assert "?" not in location.query.decode()


async def test_callback_rejects_mismatched_state(client: AsyncClient, providers):
    """A forged state is rejected before any code exchange."""
    await _start_discord_login(client)
    r = await client.get("/api/auth/discord/callback", params={"code": "abc", "state": "forged"})
    assert _redirect_params(r)["error"] == "invalid_state"
    assert providers.exchanges == []


async def test_callback_provider_error(client: AsyncClient):
    """An error from Discord redirects with discord_oauth_failed."""
    state = await _start_discord_login(client)
    r = await client.get(
        "/api/auth/discord/callback", params={"error": "access_denied", "state": state}
    )
    assert _redirect_params(r)["error"] == "discord_oauth_failed"


async def test_callback_failed_exchange(client: AsyncClient, providers):
    """A failed code exchange redirects with auth_failed."""
    providers.fail_exchange = True
    state = await _start_discord_login(client)
    r = await client.get("/api/auth/discord/callback", params={"code": "abc", "state": state})
    assert _redirect_params(r)["error"] == "auth_failed"


async def test_token_login_establishes_session(client: AsyncClient, applicant):
    """POST /api/auth/token-login with a valid token starts a session."""
    r = await client.post("/api/auth/token-login", json={"token": create_user_token(applicant)})
    assert r.status_code == 200
    assert r.json()["user"]["discord_username"] == "pilot"
    assert AUTH_COOKIE_NAME in r.cookies

    status = await client.get("/api/auth/status")
    assert status.json()["authenticated"] is True


async def test_token_login_invalid_token(client: AsyncClient):
    """An unreadable token returns 401."""
    r = await client.post("/api/auth/token-login", json={"token": "not-a-token"})
    assert r.status_code == 401
    assert r.json()["error"] == "AUTHENTICATION_REQUIRED"


async def test_github_state_is_not_an_auth_token(client: AsyncClient, applicant):
    """A GitHub state token cannot be used to log in."""
    r = await client.post("/api/auth/token-login", json={"token": create_github_state(applicant)})
    assert r.status_code == 401


async def test_logout_clears_session(client: AsyncClient, applicant):
    """Logout drops the session and the cookie."""
    await client.post("/api/auth/token-login", json={"token": create_user_token(applicant)})
    r = await client.post("/api/auth/logout")
    assert r.status_code == 200
    assert r.json() == {"success": True}
    status = await client.get("/api/auth/status")
    assert status.json()["authenticated"] is False


async def test_protected_endpoint_requires_login(client: AsyncClient):
    """Applicant endpoints return 401 without a login."""
    r = await client.get("/api/applications/my-applications")
    assert r.status_code == 401
    assert "detail" in r.json()


async def test_roblox_link_requires_discord_login(client: AsyncClient):
    """Roblox linking without a Discord login redirects with discord_first."""
    r = await client.get("/api/auth/roblox")
    assert _redirect_params(r)["error"] == "discord_first"


async def test_roblox_link_stores_username(client: AsyncClient, act_as, create_user, session_maker):
    """Roblox callback stores the Roblox id and username on the user."""
    user = await create_user(roblox_username=None)
    act_as(user)
    r = await client.get("/api/auth/roblox")
    location = httpx.URL(r.headers["location"])
    assert location.host == "apis.roblox.com"

    r = await client.get(
        "/api/auth/roblox/callback", params={"code": "xyz", "state": location.params["state"]}
    )
    params = _redirect_params(r)
    assert params["roblox_linked"] == "true"
    assert params["username"] == "SkyPilot"

    async with session_maker() as session:
        stored = await session.get(User, user.id)
        assert stored.roblox_id == "555"
        assert stored.roblox_username == "SkyPilot"


async def test_roblox_username_falls_back_to_name(
    client: AsyncClient, act_as, create_user, providers
):
    """Roblox username falls back to name when preferred_username is missing."""
    providers.roblox = {"sub": "777", "name": "Sky Pilot"}
    act_as(await create_user(roblox_username=None))
    r = await client.get("/api/auth/roblox")
    state = httpx.URL(r.headers["location"]).params["state"]
    r = await client.get("/api/auth/roblox/callback", params={"code": "xyz", "state": state})
    assert _redirect_params(r)["username"] == "Sky Pilot"


async def test_github_link_round_trip(client: AsyncClient, act_as, applicant, session_maker):
    """GitHub linking with a signed state stores the GitHub username."""
    act_as(applicant)
    r = await client.get("/api/auth/github-link")
    state = httpx.URL(r.headers["location"]).params["state"]

    # The callback does not depend on the session surviving
    act_as(None)
    r = await client.get("/api/auth/github-callback", params={"code": "gh", "state": state})
    params = _redirect_params(r)
    assert params["github_linked"] == "true"

    async with session_maker() as session:
        stored = await session.get(User, applicant.id)
        assert stored.github_id == "42"
        assert stored.github_username == "octopilot"


async def test_github_callback_rejects_forged_state(client: AsyncClient, applicant, providers):
    """A state signed with another key is rejected before any exchange."""
    forged = jwt.encode(
        {
            "purpose": GITHUB_STATE_PURPOSE,
            "user_id": applicant.id,
            "discord_id": applicant.discord_id,
            "nonce": "n",
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        },
        "some-other-secret",
        algorithm=settings.jwt_algorithm,
    )
    r = await client.get("/api/auth/github-callback", params={"code": "gh", "state": forged})
    assert _redirect_params(r)["error"] == "invalid_state"
    assert providers.exchanges == []


async def test_github_callback_rejects_expired_state(client: AsyncClient, applicant, providers):
    """An expired state is rejected before any exchange."""
    expired = jwt.encode(
        {
            "purpose": GITHUB_STATE_PURPOSE,
            "user_id": applicant.id,
            "discord_id": applicant.discord_id,
            "nonce": "n",
            "exp": datetime.now(timezone.utc) - timedelta(minutes=1),
        },
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    r = await client.get("/api/auth/github-callback", params={"code": "gh", "state": expired})
    assert _redirect_params(r)["error"] == "invalid_state"
    assert providers.exchanges == []


async def test_github_callback_rejects_auth_token_as_state(
    client: AsyncClient, applicant, providers
):
    """A user auth token is not accepted as GitHub state."""
    r = await client.get(
        "/api/auth/github-callback",
        params={"code": "gh", "state": create_user_token(applicant)},
    )
    assert _redirect_params(r)["error"] == "invalid_state"
    assert providers.exchanges == []
