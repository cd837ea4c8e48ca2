# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pytest fixtures. The app runs against in-memory SQLite; OAuth providers and the
Discord bot API are faked with httpx.MockTransport."""

import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from skyrden_portal import rate_limit
from skyrden_portal.auth import create_user_token
from skyrden_portal.database import get_db
from skyrden_portal.main import app
from skyrden_portal.models import AdminWhitelist, ApplicationForm, Base, User
from skyrden_portal.services.forms import default_fields
from skyrden_portal.services.notifications import (
    NotificationConfig,
    NotificationDispatcher,
    get_dispatcher,
)
from skyrden_portal.services.oauth import (
    DiscordOAuth,
    GitHubOAuth,
    RobloxOAuth,
    get_discord_oauth,
    get_github_oauth,
    get_roblox_oauth,
)

APPLICANT_DISCORD_ID = "100000000000000001"
ADMIN_DISCORD_ID = "100000000000000002"
BOT_TOKEN = "bot-token-abcdef1234"


class FakeProviders:
    """Discord, Roblox and GitHub OAuth endpoints."""

    def __init__(self):
        self.discord = {
            "id": APPLICANT_DISCORD_ID,
            "username": "pilot",
            "global_name": None,
            "avatar": "a1b2c3",
            "email": "pilot@example.com",
        }
        self.roblox = {"sub": "555", "preferred_username": "SkyPilot", "name": "Sky Pilot"}
        self.github = {"id": 42, "login": "octopilot"}
        self.fail_exchange = False
        self.exchanges: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        host, path = request.url.host, request.url.path
        if request.method == "POST":
            self.exchanges.append(host)
            if self.fail_exchange:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "provider-access-token"})
        if host == "discord.com" and path == "/api/users/@me":
            return httpx.Response(200, json=self.discord)
        if host == "apis.roblox.com" and path == "/oauth/v1/userinfo":
            return httpx.Response(200, json=self.roblox)
        if host == "api.github.com" and path == "/user":
            return httpx.Response(200, json=self.github)
        return httpx.Response(404)


class FakeDiscordBot:
    """Discord bot REST API: DM channel creation and message posting."""

    def __init__(self):
        self.messages: list[tuple[str, dict]] = []
        self.blocked: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/users/@me/channels"):
            recipient = json.loads(request.content)["recipient_id"]
            if recipient in self.blocked:
                return httpx.Response(403, json={"message": "Cannot send messages to this user"})
            return httpx.Response(200, json={"id": f"dm-{recipient}"})
        if path.endswith("/messages"):
            channel_id = path.split("/")[-2]
            self.messages.append((channel_id, json.loads(request.content)))
            return httpx.Response(200, json={"id": "1"})
        return httpx.Response(404)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def providers():
    return FakeProviders()


@pytest.fixture
def bot():
    return FakeDiscordBot()


@pytest.fixture
def dispatcher(bot):
    config = NotificationConfig(enabled=True, bot_token=BOT_TOKEN, bulk_delay_seconds=0)
    return NotificationDispatcher(config, transport=httpx.MockTransport(bot.handler))


@pytest.fixture
async def client(session_maker, providers, dispatcher):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    transport = httpx.MockTransport(providers.handler)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_discord_oauth] = lambda: DiscordOAuth(
        "discord-client", "discord-secret", "https://test/api/auth/discord/callback",
        transport=transport,
    )
    app.dependency_overrides[get_roblox_oauth] = lambda: RobloxOAuth(
        "roblox-client", "roblox-secret", "https://test/api/auth/roblox/callback",
        transport=transport,
    )
    app.dependency_overrides[get_github_oauth] = lambda: GitHubOAuth(
        "github-client", "github-secret", "https://test/api/auth/github-callback",
        transport=transport,
    )
    rate_limit.reset()
    # https so the Secure session and auth cookies round-trip
    async with AsyncClient(transport=ASGITransport(app=app), base_url="https://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def act_as(client):
    """Switch the client's identity: drop cookies and send a Bearer token (or nothing)."""

    def _act_as(user: User | None) -> None:
        client.cookies.clear()
        if user is None:
            client.headers.pop("Authorization", None)
        else:
            client.headers["Authorization"] = f"Bearer {create_user_token(user)}"

    return _act_as


@pytest.fixture
def create_user(session_maker):
    async def _create(
        discord_id: str = APPLICANT_DISCORD_ID,
        username: str = "pilot",
        roblox_username: str | None = "SkyPilot",
        is_admin: bool = False,
    ) -> User:
        async with session_maker() as session:
            user = User(
                discord_id=discord_id,
                discord_username=username,
                roblox_id="555" if roblox_username else None,
                roblox_username=roblox_username,
                is_admin=is_admin,
            )
            session.add(user)
            if is_admin:
                session.add(AdminWhitelist(discord_id=discord_id, added_by="system"))
            await session.commit()
            return user

    return _create


@pytest.fixture
async def applicant(create_user):
    return await create_user()


@pytest.fixture
async def admin(create_user):
    return await create_user(discord_id=ADMIN_DISCORD_ID, username="captain", is_admin=True)


@pytest.fixture
def create_form(session_maker):
    """Insert a form directly. Custom fields are appended after the default fields."""

    async def _create(
        title: str = "Cabin Crew",
        status: str = "open",
        application_limit: int = 1,
        deadline=None,
        custom_fields: list[dict] | None = None,
    ) -> ApplicationForm:
        fields = [f.model_dump() for f in default_fields()]
        for index, field in enumerate(
            custom_fields
            or [
                {"id": "motivation", "type": "long_text", "label": "Why do you want to join?",
                 "required": True, "options": None, "placeholder": None},
                {"id": "position", "type": "multiple_choice", "label": "Position",
                 "required": True, "options": ["A", "B"], "placeholder": None},
            ],
            start=len(fields),
        ):
            fields.append({**field, "order_index": index})
        async with session_maker() as session:
            form = ApplicationForm(
                title=title,
                description=f"{title} recruitment",
                fields=fields,
                status=status,
                deadline=deadline,
                application_limit=application_limit,
            )
            session.add(form)
            await session.commit()
            return form

    return _create
