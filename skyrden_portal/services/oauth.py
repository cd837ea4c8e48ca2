# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""OAuth2 authorization-code clients for Discord (login), Roblox and GitHub (linking)."""

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import httpx

from skyrden_portal.config import settings
from skyrden_portal.errors import UpstreamProviderError

logger = logging.getLogger(__name__)


@dataclass
class OAuthProfile:
    """Provider identity after a successful exchange."""

    id: str
    username: str
    extra: dict[str, Any] = field(default_factory=dict)


class OAuthProvider:
    """Authorization-code flow against one provider. Subclasses set endpoints and parse profiles."""

    name = "oauth"
    authorize_url = ""
    token_url = ""
    profile_url = ""
    scopes: tuple[str, ...] = ()

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.oauth_timeout_seconds

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def exchange_code(self, code: str) -> str:
        """Trade the authorization code for an access token."""
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        try:
            async with self._client() as client:
                r = await client.post(
                    self.token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
                r.raise_for_status()
                body = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("%s token exchange failed: %s", self.name, e)
            raise UpstreamProviderError(f"{self.name} token exchange failed") from e
        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            logger.warning("%s token response had no access_token", self.name)
            raise UpstreamProviderError(f"{self.name} returned no access token")
        return token

    async def fetch_profile(self, access_token: str) -> OAuthProfile:
        try:
            async with self._client() as client:
                r = await client.get(
                    self.profile_url,
                    headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                )
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("%s profile fetch failed: %s", self.name, e)
            raise UpstreamProviderError(f"{self.name} profile fetch failed") from e
        try:
            return self.parse_profile(data)
        except (KeyError, TypeError) as e:
            raise UpstreamProviderError(f"{self.name} returned an unexpected profile") from e

    def parse_profile(self, data: dict[str, Any]) -> OAuthProfile:
        raise NotImplementedError

    async def authenticate(self, code: str) -> OAuthProfile:
        token = await self.exchange_code(code)
        return await self.fetch_profile(token)


class DiscordOAuth(OAuthProvider):
    name = "discord"
    authorize_url = "https://discord.com/oauth2/authorize"
    token_url = "https://discord.com/api/oauth2/token"
    profile_url = "https://discord.com/api/users/@me"
    scopes = ("identify", "email")

    def parse_profile(self, data: dict[str, Any]) -> OAuthProfile:
        return OAuthProfile(
            id=str(data["id"]),
            username=data.get("global_name") or data["username"],
            extra={"avatar": data.get("avatar"), "email": data.get("email")},
        )


class RobloxOAuth(OAuthProvider):
    name = "roblox"
    authorize_url = "https://apis.roblox.com/oauth/v1/authorize"
    token_url = "https://apis.roblox.com/oauth/v1/token"
    profile_url = "https://apis.roblox.com/oauth/v1/userinfo"
    scopes = ("openid", "profile")

    def parse_profile(self, data: dict[str, Any]) -> OAuthProfile:
        return OAuthProfile(
            id=str(data["sub"]),
            username=data.get("preferred_username") or data["name"],
        )


class GitHubOAuth(OAuthProvider):
    name = "github"
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    profile_url = "https://api.github.com/user"
    scopes = ("read:user",)

    def parse_profile(self, data: dict[str, Any]) -> OAuthProfile:
        return OAuthProfile(id=str(data["id"]), username=data["login"])


# FastAPI dependencies; tests override these with providers on a mock transport
def get_discord_oauth() -> DiscordOAuth:
    return DiscordOAuth(
        settings.discord_client_id, settings.discord_client_secret, settings.discord_callback_url
    )


def get_roblox_oauth() -> RobloxOAuth:
    return RobloxOAuth(
        settings.roblox_client_id, settings.roblox_client_secret, settings.roblox_callback_url
    )


def get_github_oauth() -> GitHubOAuth:
    return GitHubOAuth(
        settings.github_client_id, settings.github_client_secret, settings.github_callback_url
    )
