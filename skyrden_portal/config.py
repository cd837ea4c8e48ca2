# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Configuration for the Skyrden recruitment portal."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite+aiosqlite:///./skyrden.db"

    # JWT (auth cookie, token-login fallback, signed OAuth state)
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 10080  # 7 days

    # Session cookie
    session_secret: str = "change-me-in-production"
    session_max_age: int = 86400  # 1 day
    # Secure cookies are required for SameSite=None (front end on another domain)
    cookie_secure: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 5001
    # Front end the OAuth flows redirect back to
    client_url: str = "http://localhost:3000"
    # CORS: comma-separated origins. Credentials are sent, so "*" is not allowed here.
    cors_origins: str = "http://localhost:3000"

    # Discord OAuth (login)
    discord_client_id: str = ""
    discord_client_secret: str = ""
    discord_callback_url: str = "http://localhost:5001/api/auth/discord/callback"

    # Roblox OAuth (account linking)
    roblox_client_id: str = ""
    roblox_client_secret: str = ""
    roblox_callback_url: str = "http://localhost:5001/api/auth/roblox/callback"

    # GitHub OAuth (optional account linking)
    github_client_id: str = ""
    github_client_secret: str = ""
    github_callback_url: str = "http://localhost:5001/api/auth/github-callback"

    oauth_timeout_seconds: float = 10.0

    # Discord bot (review notifications)
    discord_bot_token: str | None = None
    notification_default_message: str = "Your application has been reviewed!"
    # Pause between DMs during a bulk send (Discord rate limits)
    notification_bulk_delay_seconds: float = 1.0

    # Comma-separated Discord ids seeded into the admin whitelist at startup
    admin_discord_ids: str = ""


settings = Settings()
