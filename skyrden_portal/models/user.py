# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""User model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from skyrden_portal.models.base import Base
from skyrden_portal.models.timestamp import TimestampMixin, utcnow


class User(Base, TimestampMixin):
    """Portal user, keyed by Discord identity. Roblox and GitHub are linked later."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    discord_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    discord_username: Mapped[str] = mapped_column(String(64), nullable=False)
    discord_avatar: Mapped[str | None] = mapped_column(String(128), nullable=True)
    discord_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    roblox_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    roblox_username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    github_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    github_username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Mirrors admin_whitelist membership; reconciled at login and on whitelist edits
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=True
    )

    @property
    def has_roblox(self) -> bool:
        return bool(self.roblox_id or self.roblox_username)
