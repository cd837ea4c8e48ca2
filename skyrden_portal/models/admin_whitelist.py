# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin whitelist model."""

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from skyrden_portal.models.base import Base
from skyrden_portal.models.timestamp import utcnow


class AdminWhitelist(Base):
    """Discord id allowed to hold admin rights. Source of truth for User.is_admin."""

    __tablename__ = "admin_whitelist"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    discord_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    added_by: Mapped[str] = mapped_column(String(64), default="system", nullable=False)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
