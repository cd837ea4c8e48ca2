# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Server configuration - admin-controlled settings persisted as JSON values."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from skyrden_portal.models.base import Base

NOTIFICATION_SETTINGS_KEY = "notification_settings"


class ServerConfig(Base):
    """Key-value server configuration. Used for the notification bot settings."""

    __tablename__ = "server_config"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
