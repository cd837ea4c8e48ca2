# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Database models."""

from skyrden_portal.models.base import Base
from skyrden_portal.models.user import User
from skyrden_portal.models.admin_whitelist import AdminWhitelist
from skyrden_portal.models.application_form import ApplicationForm, FormStatus
from skyrden_portal.models.application_response import ApplicationResponse, ResponseStatus
from skyrden_portal.models.server_config import ServerConfig

__all__ = [
    "Base",
    "User",
    "AdminWhitelist",
    "ApplicationForm",
    "FormStatus",
    "ApplicationResponse",
    "ResponseStatus",
    "ServerConfig",
]
