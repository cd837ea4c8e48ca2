# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Review notifications delivered as Discord direct messages through the bot REST API."""

import asyncio
import dataclasses
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from skyrden_portal.config import settings
from skyrden_portal.models import ApplicationResponse, ResponseStatus, ServerConfig
from skyrden_portal.models.server_config import NOTIFICATION_SETTINGS_KEY
from skyrden_portal.models.timestamp import as_utc

logger = logging.getLogger(__name__)

DISCORD_API_BASE = "https://discord.com/api/v10"
FEEDBACK_LIMIT = 1000
# Discord rejects embed descriptions longer than this
DESCRIPTION_LIMIT = 4096
COLOR_APPROVED = 0x00FF00
COLOR_REJECTED = 0xFF0000


@dataclass(frozen=True)
class NotificationConfig:
    enabled: bool = False
    bot_token: str | None = None
    default_message: str = "Your application has been reviewed!"
    bulk_delay_seconds: float = 1.0

    def masked(self) -> dict[str, Any]:
        """Public view: the token is never returned in full."""
        token = self.bot_token or ""
        return {
            "enabled": self.enabled,
            "bot_token_set": bool(token),
            "bot_token": f"****{token[-4:]}" if len(token) > 8 else ("****" if token else ""),
            "default_message": self.default_message,
        }


def config_from_settings() -> NotificationConfig:
    return NotificationConfig(
        enabled=bool(settings.discord_bot_token),
        bot_token=settings.discord_bot_token,
        default_message=settings.notification_default_message,
        bulk_delay_seconds=settings.notification_bulk_delay_seconds,
    )


def build_embed(response: ApplicationResponse, message: str) -> dict[str, Any]:
    """Status-coloured embed with form title, status, submission date and feedback."""
    approved = response.status == ResponseStatus.APPROVED.value
    created = as_utc(response.created_at)
    fields = [
        {"name": "Status", "value": response.status.upper(), "inline": True},
        {
            "name": "Submitted",
            "value": created.strftime("%Y-%m-%d") if created else "Unknown",
            "inline": True,
        },
    ]
    if response.admin_feedback:
        feedback = response.admin_feedback
        if len(feedback) > FEEDBACK_LIMIT:
            feedback = feedback[:FEEDBACK_LIMIT] + "..."
        fields.append({"name": "Feedback", "value": feedback, "inline": False})
    if len(message) > DESCRIPTION_LIMIT:
        message = message[: DESCRIPTION_LIMIT - 3] + "..."
    form_title = response.form.title if response.form else "Application"
    return {
        "title": f"Application Update - {form_title}",
        "description": message,
        "color": COLOR_APPROVED if approved else COLOR_REJECTED,
        "fields": fields,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "footer": {"text": "Skyrden Recruitment"},
    }


class DeliveryError(Exception):
    pass


class NotificationDispatcher:
    """Sends review outcomes to applicants. Holds its own configuration value;
    admins replace it with update_config()."""

    def __init__(
        self,
        config: NotificationConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ):
        self._config = config
        self._transport = transport
        self._timeout = timeout

    @property
    def config(self) -> NotificationConfig:
        return self._config

    def update_config(self, **changes: Any) -> NotificationConfig:
        """Apply changes; None values are ignored. Returns the new config."""
        changes = {k: v for k, v in changes.items() if v is not None}
        self._config = dataclasses.replace(self._config, **changes)
        logger.info(
            "Notification config updated (enabled=%s, token_set=%s)",
            self._config.enabled, bool(self._config.bot_token),
        )
        return self._config

    async def _send_dm(self, discord_id: str, embed: dict[str, Any]) -> None:
        headers = {"Authorization": f"Bot {self._config.bot_token}"}
        try:
            async with httpx.AsyncClient(
                base_url=DISCORD_API_BASE,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                r = await client.post("/users/@me/channels", json={"recipient_id": discord_id})
                r.raise_for_status()
                channel_id = r.json()["id"]
                r = await client.post(f"/channels/{channel_id}/messages", json={"embeds": [embed]})
                r.raise_for_status()
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise DeliveryError(str(e)) from e

    async def notify(
        self,
        db: AsyncSession,
        response: ApplicationResponse,
        message: str | None = None,
    ) -> bool:
        """DM the applicant. On success flag the response as notified; on failure leave it."""
        config = self._config
        if not config.enabled or not config.bot_token:
            logger.info("Notification bot disabled; application %s left queued", response.id)
            return False
        if response.status == ResponseStatus.PENDING.value:
            logger.warning("Application %s is still pending; nothing to notify", response.id)
            return False
        if response.user is None or not response.user.discord_id:
            logger.warning("Application %s has no Discord user to notify", response.id)
            return False
        text = message or response.notification_message or config.default_message
        try:
            await self._send_dm(response.user.discord_id, build_embed(response, text))
        except DeliveryError as e:
            logger.warning(
                "Failed to DM discord_id=%s for application %s: %s",
                response.user.discord_id, response.id, e,
            )
            return False
        response.notification_sent = True
        response.notification_sent_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("Notification sent for application %s", response.id)
        return True

    async def pending(self, db: AsyncSession) -> list[ApplicationResponse]:
        """Reviewed submissions whose applicant has not been told yet."""
        result = await db.execute(
            select(ApplicationResponse)
            .options(
                selectinload(ApplicationResponse.user),
                selectinload(ApplicationResponse.form),
                selectinload(ApplicationResponse.reviewed_by),
            )
            .where(
                ApplicationResponse.status.in_(
                    [ResponseStatus.APPROVED.value, ResponseStatus.REJECTED.value]
                ),
                ApplicationResponse.notification_sent.is_(False),
                ApplicationResponse.reviewed_at.is_not(None),
            )
            .order_by(ApplicationResponse.reviewed_at.asc(), ApplicationResponse.id.asc())
        )
        return list(result.scalars().all())

    async def send_all_pending(self, db: AsyncSession) -> dict[str, int]:
        """Notify every pending row one at a time. One failure never stops the rest."""
        rows = await self.pending(db)
        success = failed = 0
        for index, response in enumerate(rows):
            if index and self._config.bulk_delay_seconds > 0:
                await asyncio.sleep(self._config.bulk_delay_seconds)
            if await self.notify(db, response):
                success += 1
                await db.commit()
            else:
                failed += 1
        logger.info("Bulk notification send: %s sent, %s failed", success, failed)
        return {"success_count": success, "failed_count": failed}


async def load_saved_config(db: AsyncSession, base: NotificationConfig) -> NotificationConfig:
    """Overlay admin-saved settings from server_config onto the env-derived config."""
    result = await db.execute(
        select(ServerConfig).where(ServerConfig.key == NOTIFICATION_SETTINGS_KEY)
    )
    row = result.scalar_one_or_none()
    if row:
        try:
            saved = json.loads(row.value)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable %s row", NOTIFICATION_SETTINGS_KEY)
            return base
        allowed = {"enabled", "bot_token", "default_message"}
        return dataclasses.replace(base, **{k: v for k, v in saved.items() if k in allowed})
    return base


async def save_config(db: AsyncSession, config: NotificationConfig) -> None:
    value_str = json.dumps(
        {
            "enabled": config.enabled,
            "bot_token": config.bot_token,
            "default_message": config.default_message,
        }
    )
    result = await db.execute(
        select(ServerConfig).where(ServerConfig.key == NOTIFICATION_SETTINGS_KEY)
    )
    row = result.scalar_one_or_none()
    if row:
        row.value = value_str
    else:
        db.add(ServerConfig(key=NOTIFICATION_SETTINGS_KEY, value=value_str))
    await db.flush()


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """FastAPI dependency: the process-wide dispatcher created at startup."""
    return request.app.state.dispatcher
