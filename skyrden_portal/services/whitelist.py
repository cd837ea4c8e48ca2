# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin whitelist: the source of truth for User.is_admin."""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from skyrden_portal.errors import Conflict, NotFound
from skyrden_portal.models import AdminWhitelist, User

logger = logging.getLogger(__name__)


async def is_whitelisted(db: AsyncSession, discord_id: str) -> bool:
    result = await db.execute(
        select(AdminWhitelist.id).where(AdminWhitelist.discord_id == discord_id)
    )
    return result.scalar_one_or_none() is not None


async def reconcile_admin(db: AsyncSession, user: User) -> bool:
    """Align user.is_admin with whitelist membership. Runs on every Discord login."""
    whitelisted = await is_whitelisted(db, user.discord_id)
    if user.is_admin != whitelisted:
        logger.info(
            "Admin flag for discord_id=%s changed at login: %s -> %s",
            user.discord_id, user.is_admin, whitelisted,
        )
        user.is_admin = whitelisted
        await db.flush()
    return user.is_admin


async def list_entries(db: AsyncSession) -> list[tuple[AdminWhitelist, str | None]]:
    """Whitelist entries with the matching user's Discord name, if that user exists."""
    result = await db.execute(
        select(AdminWhitelist, User.discord_username)
        .outerjoin(User, User.discord_id == AdminWhitelist.discord_id)
        .order_by(AdminWhitelist.added_at.desc())
    )
    return [(entry, username) for entry, username in result.all()]


async def add_entry(db: AsyncSession, discord_id: str, added_by: str) -> AdminWhitelist:
    """Whitelist a Discord id and promote the existing user immediately."""
    if await is_whitelisted(db, discord_id):
        raise Conflict(f"Discord id {discord_id} is already whitelisted")
    entry = AdminWhitelist(discord_id=discord_id, added_by=added_by)
    db.add(entry)
    await db.execute(update(User).where(User.discord_id == discord_id).values(is_admin=True))
    await db.flush()
    logger.info("Whitelisted discord_id=%s (by %s)", discord_id, added_by)
    return entry


async def remove_entry(db: AsyncSession, discord_id: str) -> None:
    """Remove a Discord id and demote the existing user immediately.

    Tokens already issued keep their old is_admin claim until they expire; the
    claim is never used for authorization.
    """
    result = await db.execute(
        select(AdminWhitelist).where(AdminWhitelist.discord_id == discord_id)
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        raise NotFound(f"Discord id {discord_id} is not whitelisted")
    await db.delete(entry)
    await db.execute(update(User).where(User.discord_id == discord_id).values(is_admin=False))
    await db.flush()
    logger.info("Removed discord_id=%s from the admin whitelist", discord_id)


async def seed_entries(db: AsyncSession, discord_ids: list[str]) -> int:
    """Ensure bootstrap admins exist in the whitelist. Returns how many were added."""
    added = 0
    for discord_id in discord_ids:
        if await is_whitelisted(db, discord_id):
            continue
        await add_entry(db, discord_id, added_by="system")
        added += 1
    return added


def parse_discord_ids(raw: str) -> list[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]
