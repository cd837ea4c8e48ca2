#!/usr/bin/env python3
# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Whitelist a Discord id as admin. Run: python -m skyrden_portal.scripts.whitelist_admin [discord_id]"""

import asyncio
import sys

from skyrden_portal.database import async_session_maker, init_db
from skyrden_portal.errors import Conflict
from skyrden_portal.services import whitelist


async def main():
    await init_db()
    discord_id = sys.argv[1] if len(sys.argv) > 1 else input("Discord id: ")
    discord_id = discord_id.strip()
    if not discord_id.isdigit():
        print("Discord id must be numeric")
        sys.exit(1)

    async with async_session_maker() as session:
        try:
            await whitelist.add_entry(session, discord_id, added_by="cli")
        except Conflict:
            print("Already whitelisted")
            sys.exit(1)
        await session.commit()
        print("Admin whitelisted. They get admin access on their next request.")


if __name__ == "__main__":
    asyncio.run(main())
