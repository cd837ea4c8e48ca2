# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin whitelist tests: membership drives User.is_admin immediately."""

from httpx import AsyncClient

from skyrden_portal.models import User
from skyrden_portal.services import whitelist


async def test_add_promotes_existing_user(
    client: AsyncClient, act_as, admin, applicant, session_maker
):
    """Whitelisting a known user makes them admin immediately."""
    act_as(admin)
    r = await client.post("/api/admin/whitelist", json={"discord_id": applicant.discord_id})
    assert r.status_code == 201
    assert r.json()["added_by"] == "captain"

    async with session_maker() as session:
        assert (await session.get(User, applicant.id)).is_admin is True

    # The applicant's next request is authorised without logging in again
    act_as(applicant)
    assert (await client.get("/api/admin/forms")).status_code == 200


async def test_remove_demotes_existing_user(
    client: AsyncClient, act_as, admin, create_user, session_maker
):
    """Removing an entry revokes admin rights immediately."""
    deputy = await create_user(discord_id="100000000000000003", username="deputy", is_admin=True)
    act_as(admin)
    r = await client.delete(f"/api/admin/whitelist/{deputy.discord_id}")
    assert r.status_code == 200

    async with session_maker() as session:
        assert (await session.get(User, deputy.id)).is_admin is False

    # A token issued while still admin no longer grants access
    act_as(deputy)
    assert (await client.get("/api/admin/forms")).status_code == 403


async def test_list_shows_known_usernames(client: AsyncClient, act_as, admin):
    """Whitelist entries show the username of known users."""
    act_as(admin)
    r = await client.post("/api/admin/whitelist", json={"discord_id": "100000000000000001"})
    assert r.status_code == 201

    listed = await client.get("/api/admin/whitelist")
    entries = {e["discord_id"]: e for e in listed.json()}
    assert entries["100000000000000001"]["discord_username"] is None
    assert entries[admin.discord_id]["discord_username"] == "captain"


async def test_add_duplicate_conflicts(client: AsyncClient, act_as, admin):
    """Adding an existing Discord id returns 409."""
    act_as(admin)
    r = await client.post("/api/admin/whitelist", json={"discord_id": admin.discord_id})
    assert r.status_code == 409


async def test_remove_missing_entry(client: AsyncClient, act_as, admin):
    """Removing an unknown Discord id returns 404."""
    act_as(admin)
    r = await client.delete("/api/admin/whitelist/123456789")
    assert r.status_code == 404


async def test_add_rejects_non_numeric_id(client: AsyncClient, act_as, admin):
    """Discord ids must be numeric."""
    act_as(admin)
    r = await client.post("/api/admin/whitelist", json={"discord_id": "pilot#1234"})
    assert r.status_code == 400


async def test_whitelist_requires_admin(client: AsyncClient, act_as, applicant):
    """Whitelist endpoints are admin only."""
    act_as(applicant)
    assert (await client.get("/api/admin/whitelist")).status_code == 403
    r = await client.post("/api/admin/whitelist", json={"discord_id": applicant.discord_id})
    assert r.status_code == 403


async def test_seed_entries_is_idempotent(session_maker, applicant):
    """Seeding the same ids twice adds nothing the second time."""
    ids = whitelist.parse_discord_ids(f" {applicant.discord_id}, ,100000000000000004 ")
    assert ids == [applicant.discord_id, "100000000000000004"]

    async with session_maker() as session:
        assert await whitelist.seed_entries(session, ids) == 2
        await session.commit()
    async with session_maker() as session:
        assert await whitelist.seed_entries(session, ids) == 0
        assert (await session.get(User, applicant.id)).is_admin is True


async def test_reconcile_admin_follows_whitelist(session_maker, create_user):
    """reconcile_admin clears a stale admin flag."""
    stale = await create_user(is_admin=False)
    async with session_maker() as session:
        user = await session.get(User, stale.id)
        assert await whitelist.reconcile_admin(session, user) is False
        user.is_admin = True
        assert await whitelist.reconcile_admin(session, user) is False
        assert user.is_admin is False
