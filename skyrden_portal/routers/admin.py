# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Admin API - forms, application review, whitelist and notification bot. Requires admin user."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from skyrden_portal.api.schemas import (
    AdminFormResponse,
    BulkSendResult,
    FormCreate,
    FormUpdate,
    NotificationConfigUpdate,
    NotificationConfigView,
    ReviewRequest,
    SubmissionDetail,
    SubmissionResponse,
    WhitelistAdd,
    WhitelistEntry,
)
from skyrden_portal.auth import require_admin
from skyrden_portal.database import get_db
from skyrden_portal.models import User
from skyrden_portal.services import forms as form_service
from skyrden_portal.services import submissions as submission_service
from skyrden_portal.services import whitelist
from skyrden_portal.services.notifications import (
    NotificationDispatcher,
    get_dispatcher,
    save_config,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# Forms
@router.get("/forms", response_model=list[AdminFormResponse])
async def list_forms(
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[AdminFormResponse]:
    """All forms in every status, newest first. Admin only."""
    rows = await form_service.list_forms(db)
    out = []
    for form, count in rows:
        item = AdminFormResponse.model_validate(form)
        item.response_count = count
        out.append(item)
    return out


@router.get("/forms/{form_id}", response_model=AdminFormResponse)
async def get_form(
    form_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminFormResponse:
    form = await form_service.get_form(db, form_id)
    return AdminFormResponse.model_validate(form)


@router.post("/forms", response_model=AdminFormResponse, status_code=201)
async def create_form(
    body: FormCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminFormResponse:
    """Create a form. Default Discord/Roblox fields are added automatically. Admin only."""
    form = await form_service.create_form(db, body, admin)
    await db.commit()
    return AdminFormResponse.model_validate(form)


@router.put("/forms/{form_id}", response_model=AdminFormResponse)
async def update_form(
    form_id: int,
    body: FormUpdate,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminFormResponse:
    """Partial update; omitted keys keep their values. Admin only."""
    form = await form_service.update_form(db, form_id, body)
    await db.commit()
    return AdminFormResponse.model_validate(form)


@router.delete("/forms/{form_id}")
async def delete_form(
    form_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Delete a form, or close it when submissions reference it. Admin only."""
    deleted = await form_service.delete_form(db, form_id)
    await db.commit()
    if deleted:
        return {"success": True, "deleted": True, "deactivated": False, "message": "Form deleted"}
    return {
        "success": True,
        "deleted": False,
        "deactivated": True,
        "message": "Form has submissions; it was closed instead of deleted",
    }


# Applications
@router.get("/applications", response_model=list[SubmissionResponse])
async def list_applications(
    form_id: int | None = None,
    status: str | None = None,
    sort_by: str = "created_at",
    order: str = "desc",
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    """All submissions with applicant, form and reviewer. Filter by form/status; sort by
    created_at, status or applicant. Admin only."""
    return await submission_service.list_all(
        db, form_id=form_id, status=status, sort_by=sort_by, order=order
    )


@router.get("/applications/{application_id}", response_model=SubmissionDetail)
async def get_application(
    application_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    return await submission_service.get_detail(db, application_id)


@router.post("/review")
async def review_application(
    body: ReviewRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict:
    """Approve or reject a pending application. Optionally DM the applicant right away;
    otherwise it waits for the bulk send. Admin only."""
    response = await submission_service.review(db, admin, body)
    await db.commit()
    notification_sent = False
    if body.send_notification:
        notification_sent = await dispatcher.notify(db, response, body.notification_message)
        await db.commit()
    return {
        "success": True,
        "message": "Application reviewed",
        "status": response.status,
        "notification_sent": notification_sent,
    }


# Whitelist
@router.get("/whitelist", response_model=list[WhitelistEntry])
async def list_whitelist(
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[WhitelistEntry]:
    rows = await whitelist.list_entries(db)
    out = []
    for entry, username in rows:
        item = WhitelistEntry.model_validate(entry)
        item.discord_username = username
        out.append(item)
    return out


@router.post("/whitelist", response_model=WhitelistEntry, status_code=201)
async def add_to_whitelist(
    body: WhitelistAdd,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> WhitelistEntry:
    """Whitelist a Discord id; an existing user becomes admin immediately. Admin only."""
    entry = await whitelist.add_entry(db, body.discord_id, added_by=admin.discord_username)
    await db.commit()
    return WhitelistEntry.model_validate(entry)


@router.delete("/whitelist/{discord_id}")
async def remove_from_whitelist(
    discord_id: str,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Remove a Discord id; an existing user loses admin immediately. Admin only."""
    await whitelist.remove_entry(db, discord_id)
    await db.commit()
    return {"success": True, "message": "Removed from whitelist"}


# Notifications
@router.get("/notifications/config", response_model=NotificationConfigView)
async def get_notification_config(
    _admin: User = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict:
    """Bot settings with the token masked. Admin only."""
    return dispatcher.config.masked()


@router.post("/notifications/config", response_model=NotificationConfigView)
async def update_notification_config(
    body: NotificationConfigUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict:
    """Update bot settings at runtime and persist them. A masked token sent back is ignored.
    Admin only."""
    token = body.bot_token
    if token is not None:
        token = token.strip()
        if token.startswith("****"):
            token = None
    config = dispatcher.update_config(
        enabled=body.enabled,
        bot_token=token or None,
        default_message=body.default_message.strip() if body.default_message else None,
    )
    await save_config(db, config)
    await db.commit()
    logger.info("Notification settings changed by %s", admin.discord_username)
    return config.masked()


@router.get("/notifications/pending", response_model=list[SubmissionResponse])
async def list_pending_notifications(
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> list[dict]:
    """Reviewed applications whose applicant has not been notified yet. Admin only."""
    rows = await dispatcher.pending(db)
    return [
        submission_service.submission_row(
            r, r.form, r.user, r.reviewed_by.discord_username if r.reviewed_by else None
        )
        for r in rows
    ]


@router.post("/notifications/send-all", response_model=BulkSendResult)
async def send_all_notifications(
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict:
    """Send every queued notification, one at a time. Admin only."""
    result = await dispatcher.send_all_pending(db)
    await db.commit()
    return result


@router.post("/notifications/send/{application_id}")
async def send_notification(
    application_id: int,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict:
    """Send (or resend) one application's notification. Admin only."""
    response = await submission_service.get_response(db, application_id)
    sent = await dispatcher.notify(db, response)
    await db.commit()
    return {"success": sent, "notification_sent": response.notification_sent}
