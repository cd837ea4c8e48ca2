# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Submission store: submit, list and review application responses."""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from skyrden_portal.api.schemas import ReviewRequest, SubmissionCreate
from skyrden_portal.errors import Conflict, NotFound, ValidationError
from skyrden_portal.models import ApplicationForm, ApplicationResponse, ResponseStatus, User
from skyrden_portal.services import forms as form_service

logger = logging.getLogger(__name__)

DEFAULT_FEEDBACK = "No feedback provided."
SORT_FIELDS = ("created_at", "status", "applicant")


async def submit(db: AsyncSession, user: User, data: SubmissionCreate) -> ApplicationResponse:
    """Validate and store a new pending submission."""
    if not user.has_roblox:
        raise ValidationError("Link your Roblox account before applying")
    form = await form_service.get_form(db, data.template_id)
    if not form.is_active:
        raise ValidationError("This form is not accepting submissions")
    if form_service.is_past_deadline(form):
        raise ValidationError("Application deadline has passed")

    answers = form_service.validate_responses(
        form_service.parse_fields(form.fields), data.responses, user
    )

    previous = await form_service.user_submission_count(db, form.id, user.id)
    if previous >= form.application_limit:
        raise Conflict("Application limit reached for this form")

    response = ApplicationResponse(
        user_id=user.id,
        form_id=form.id,
        attempt_number=previous + 1,
        responses=answers,
        status=ResponseStatus.PENDING.value,
    )
    db.add(response)
    try:
        await db.flush()
    except IntegrityError:
        # A concurrent submission took this attempt slot
        await db.rollback()
        raise Conflict("Application limit reached for this form") from None
    logger.info(
        "User %s submitted application %s for form %s (attempt %s/%s)",
        user.id, response.id, form.id, response.attempt_number, form.application_limit,
    )
    return response


def submission_row(
    response: ApplicationResponse,
    form: ApplicationForm | None,
    applicant: User | None,
    reviewer_name: str | None,
) -> dict[str, Any]:
    return {
        "id": response.id,
        "form_id": response.form_id,
        "form_title": form.title if form else None,
        "form_description": form.description if form else None,
        "user_id": response.user_id,
        "discord_username": applicant.discord_username if applicant else None,
        "roblox_username": applicant.roblox_username if applicant else None,
        "responses": response.responses or {},
        "status": response.status,
        "admin_feedback": response.admin_feedback,
        "reviewed_by_username": reviewer_name,
        "reviewed_at": response.reviewed_at,
        "notification_sent": response.notification_sent,
        "notification_sent_at": response.notification_sent_at,
        "created_at": response.created_at,
    }


def _joined_query():
    reviewer = aliased(User)
    query = (
        select(ApplicationResponse, ApplicationForm, User, reviewer.discord_username)
        .join(User, ApplicationResponse.user_id == User.id)
        .outerjoin(ApplicationForm, ApplicationResponse.form_id == ApplicationForm.id)
        .outerjoin(reviewer, ApplicationResponse.reviewed_by_id == reviewer.id)
    )
    return query


async def list_for_user(db: AsyncSession, user: User) -> list[dict[str, Any]]:
    result = await db.execute(
        _joined_query()
        .where(ApplicationResponse.user_id == user.id)
        .order_by(ApplicationResponse.created_at.desc(), ApplicationResponse.id.desc())
    )
    return [submission_row(*row) for row in result.all()]


async def list_all(
    db: AsyncSession,
    form_id: int | None = None,
    status: str | None = None,
    sort_by: str = "created_at",
    order: str = "desc",
) -> list[dict[str, Any]]:
    """Admin listing with optional form/status filters and a sortable column."""
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORT_FIELDS)}")
    if order not in ("asc", "desc"):
        raise ValidationError("order must be 'asc' or 'desc'")
    if status == "denied":
        status = ResponseStatus.REJECTED.value
    if status is not None and status not in {s.value for s in ResponseStatus}:
        raise ValidationError("status must be pending, approved or rejected")

    query = _joined_query()
    if form_id is not None:
        query = query.where(ApplicationResponse.form_id == form_id)
    if status is not None:
        query = query.where(ApplicationResponse.status == status)
    column = {
        "created_at": ApplicationResponse.created_at,
        "status": ApplicationResponse.status,
        "applicant": func.lower(User.discord_username),
    }[sort_by]
    direction = column.asc() if order == "asc" else column.desc()
    tiebreak = ApplicationResponse.id.asc() if order == "asc" else ApplicationResponse.id.desc()
    result = await db.execute(query.order_by(direction, tiebreak))
    return [submission_row(*row) for row in result.all()]


async def get_detail(db: AsyncSession, response_id: int) -> dict[str, Any]:
    result = await db.execute(_joined_query().where(ApplicationResponse.id == response_id))
    row = result.first()
    if row is None:
        raise NotFound("Application not found")
    out = submission_row(*row)
    form = row[1]
    out["fields"] = form.fields if form else []
    return out


async def get_response(db: AsyncSession, response_id: int) -> ApplicationResponse:
    """Submission with applicant and form loaded (used by review and notifications)."""
    result = await db.execute(
        select(ApplicationResponse)
        .options(selectinload(ApplicationResponse.user), selectinload(ApplicationResponse.form))
        .where(ApplicationResponse.id == response_id)
    )
    response = result.scalar_one_or_none()
    if response is None:
        raise NotFound("Application not found")
    return response


async def review(db: AsyncSession, reviewer: User, data: ReviewRequest) -> ApplicationResponse:
    """pending -> approved | rejected, exactly once. Reviewed submissions are final."""
    response = await get_response(db, data.application_id)
    if response.status != ResponseStatus.PENDING.value:
        raise Conflict(f"Application has already been {response.status}")
    response.status = data.status
    feedback = (data.feedback or "").strip()
    response.admin_feedback = feedback or DEFAULT_FEEDBACK
    message = (data.notification_message or "").strip()
    response.notification_message = message or None
    response.reviewed_by_id = reviewer.id
    response.reviewed_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info(
        "Application %s %s by %s", response.id, response.status, reviewer.discord_username
    )
    return response
