# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Applicant API - browse open forms, submit, and track own applications."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from skyrden_portal.api.schemas import (
    AdminFormResponse,
    ApplicantFormResponse,
    FormCreate,
    SubmissionCreate,
    SubmissionResponse,
)
from skyrden_portal.auth import get_current_user, require_admin
from skyrden_portal.database import get_db
from skyrden_portal.errors import NotFound
from skyrden_portal.models import ApplicationForm, User
from skyrden_portal.rate_limit import rate_limit_dep
from skyrden_portal.services import forms as form_service
from skyrden_portal.services import submissions as submission_service

router = APIRouter(prefix="/applications", tags=["applications"])


def _applicant_view(form: ApplicationForm, count: int) -> ApplicantFormResponse:
    out = ApplicantFormResponse.model_validate(form)
    out.user_application_count = count
    out.can_apply = form_service.is_accepting(form) and count < form.application_limit
    return out


@router.get("/templates", response_model=list[ApplicantFormResponse])
async def list_templates(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[ApplicantFormResponse]:
    """Open forms whose deadline has not passed, with the caller's submission count."""
    rows = await form_service.list_open_forms(db, user)
    return [_applicant_view(form, count) for form, count in rows]


@router.get("/templates/{form_id}", response_model=ApplicantFormResponse)
async def get_template(
    form_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicantFormResponse:
    """One form. Non-admins only see forms that are accepting submissions."""
    form = await form_service.get_form(db, form_id)
    if not user.is_admin and not form_service.is_accepting(form):
        raise NotFound("Application form not found")
    count = await form_service.user_submission_count(db, form.id, user.id)
    return _applicant_view(form, count)


@router.post("/templates", response_model=AdminFormResponse, status_code=201)
async def create_template(
    body: FormCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> AdminFormResponse:
    """Create a form. Admin only; same as POST /admin/forms."""
    form = await form_service.create_form(db, body, admin)
    await db.commit()
    return AdminFormResponse.model_validate(form)


@router.post("/submit", dependencies=[Depends(rate_limit_dep)])
async def submit_application(
    body: SubmissionCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Submit answers for a form. Requires a linked Roblox account."""
    response = await submission_service.submit(db, user, body)
    await db.commit()
    return {
        "success": True,
        "message": "Application submitted successfully",
        "application_id": response.id,
    }


@router.get("/my-applications", response_model=list[SubmissionResponse])
async def my_applications(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[dict]:
    """The caller's submissions, newest first, with form title and review status."""
    return await submission_service.list_for_user(db, user)
