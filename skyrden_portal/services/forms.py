# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Form catalog: field normalization, answer validation and form CRUD."""

import logging
import math
from datetime import datetime, timezone
from typing import Any

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from skyrden_portal.api.schemas import (
    DEFAULT_FIELD_TYPES,
    CheckboxField,
    ChoiceField,
    DiscordUsernameField,
    EmailField,
    FormCreate,
    FormUpdate,
    LongTextField,
    NumberField,
    RobloxUsernameField,
    ShortTextField,
    form_fields_adapter,
)
from skyrden_portal.errors import NotFound, ValidationError
from skyrden_portal.models import ApplicationForm, ApplicationResponse, FormStatus, User
from skyrden_portal.models.timestamp import as_utc

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


def default_fields() -> list:
    """Auto-filled identity fields every form carries first."""
    return [
        DiscordUsernameField(
            id="discord_username", type="discord_username", label="Discord Username", required=True
        ),
        RobloxUsernameField(
            id="roblox_username", type="roblox_username", label="Roblox Username", required=True
        ),
    ]


def normalize_fields(fields: list) -> list[dict]:
    """Default fields first, then custom fields in their requested order.

    order_index is rewritten to 0..n-1 so it stays unique and contiguous after
    any add, remove or reorder.
    """
    custom = [f for f in fields if f.type not in DEFAULT_FIELD_TYPES]
    if not custom:
        raise ValidationError("A form needs at least one question besides the default fields")
    # sorted() is stable: equal order_index keeps submission order
    custom = sorted(custom, key=lambda f: f.order_index)
    ordered = default_fields() + custom
    seen: set[str] = set()
    for field in ordered:
        if field.id in seen:
            raise ValidationError(f"Duplicate field id '{field.id}'")
        seen.add(field.id)
    out = []
    for index, field in enumerate(ordered):
        field.order_index = index
        out.append(field.model_dump())
    return out


def parse_fields(raw: list[dict]) -> list:
    return form_fields_adapter.validate_python(raw or [])


def is_past_deadline(form: ApplicationForm, now: datetime | None = None) -> bool:
    deadline = as_utc(form.deadline)
    if deadline is None:
        return False
    return deadline < (now or datetime.now(timezone.utc))


def is_accepting(form: ApplicationForm) -> bool:
    return form.is_active and not is_past_deadline(form)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _validate_answer(field, value: Any) -> Any:
    """Check one non-blank answer against its field; return the value to store."""
    label = field.label
    if isinstance(field, (ShortTextField, LongTextField)):
        if not isinstance(value, str):
            raise ValidationError(f"'{label}' must be text")
        return value.strip()
    if isinstance(field, NumberField):
        if isinstance(value, bool):
            raise ValidationError(f"'{label}' must be a number")
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError):
            raise ValidationError(f"'{label}' must be a number") from None
        if not math.isfinite(number):
            raise ValidationError(f"'{label}' must be a number")
        return int(number) if number.is_integer() else number
    if isinstance(field, EmailField):
        if not isinstance(value, str):
            raise ValidationError(f"'{label}' must be an email address")
        try:
            return _email_adapter.validate_python(value.strip())
        except PydanticValidationError:
            raise ValidationError(f"'{label}' must be a valid email address") from None
    if isinstance(field, ChoiceField):
        if not isinstance(value, str) or value not in field.options:
            raise ValidationError(f"'{label}' must be one of: {', '.join(field.options)}")
        return value
    if isinstance(field, CheckboxField):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValidationError(f"'{label}' must be a list of options")
        if len(set(value)) != len(value):
            raise ValidationError(f"'{label}' has duplicate selections")
        invalid = [v for v in value if v not in field.options]
        if invalid:
            raise ValidationError(f"'{label}' has invalid selections: {', '.join(invalid)}")
        return value
    raise ValidationError(f"Unsupported field type '{field.type}'")


def validate_responses(fields: list, answers: dict[str, Any], user: User) -> dict[str, Any]:
    """Server-side answer validation. Default fields come from the user record;
    anything the client sent for them, and any unknown key, is dropped."""
    cleaned: dict[str, Any] = {}
    for field in fields:
        if isinstance(field, DiscordUsernameField):
            cleaned[field.id] = user.discord_username
            continue
        if isinstance(field, RobloxUsernameField):
            if not user.roblox_username:
                raise ValidationError("Link your Roblox account before applying")
            cleaned[field.id] = user.roblox_username
            continue
        value = answers.get(field.id)
        if _is_blank(value):
            if field.required:
                raise ValidationError(f"'{field.label}' is required")
            continue
        cleaned[field.id] = _validate_answer(field, value)
    return cleaned


async def get_form(db: AsyncSession, form_id: int) -> ApplicationForm:
    result = await db.execute(select(ApplicationForm).where(ApplicationForm.id == form_id))
    form = result.scalar_one_or_none()
    if form is None:
        raise NotFound("Application form not found")
    return form


async def list_forms(db: AsyncSession) -> list[tuple[ApplicationForm, int]]:
    """All forms, newest first, with their response counts."""
    counts = (
        select(ApplicationResponse.form_id, func.count().label("n"))
        .group_by(ApplicationResponse.form_id)
        .subquery()
    )
    result = await db.execute(
        select(ApplicationForm, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.form_id == ApplicationForm.id)
        .order_by(ApplicationForm.created_at.desc(), ApplicationForm.id.desc())
    )
    return [(form, count) for form, count in result.all()]


async def user_submission_count(db: AsyncSession, form_id: int, user_id: int) -> int:
    return await db.scalar(
        select(func.count())
        .select_from(ApplicationResponse)
        .where(ApplicationResponse.form_id == form_id, ApplicationResponse.user_id == user_id)
    ) or 0


async def list_open_forms(db: AsyncSession, user: User) -> list[tuple[ApplicationForm, int]]:
    """Open, non-expired forms with the user's own submission count for each."""
    result = await db.execute(
        select(ApplicationForm)
        .where(ApplicationForm.status == FormStatus.OPEN.value)
        .order_by(ApplicationForm.created_at.desc(), ApplicationForm.id.desc())
    )
    forms = [f for f in result.scalars().all() if not is_past_deadline(f)]
    counts_result = await db.execute(
        select(ApplicationResponse.form_id, func.count())
        .where(ApplicationResponse.user_id == user.id)
        .group_by(ApplicationResponse.form_id)
    )
    counts = dict(counts_result.all())
    return [(f, counts.get(f.id, 0)) for f in forms]


async def create_form(db: AsyncSession, data: FormCreate, creator: User) -> ApplicationForm:
    form = ApplicationForm(
        title=data.title,
        description=data.description,
        fields=normalize_fields(data.fields),
        status=data.status,
        deadline=data.deadline,
        application_limit=data.application_limit,
        created_by_id=creator.id,
    )
    db.add(form)
    await db.flush()
    logger.info("Form %s '%s' created by %s", form.id, form.title, creator.discord_username)
    return form


async def update_form(db: AsyncSession, form_id: int, data: FormUpdate) -> ApplicationForm:
    """Partial update: keys the client did not send keep their stored values."""
    form = await get_form(db, form_id)
    changes = data.model_dump(exclude_unset=True)
    if "title" in changes:
        if not data.title or not data.title.strip():
            raise ValidationError("title is required")
        form.title = data.title.strip()
    if "description" in changes:
        form.description = data.description
    if "fields" in changes:
        if data.fields is None:
            raise ValidationError("fields cannot be empty")
        form.fields = normalize_fields(data.fields)
    if "deadline" in changes:
        form.deadline = data.deadline
    if "application_limit" in changes:
        if data.application_limit is None:
            raise ValidationError("application_limit must be a positive integer")
        form.application_limit = data.application_limit
    if data.status is not None:
        form.status = data.status
    elif data.is_active is not None:
        form.status = FormStatus.OPEN.value if data.is_active else FormStatus.CLOSED.value
    await db.flush()
    return form


async def delete_form(db: AsyncSession, form_id: int) -> bool:
    """Delete an unreferenced form. A form with submissions is closed instead.

    Returns True when the form was removed, False when it was deactivated.
    """
    form = await get_form(db, form_id)
    referenced = await db.scalar(
        select(func.count())
        .select_from(ApplicationResponse)
        .where(ApplicationResponse.form_id == form_id)
    )
    if referenced:
        form.status = FormStatus.CLOSED.value
        await db.flush()
        logger.info("Form %s has %s responses; closed instead of deleted", form_id, referenced)
        return False
    await db.delete(form)
    await db.flush()
    logger.info("Form %s deleted", form_id)
    return True
