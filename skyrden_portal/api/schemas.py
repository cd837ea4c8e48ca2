# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pydantic schemas for API request/response."""

import uuid
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)


# Auth
class UserResponse(BaseModel):
    id: int
    discord_id: str
    discord_username: str
    discord_avatar: str | None = None
    roblox_id: str | None = None
    roblox_username: str | None = None
    github_username: str | None = None
    is_admin: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthStatus(BaseModel):
    authenticated: bool
    user: UserResponse | None = None


class TokenLogin(BaseModel):
    token: str


# Form fields: one model per field type, discriminated on "type"
def _new_field_id() -> str:
    return f"field_{uuid.uuid4().hex[:8]}"


class _FieldBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_field_id, min_length=1, max_length=64)
    label: str = Field(min_length=1, validation_alias=AliasChoices("label", "question"))
    placeholder: str | None = None
    required: bool = False
    order_index: int = Field(default=0, validation_alias=AliasChoices("order_index", "orderIndex"))


class _FreeTextField(_FieldBase):
    options: list[str] | None = None

    @field_validator("options")
    @classmethod
    def no_options(cls, v: list[str] | None) -> None:
        if v:
            raise ValueError("options are only allowed on multiple_choice, checkbox and dropdown fields")
        return None


class _OptionsField(_FieldBase):
    options: list[str]

    @field_validator("options")
    @classmethod
    def non_empty_options(cls, v: list[str]) -> list[str]:
        cleaned = [o.strip() for o in v]
        if not cleaned or any(not o for o in cleaned):
            raise ValueError("choice fields need a non-empty list of non-blank options")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("options must be unique")
        return cleaned


class ShortTextField(_FreeTextField):
    type: Literal["short_text"]


class LongTextField(_FreeTextField):
    type: Literal["long_text", "paragraph"]

    @field_validator("type")
    @classmethod
    def canonical_type(cls, v: str) -> str:
        return "long_text"


class NumberField(_FreeTextField):
    type: Literal["number"]


class EmailField(_FreeTextField):
    type: Literal["email"]


class ChoiceField(_OptionsField):
    """Single answer picked from options (radio buttons or a dropdown)."""

    type: Literal["multiple_choice", "dropdown"]


class CheckboxField(_OptionsField):
    """Any number of distinct answers picked from options."""

    type: Literal["checkbox"]


class DiscordUsernameField(_FreeTextField):
    type: Literal["discord_username"]


class RobloxUsernameField(_FreeTextField):
    type: Literal["roblox_username"]


FormField = Annotated[
    Union[
        ShortTextField,
        LongTextField,
        NumberField,
        EmailField,
        ChoiceField,
        CheckboxField,
        DiscordUsernameField,
        RobloxUsernameField,
    ],
    Field(discriminator="type"),
]
DEFAULT_FIELD_TYPES = ("discord_username", "roblox_username")

form_fields_adapter = TypeAdapter(list[FormField])


# Forms
class FormCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    fields: list[FormField] = Field(min_length=1)
    deadline: datetime | None = None
    application_limit: int = Field(default=1, ge=1)
    status: Literal["draft", "open", "closed"] = "open"

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title is required")
        return v.strip()


class FormUpdate(BaseModel):
    """Partial update: only supplied keys overwrite."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    fields: list[FormField] | None = Field(default=None, min_length=1)
    deadline: datetime | None = None
    application_limit: int | None = Field(default=None, ge=1)
    status: Literal["draft", "open", "closed"] | None = None
    is_active: bool | None = None


class FormResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    fields: list[FormField]
    status: str
    is_active: bool
    deadline: datetime | None = None
    application_limit: int
    created_by_id: int | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ApplicantFormResponse(FormResponse):
    user_application_count: int = 0
    can_apply: bool = True


class AdminFormResponse(FormResponse):
    response_count: int = 0


# Submissions
class SubmissionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    template_id: int = Field(
        validation_alias=AliasChoices("templateId", "template_id", "application_form_id")
    )
    responses: dict[str, object] = Field(
        validation_alias=AliasChoices("responses", "application_data")
    )


class ReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    application_id: int = Field(validation_alias=AliasChoices("applicationId", "application_id"))
    status: Literal["approved", "rejected", "denied"]
    feedback: str | None = None
    notification_message: str | None = Field(
        default=None,
        validation_alias=AliasChoices("notificationMessage", "notification_message", "customMessage"),
    )
    send_notification: bool = Field(
        default=False,
        validation_alias=AliasChoices("sendNotification", "send_notification"),
    )

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v: str) -> str:
        return "rejected" if v == "denied" else v


class SubmissionResponse(BaseModel):
    id: int
    form_id: int
    form_title: str | None = None
    form_description: str | None = None
    user_id: int
    discord_username: str | None = None
    roblox_username: str | None = None
    responses: dict[str, object]
    status: str
    admin_feedback: str | None = None
    reviewed_by_username: str | None = None
    reviewed_at: datetime | None = None
    notification_sent: bool
    notification_sent_at: datetime | None = None
    created_at: datetime


class SubmissionDetail(SubmissionResponse):
    fields: list[FormField] = []


# Whitelist
class WhitelistAdd(BaseModel):
    discord_id: str = Field(min_length=1, max_length=32)

    @field_validator("discord_id")
    @classmethod
    def digits_only(cls, v: str) -> str:
        v = v.strip()
        if not v.isdigit():
            raise ValueError("discord_id must be a numeric Discord snowflake")
        return v


class WhitelistEntry(BaseModel):
    id: int
    discord_id: str
    added_by: str
    added_at: datetime
    discord_username: str | None = None

    model_config = ConfigDict(from_attributes=True)


# Notifications
class NotificationConfigUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool | None = None
    bot_token: str | None = Field(default=None, validation_alias=AliasChoices("bot_token", "botToken"))
    default_message: str | None = Field(
        default=None, validation_alias=AliasChoices("default_message", "defaultMessage")
    )


class NotificationConfigView(BaseModel):
    enabled: bool
    bot_token_set: bool
    bot_token: str
    default_message: str


class BulkSendResult(BaseModel):
    success_count: int
    failed_count: int
