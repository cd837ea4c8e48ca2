# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Application response (submission) model."""

import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from skyrden_portal.models.base import Base
from skyrden_portal.models.timestamp import TimestampMixin


class ResponseStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApplicationResponse(Base, TimestampMixin):
    """One applicant's answers against a form, plus review and notification state."""

    __tablename__ = "application_responses"
    __table_args__ = (
        # attempt_number runs 1..application_limit; racing submissions collide here
        UniqueConstraint(
            "user_id", "form_id", "attempt_number", name="application_responses_user_form_attempt"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    form_id: Mapped[int] = mapped_column(
        ForeignKey("application_forms.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    responses: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ResponseStatus.PENDING.value, index=True
    )
    admin_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    notification_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notification_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notification_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])
    form: Mapped["ApplicationForm"] = relationship("ApplicationForm")
    reviewed_by: Mapped["User"] = relationship("User", foreign_keys=[reviewed_by_id])
