# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later
"""Initial recruitment portal schema.

Revision ID: 0001_initial
Revises:
Create Date: 2024-06-01

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("discord_id", sa.String(32), nullable=False),
        sa.Column("discord_username", sa.String(64), nullable=False),
        sa.Column("discord_avatar", sa.String(128), nullable=True),
        sa.Column("discord_email", sa.String(255), nullable=True),
        sa.Column("roblox_id", sa.String(32), nullable=True),
        sa.Column("roblox_username", sa.String(64), nullable=True),
        sa.Column("github_id", sa.String(32), nullable=True),
        sa.Column("github_username", sa.String(64), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_discord_id", "users", ["discord_id"], unique=True)

    op.create_table(
        "admin_whitelist",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("discord_id", sa.String(32), nullable=False),
        sa.Column("added_by", sa.String(64), nullable=False, server_default="system"),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_admin_whitelist_discord_id", "admin_whitelist", ["discord_id"], unique=True)

    op.create_table(
        "application_forms",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("application_limit", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("application_limit >= 1", name="application_forms_limit_positive"),
    )

    op.create_index("ix_application_forms_status", "application_forms", ["status"])

    op.create_table(
        "application_responses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("form_id", sa.Integer(), sa.ForeignKey("application_forms.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("responses", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("admin_feedback", sa.Text(), nullable=True),
        sa.Column("notification_message", sa.Text(), nullable=True),
        sa.Column("reviewed_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notification_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notification_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "user_id", "form_id", "attempt_number", name="application_responses_user_form_attempt"
        ),
    )
    op.create_index("ix_application_responses_user_id", "application_responses", ["user_id"])
    op.create_index("ix_application_responses_form_id", "application_responses", ["form_id"])
    op.create_index("ix_application_responses_status", "application_responses", ["status"])

    op.create_table(
        "server_config",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("server_config")
    op.drop_index("ix_application_responses_status", table_name="application_responses")
    op.drop_index("ix_application_responses_form_id", table_name="application_responses")
    op.drop_index("ix_application_responses_user_id", table_name="application_responses")
    op.drop_table("application_responses")
    op.drop_index("ix_application_forms_status", table_name="application_forms")
    op.drop_table("application_forms")
    op.drop_index("ix_admin_whitelist_discord_id", table_name="admin_whitelist")
    op.drop_table("admin_whitelist")
    op.drop_index("ix_users_discord_id", table_name="users")
    op.drop_table("users")
