"""Initial Grove schema: users, admin_actions, notifications, seed_admin_grants

Revision ID: 0a1c5e9b7d21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1c5e9b7d21"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("uid", sa.String(128), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("photo_url", sa.Text(), nullable=True),
        sa.Column("role", sa.String(20), nullable=True),
        sa.Column("level", sa.String(20), nullable=True),
        sa.Column("level_pinned", sa.Boolean(), nullable=True),
        sa.Column("points", sa.Integer(), nullable=True),
        sa.Column("flowers", sa.Integer(), nullable=True),
        sa.Column("correct_answers", sa.Integer(), nullable=True),
        sa.Column("questions_asked", sa.Integer(), nullable=True),
        sa.Column("helpful_answers", sa.Integer(), nullable=True),
        sa.Column("days_active", sa.Integer(), nullable=True),
        sa.Column("streak", sa.Integer(), nullable=True),
        sa.Column("is_blocked", sa.Boolean(), nullable=True),
        sa.Column("blocked_reason", sa.Text(), nullable=True),
        sa.Column("promoted_by", sa.String(128), nullable=True),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_points_desc", "users", ["points"])

    op.create_table(
        "admin_actions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action_type", sa.String(30), nullable=False),
        sa.Column("admin_uid", sa.String(128), nullable=False),
        sa.Column("admin_display_name", sa.String(100), nullable=False),
        sa.Column("admin_email", sa.String(320), nullable=False),
        sa.Column("target_uid", sa.String(128), nullable=False),
        sa.Column("target_display_name", sa.String(100), nullable=False),
        sa.Column("target_email", sa.String(320), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("hebrew_date", sa.String(64), nullable=False),
        sa.Column("gregorian_date", sa.String(10), nullable=False),
    )
    op.create_index("ix_admin_actions_time", "admin_actions", ["timestamp", "id"])
    op.create_index("ix_admin_actions_type_time", "admin_actions", ["action_type", "timestamp"])
    op.create_index("ix_admin_actions_admin_time", "admin_actions", ["admin_uid", "timestamp"])
    op.create_index("ix_admin_actions_target_time", "admin_actions", ["target_uid", "timestamp"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("recipient_uid", sa.String(128), nullable=False),
        sa.Column("sender_uid", sa.String(128), nullable=True),
        sa.Column("related_action_id", sa.String(36), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("hebrew_date", sa.String(64), nullable=False),
        sa.Column("gregorian_date", sa.String(10), nullable=False),
    )
    op.create_index(
        "ix_notifications_recipient_time", "notifications", ["recipient_uid", "timestamp"],
    )
    op.create_index(
        "ix_notifications_recipient_read", "notifications", ["recipient_uid", "read"],
    )

    op.create_table(
        "seed_admin_grants",
        sa.Column("email", sa.String(320), primary_key=True),
        sa.Column("applied_uid", sa.String(128), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("seed_admin_grants")
    op.drop_index("ix_notifications_recipient_read", table_name="notifications")
    op.drop_index("ix_notifications_recipient_time", table_name="notifications")
    op.drop_table("notifications")
    for name in (
        "ix_admin_actions_target_time",
        "ix_admin_actions_admin_time",
        "ix_admin_actions_type_time",
        "ix_admin_actions_time",
    ):
        op.drop_index(name, table_name="admin_actions")
    op.drop_table("admin_actions")
    op.drop_index("ix_users_points_desc", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
