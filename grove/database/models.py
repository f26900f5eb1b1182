"""
grove.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- users              — Member profiles with role, level and stat counters
- admin_actions      — Append-only moderation audit trail
- notifications      — Per-recipient system notifications
- seed_admin_grants  — Configured seed administrators (one-time grants)

Stat columns are nullable so rows imported from older profile documents
can be loaded and repaired by the profile reconciler instead of rejected.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    event,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from grove.engine.identity import DISPLAY_NAME_MAX_LENGTH
from grove.errors import ValidationError


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Grove ORM models."""


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class UserRole(enum.StrEnum):
    """Privilege roles, declared lowest to highest."""
    USER = "user"
    TRUSTEE = "trustee"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class UserLevel(enum.StrEnum):
    """Progression tiers, declared lowest to highest."""
    SEEDLING = "seedling"
    TRUNK = "trunk"
    OAK = "oak"


class AdminActionType(enum.StrEnum):
    """Closed set of privileged actions recorded in admin_actions."""
    PROMOTE_USER = "PROMOTE_USER"
    DEMOTE_USER = "DEMOTE_USER"
    BLOCK_USER = "BLOCK_USER"
    UNBLOCK_USER = "UNBLOCK_USER"
    EDIT_QUESTION = "EDIT_QUESTION"
    DELETE_QUESTION = "DELETE_QUESTION"
    EDIT_ANSWER = "EDIT_ANSWER"
    DELETE_ANSWER = "DELETE_ANSWER"
    GIVE_FLOWER = "GIVE_FLOWER"
    REMOVE_FLOWER = "REMOVE_FLOWER"
    SEND_WARNING = "SEND_WARNING"
    OTHER = "OTHER"


class NotificationType(enum.StrEnum):
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    ERROR = "error"


STAT_FIELDS: tuple[str, ...] = (
    "points",
    "flowers",
    "correct_answers",
    "questions_asked",
    "helpful_answers",
    "days_active",
    "streak",
)


# ---------------------------------------------------------------------------
# UserProfile — one row per authenticated identity, never hard-deleted
# ---------------------------------------------------------------------------
class UserProfile(Base):
    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    display_name: Mapped[str | None] = mapped_column(
        String(DISPLAY_NAME_MAX_LENGTH), nullable=True
    )
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    level: Mapped[str | None] = mapped_column(String(20), nullable=True)
    level_pinned: Mapped[bool | None] = mapped_column(Boolean, default=False)

    # Stats
    points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    flowers: Mapped[int | None] = mapped_column(Integer, nullable=True)
    correct_answers: Mapped[int | None] = mapped_column(Integer, nullable=True)
    questions_asked: Mapped[int | None] = mapped_column(Integer, nullable=True)
    helpful_answers: Mapped[int | None] = mapped_column(Integer, nullable=True)
    days_active: Mapped[int | None] = mapped_column(Integer, nullable=True)
    streak: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Moderation state
    is_blocked: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    blocked_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    promoted_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    promoted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_active: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_users_email", "email"),
        Index("ix_users_points_desc", "points"),
    )

    def stat_values(self) -> dict[str, int]:
        """Current stat counters with missing values read as zero."""
        return {name: getattr(self, name) or 0 for name in STAT_FIELDS}

    def __repr__(self) -> str:
        return f"<UserProfile uid={self.uid!r} role={self.role} lvl={self.level}>"


# ---------------------------------------------------------------------------
# AdminAction — append-only audit trail
# ---------------------------------------------------------------------------
class AdminAction(Base):
    """One privileged action.  Actor and subject identities are snapshots
    taken at action time, not references, so later profile edits never
    rewrite history."""
    __tablename__ = "admin_actions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)

    admin_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    admin_display_name: Mapped[str] = mapped_column(
        String(DISPLAY_NAME_MAX_LENGTH), nullable=False
    )
    admin_email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    target_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    target_display_name: Mapped[str] = mapped_column(
        String(DISPLAY_NAME_MAX_LENGTH), nullable=False
    )
    target_email: Mapped[str] = mapped_column(String(320), nullable=False, default="")

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    hebrew_date: Mapped[str] = mapped_column(String(64), nullable=False)
    gregorian_date: Mapped[str] = mapped_column(String(10), nullable=False)

    __table_args__ = (
        Index("ix_admin_actions_time", "timestamp", "id"),
        Index("ix_admin_actions_type_time", "action_type", "timestamp"),
        Index("ix_admin_actions_admin_time", "admin_uid", "timestamp"),
        Index("ix_admin_actions_target_time", "target_uid", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<AdminAction id={self.id} type={self.action_type} "
            f"admin={self.admin_uid!r} target={self.target_uid!r}>"
        )


@event.listens_for(AdminAction, "before_update")
def _refuse_audit_update(mapper, connection, target) -> None:
    raise ValidationError(f"Admin action {target.id} is write-once")


@event.listens_for(AdminAction, "before_delete")
def _refuse_audit_delete(mapper, connection, target) -> None:
    raise ValidationError(f"Admin action {target.id} cannot be deleted")


# ---------------------------------------------------------------------------
# Notification — per-recipient system message
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    recipient_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    sender_uid: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # Weak reference: lookup only, no FK.
    related_action_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    hebrew_date: Mapped[str] = mapped_column(String(64), nullable=False)
    gregorian_date: Mapped[str] = mapped_column(String(10), nullable=False)

    __table_args__ = (
        Index("ix_notifications_recipient_time", "recipient_uid", "timestamp"),
        Index("ix_notifications_recipient_read", "recipient_uid", "read"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification id={self.id} to={self.recipient_uid!r} "
            f"type={self.type} read={self.read}>"
        )


# ---------------------------------------------------------------------------
# SeedAdminGrant — configured seed administrators
# ---------------------------------------------------------------------------
class SeedAdminGrant(Base):
    """A pending or applied one-time super-admin grant for an email.

    Rows are registered from ``config.yaml`` at initialization.  The grant is
    applied once — either immediately, if a matching profile already exists,
    or when that identity first authenticates.
    """
    __tablename__ = "seed_admin_grants"

    email: Mapped[str] = mapped_column(String(320), primary_key=True)
    applied_uid: Mapped[str | None] = mapped_column(String(128), nullable=True)
    applied_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<SeedAdminGrant email={self.email!r} applied={self.applied_uid!r}>"
