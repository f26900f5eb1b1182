"""
grove.services.notification_service — Member Notifications
===========================================================

Per-recipient system messages.  The audit service creates them inside its
own transaction (via :func:`build_notification`) so an action and the
notice about it land together; :func:`notify` is the standalone path.

After creation only ``read`` ever changes, and only at the recipient's
request.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import Engine, func, select, update

from grove.database.engine import get_session
from grove.database.models import Notification, NotificationType, UserProfile
from grove.engine.calendar import CalendarFormatter, HebrewCivilCalendar, stamp
from grove.errors import AuthorizationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def build_notification(
    calendar: CalendarFormatter,
    *,
    recipient_uid: str,
    type: NotificationType | str,
    title: str,
    message: str,
    sender_uid: str | None = None,
    related_action_id: str | None = None,
    now: datetime | None = None,
) -> Notification:
    """Validate and construct an unsaved :class:`Notification`."""
    try:
        kind = NotificationType(type)
    except ValueError:
        raise ValidationError(f"Unknown notification type {type!r}") from None
    if not title or not title.strip():
        raise ValidationError("Notification title must not be empty")
    if not message or not message.strip():
        raise ValidationError("Notification message must not be empty")

    dates = stamp(calendar, now)
    return Notification(
        type=kind.value,
        title=title.strip(),
        message=message.strip(),
        recipient_uid=recipient_uid,
        sender_uid=sender_uid,
        related_action_id=related_action_id,
        read=False,
        timestamp=dates.timestamp,
        hebrew_date=dates.hebrew_date,
        gregorian_date=dates.gregorian_date,
    )


def notify(
    engine: Engine,
    recipient_uid: str,
    type: NotificationType | str,
    title: str,
    message: str,
    sender_uid: str | None = None,
    related_action_id: str | None = None,
    *,
    calendar: CalendarFormatter | None = None,
    now: datetime | None = None,
) -> Notification:
    """Create and persist a notification for *recipient_uid*.

    Raises
    ------
    ValidationError
        Unknown type, or blank title / message.
    NotFoundError
        No profile for *recipient_uid*.
    """
    note = build_notification(
        calendar or HebrewCivilCalendar(),
        recipient_uid=recipient_uid,
        type=type,
        title=title,
        message=message,
        sender_uid=sender_uid,
        related_action_id=related_action_id,
        now=now,
    )
    with get_session(engine, "notify") as session:
        if session.get(UserProfile, recipient_uid) is None:
            raise NotFoundError(f"No profile for uid {recipient_uid!r}")
        session.add(note)
        session.flush()

    logger.info("Notification %s (%s) → uid=%s", note.id, note.type, recipient_uid)
    return note


def mark_read(engine: Engine, notification_id: str, requesting_uid: str) -> Notification:
    """Mark one notification read.  Only its recipient may do so.

    Idempotent for the recipient.

    Raises
    ------
    NotFoundError
        Unknown notification id.
    AuthorizationError
        *requesting_uid* is not the recipient (``read`` stays unchanged).
    """
    with get_session(engine, "mark_read") as session:
        note = session.get(Notification, notification_id)
        if note is None:
            raise NotFoundError(f"Notification {notification_id!r} not found")
        if note.recipient_uid != requesting_uid:
            raise AuthorizationError("Only the recipient may mark a notification read")
        note.read = True
        return note


def mark_all_read(engine: Engine, uid: str) -> int:
    """Mark every unread notification of *uid* read.  Returns how many."""
    with get_session(engine, "mark_all_read") as session:
        result = session.execute(
            update(Notification)
            .where(Notification.recipient_uid == uid, Notification.read.is_(False))
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
    logger.info("Marked %d notifications read for uid=%s", count, uid)
    return count


def list_notifications(
    engine: Engine,
    uid: str,
    *,
    only_unread: bool = False,
    limit: int = 50,
) -> Sequence[Notification]:
    """Notifications for *uid*, newest first."""
    if limit <= 0:
        raise ValidationError("limit must be positive")
    stmt = (
        select(Notification)
        .where(Notification.recipient_uid == uid)
        .order_by(Notification.timestamp.desc(), Notification.id.desc())
        .limit(limit)
    )
    if only_unread:
        stmt = stmt.where(Notification.read.is_(False))
    with get_session(engine, "list_notifications") as session:
        return session.scalars(stmt).all()


def unread_count(engine: Engine, uid: str) -> int:
    with get_session(engine, "unread_count") as session:
        return session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.recipient_uid == uid, Notification.read.is_(False))
        ) or 0
