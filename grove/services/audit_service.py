"""
grove.services.audit_service — Privileged Action Recording
===========================================================

:func:`record_action` is the only way a moderator changes another member's
standing.  In one transaction it:

1. re-reads the actor's role from the ``users`` table (roles are never
   taken from the caller) and refuses blocked actors,
2. asks the :class:`~grove.engine.permissions.AccessPolicy` whether the
   action is allowed against the target's current role,
3. applies the action's profile side effect (role change, block flag,
   flower count) with an UPDATE guarded on the roles it authorized
   against, so a concurrent role change turns into a retry that
   re-authorizes instead of a write based on a stale read,
4. appends a write-once :class:`~grove.database.models.AdminAction` with
   identity snapshots and both calendar dates,
5. adds the notification the subject should receive.

Either all of it commits or none of it does.  Lost races and database
hiccups are retried with backoff (see :mod:`grove.services.retry`).
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, func, update
from sqlalchemy.orm import Session

from grove.constants import NOTIFICATION_TEMPLATES, SUBJECT_ACTIONS
from grove.database.engine import get_session
from grove.database.models import AdminAction, AdminActionType, UserProfile, UserRole
from grove.engine.calendar import CalendarFormatter, DateStamp, HebrewCivilCalendar, stamp
from grove.engine.identity import DISPLAY_NAME_MAX_LENGTH, Identity
from grove.engine.permissions import ROLE_CHANGE_ACTIONS, AccessPolicy
from grove.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from grove.services.audit_query_service import ActionLogEntry, entry_from_row
from grove.services.notification_service import build_notification
from grove.services.retry import DEFAULT_RETRY_POLICY, RetryPolicy, run_with_retries

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------
def _role_matches(role: str | None):
    if role is None:
        return UserProfile.role.is_(None)
    return UserProfile.role == role


def _guarded_update(session: Session, uid: str, role_read: str | None, **values) -> None:
    """UPDATE the row only if its role is still the one authorized against.

    A concurrent role change makes this a no-op; the resulting
    :class:`ConflictError` sends the caller back through the retry loop,
    which re-reads and re-authorizes.
    """
    result = session.execute(
        update(UserProfile)
        .where(UserProfile.uid == uid, _role_matches(role_read))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError(f"Profile {uid!r} changed while the action was authorized")


def _hold_actor(session: Session, actor: UserProfile) -> None:
    """Re-check the actor's standing inside the write transaction."""
    result = session.execute(
        update(UserProfile)
        .where(
            UserProfile.uid == actor.uid,
            _role_matches(actor.role),
            UserProfile.is_blocked.isnot(True),
        )
        .values(role=UserProfile.role)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError(f"Actor {actor.uid!r} changed while the action was authorized")


def _apply_side_effect(
    session: Session,
    action_type: AdminActionType,
    actor: UserProfile,
    subject: UserProfile,
    reason: str,
    new_role: str | None,
    when: datetime,
) -> None:
    if action_type in ROLE_CHANGE_ACTIONS:
        _guarded_update(
            session, subject.uid, subject.role,
            role=UserRole(new_role).value, promoted_by=actor.uid, promoted_at=when,
        )
    elif action_type == AdminActionType.BLOCK_USER:
        _guarded_update(
            session, subject.uid, subject.role, is_blocked=True, blocked_reason=reason,
        )
    elif action_type == AdminActionType.UNBLOCK_USER:
        _guarded_update(
            session, subject.uid, subject.role, is_blocked=False, blocked_reason=None,
        )
    elif action_type == AdminActionType.GIVE_FLOWER:
        session.execute(
            update(UserProfile)
            .where(UserProfile.uid == subject.uid)
            .values(flowers=func.coalesce(UserProfile.flowers, 0) + 1)
            .execution_options(synchronize_session=False)
        )


def _snapshot(profile: UserProfile, identity: Identity, prefix: str) -> tuple[str, str]:
    """(display name, email) as of now, preferring the stored profile."""
    name = (profile.display_name or identity.fallback_name(prefix))[:DISPLAY_NAME_MAX_LENGTH]
    email = profile.email or identity.email or ""
    return name, email


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------
def _record_once(
    engine: Engine,
    action_type: AdminActionType,
    admin: Identity,
    target: Identity,
    reason: str,
    details: dict[str, Any] | None,
    policy: AccessPolicy,
    calendar: CalendarFormatter,
    dates: DateStamp,
    notify_target: bool,
    placeholder_prefix: str,
) -> ActionLogEntry:
    new_role = (details or {}).get("new_role")

    with get_session(engine, "record_action") as session:
        # Row locks on PostgreSQL; the guarded UPDATEs below cover backends
        # that ignore FOR UPDATE.
        actor = session.get(UserProfile, admin.uid, with_for_update=True)
        if actor is None:
            raise AuthorizationError(f"No profile for actor uid {admin.uid!r}")
        if actor.is_blocked:
            raise AuthorizationError("Blocked members cannot perform privileged actions")

        subject = session.get(UserProfile, target.uid, with_for_update=True)
        if subject is None:
            raise NotFoundError(f"No profile for target uid {target.uid!r}")

        policy.authorize(
            action_type,
            actor_role=actor.role or UserRole.USER,
            target_role=subject.role or UserRole.USER,
            new_role=new_role,
        )

        admin_name, admin_email = _snapshot(actor, admin, placeholder_prefix)
        target_name, target_email = _snapshot(subject, target, placeholder_prefix)

        _hold_actor(session, actor)
        _apply_side_effect(
            session, action_type, actor, subject, reason, new_role, dates.timestamp,
        )

        row = AdminAction(
            id=str(uuid.uuid4()),
            action_type=action_type.value,
            admin_uid=actor.uid,
            admin_display_name=admin_name,
            admin_email=admin_email,
            target_uid=subject.uid,
            target_display_name=target_name,
            target_email=target_email,
            reason=reason,
            details=details,
            timestamp=dates.timestamp,
            hebrew_date=dates.hebrew_date,
            gregorian_date=dates.gregorian_date,
        )
        session.add(row)

        if notify_target and subject.uid != actor.uid:
            template = NOTIFICATION_TEMPLATES[action_type]
            title, message = template.render(
                admin=admin_name, reason=reason, new_role=new_role or "",
            )
            session.add(build_notification(
                calendar,
                recipient_uid=subject.uid,
                type=template.type,
                title=title,
                message=message,
                sender_uid=actor.uid,
                related_action_id=row.id,
                now=dates.timestamp,
            ))

        session.flush()

    return entry_from_row(row, calendar, dates.timestamp)


def record_action(
    engine: Engine,
    action_type: AdminActionType | str,
    admin: Identity,
    target: Identity,
    reason: str,
    details: dict[str, Any] | None = None,
    *,
    policy: AccessPolicy | None = None,
    calendar: CalendarFormatter | None = None,
    retry: RetryPolicy = DEFAULT_RETRY_POLICY,
    notify_target: bool | None = None,
    placeholder_prefix: str = "member",
    now: datetime | None = None,
) -> ActionLogEntry:
    """Authorize, apply and record one privileged action.

    Parameters
    ----------
    notify_target:
        Whether the target gets a notification.  Defaults to yes for
        actions aimed at the member (role, block, warning, flowers) and no
        for content moderation.
    now:
        Action instant; the current time when omitted.

    Raises
    ------
    ValidationError
        Unknown action type, empty reason, details that are not a
        JSON-serializable mapping, or a role change without a valid
        ``details["new_role"]``.
    AuthorizationError
        Actor unknown, blocked, or not permitted by the policy.
    NotFoundError
        Target has no profile.
    UpstreamError
        Database unavailable after retries.
    """
    try:
        kind = AdminActionType(action_type)
    except ValueError:
        raise ValidationError(f"Unknown action type {action_type!r}") from None
    if not reason or not reason.strip():
        raise ValidationError("A reason is required for every admin action")
    if details is not None and not isinstance(details, dict):
        raise ValidationError("details must be a mapping")
    if details is not None:
        try:
            json.dumps(details)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"details must be JSON-serializable: {exc}") from None

    calendar = calendar or HebrewCivilCalendar()
    dates = stamp(calendar, now)
    if notify_target is None:
        notify_target = kind in SUBJECT_ACTIONS

    entry = run_with_retries(
        lambda: _record_once(
            engine, kind, admin, target, reason.strip(), details,
            policy or AccessPolicy(), calendar, dates, notify_target,
            placeholder_prefix,
        ),
        policy=retry,
        operation="record_action",
    )
    logger.info(
        "Admin action %s recorded: %s by uid=%s on uid=%s",
        entry.id, kind.value, admin.uid, target.uid,
    )
    return entry
