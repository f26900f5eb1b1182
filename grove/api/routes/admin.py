"""
grove.api.routes.admin — Moderation actions & audit log (JWT-protected)
========================================================================

The caller's role is never taken from the token: the audit service and
:func:`_require_audit_viewer` read it from the ``users`` table.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from grove.api.deps import get_calendar, get_config, get_current_identity, get_engine
from grove.config import GroveConfig
from grove.database.models import AdminActionType, UserRole
from grove.engine.calendar import HebrewCivilCalendar
from grove.engine.identity import Identity
from grove.errors import AuthorizationError, NotFoundError
from grove.services import audit_query_service, audit_service, profile_service
from grove.services.audit_query_service import ActionCursor, ActionLogEntry, ActionLogFilter

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ActionCreate(BaseModel):
    action_type: AdminActionType
    target_uid: str = Field(min_length=1)
    reason: str
    details: dict[str, Any] | None = None
    notify_target: bool | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _entry_dict(entry: ActionLogEntry) -> dict:
    return {
        "id": entry.id,
        "action_type": entry.action_type,
        "label": entry.label,
        "admin": {
            "uid": entry.admin_uid,
            "display_name": entry.admin_display_name,
            "email": entry.admin_email,
        },
        "target": {
            "uid": entry.target_uid,
            "display_name": entry.target_display_name,
            "email": entry.target_email,
        },
        "reason": entry.reason,
        "details": entry.details,
        "timestamp": entry.timestamp.isoformat(),
        "hebrew_date": entry.hebrew_date,
        "gregorian_date": entry.gregorian_date,
        "relative_time": entry.relative_time,
    }


def _require_audit_viewer(engine, identity: Identity, cfg: GroveConfig) -> None:
    try:
        profile = profile_service.get_profile(engine, identity.uid)
    except NotFoundError:
        raise AuthorizationError("Audit log requires a member profile") from None
    if profile.is_blocked or not cfg.access_policy.can_view_audit(profile.role or UserRole.USER):
        raise AuthorizationError("Not allowed to view the audit log")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------
@router.post("/actions", status_code=201)
def create_action(
    body: ActionCreate,
    identity: Identity = Depends(get_current_identity),
    engine=Depends(get_engine),
    cfg: GroveConfig = Depends(get_config),
    calendar: HebrewCivilCalendar = Depends(get_calendar),
):
    entry = audit_service.record_action(
        engine,
        body.action_type,
        admin=identity,
        target=Identity(uid=body.target_uid),
        reason=body.reason,
        details=body.details,
        policy=cfg.access_policy,
        calendar=calendar,
        retry=cfg.retry,
        notify_target=body.notify_target,
        placeholder_prefix=cfg.placeholder_prefix,
    )
    return _entry_dict(entry)


@router.get("/actions")
def list_actions(
    action_type: AdminActionType | None = None,
    admin_uid: str | None = None,
    target_uid: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(50, ge=1, le=200),
    before_timestamp: datetime | None = None,
    before_id: str | None = None,
    identity: Identity = Depends(get_current_identity),
    engine=Depends(get_engine),
    cfg: GroveConfig = Depends(get_config),
    calendar: HebrewCivilCalendar = Depends(get_calendar),
):
    """Audit log, newest first.  Pass the returned ``next_cursor`` to page."""
    _require_audit_viewer(engine, identity, cfg)

    before = None
    if before_timestamp is not None and before_id:
        before = ActionCursor(timestamp=before_timestamp, id=before_id)

    entries = [
        _entry_dict(entry)
        for entry in audit_query_service.query_actions(
            engine,
            ActionLogFilter(
                action_type=action_type,
                admin_uid=admin_uid,
                target_uid=target_uid,
                start_date=start_date,
                end_date=end_date,
                limit=limit,
                before=before,
            ),
            calendar=calendar,
        )
    ]
    next_cursor = None
    if len(entries) == limit:
        last = entries[-1]
        next_cursor = {"before_timestamp": last["timestamp"], "before_id": last["id"]}
    return {"entries": entries, "next_cursor": next_cursor}


@router.get("/actions/{action_id}")
def get_action(
    action_id: str,
    identity: Identity = Depends(get_current_identity),
    engine=Depends(get_engine),
    cfg: GroveConfig = Depends(get_config),
    calendar: HebrewCivilCalendar = Depends(get_calendar),
):
    _require_audit_viewer(engine, identity, cfg)
    return _entry_dict(audit_query_service.get_action(engine, action_id, calendar=calendar))
