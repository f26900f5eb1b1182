"""
grove.api.routes.notifications — The caller's notifications
============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from grove.api.deps import get_current_identity, get_engine
from grove.database.models import Notification
from grove.engine.identity import Identity
from grove.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _notification_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "sender_uid": n.sender_uid,
        "related_action_id": n.related_action_id,
        "read": n.read,
        "timestamp": n.timestamp.isoformat(),
        "hebrew_date": n.hebrew_date,
        "gregorian_date": n.gregorian_date,
    }


@router.get("")
def list_notifications(
    only_unread: bool = False,
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(get_current_identity),
    engine=Depends(get_engine),
):
    notes = notification_service.list_notifications(
        engine, identity.uid, only_unread=only_unread, limit=limit,
    )
    return {
        "notifications": [_notification_dict(n) for n in notes],
        "unread": notification_service.unread_count(engine, identity.uid),
    }


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: str,
    identity: Identity = Depends(get_current_identity),
    engine=Depends(get_engine),
):
    note = notification_service.mark_read(engine, notification_id, identity.uid)
    return _notification_dict(note)


@router.post("/read-all")
def mark_all_read(
    identity: Identity = Depends(get_current_identity),
    engine=Depends(get_engine),
):
    return {"updated": notification_service.mark_all_read(engine, identity.uid)}
