"""
grove.services.audit_query_service — Audit Log Read Path
=========================================================

Filters and pages through ``admin_actions`` newest-first by
``(timestamp, id)``.  Results stream from the database in batches
(``yield_per``) as :class:`ActionLogEntry` values with a freshly computed
``relative_time``; the stored rows are never touched.

Usage::

    page = list(query_actions(engine, ActionLogFilter(target_uid=uid, limit=20)))
    if page:
        more = query_actions(
            engine,
            ActionLogFilter(target_uid=uid, limit=20,
                            before=ActionCursor.from_entry(page[-1])),
        )

Read paths never retry; a database failure surfaces as
:class:`~grove.errors.UpstreamError`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, Select, and_, or_, select

from grove.constants import action_label
from grove.database.engine import get_session
from grove.database.models import AdminAction, AdminActionType
from grove.engine.calendar import (
    CalendarFormatter,
    HebrewCivilCalendar,
    ensure_utc,
)
from grove.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Rows fetched per round trip while streaming
STREAM_BATCH_SIZE = 100


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ActionLogEntry:
    """Read-side view of one audit record."""

    id: str
    action_type: str
    admin_uid: str
    admin_display_name: str
    admin_email: str
    target_uid: str
    target_display_name: str
    target_email: str
    reason: str
    details: dict[str, Any] | None
    timestamp: datetime
    hebrew_date: str
    gregorian_date: str
    relative_time: str

    @property
    def label(self) -> str:
        return action_label(self.action_type)


@dataclass(frozen=True, slots=True)
class ActionCursor:
    """Keyset position: results strictly older than ``(timestamp, id)``."""

    timestamp: datetime
    id: str

    @classmethod
    def from_entry(cls, entry: ActionLogEntry) -> ActionCursor:
        return cls(timestamp=entry.timestamp, id=entry.id)


@dataclass(frozen=True, slots=True)
class ActionLogFilter:
    """AND-combined audit filters.  Date bounds are inclusive."""

    action_type: AdminActionType | str | None = None
    admin_uid: str | None = None
    target_uid: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int | None = None
    before: ActionCursor | None = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit <= 0:
            raise ValidationError(f"limit must be positive, got {self.limit}")
        if self.action_type is not None:
            try:
                AdminActionType(self.action_type)
            except ValueError:
                raise ValidationError(
                    f"Unknown action type {self.action_type!r}"
                ) from None
        if (
            self.start_date is not None
            and self.end_date is not None
            and ensure_utc(self.start_date) > ensure_utc(self.end_date)
        ):
            raise ValidationError("start_date is after end_date")


def entry_from_row(
    row: AdminAction,
    calendar: CalendarFormatter,
    now: datetime | None = None,
) -> ActionLogEntry:
    timestamp = ensure_utc(row.timestamp)
    return ActionLogEntry(
        id=row.id,
        action_type=row.action_type,
        admin_uid=row.admin_uid,
        admin_display_name=row.admin_display_name,
        admin_email=row.admin_email,
        target_uid=row.target_uid,
        target_display_name=row.target_display_name,
        target_email=row.target_email,
        reason=row.reason,
        details=row.details,
        timestamp=timestamp,
        hebrew_date=row.hebrew_date,
        gregorian_date=row.gregorian_date,
        relative_time=calendar.relative_time(timestamp, now),
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def _build_query(flt: ActionLogFilter) -> Select:
    stmt = select(AdminAction)
    if flt.action_type is not None:
        stmt = stmt.where(AdminAction.action_type == AdminActionType(flt.action_type).value)
    if flt.admin_uid is not None:
        stmt = stmt.where(AdminAction.admin_uid == flt.admin_uid)
    if flt.target_uid is not None:
        stmt = stmt.where(AdminAction.target_uid == flt.target_uid)
    if flt.start_date is not None:
        stmt = stmt.where(AdminAction.timestamp >= ensure_utc(flt.start_date))
    if flt.end_date is not None:
        stmt = stmt.where(AdminAction.timestamp <= ensure_utc(flt.end_date))
    if flt.before is not None:
        cursor_ts = ensure_utc(flt.before.timestamp)
        stmt = stmt.where(
            or_(
                AdminAction.timestamp < cursor_ts,
                and_(AdminAction.timestamp == cursor_ts, AdminAction.id < flt.before.id),
            )
        )
    stmt = stmt.order_by(AdminAction.timestamp.desc(), AdminAction.id.desc())
    if flt.limit is not None:
        stmt = stmt.limit(flt.limit)
    return stmt


def _stream(
    engine: Engine,
    stmt: Select,
    calendar: CalendarFormatter,
    now: datetime | None,
) -> Iterator[ActionLogEntry]:
    # Closing or abandoning the generator exits the with-block and
    # releases the connection.
    with get_session(engine, "query_actions") as session:
        rows = session.scalars(stmt.execution_options(yield_per=STREAM_BATCH_SIZE))
        for row in rows:
            yield entry_from_row(row, calendar, now)


def query_actions(
    engine: Engine,
    filter: ActionLogFilter | None = None,
    *,
    calendar: CalendarFormatter | None = None,
    now: datetime | None = None,
) -> Iterator[ActionLogEntry]:
    """Stream audit entries matching *filter*, newest first.

    The filter is validated before this returns, so a bad ``limit`` raises
    :class:`ValidationError` at the call site rather than on first
    iteration.  The returned generator is one-shot.
    """
    flt = filter or ActionLogFilter()
    stmt = _build_query(flt)
    return _stream(engine, stmt, calendar or HebrewCivilCalendar(), now)


def get_action(
    engine: Engine,
    action_id: str,
    *,
    calendar: CalendarFormatter | None = None,
    now: datetime | None = None,
) -> ActionLogEntry:
    """Fetch one audit entry by id or raise :class:`NotFoundError`."""
    with get_session(engine, "get_action") as session:
        row = session.get(AdminAction, action_id)
        if row is None:
            raise NotFoundError(f"Admin action {action_id!r} not found")
        return entry_from_row(row, calendar or HebrewCivilCalendar(), now)
