"""
grove.database.seed — Seed-Administrator Grants
================================================

The first administrators of a deployment come from ``seed_admins:`` in
``config.yaml``.  At initialization each email is registered as a
:class:`SeedAdminGrant`.  A grant is applied exactly once: immediately if a
profile with that email already exists, otherwise the first time that
identity authenticates (see :func:`grove.services.profile_service.ensure_profile`).

Applying a grant makes the profile ``super_admin`` with the top level of the
table, pinned so later stat changes do not re-derive it.

Idempotent — registering the same email twice is a no-op, and applied
grants are never re-applied.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from grove.database.engine import get_session
from grove.database.models import SeedAdminGrant, UserProfile, UserRole
from grove.engine.levels import LevelTable

logger = logging.getLogger(__name__)


def apply_seed_grant(
    grant: SeedAdminGrant,
    profile: UserProfile,
    level_table: LevelTable,
    now: datetime | None = None,
) -> None:
    """Elevate *profile* and mark *grant* as consumed (caller commits)."""
    profile.role = UserRole.SUPER_ADMIN.value
    profile.level = level_table.highest.level.value
    profile.level_pinned = True
    grant.applied_uid = profile.uid
    grant.applied_at = now or datetime.now(UTC)
    logger.info("Seed admin grant applied: %s → uid=%s", grant.email, profile.uid)


def pending_grant_for(session: Session, email: str | None) -> SeedAdminGrant | None:
    """Return the unapplied grant for *email*, if any."""
    if not email:
        return None
    return session.scalar(
        select(SeedAdminGrant).where(
            SeedAdminGrant.email == email.strip().lower(),
            SeedAdminGrant.applied_uid.is_(None),
        )
    )


def register_seed_admins(
    engine: Engine,
    emails: Iterable[str],
    level_table: LevelTable,
) -> dict[str, int]:
    """Register grants for *emails* and apply those whose profile exists.

    Returns ``{"registered": N, "applied": M}``.
    """
    registered = 0
    applied = 0
    with get_session(engine, "register_seed_admins") as session:
        for raw_email in emails:
            email = raw_email.strip().lower()
            if not email:
                continue
            grant = session.get(SeedAdminGrant, email)
            if grant is None:
                grant = SeedAdminGrant(email=email)
                session.add(grant)
                session.flush()
                registered += 1

            if grant.applied_uid is not None:
                continue

            profile = session.scalar(
                select(UserProfile)
                .where(func.lower(UserProfile.email) == email)
                .order_by(UserProfile.created_at)
                .limit(1)
            )
            if profile is not None:
                apply_seed_grant(grant, profile, level_table)
                applied += 1

    logger.info("Seed admins: %d registered, %d applied", registered, applied)
    return {"registered": registered, "applied": applied}
