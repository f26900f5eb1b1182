"""
grove.services.profile_service — Profile Reconciliation & Stat Accumulation
============================================================================

Two write paths on the ``users`` table:

* :func:`ensure_profile` runs on every authentication.  It guarantees a
  complete profile exists for the identity: creates it with zeroed stats
  the first time, fills only the missing fields of older rows, re-derives a
  stale level, applies a pending seed-administrator grant, and touches
  ``last_active``.  Calling it again changes nothing but ``last_active``.

* :func:`increment_stats` is the activity path.  Counters and the derived
  level are written by a single ``UPDATE ... SET points = points + :d``
  statement, so two concurrent +1 events always land as +2.

Both run through :func:`~grove.services.retry.run_with_retries`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, case, func, select, update
from sqlalchemy.sql.elements import ColumnElement

from grove.database.engine import get_session
from grove.database.models import STAT_FIELDS, UserLevel, UserProfile, UserRole
from grove.database.seed import apply_seed_grant, pending_grant_for
from grove.engine.identity import Identity
from grove.engine.levels import DEFAULT_LEVEL_TABLE, LevelTable, UserStats, resolve_level
from grove.errors import NotFoundError, ValidationError
from grove.services.retry import DEFAULT_RETRY_POLICY, RetryPolicy, run_with_retries

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LevelChange:
    """Outcome of a stat increment."""

    old_level: UserLevel
    new_level: UserLevel
    stats: UserStats

    @property
    def leveled_up(self) -> bool:
        return self.new_level != self.old_level


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_profile(engine: Engine, uid: str) -> UserProfile:
    """Fetch a profile or raise :class:`NotFoundError`."""
    with get_session(engine, "get_profile") as session:
        profile = session.get(UserProfile, uid)
        if profile is None:
            raise NotFoundError(f"No profile for uid {uid!r}")
        return profile


def profile_stats(profile: UserProfile) -> UserStats:
    return UserStats.from_mapping(profile.stat_values())


# ---------------------------------------------------------------------------
# Profile reconciler
# ---------------------------------------------------------------------------
def _fill_missing(
    profile: UserProfile,
    identity: Identity,
    level_table: LevelTable,
    placeholder_prefix: str,
    now: datetime,
) -> list[str]:
    """Populate NULL fields only.  Returns the names of repaired fields."""
    repaired: list[str] = []

    def _default(name: str, value) -> None:
        if getattr(profile, name) is None and value is not None:
            setattr(profile, name, value)
            repaired.append(name)

    _default("email", identity.email or "")
    _default("display_name", identity.fallback_name(placeholder_prefix))
    _default("photo_url", identity.photo_url)
    _default("role", UserRole.USER.value)
    _default("is_blocked", False)
    _default("created_at", now)
    for name in STAT_FIELDS:
        _default(name, 0)
    if profile.level_pinned is None:
        profile.level_pinned = False

    if not profile.level_pinned:
        derived = resolve_level(profile_stats(profile), level_table).level.value
        if profile.level != derived:
            profile.level = derived
            repaired.append("level")
    return repaired


def _ensure_once(
    engine: Engine,
    identity: Identity,
    level_table: LevelTable,
    placeholder_prefix: str,
    now: datetime | None,
) -> UserProfile:
    now = now or datetime.now(UTC)
    with get_session(engine, "ensure_profile") as session:
        profile = session.get(UserProfile, identity.uid)
        created = profile is None
        if created:
            profile = UserProfile(uid=identity.uid, level_pinned=False)
            session.add(profile)

        repaired = _fill_missing(profile, identity, level_table, placeholder_prefix, now)
        profile.last_active = now

        grant = pending_grant_for(session, profile.email or identity.email)
        if grant is not None:
            apply_seed_grant(grant, profile, level_table, now)

        # Flush inside the session so a duplicate insert from a concurrent
        # first login surfaces as ConflictError and is retried as an update.
        session.flush()

    if created:
        logger.info("Profile created for uid=%s (%s)", identity.uid, profile.display_name)
    elif repaired and repaired != ["created_at"]:
        logger.info("Profile uid=%s repaired fields: %s", identity.uid, ", ".join(repaired))
    return profile


def ensure_profile(
    engine: Engine,
    identity: Identity,
    *,
    level_table: LevelTable = DEFAULT_LEVEL_TABLE,
    placeholder_prefix: str = "member",
    retry: RetryPolicy = DEFAULT_RETRY_POLICY,
    now: datetime | None = None,
) -> UserProfile:
    """Create or repair the profile for *identity* and return it.

    Never fails for a valid authenticated identity because of missing
    name or email; only transient database failures (after retries)
    surface, as :class:`~grove.errors.UpstreamError`.
    """
    return run_with_retries(
        lambda: _ensure_once(engine, identity, level_table, placeholder_prefix, now),
        policy=retry,
        operation="ensure_profile",
    )


# ---------------------------------------------------------------------------
# Stat accumulation
# ---------------------------------------------------------------------------
def level_expression(points: ColumnElement, level_table: LevelTable) -> ColumnElement:
    """SQL ``CASE`` mapping a points expression to a level value."""
    whens = [
        (points >= tier.min_points, tier.level.value)
        for tier in reversed(level_table.tiers[1:])
    ]
    if not whens:
        return level_table.lowest.level.value
    return case(*whens, else_=level_table.lowest.level.value)


def _increment_once(
    engine: Engine,
    uid: str,
    deltas: dict[str, int],
    reset_streak: bool,
    level_table: LevelTable,
    now: datetime | None,
) -> LevelChange:
    values: dict = {
        name: func.coalesce(getattr(UserProfile, name), 0) + delta
        for name, delta in deltas.items()
    }
    if reset_streak:
        values["streak"] = deltas.get("streak", 0)

    new_points = values.get("points", func.coalesce(UserProfile.points, 0))
    values["level"] = case(
        (UserProfile.level_pinned.is_(True), UserProfile.level),
        else_=level_expression(new_points, level_table),
    )
    values["last_active"] = now or datetime.now(UTC)

    with get_session(engine, "increment_stats") as session:
        result = session.execute(
            update(UserProfile)
            .where(UserProfile.uid == uid)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"No profile for uid {uid!r}")

        # Same transaction: we hold the row's write lock, so this reads our write.
        row = session.execute(
            select(UserProfile.level, UserProfile.level_pinned,
                   *[getattr(UserProfile, n) for n in STAT_FIELDS])
            .where(UserProfile.uid == uid)
        ).one()

    stats = UserStats.from_mapping({n: getattr(row, n) for n in STAT_FIELDS})
    new_level = UserLevel(row.level)
    if row.level_pinned:
        old_level = new_level
    else:
        old_points = stats.points - deltas.get("points", 0)
        old_level = level_table.tier_for_points(max(old_points, 0)).level
    return LevelChange(old_level=old_level, new_level=new_level, stats=stats)


def increment_stats(
    engine: Engine,
    uid: str,
    *,
    reset_streak: bool = False,
    level_table: LevelTable = DEFAULT_LEVEL_TABLE,
    retry: RetryPolicy = DEFAULT_RETRY_POLICY,
    now: datetime | None = None,
    **deltas: int,
) -> LevelChange:
    """Atomically add *deltas* to a member's counters and re-derive the level.

    Usage::

        change = increment_stats(engine, uid, points=10, correct_answers=1)
        if change.leveled_up:
            ...

    ``reset_streak=True`` sets ``streak`` to ``deltas.get("streak", 0)``;
    it is the only way a counter can go down.

    Raises
    ------
    ValidationError
        Unknown stat name or negative delta.
    NotFoundError
        No profile for *uid*.
    """
    unknown = set(deltas) - set(STAT_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown stats: {', '.join(sorted(unknown))}")
    negative = [name for name, delta in deltas.items() if delta < 0]
    if negative:
        raise ValidationError(
            f"Stats only accumulate; negative delta for {', '.join(sorted(negative))}"
        )
    if not deltas and not reset_streak:
        raise ValidationError("increment_stats requires at least one delta")

    change = run_with_retries(
        lambda: _increment_once(engine, uid, deltas, reset_streak, level_table, now),
        policy=retry,
        operation="increment_stats",
    )
    if change.leveled_up:
        logger.info(
            "Level up: uid=%s %s → %s", uid, change.old_level.value, change.new_level.value,
        )
    return change
