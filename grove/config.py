"""
grove.config — YAML Configuration Loader
=========================================

Loads ``config.yaml`` into a frozen :class:`GroveConfig`: the level table
(thresholds, icons, unlocks and per-tier capabilities), the moderation
role matrix, seed administrators, retry settings and the calendar
timezone.  Secrets (``DATABASE_URL``, ``JWT_SECRET``) are read from the
environment, not from this file.

Usage::

    from grove.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.community_name)        # "Grove"
    print(cfg.level_table.highest)   # LevelTier(level=<UserLevel.OAK ...>)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from grove.database.models import AdminActionType, UserLevel, UserRole
from grove.engine.calendar import DEFAULT_TIMEZONE
from grove.engine.levels import DEFAULT_LEVEL_TABLE, LevelTable, LevelTier
from grove.engine.permissions import DEFAULT_ACTION_MIN_ROLES, AccessPolicy
from grove.services.retry import DEFAULT_RETRY_POLICY, RetryPolicy


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GroveConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Calendar strings are derived in this timezone
    timezone: str = DEFAULT_TIMEZONE

    # Emails granted super_admin + the top level once, at first sight
    seed_admins: tuple[str, ...] = ()

    level_table: LevelTable = DEFAULT_LEVEL_TABLE
    access_policy: AccessPolicy = field(default_factory=AccessPolicy)
    retry: RetryPolicy = DEFAULT_RETRY_POLICY

    # Prefix for generated display names (identity with no name or email)
    placeholder_prefix: str = "member"


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------
def _default_capabilities(level: UserLevel) -> frozenset[str]:
    tier = DEFAULT_LEVEL_TABLE.tier_for_level(level)
    return tier.capabilities if tier else frozenset()


def _parse_levels(raw: list[dict] | None) -> LevelTable:
    if not raw:
        return DEFAULT_LEVEL_TABLE
    tiers = []
    for entry in raw:
        level = UserLevel(entry["level"])
        caps = entry.get("capabilities")
        tiers.append(LevelTier(
            level=level,
            min_points=int(entry["min_points"]),
            display_name=entry.get("display_name", str(entry["level"]).title()),
            icon=entry.get("icon", ""),
            unlocks=tuple(entry.get("unlocks") or ()),
            # Omitted: keep the built-in set for this level; [] grants none
            capabilities=(
                _default_capabilities(level) if caps is None else frozenset(caps)
            ),
        ))
    return LevelTable(tiers)


def _parse_permissions(raw: dict | None, audit_view_role: str | None) -> AccessPolicy:
    matrix = dict(DEFAULT_ACTION_MIN_ROLES)
    for action, role in (raw or {}).items():
        matrix[AdminActionType(action)] = UserRole(role)
    return AccessPolicy(
        action_min_roles=matrix,
        audit_view_role=UserRole(audit_view_role or UserRole.ADMIN),
    )


def _parse_retry(raw: dict | None) -> RetryPolicy:
    if not raw:
        return DEFAULT_RETRY_POLICY
    return RetryPolicy(
        max_attempts=int(raw.get("max_attempts", DEFAULT_RETRY_POLICY.max_attempts)),
        base_backoff=float(raw.get("base_backoff", DEFAULT_RETRY_POLICY.base_backoff)),
        max_backoff=float(raw.get("max_backoff", DEFAULT_RETRY_POLICY.max_backoff)),
    )


def parse_config(raw: dict[str, Any]) -> GroveConfig:
    """Build a :class:`GroveConfig` from an already-decoded mapping.

    Raises
    ------
    KeyError
        If ``community_name`` is missing.
    ValueError
        If the level table, permission matrix or retry policy is invalid.
    """
    return GroveConfig(
        community_name=raw["community_name"],
        timezone=raw.get("timezone") or DEFAULT_TIMEZONE,
        seed_admins=tuple(
            email.strip().lower() for email in raw.get("seed_admins") or () if email
        ),
        level_table=_parse_levels(raw.get("levels")),
        access_policy=_parse_permissions(
            raw.get("permissions"), raw.get("audit_view_role"),
        ),
        retry=_parse_retry(raw.get("retry")),
        placeholder_prefix=raw.get("placeholder_prefix") or "member",
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> GroveConfig:
    """Read *path* and return a :class:`GroveConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return parse_config(raw)
