"""
grove.engine.levels — Level Table & Resolver
=============================================

Pure calculation — no database I/O.  A member's level is a function of
their points and nothing else; the table itself is configuration
(``levels:`` in ``config.yaml``) with the defaults below.

The resolver is total: the first tier starts at 0 points and the last
tier is unbounded above, so every non-negative points value maps to
exactly one tier.
"""

from __future__ import annotations

import bisect
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from grove.database.models import STAT_FIELDS, UserLevel, UserProfile, UserRole

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_LEVEL_TABLE",
    "KNOWN_CAPABILITIES",
    "LevelTable",
    "LevelTier",
    "UserStats",
    "has_capability",
    "progress_to_next_level",
    "resolve_level",
]


# ---------------------------------------------------------------------------
# UserStats — the resolver's input
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UserStats:
    """Snapshot of a member's activity counters."""

    points: int = 0
    flowers: int = 0
    correct_answers: int = 0
    questions_asked: int = 0
    helpful_answers: int = 0
    days_active: int = 0
    streak: int = 0

    def __post_init__(self) -> None:
        for name in STAT_FIELDS:
            if getattr(self, name) < 0:
                raise ValueError(f"Stat {name!r} must be non-negative")

    @classmethod
    def from_mapping(cls, values: Mapping[str, int | None]) -> UserStats:
        return cls(**{name: values.get(name) or 0 for name in STAT_FIELDS})


# Moderation capabilities a level tier can grant.  Role checks for
# recorded admin actions live in grove.engine.permissions; these gate
# community features by standing.
KNOWN_CAPABILITIES: frozenset[str] = frozenset({
    "delete_posts",
    "delete_comments",
    "ban_users",
    "view_reports",
    "moderate_content",
    "promote_users",
    "edit_any_post",
    "access_analytics",
})


# ---------------------------------------------------------------------------
# LevelTier / LevelTable
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LevelTier:
    level: UserLevel
    min_points: int
    display_name: str
    icon: str = ""
    unlocks: tuple[str, ...] = field(default_factory=tuple)
    capabilities: frozenset[str] = field(default_factory=frozenset)


class LevelTable:
    """Ordered, validated sequence of tiers.

    Raises ``ValueError`` on construction unless the first tier starts at
    0 points, thresholds strictly increase, levels follow the
    :class:`UserLevel` declaration order without repeats, and every
    capability is one of :data:`KNOWN_CAPABILITIES`.
    """

    def __init__(self, tiers: Iterable[LevelTier]) -> None:
        self._tiers: tuple[LevelTier, ...] = tuple(tiers)
        if not self._tiers:
            raise ValueError("Level table must contain at least one tier")
        if self._tiers[0].min_points != 0:
            raise ValueError("The lowest level tier must start at 0 points")
        for tier in self._tiers:
            unknown = set(tier.capabilities) - KNOWN_CAPABILITIES
            if unknown:
                raise ValueError(
                    f"Level {tier.level} grants unknown capabilities: "
                    f"{', '.join(sorted(unknown))}"
                )

        order = list(UserLevel)
        positions = [order.index(t.level) for t in self._tiers]
        for prev, cur, p_pos, c_pos in zip(
            self._tiers, self._tiers[1:], positions, positions[1:]
        ):
            if cur.min_points <= prev.min_points:
                raise ValueError(
                    f"Level {cur.level} threshold ({cur.min_points}) must exceed "
                    f"{prev.level} ({prev.min_points})"
                )
            if c_pos <= p_pos:
                raise ValueError(
                    f"Level {cur.level} is out of order after {prev.level}"
                )

        self._thresholds = [t.min_points for t in self._tiers]

    @property
    def tiers(self) -> tuple[LevelTier, ...]:
        return self._tiers

    @property
    def lowest(self) -> LevelTier:
        return self._tiers[0]

    @property
    def highest(self) -> LevelTier:
        return self._tiers[-1]

    def tier_for_points(self, points: int) -> LevelTier:
        if points < 0:
            raise ValueError("points must be non-negative")
        return self._tiers[bisect.bisect_right(self._thresholds, points) - 1]

    def tier_for_level(self, level: UserLevel | str) -> LevelTier | None:
        for tier in self._tiers:
            if tier.level == level:
                return tier
        return None

    def next_tier(self, tier: LevelTier) -> LevelTier | None:
        idx = self._tiers.index(tier)
        return self._tiers[idx + 1] if idx + 1 < len(self._tiers) else None

    def __len__(self) -> int:
        return len(self._tiers)

    def __iter__(self):
        return iter(self._tiers)


DEFAULT_LEVEL_TABLE = LevelTable([
    LevelTier(
        level=UserLevel.SEEDLING,
        min_points=0,
        display_name="Seedling",
        icon="\U0001f331",  # 🌱
        unlocks=("ask questions", "answer questions", "give flowers", "send messages"),
        capabilities=frozenset(),
    ),
    LevelTier(
        level=UserLevel.TRUNK,
        min_points=100,
        display_name="Trunk",
        icon="\U0001f333",  # 🌳
        unlocks=("flag replies", "view reports", "expert badge on answers"),
        capabilities=frozenset({"delete_comments", "view_reports", "moderate_content"}),
    ),
    LevelTier(
        level=UserLevel.OAK,
        min_points=500,
        display_name="Oak",
        icon="\U0001f332",  # 🌲
        unlocks=("edit any post", "community analytics", "mentor new members"),
        capabilities=KNOWN_CAPABILITIES,
    ),
])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def resolve_level(
    stats: UserStats, table: LevelTable = DEFAULT_LEVEL_TABLE
) -> LevelTier:
    """Return the highest tier whose threshold ``stats.points`` meets."""
    return table.tier_for_points(stats.points)


def progress_to_next_level(
    stats: UserStats, table: LevelTable = DEFAULT_LEVEL_TABLE
) -> int:
    """Percentage (0–100) of the way from the current tier to the next.

    Always 100 at the top tier.
    """
    current = resolve_level(stats, table)
    nxt = table.next_tier(current)
    if nxt is None:
        return 100
    span = nxt.min_points - current.min_points
    return min(100, int((stats.points - current.min_points) * 100 / span))


def has_capability(
    profile: UserProfile,
    capability: str,
    table: LevelTable = DEFAULT_LEVEL_TABLE,
) -> bool:
    """Whether *profile*'s level tier grants *capability*.

    ``super_admin`` holds every capability; blocked members hold none.
    A profile without a stored level is judged by its points.

    Raises
    ------
    ValueError
        If *capability* is not one of :data:`KNOWN_CAPABILITIES`.
    """
    if capability not in KNOWN_CAPABILITIES:
        raise ValueError(f"Unknown capability {capability!r}")
    if profile.role == UserRole.SUPER_ADMIN:
        return True
    if profile.is_blocked:
        return False

    tier = table.tier_for_level(profile.level) if profile.level else None
    if tier is None:
        tier = table.tier_for_points(max(profile.points or 0, 0))
    return capability in tier.capabilities
