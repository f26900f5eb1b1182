"""
tests/test_levels.py — Level Resolver Unit Tests
=================================================
Pure-function tests for resolve_level(), progress_to_next_level(),
has_capability() and LevelTable validation.  No database required.
"""

from __future__ import annotations

import pytest

from grove.database.models import UserLevel, UserProfile, UserRole
from grove.engine.levels import (
    DEFAULT_LEVEL_TABLE,
    KNOWN_CAPABILITIES,
    LevelTable,
    LevelTier,
    UserStats,
    has_capability,
    progress_to_next_level,
    resolve_level,
)


class TestResolveLevel:
    def test_zero_points_is_seedling(self):
        assert resolve_level(UserStats(points=0)).level == UserLevel.SEEDLING

    def test_999_points_is_oak(self):
        assert resolve_level(UserStats(points=999)).level == UserLevel.OAK

    @pytest.mark.parametrize("points,expected", [
        (99, UserLevel.SEEDLING),
        (100, UserLevel.TRUNK),
        (499, UserLevel.TRUNK),
        (500, UserLevel.OAK),
        (10_000_000, UserLevel.OAK),
    ])
    def test_thresholds_are_inclusive(self, points, expected):
        assert resolve_level(UserStats(points=points)).level == expected

    def test_monotonic_in_points(self):
        order = list(UserLevel)
        previous = -1
        for points in range(0, 1200, 7):
            rank = order.index(resolve_level(UserStats(points=points)).level)
            assert rank >= previous
            previous = rank

    def test_deterministic(self):
        stats = UserStats(points=250, flowers=3)
        assert resolve_level(stats) == resolve_level(stats)

    def test_other_stats_do_not_affect_level(self):
        busy = UserStats(points=10, flowers=900, correct_answers=900, streak=50)
        assert resolve_level(busy).level == UserLevel.SEEDLING

    def test_tier_carries_unlocks_and_icon(self):
        tier = resolve_level(UserStats(points=100))
        assert tier.display_name == "Trunk"
        assert tier.icon
        assert tier.unlocks


class TestUserStats:
    def test_negative_stat_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            UserStats(points=-1)

    def test_from_mapping_reads_missing_as_zero(self):
        stats = UserStats.from_mapping({"points": 5, "flowers": None})
        assert stats.points == 5
        assert stats.flowers == 0
        assert stats.streak == 0


class TestProgress:
    def test_start_of_tier_is_zero(self):
        assert progress_to_next_level(UserStats(points=0)) == 0

    def test_halfway(self):
        assert progress_to_next_level(UserStats(points=50)) == 50
        assert progress_to_next_level(UserStats(points=300)) == 50

    def test_top_tier_is_complete(self):
        assert progress_to_next_level(UserStats(points=500)) == 100
        assert progress_to_next_level(UserStats(points=99_999)) == 100


class TestLevelTableValidation:
    def _tier(self, level, points):
        return LevelTier(level=level, min_points=points, display_name=str(level))

    def test_default_table_shape(self):
        assert len(DEFAULT_LEVEL_TABLE) == 3
        assert DEFAULT_LEVEL_TABLE.lowest.min_points == 0
        assert DEFAULT_LEVEL_TABLE.highest.level == UserLevel.OAK

    def test_empty_table_rejected(self):
        with pytest.raises(ValueError, match="at least one"):
            LevelTable([])

    def test_first_threshold_must_be_zero(self):
        with pytest.raises(ValueError, match="start at 0"):
            LevelTable([self._tier(UserLevel.SEEDLING, 10)])

    def test_thresholds_must_increase(self):
        with pytest.raises(ValueError, match="must exceed"):
            LevelTable([
                self._tier(UserLevel.SEEDLING, 0),
                self._tier(UserLevel.TRUNK, 0),
            ])

    def test_levels_must_follow_enum_order(self):
        with pytest.raises(ValueError, match="out of order"):
            LevelTable([
                self._tier(UserLevel.SEEDLING, 0),
                self._tier(UserLevel.OAK, 100),
                self._tier(UserLevel.TRUNK, 200),
            ])

    def test_unknown_capability_rejected(self):
        with pytest.raises(ValueError, match="fly_to_moon"):
            LevelTable([LevelTier(
                level=UserLevel.SEEDLING, min_points=0, display_name="Seedling",
                capabilities=frozenset({"view_reports", "fly_to_moon"}),
            )])

    def test_custom_table(self):
        table = LevelTable([
            self._tier(UserLevel.SEEDLING, 0),
            self._tier(UserLevel.OAK, 50),
        ])
        assert resolve_level(UserStats(points=49), table).level == UserLevel.SEEDLING
        assert resolve_level(UserStats(points=50), table).level == UserLevel.OAK
        assert table.next_tier(table.highest) is None
        assert table.tier_for_level("trunk") is None


def _member(role=UserRole.USER, level="seedling", **kwargs) -> UserProfile:
    return UserProfile(uid="m1", role=role, level=level, **kwargs)


class TestHasCapability:
    def test_seedling_has_none(self):
        member = _member(level="seedling")
        assert not any(has_capability(member, cap) for cap in KNOWN_CAPABILITIES)

    @pytest.mark.parametrize("capability,expected", [
        ("delete_comments", True),
        ("view_reports", True),
        ("moderate_content", True),
        ("delete_posts", False),
        ("ban_users", False),
        ("promote_users", False),
    ])
    def test_trunk(self, capability, expected):
        assert has_capability(_member(level="trunk"), capability) is expected

    def test_oak_has_all(self):
        member = _member(level="oak")
        assert all(has_capability(member, cap) for cap in KNOWN_CAPABILITIES)

    def test_super_admin_bypasses_level(self):
        member = _member(role=UserRole.SUPER_ADMIN, level="seedling")
        assert has_capability(member, "ban_users")

    def test_admin_role_does_not_bypass_level(self):
        assert not has_capability(_member(role=UserRole.ADMIN), "ban_users")

    def test_blocked_member_has_none(self):
        assert not has_capability(_member(level="oak", is_blocked=True), "view_reports")

    def test_missing_level_uses_points(self):
        assert has_capability(_member(level=None, points=150), "view_reports")
        assert not has_capability(_member(level=None), "view_reports")

    def test_unknown_capability(self):
        with pytest.raises(ValueError, match="Unknown capability"):
            has_capability(_member(), "fly_to_moon")

    def test_custom_table(self):
        table = LevelTable([
            LevelTier(level=UserLevel.SEEDLING, min_points=0, display_name="Seedling",
                      capabilities=frozenset({"view_reports"})),
        ])
        assert has_capability(_member(level="seedling"), "view_reports", table)
