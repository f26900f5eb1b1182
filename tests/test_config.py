"""
tests/test_config.py — YAML Configuration Tests
================================================
"""

from __future__ import annotations

import pytest

from grove.config import load_config, parse_config
from grove.database.models import AdminActionType, UserLevel, UserRole
from grove.engine.levels import DEFAULT_LEVEL_TABLE
from grove.services.retry import DEFAULT_RETRY_POLICY

_YAML = """
community_name: Grove Test
timezone: UTC
seed_admins:
  - " Founder@Example.com "
levels:
  - level: seedling
    min_points: 0
  - level: trunk
    min_points: 50
    display_name: Young Trunk
    unlocks: [flag replies]
    capabilities: [view_reports]
  - level: oak
    min_points: 200
permissions:
  GIVE_FLOWER: admin
audit_view_role: trustee
retry:
  max_attempts: 5
  base_backoff: 0.01
placeholder_prefix: guest
"""


class TestLoadConfig:
    def test_full_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(_YAML, encoding="utf-8")
        cfg = load_config(path)

        assert cfg.community_name == "Grove Test"
        assert cfg.timezone == "UTC"
        assert cfg.seed_admins == ("founder@example.com",)
        assert cfg.level_table.tier_for_points(60).display_name == "Young Trunk"
        assert cfg.level_table.tier_for_points(60).unlocks == ("flag replies",)
        assert cfg.level_table.tier_for_points(60).capabilities == {"view_reports"}
        # Omitted capabilities keep the built-in set for that level
        assert cfg.level_table.highest.capabilities == DEFAULT_LEVEL_TABLE.highest.capabilities
        assert cfg.level_table.lowest.capabilities == frozenset()
        assert cfg.level_table.highest.level == UserLevel.OAK
        assert cfg.access_policy.min_role(AdminActionType.GIVE_FLOWER) == UserRole.ADMIN
        assert cfg.access_policy.min_role(AdminActionType.BLOCK_USER) == UserRole.ADMIN
        assert cfg.access_policy.can_view_audit("trustee")
        assert cfg.retry.max_attempts == 5
        assert cfg.placeholder_prefix == "guest"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_community_name_required(self):
        with pytest.raises(KeyError):
            parse_config({})


class TestDefaults:
    def test_minimal_config_uses_defaults(self):
        cfg = parse_config({"community_name": "Grove"})
        assert cfg.level_table is DEFAULT_LEVEL_TABLE
        assert cfg.retry is DEFAULT_RETRY_POLICY
        assert cfg.seed_admins == ()
        assert cfg.timezone == "Asia/Jerusalem"
        assert cfg.access_policy.min_role(AdminActionType.DELETE_ANSWER) == UserRole.TRUSTEE

    def test_invalid_level_table_rejected(self):
        with pytest.raises(ValueError):
            parse_config({
                "community_name": "Grove",
                "levels": [{"level": "seedling", "min_points": 5}],
            })

    def test_unknown_capability_rejected(self):
        with pytest.raises(ValueError, match="unknown capabilities"):
            parse_config({
                "community_name": "Grove",
                "levels": [{"level": "seedling", "min_points": 0,
                            "capabilities": ["launch_rockets"]}],
            })

    def test_unknown_action_in_permissions_rejected(self):
        with pytest.raises(ValueError):
            parse_config({"community_name": "Grove", "permissions": {"FLY": "admin"}})
