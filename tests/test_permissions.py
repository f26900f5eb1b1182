"""
tests/test_permissions.py — Access Policy Unit Tests
=====================================================
Role order, the action → minimum-role matrix and the standing rules for
promote / demote / block / unblock.
"""

from __future__ import annotations

import pytest

from grove.database.models import AdminActionType, UserRole
from grove.engine.permissions import (
    DEFAULT_ACTION_MIN_ROLES,
    AccessPolicy,
    role_rank,
)
from grove.errors import AuthorizationError, ValidationError

A = AdminActionType


@pytest.fixture
def policy() -> AccessPolicy:
    return AccessPolicy()


class TestRoleOrder:
    def test_total_order(self):
        ranks = [role_rank(r) for r in ("user", "trustee", "admin", "super_admin")]
        assert ranks == [0, 1, 2, 3]

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            role_rank("moderator")


class TestMinimumRoles:
    def test_user_cannot_promote(self, policy):
        with pytest.raises(AuthorizationError):
            policy.authorize(A.PROMOTE_USER, actor_role="user", target_role="user",
                             new_role="trustee")

    def test_trustee_can_moderate_content(self, policy):
        for action in (A.DELETE_QUESTION, A.EDIT_ANSWER, A.GIVE_FLOWER, A.SEND_WARNING):
            policy.authorize(action, actor_role="trustee", target_role="user")

    def test_trustee_cannot_block(self, policy):
        with pytest.raises(AuthorizationError, match="requires admin"):
            policy.authorize(A.BLOCK_USER, actor_role="trustee", target_role="user")

    def test_can_view_audit(self, policy):
        assert not policy.can_view_audit("trustee")
        assert policy.can_view_audit("admin")
        assert policy.can_view_audit(UserRole.SUPER_ADMIN)

    def test_matrix_must_cover_every_action(self):
        partial = {A.BLOCK_USER: UserRole.ADMIN}
        with pytest.raises(ValueError, match="missing action types"):
            AccessPolicy(action_min_roles=partial)

    def test_matrix_may_not_open_actions_to_users(self):
        matrix = dict(DEFAULT_ACTION_MIN_ROLES)
        matrix[A.OTHER] = UserRole.USER
        with pytest.raises(ValueError, match="'user' role"):
            AccessPolicy(action_min_roles=matrix)


class TestStandingRules:
    def test_admin_blocks_user(self, policy):
        policy.authorize(A.BLOCK_USER, actor_role="admin", target_role="user")

    def test_admin_cannot_block_peer(self, policy):
        with pytest.raises(AuthorizationError, match="outrank"):
            policy.authorize(A.BLOCK_USER, actor_role="admin", target_role="admin")

    def test_admin_cannot_block_super_admin(self, policy):
        with pytest.raises(AuthorizationError):
            policy.authorize(A.UNBLOCK_USER, actor_role="admin", target_role="super_admin")

    def test_role_change_requires_new_role(self, policy):
        with pytest.raises(ValidationError, match="requires a new_role"):
            policy.authorize(A.PROMOTE_USER, actor_role="admin", target_role="user")

    def test_unknown_new_role(self, policy):
        with pytest.raises(ValidationError, match="Unknown role"):
            policy.authorize(A.PROMOTE_USER, actor_role="admin", target_role="user",
                             new_role="wizard")

    def test_super_admin_never_granted(self, policy):
        with pytest.raises(AuthorizationError, match="super_admin"):
            policy.authorize(A.PROMOTE_USER, actor_role="super_admin",
                             target_role="admin", new_role="super_admin")

    def test_cannot_grant_above_own_role(self):
        matrix = dict(DEFAULT_ACTION_MIN_ROLES)
        matrix[A.PROMOTE_USER] = UserRole.TRUSTEE
        lenient = AccessPolicy(action_min_roles=matrix)
        with pytest.raises(AuthorizationError, match="higher role"):
            lenient.authorize(A.PROMOTE_USER, actor_role="trustee", target_role="user",
                              new_role="admin")

    def test_promote_must_raise(self, policy):
        with pytest.raises(ValidationError, match="must raise"):
            policy.authorize(A.PROMOTE_USER, actor_role="super_admin",
                             target_role="trustee", new_role="user")

    def test_demote_must_lower(self, policy):
        with pytest.raises(ValidationError, match="must lower"):
            policy.authorize(A.DEMOTE_USER, actor_role="super_admin",
                             target_role="trustee", new_role="admin")

    def test_valid_promotion_and_demotion(self, policy):
        policy.authorize(A.PROMOTE_USER, actor_role="admin", target_role="user",
                         new_role="trustee")
        policy.authorize(A.DEMOTE_USER, actor_role="super_admin", target_role="admin",
                         new_role="user")
