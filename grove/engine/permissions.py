"""
grove.engine.permissions — Role Order & Action Access Policy
=============================================================

Pure decision logic.  Roles are totally ordered
(``user < trustee < admin < super_admin``); each action type has a minimum
role, configurable through ``permissions:`` in ``config.yaml``.

On top of the minimum role, actions aimed at a member's standing
(promote, demote, block, unblock) require the actor to strictly outrank
the target, and a granted role may never exceed the actor's own role or
be ``super_admin`` — that role only comes from seed-administrator grants.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from grove.database.models import AdminActionType, UserRole
from grove.errors import AuthorizationError, ValidationError

_ROLE_ORDER: tuple[UserRole, ...] = tuple(UserRole)

ROLE_CHANGE_ACTIONS: frozenset[AdminActionType] = frozenset({
    AdminActionType.PROMOTE_USER,
    AdminActionType.DEMOTE_USER,
})

STANDING_ACTIONS: frozenset[AdminActionType] = ROLE_CHANGE_ACTIONS | {
    AdminActionType.BLOCK_USER,
    AdminActionType.UNBLOCK_USER,
}

DEFAULT_ACTION_MIN_ROLES: Mapping[AdminActionType, UserRole] = MappingProxyType({
    AdminActionType.PROMOTE_USER: UserRole.ADMIN,
    AdminActionType.DEMOTE_USER: UserRole.ADMIN,
    AdminActionType.BLOCK_USER: UserRole.ADMIN,
    AdminActionType.UNBLOCK_USER: UserRole.ADMIN,
    AdminActionType.EDIT_QUESTION: UserRole.TRUSTEE,
    AdminActionType.DELETE_QUESTION: UserRole.TRUSTEE,
    AdminActionType.EDIT_ANSWER: UserRole.TRUSTEE,
    AdminActionType.DELETE_ANSWER: UserRole.TRUSTEE,
    AdminActionType.GIVE_FLOWER: UserRole.TRUSTEE,
    AdminActionType.REMOVE_FLOWER: UserRole.TRUSTEE,
    AdminActionType.SEND_WARNING: UserRole.TRUSTEE,
    AdminActionType.OTHER: UserRole.TRUSTEE,
})


def role_rank(role: UserRole | str) -> int:
    """Position of *role* in the privilege order (``user`` is 0)."""
    return _ROLE_ORDER.index(UserRole(role))


@dataclass(frozen=True)
class AccessPolicy:
    """Role-permission matrix for privileged actions.

    Usage::

        policy = AccessPolicy()
        policy.authorize(AdminActionType.BLOCK_USER, actor_role="admin",
                         target_role="user")
    """

    action_min_roles: Mapping[AdminActionType, UserRole] = field(
        default_factory=lambda: DEFAULT_ACTION_MIN_ROLES
    )
    audit_view_role: UserRole = UserRole.ADMIN

    def __post_init__(self) -> None:
        missing = set(AdminActionType) - set(self.action_min_roles)
        if missing:
            raise ValueError(
                "Permission matrix is missing action types: "
                + ", ".join(sorted(missing))
            )
        if any(role == UserRole.USER for role in self.action_min_roles.values()):
            raise ValueError("No privileged action may be open to the 'user' role")

    def min_role(self, action_type: AdminActionType) -> UserRole:
        return self.action_min_roles[action_type]

    def can_perform(self, actor_role: UserRole | str, action_type: AdminActionType) -> bool:
        return role_rank(actor_role) >= role_rank(self.min_role(action_type))

    def can_view_audit(self, actor_role: UserRole | str) -> bool:
        return role_rank(actor_role) >= role_rank(self.audit_view_role)

    def authorize(
        self,
        action_type: AdminActionType,
        *,
        actor_role: UserRole | str,
        target_role: UserRole | str,
        new_role: UserRole | str | None = None,
    ) -> None:
        """Raise :class:`AuthorizationError` unless the action is allowed.

        ``new_role`` is required for role changes; a role change that does
        not move in the direction of the action raises
        :class:`ValidationError`.
        """
        if not self.can_perform(actor_role, action_type):
            raise AuthorizationError(
                f"Role {actor_role!s} cannot perform {action_type.value}; "
                f"requires {self.min_role(action_type).value} or higher"
            )

        if action_type not in STANDING_ACTIONS:
            return

        if role_rank(actor_role) <= role_rank(target_role):
            raise AuthorizationError(
                f"Role {actor_role!s} does not outrank target role {target_role!s}"
            )

        if action_type not in ROLE_CHANGE_ACTIONS:
            return

        if new_role is None:
            raise ValidationError(f"{action_type.value} requires a new_role")
        try:
            granted = UserRole(new_role)
        except ValueError:
            raise ValidationError(f"Unknown role {new_role!r}") from None

        if granted == UserRole.SUPER_ADMIN:
            raise AuthorizationError("super_admin cannot be granted by an action")
        if role_rank(granted) > role_rank(actor_role):
            raise AuthorizationError(
                f"Role {actor_role!s} cannot grant the higher role {granted.value}"
            )

        delta = role_rank(granted) - role_rank(target_role)
        if action_type == AdminActionType.PROMOTE_USER and delta <= 0:
            raise ValidationError(
                f"Promotion must raise the role (current {target_role!s}, "
                f"requested {granted.value})"
            )
        if action_type == AdminActionType.DEMOTE_USER and delta >= 0:
            raise ValidationError(
                f"Demotion must lower the role (current {target_role!s}, "
                f"requested {granted.value})"
            )
