"""
grove.constants — Shared Constants & Helpers
=============================================

Single source of truth for action labels and the notification each
moderation outcome sends to its subject.
"""

from __future__ import annotations

from dataclasses import dataclass

from grove.database.models import AdminActionType, NotificationType

# ---------------------------------------------------------------------------
# Action labels (audit dashboard)
# ---------------------------------------------------------------------------
ACTION_LABELS: dict[AdminActionType, str] = {
    AdminActionType.PROMOTE_USER: "Promote member",
    AdminActionType.DEMOTE_USER: "Demote member",
    AdminActionType.BLOCK_USER: "Block member",
    AdminActionType.UNBLOCK_USER: "Unblock member",
    AdminActionType.EDIT_QUESTION: "Edit question",
    AdminActionType.DELETE_QUESTION: "Delete question",
    AdminActionType.EDIT_ANSWER: "Edit answer",
    AdminActionType.DELETE_ANSWER: "Delete answer",
    AdminActionType.GIVE_FLOWER: "Give flower",
    AdminActionType.REMOVE_FLOWER: "Remove flower",
    AdminActionType.SEND_WARNING: "Send warning",
    AdminActionType.OTHER: "Other action",
}

UNKNOWN_ACTION_LABEL = "Unknown action"


def action_label(action_type: AdminActionType | str) -> str:
    """Human-readable label for an action type."""
    try:
        return ACTION_LABELS[AdminActionType(action_type)]
    except ValueError:
        return UNKNOWN_ACTION_LABEL


# ---------------------------------------------------------------------------
# Notification templates
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class NotificationTemplate:
    type: NotificationType
    title: str
    message: str  # str.format fields: admin, reason, new_role

    def render(self, **fields: str) -> tuple[str, str]:
        return self.title, self.message.format(**fields)


NOTIFICATION_TEMPLATES: dict[AdminActionType, NotificationTemplate] = {
    AdminActionType.PROMOTE_USER: NotificationTemplate(
        NotificationType.SUCCESS,
        "You've been promoted! \U0001f389",
        "{admin} promoted you to {new_role}. Reason: {reason}",
    ),
    AdminActionType.DEMOTE_USER: NotificationTemplate(
        NotificationType.WARNING,
        "Your role has changed",
        "{admin} changed your role to {new_role}. Reason: {reason}",
    ),
    AdminActionType.BLOCK_USER: NotificationTemplate(
        NotificationType.WARNING,
        "Your account has been blocked",
        "Your account was blocked by {admin}. Reason: {reason}",
    ),
    AdminActionType.UNBLOCK_USER: NotificationTemplate(
        NotificationType.SUCCESS,
        "Your account has been unblocked",
        "Your account was unblocked by {admin}. Reason: {reason}",
    ),
    AdminActionType.EDIT_QUESTION: NotificationTemplate(
        NotificationType.INFO,
        "Your question was edited",
        "Your question was edited by {admin}. Reason: {reason}",
    ),
    AdminActionType.DELETE_QUESTION: NotificationTemplate(
        NotificationType.WARNING,
        "Your question was deleted",
        "Your question was deleted by {admin}. Reason: {reason}",
    ),
    AdminActionType.EDIT_ANSWER: NotificationTemplate(
        NotificationType.INFO,
        "Your answer was edited",
        "Your answer was edited by {admin}. Reason: {reason}",
    ),
    AdminActionType.DELETE_ANSWER: NotificationTemplate(
        NotificationType.WARNING,
        "Your answer was deleted",
        "Your answer was deleted by {admin}. Reason: {reason}",
    ),
    AdminActionType.GIVE_FLOWER: NotificationTemplate(
        NotificationType.SUCCESS,
        "You received a flower \U0001f338",
        "{admin} gave you a flower. Reason: {reason}",
    ),
    AdminActionType.REMOVE_FLOWER: NotificationTemplate(
        NotificationType.INFO,
        "A flower was withdrawn",
        "{admin} withdrew a flower. Reason: {reason}",
    ),
    AdminActionType.SEND_WARNING: NotificationTemplate(
        NotificationType.WARNING,
        "You received a warning",
        "Warning from {admin}: {reason}",
    ),
    AdminActionType.OTHER: NotificationTemplate(
        NotificationType.INFO,
        "A moderator acted on your account",
        "{admin}: {reason}",
    ),
}

# Actions with a single, clearly notified subject.  Content-moderation
# actions only notify when the caller asks for it.
SUBJECT_ACTIONS: frozenset[AdminActionType] = frozenset({
    AdminActionType.PROMOTE_USER,
    AdminActionType.DEMOTE_USER,
    AdminActionType.BLOCK_USER,
    AdminActionType.UNBLOCK_USER,
    AdminActionType.SEND_WARNING,
    AdminActionType.GIVE_FLOWER,
    AdminActionType.REMOVE_FLOWER,
})
