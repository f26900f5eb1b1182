"""
grove.engine.identity — Authenticated Caller Envelope
======================================================

What the identity provider tells us about a caller.  Roles are never part
of it: every privileged call re-reads the caller's role from the store.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["DISPLAY_NAME_MAX_LENGTH", "Identity"]

# Width of every stored display-name column
DISPLAY_NAME_MAX_LENGTH = 100


@dataclass(frozen=True, slots=True)
class Identity:
    uid: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None

    def __post_init__(self) -> None:
        if not self.uid:
            raise ValueError("Identity requires a uid")

    @property
    def normalized_email(self) -> str | None:
        return self.email.strip().lower() if self.email else None

    def fallback_name(self, placeholder_prefix: str = "member") -> str:
        """Display name, else the email local part, else a generated one.

        Always fits the stored column; longer provider names are cut.
        """
        if self.display_name and self.display_name.strip():
            name = self.display_name.strip()
        elif self.email and self.email.split("@")[0].strip():
            name = self.email.split("@")[0].strip()
        else:
            name = f"{placeholder_prefix}-{self.uid[:8]}"
        return name[:DISPLAY_NAME_MAX_LENGTH]
