"""
Session domain models.

A session is replaced wholesale on every transition, never mutated.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..library.models import GUEST_OWNER_ID


class SessionMode(Enum):
    UNAUTHENTICATED = "unauthenticated"
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class Session:
    """The active user session."""

    mode: SessionMode
    user_id: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def unauthenticated(cls) -> "Session":
        return cls(mode=SessionMode.UNAUTHENTICATED)

    @classmethod
    def guest(cls) -> "Session":
        return cls(mode=SessionMode.GUEST, user_id=GUEST_OWNER_ID, display_name="Guest")

    @classmethod
    def authenticated(
        cls, user_id: str, email: str = "", display_name: Optional[str] = None
    ) -> "Session":
        if not display_name:
            display_name = email.split("@")[0] if email else "User"
        return cls(
            mode=SessionMode.AUTHENTICATED,
            user_id=user_id,
            display_name=display_name or "User",
            email=email,
        )

    @property
    def is_guest(self) -> bool:
        return self.mode is SessionMode.GUEST

    @property
    def is_authenticated(self) -> bool:
        return self.mode is SessionMode.AUTHENTICATED

    @property
    def owner_id(self) -> Optional[str]:
        """Identity that owns this session's library, if any."""
        if self.mode is SessionMode.UNAUTHENTICATED:
            return None
        return self.user_id
