"""Session domain - who owns the library right now."""

from .manager import SessionManager, SessionTransitionError, next_session
from .models import Session, SessionMode

__all__ = [
    "Session",
    "SessionMode",
    "SessionManager",
    "SessionTransitionError",
    "next_session",
]
