"""Remote track store exceptions for error handling."""

from typing import Optional

PERMISSION_MARKERS = (
    "security policy",
    "row-level security",
    "permission denied",
    "check rls policies",
)
NOT_CONFIGURED_MARKERS = ("bucket not found", "not configured", "does not exist")


class RemoteError(Exception):
    """Base exception for remote store operations."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        network: bool = False,
    ):
        self.status_code = status_code
        self.code = code
        self.network = network  # Backend could not be reached at all
        super().__init__(message)

    @property
    def permission_denied(self) -> bool:
        """Backend access-policy rejection (RLS)."""
        text = str(self).lower()
        return any(marker in text for marker in PERMISSION_MARKERS)

    @property
    def not_configured(self) -> bool:
        """Backend resource missing (bucket or table not set up)."""
        text = str(self).lower()
        return any(marker in text for marker in NOT_CONFIGURED_MARKERS)


class StorageError(RemoteError):
    """Raised when uploading or deleting an audio binary fails."""

    pass


class RecordError(RemoteError):
    """Raised when creating a track record fails."""

    pass


class FetchError(RemoteError):
    """Raised when listing an owner's track records fails."""

    pass


class AuthError(RemoteError):
    """Raised when sign-in, sign-up or sign-out is rejected."""

    pass
