"""
Remote store interface for persisted tracks and authentication.

Defines the contract the session manager, library store and upload
pipeline depend on. The production implementation talks to Supabase;
tests substitute an in-memory fake implementing the same protocol.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional, Protocol

from ..library.models import DEFAULT_ARTIST, Song


@dataclass(frozen=True)
class Identity:
    """An authenticated backend user."""

    id: str
    email: str = ""


@dataclass(frozen=True)
class TrackRecord:
    """A persisted track row."""

    id: str
    owner_id: str
    title: str
    url: str
    artist: Optional[str] = None
    duration: float = 0.0

    def to_song(self) -> Song:
        return Song(
            id=str(self.id),
            source_url=self.url,
            title=self.title,
            owner_id=self.owner_id,
            artist=self.artist or DEFAULT_ARTIST,
            duration_seconds=float(self.duration or 0.0),
        )


class RemoteStore(Protocol):
    """Protocol for the remote persistence and auth backend.

    Every operation is a coroutine; failures raise the matching
    RemoteError subclass from ``errors``.
    """

    @property
    def is_configured(self) -> bool:
        """False when no real backend is set up (guest-only operation)."""
        ...

    async def upload_binary(self, owner_id: str, path: Path) -> str:
        """Upload an audio file and return its storage location.

        Raises:
            StorageError: On network, permission or bucket failures
        """
        ...

    async def insert_record(
        self,
        owner_id: str,
        title: str,
        artist: str,
        location: str,
        duration: float,
    ) -> TrackRecord:
        """Create the database record referencing an uploaded binary.

        Raises:
            RecordError: On network, permission or schema failures
        """
        ...

    async def delete_binary(self, location: str) -> None:
        """Best-effort removal of an uploaded binary."""
        ...

    async def list_records(self, owner_id: str) -> list[TrackRecord]:
        """List an owner's records, newest first by server sequence id.

        Raises:
            FetchError: If the listing fails
        """
        ...

    def observe_auth(self) -> AsyncIterator[Optional[Identity]]:
        """Stream of auth state; first value is the persisted session."""
        ...

    async def sign_in(self, email: str, password: str) -> Identity:
        ...

    async def sign_in_with_provider(self, name: str) -> str:
        """Start an OAuth flow and return the authorization URL."""
        ...

    async def complete_provider_sign_in(self, access_token: str, refresh_token: str) -> Identity:
        """Finish an OAuth flow with the tokens from the redirect callback.

        Raises:
            AuthError: If the tokens are rejected
        """
        ...

    async def sign_up(self, email: str, password: str) -> Optional[Identity]:
        """Create an account; None when e-mail confirmation is pending."""
        ...

    async def sign_out(self) -> None:
        ...
