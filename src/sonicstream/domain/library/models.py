"""
Music library domain models.

Contains data structures for representing tracks in the library.
"""

from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_ARTIST = "Unknown Artist"
GUEST_OWNER_ID = "guest"
LOCAL_URL_SCHEME = "blob:"


@dataclass(frozen=True)
class Song:
    """Represents a playable track.

    A song is either backed by a remote URL (persisted in the track store)
    or by a session-local resource allocated for guest or fallback playback.
    """

    id: str
    source_url: str  # Remote URL or local "blob:" locator
    title: str
    owner_id: str  # Session identity that produced it, or "guest"
    artist: str = DEFAULT_ARTIST
    duration_seconds: float = 0.0
    cover_image_url: Optional[str] = None  # Session-local, never persisted

    @property
    def is_local(self) -> bool:
        """True when the song is backed by a locally allocated resource."""
        return self.source_url.startswith(LOCAL_URL_SCHEME)

    def with_duration(self, seconds: float) -> "Song":
        """Return a copy with the refined duration."""
        return replace(self, duration_seconds=max(0.0, float(seconds)))

    def with_cover(self, cover_image_url: Optional[str]) -> "Song":
        """Return a copy with a session-local cover image attached."""
        return replace(self, cover_image_url=cover_image_url)

    def display_query(self) -> str:
        """Human readable "title by artist" used for analysis prompts."""
        if self.artist and self.artist != DEFAULT_ARTIST:
            return f"{self.title} by {self.artist}"
        return self.title
