"""
In-memory track library for the active session.

The library always belongs to exactly one owner. It is cleared whenever the
session moves away from that owner and replaced wholesale by remote
listings. Fetches are tagged with a generation number so a slow listing for
a previous session can never overwrite the current one.
"""

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from loguru import logger

from ..remote.errors import RemoteError
from .models import GUEST_OWNER_ID, Song
from .resources import LocalResources

if TYPE_CHECKING:
    from ..remote.base import RemoteStore
    from ..session.models import Session

LibraryListener = Callable[[tuple[Song, ...]], None]


class LibraryStatus(Enum):
    IDLE = "idle"  # Guest/unauthenticated, nothing to sync
    SYNCING = "syncing"
    READY = "ready"
    FAILED = "failed"  # Last listing failed; library shown empty


class LibraryStore:
    """Owns the ordered (newest first) song collection."""

    def __init__(self, remote: "RemoteStore", resources: LocalResources):
        self._remote = remote
        self._resources = resources
        self._songs: tuple[Song, ...] = ()
        self._owner_id: Optional[str] = None
        self._generation = 0
        self._listeners: list[LibraryListener] = []
        self.status = LibraryStatus.IDLE
        self.last_error: Optional[str] = None

    @property
    def songs(self) -> tuple[Song, ...]:
        return self._songs

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    def __len__(self) -> int:
        return len(self._songs)

    def find(self, song_id: str) -> Optional[Song]:
        for song in self._songs:
            if song.id == song_id:
                return song
        return None

    def add_listener(self, listener: LibraryListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._songs)
            except Exception:
                logger.exception("Library listener failed")

    def _release(self, song: Song) -> None:
        """Invalidate the local resources held by an evicted song."""
        self._resources.revoke(song.source_url if song.is_local else None)
        if LocalResources.is_local(song.cover_image_url):
            self._resources.revoke(song.cover_image_url)

    def _replace(self, songs: Iterable[Song]) -> None:
        songs = tuple(songs)
        kept = {song.id for song in songs}
        for song in self._songs:
            if song.id not in kept:
                self._release(song)
        self._songs = songs
        self._notify()

    def clear(self) -> None:
        if self._songs:
            logger.debug(f"Clearing {len(self._songs)} songs")
        self._replace(())

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self, session: "Session") -> Optional[asyncio.Task]:
        """Make the library match the session's authoritative source.

        Guest and unauthenticated sessions clear synchronously with no
        network call. Authenticated sessions start a remote listing and
        return its task.
        """
        self._generation += 1

        if not session.is_authenticated:
            self._owner_id = session.owner_id
            self.status = LibraryStatus.IDLE
            self.last_error = None
            self.clear()
            return None

        if session.owner_id != self._owner_id:
            self._owner_id = session.owner_id
            self.clear()

        return self._start_fetch(session.owner_id, self._generation)

    def refresh(self, owner_id: Optional[str]) -> Optional[asyncio.Task]:
        """Re-issue the listing for the current owner; replaces wholesale."""
        if owner_id is None or owner_id == GUEST_OWNER_ID:
            return None
        if owner_id != self._owner_id:
            logger.debug(f"Ignoring refresh for inactive owner {owner_id}")
            return None

        self._generation += 1
        return self._start_fetch(owner_id, self._generation)

    def _start_fetch(self, owner_id: str, generation: int) -> asyncio.Task:
        self.status = LibraryStatus.SYNCING
        logger.info(f"Syncing library for user: {owner_id}")
        return asyncio.create_task(self._fetch(owner_id, generation))

    async def _fetch(self, owner_id: str, generation: int) -> bool:
        try:
            records = await self._remote.list_records(owner_id)
        except RemoteError as e:
            if generation != self._generation:
                return False
            logger.error(f"Failed to refresh library for {owner_id}: {e}")
            self.status = LibraryStatus.FAILED
            self.last_error = str(e)
            self.clear()
            return False

        if generation != self._generation:
            logger.debug(f"Discarding stale listing for {owner_id}")
            return False

        self.status = LibraryStatus.READY
        self.last_error = None
        # Session-local covers survive a refresh of the same tracks
        covers = {song.id: song.cover_image_url for song in self._songs}
        self._replace(
            record.to_song().with_cover(covers.get(str(record.id))) for record in records
        )
        logger.info(f"Library synced: {len(self._songs)} tracks")
        return True

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, song: Song) -> bool:
        """Prepend a song. Songs from another owner are rejected and released."""
        if song.owner_id != self._owner_id:
            logger.warning(
                f"Dropping song {song.id} for owner {song.owner_id}; "
                f"library belongs to {self._owner_id}"
            )
            self._release(song)
            return False

        self._songs = (song,) + self._songs
        self._notify()
        return True

    def update_duration(self, song_id: str, seconds: float) -> Optional[Song]:
        """Refine a song's duration once the device has reported it."""
        for index, song in enumerate(self._songs):
            if song.id == song_id:
                if song.duration_seconds == seconds:
                    return song
                updated = song.with_duration(seconds)
                self._songs = self._songs[:index] + (updated,) + self._songs[index + 1:]
                self._notify()
                return updated
        return None
