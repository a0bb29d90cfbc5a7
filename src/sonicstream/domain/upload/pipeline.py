"""
Upload orchestration: tag extraction, remote persistence and local fallback.

Every upload from a guest or signed-in user produces a playable Song. When
cloud persistence fails the song is backed by a local resource instead and
the failure is returned alongside it, classified for the user notice.
"""

import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from loguru import logger

from ..library.metadata import MetadataExtractor, title_from_filename
from ..library.models import DEFAULT_ARTIST, GUEST_OWNER_ID, Song
from ..library.resources import LocalResources
from ..session.models import Session, SessionMode
from .errors import NotAuthenticated, UploadError, UploadErrorKind, classify_upload_error

if TYPE_CHECKING:
    from ..remote.base import RemoteStore

STORAGE_POLICY_SQL = """
create policy "Allow Individual Uploads"
on storage.objects for insert
to authenticated
with check ( bucket_id = '{bucket}' AND (storage.foldername(name))[1] = auth.uid()::text );

create policy "Allow Individual View"
on storage.objects for select
to authenticated
using ( bucket_id = '{bucket}' AND (storage.foldername(name))[1] = auth.uid()::text );
"""

DATABASE_POLICY_SQL = """
alter table {table} enable row level security;

create policy "Users can insert their own tracks"
on {table} for insert
to authenticated
with check (auth.uid() = user_id);

create policy "Users can view their own tracks"
on {table} for select
to authenticated
using (auth.uid() = user_id);
"""


@dataclass(frozen=True)
class UploadResult:
    """Result of an upload - the song to play plus any sync failure."""

    song: Song
    error: Optional[UploadError] = None

    @property
    def synced(self) -> bool:
        """True when the song is persisted remotely."""
        return self.error is None and not self.song.is_local


class UploadPipeline:
    """Turns a selected file into a Song for the active session."""

    def __init__(
        self,
        remote: "RemoteStore",
        extractor: MetadataExtractor,
        resources: LocalResources,
        bucket: str = "audio",
        table: str = "tracks",
    ):
        self._remote = remote
        self._extractor = extractor
        self._resources = resources
        self._bucket = bucket
        self._table = table

    def _local_song(
        self,
        path: Path,
        owner_id: str,
        title: str,
        artist: str,
        duration: float,
        cover_image_url: Optional[str],
    ) -> Song:
        return Song(
            id=f"local-{uuid.uuid4().hex}",
            source_url=self._resources.allocate_file(path),
            title=title,
            owner_id=owner_id,
            artist=artist,
            duration_seconds=duration,
            cover_image_url=cover_image_url,
        )

    async def upload(self, path: Union[str, Path], session: Session) -> UploadResult:
        """Produce a playable Song for a selected file.

        Args:
            path: Audio file on disk
            session: Session active when the user selected the file

        Returns:
            UploadResult with the song and, on cloud failure, the classified error

        Raises:
            NotAuthenticated: If the session is unauthenticated
        """
        if session.mode is SessionMode.UNAUTHENTICATED:
            raise NotAuthenticated()

        path = Path(path)

        tags = await self._extractor.extract(path)
        title = tags.get("title") or title_from_filename(path)
        artist = tags.get("artist") or DEFAULT_ARTIST
        duration = float(tags.get("duration") or 0.0)
        cover_image_url = tags.get("cover_image_url")

        if session.is_guest:
            song = self._local_song(
                path, GUEST_OWNER_ID, title, artist, duration, cover_image_url
            )
            logger.info(f"Guest upload kept local: {title} ({song.id})")
            return UploadResult(song=song)

        owner_id = session.owner_id
        try:
            song = await self._persist(path, owner_id, title, artist, duration)
        except Exception as e:
            error = classify_upload_error(e)
            logger.warning(f"Upload/Sync failed ({error.kind.value}): {error.message}")
            self._log_policy_hint(error)
            song = self._local_song(path, owner_id, title, artist, duration, cover_image_url)
            return UploadResult(song=song, error=error)

        logger.info(f"Track uploaded & synced: {title} ({song.id})")
        return UploadResult(song=song.with_cover(cover_image_url))

    async def _persist(
        self, path: Path, owner_id: str, title: str, artist: str, duration: float
    ) -> Song:
        location = await self._remote.upload_binary(owner_id, path)

        try:
            record = await self._remote.insert_record(
                owner_id, title, artist, location, duration
            )
        except Exception:
            await self._cleanup(location)
            raise

        return replace(record.to_song(), owner_id=owner_id)

    async def _cleanup(self, location: str) -> None:
        """Remove an uploaded binary whose record could not be created."""
        try:
            await self._remote.delete_binary(location)
        except Exception as e:
            logger.warning(f"Could not remove orphaned upload {location}: {e}")

    def _log_policy_hint(self, error: UploadError) -> None:
        if error.kind is UploadErrorKind.STORAGE_PERMISSION:
            logger.warning(
                "Storage RLS policy missing. Run this SQL to fix Storage permissions:\n"
                + STORAGE_POLICY_SQL.format(bucket=self._bucket)
            )
        elif error.kind is UploadErrorKind.DATABASE_PERMISSION:
            logger.warning(
                "Database RLS policy missing. Run this SQL to fix Database permissions:\n"
                + DATABASE_POLICY_SQL.format(table=self._table)
            )
