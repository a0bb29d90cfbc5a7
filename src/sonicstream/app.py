"""
Application controller.

Wires the session, library, upload, playback and notification components
together and exposes the user intents a front end calls.
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from loguru import logger

from sonicstream.core.config import Config, get_data_dir, get_log_file, load_config
from sonicstream.core.output import setup_loguru
from sonicstream.domain.ai import generate_song_vibe
from sonicstream.domain.library import LibraryStore, LocalResources, MetadataExtractor, Song
from sonicstream.domain.playback import (
    AudioDevice,
    MpvAudioDevice,
    PlaybackController,
    PlaybackNotice,
    PlaybackState,
    check_mpv_available,
)
from sonicstream.domain.remote import RemoteStore, SupabaseRemoteStore
from sonicstream.domain.session import Session, SessionManager
from sonicstream.domain.upload import NotAuthenticated, UploadPipeline, UploadResult
from sonicstream.notifications import NoticeKind, NotificationRouter, desktop_sink

Analyzer = Callable[..., Awaitable[str]]

_PLAYBACK_NOTICES = {
    PlaybackNotice.AUTOPLAY_BLOCKED: NoticeKind.AUTOPLAY_BLOCKED,
    PlaybackNotice.PLAYBACK_ERROR: NoticeKind.PLAYBACK_ERROR,
}


class SonicStreamApp:
    """One player instance: session, library, uploads and playback."""

    def __init__(
        self,
        config: Config,
        remote: RemoteStore,
        device: AudioDevice,
        resources: Optional[LocalResources] = None,
        extractor: Optional[MetadataExtractor] = None,
        notifications: Optional[NotificationRouter] = None,
        analyzer: Optional[Analyzer] = None,
    ):
        self.config = config
        self.resources = resources if resources is not None else LocalResources()
        self.notifications = notifications or NotificationRouter(config.notifications)

        self.session = SessionManager(remote)
        self.library = LibraryStore(remote, self.resources)
        self.uploads = UploadPipeline(
            remote,
            extractor or MetadataExtractor(self.resources),
            self.resources,
            bucket=config.backend.bucket,
            table=config.backend.table,
        )
        self.playback = PlaybackController(
            device,
            volume=config.player.volume,
            on_notice=self._on_playback_notice,
            on_duration=self.library.update_duration,
        )

        self._device = device
        self._analyzer = analyzer or generate_song_vibe
        self._sync_tasks: set[asyncio.Task] = set()
        self._uploads_in_flight = 0
        self.analysis: Optional[str] = None
        self._analysis_song_id: Optional[str] = None

        self.session.add_listener(self._on_session_changed)
        self.library.add_listener(self._on_library_changed)
        self.playback.add_listener(self._on_playback_changed)

    @property
    def is_uploading(self) -> bool:
        return self._uploads_in_flight > 0

    # ------------------------------------------------------------------
    # Component wiring
    # ------------------------------------------------------------------

    def _on_session_changed(self, session: Session, previous: Session) -> None:
        if session.owner_id != previous.owner_id:
            self.playback.unload()

        task = self.library.reconcile(session)
        if task is not None:
            self._sync_tasks.add(task)
            task.add_done_callback(self._sync_tasks.discard)

    def _on_library_changed(self, songs: tuple[Song, ...]) -> None:
        current = self.playback.current_song
        if current is not None and all(song.id != current.id for song in songs):
            logger.debug(f"Current song {current.id} left the library")
            self.playback.unload()

    def _on_playback_changed(self, state: PlaybackState) -> None:
        if state.current_song_id != self._analysis_song_id:
            self.analysis = None
            self._analysis_song_id = None

    def _on_playback_notice(self, notice: PlaybackNotice, detail: Optional[str]) -> None:
        self.notifications.notify(_PLAYBACK_NOTICES[notice], detail)

    async def wait_for_sync(self) -> None:
        """Wait until every pending library listing has completed."""
        while self._sync_tasks:
            await asyncio.gather(*list(self._sync_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> Session:
        """Resolve the cold-start session and load its library."""
        session = await self.session.start()
        logger.info(f"SonicStream started in {session.mode.value} mode")
        return session

    async def close(self) -> None:
        await self.session.stop()
        self.playback.unload()
        for task in list(self._sync_tasks):
            task.cancel()
        await asyncio.gather(*list(self._sync_tasks), return_exceptions=True)

        stop = getattr(self._device, "stop", None)
        if stop is not None:
            await stop()

    # ------------------------------------------------------------------
    # Session intents
    # ------------------------------------------------------------------

    def enter_guest(self) -> Session:
        return self.session.enter_guest()

    async def sign_in(self, email: str, password: str) -> Session:
        return await self.session.sign_in(email, password)

    async def sign_up(self, email: str, password: str) -> Session:
        return await self.session.sign_up(email, password)

    async def sign_in_with_provider(self, name: str) -> str:
        return await self.session.sign_in_with_provider(name)

    async def complete_provider_sign_in(self, access_token: str, refresh_token: str) -> Session:
        return await self.session.complete_provider_sign_in(access_token, refresh_token)

    async def logout(self) -> None:
        await self.session.sign_out()

    # ------------------------------------------------------------------
    # Library and upload intents
    # ------------------------------------------------------------------

    async def refresh_library(self) -> bool:
        """Re-list the signed-in user's tracks. Returns True if the listing was applied."""
        task = self.library.refresh(self.session.current.owner_id)
        if task is None:
            return False
        return await task

    async def handle_upload(self, path: Union[str, Path]) -> Optional[UploadResult]:
        """Upload a selected file, add it to the library and start playing it.

        Returns:
            The upload result, or None when nobody is signed in
        """
        session = self.session.current
        self._uploads_in_flight += 1
        try:
            result = await self.uploads.upload(path, session)
        except NotAuthenticated:
            self.notifications.notify(NoticeKind.SIGN_IN_REQUIRED)
            return None
        finally:
            self._uploads_in_flight -= 1

        if not self.library.insert(result.song):
            # Session changed while the upload was in flight
            return result

        if result.error is not None:
            self.notifications.notify_upload_error(result.error)
        elif result.synced:
            self.notifications.notify(NoticeKind.UPLOAD_SYNCED)

        self.playback.load(result.song)
        if self.config.player.autoplay_on_upload:
            await self.playback.play()
        return result

    # ------------------------------------------------------------------
    # Playback intents
    # ------------------------------------------------------------------

    async def play_song(self, song: Song) -> bool:
        """Make ``song`` current (if it is not already) and play it."""
        if self.library.find(song.id) is None:
            logger.warning(f"Song {song.id} is not in the library")
            return False
        if self.playback.current_song is None or self.playback.current_song.id != song.id:
            self.playback.load(song)
        return await self.playback.play()

    async def toggle_play(self) -> bool:
        return await self.playback.toggle()

    async def analyze_current_song(self) -> Optional[str]:
        """Fetch a one-line style analysis for the current song.

        The result is dropped if a different song became current meanwhile.
        """
        song = self.playback.current_song
        if song is None:
            return None

        result = await self._analyzer(song.display_query(), self.config.ai)

        current = self.playback.current_song
        if current is None or current.id != song.id:
            logger.debug(f"Discarding analysis for {song.id}; no longer current")
            return None

        self.analysis = result
        self._analysis_song_id = song.id
        return result


async def create_app(config: Optional[Config] = None) -> SonicStreamApp:
    """Build and start the production object graph."""
    config = config or load_config()
    setup_loguru(
        get_log_file(config),
        level=config.logging.level,
        console_output=config.logging.console_output,
    )

    resources = LocalResources()
    remote = SupabaseRemoteStore(
        config.backend, session_file=get_data_dir() / "auth_session.json"
    )
    device = MpvAudioDevice(config.player, resources)

    if not check_mpv_available():
        logger.warning("mpv not found in PATH; playback is unavailable")
    elif not await device.start():
        logger.warning("Audio device failed to start; playback is unavailable")

    notifications = NotificationRouter(config.notifications)
    notifications.add_sink(desktop_sink)

    app = SonicStreamApp(config, remote, device, resources=resources, notifications=notifications)
    await app.start()
    return app
