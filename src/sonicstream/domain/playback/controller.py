"""
Playback controller.

Owns the "now playing" state and the single active device resource.
State changes go through the pure reducer in ``state``; this class only
adds the device side effects and user notices.
"""

from typing import Callable, Optional

from loguru import logger

from ..library.models import Song
from .device import AudioDevice, PlaybackRejected
from .state import (
    DeviceEvent,
    DeviceFailed,
    ExpandedChanged,
    LoadedMetadata,
    LoadSong,
    Paused,
    PlaybackEvent,
    PlaybackNotice,
    PlaybackState,
    PlaybackStatus,
    PlayRejected,
    PlayRequested,
    Seeked,
    Unload,
    VolumeChanged,
    clamp_volume,
    is_stale,
    reduce,
)

StateListener = Callable[[PlaybackState], None]
NoticeHandler = Callable[[PlaybackNotice, Optional[str]], None]
DurationHandler = Callable[[str, float], None]


class PlaybackController:
    """Drives one AudioDevice from play/pause/seek/volume intents."""

    def __init__(
        self,
        device: AudioDevice,
        volume: float = 0.8,
        on_notice: Optional[NoticeHandler] = None,
        on_duration: Optional[DurationHandler] = None,
    ):
        self._device = device
        self._state = PlaybackState(volume=clamp_volume(volume))
        self._listeners: list[StateListener] = []
        self._on_notice = on_notice
        self._on_duration = on_duration
        device.set_event_sink(self.handle_device_event)

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def current_song(self) -> Optional[Song]:
        return self._state.current_song

    @property
    def is_playing(self) -> bool:
        return self._state.is_playing

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _dispatch(self, event: PlaybackEvent) -> PlaybackState:
        new_state = reduce(self._state, event)
        if new_state is not self._state:
            self._state = new_state
            for listener in list(self._listeners):
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("Playback listener failed")
        return self._state

    def _notice(self, notice: PlaybackNotice, detail: Optional[str] = None) -> None:
        if self._on_notice is not None:
            self._on_notice(notice, detail)

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def load(self, song: Song) -> None:
        """Make ``song`` current, replacing (and stopping) any previous resource."""
        self._device.release()
        self._dispatch(LoadSong(song))
        self._device.set_volume(self._state.volume)
        self._device.bind(song.source_url, tag=song.id)
        logger.debug(f"Loaded {song.title} ({song.id})")

    def unload(self) -> None:
        """Stop playback and forget the current song."""
        if self._state.current_song is None:
            return
        logger.debug(f"Unloading {self._state.current_song.id}")
        self._device.release()
        self._dispatch(Unload())

    async def play(self) -> bool:
        """Request playback. Returns True if the device started playing."""
        state = self._state
        song = state.current_song
        if song is None or state.status in (PlaybackStatus.IDLE, PlaybackStatus.ERRORED):
            return False

        if state.status is PlaybackStatus.ENDED:
            self._device.seek(0.0)

        self._dispatch(PlayRequested())

        try:
            await self._device.play()
        except PlaybackRejected as e:
            logger.warning(f"Playback error: {e}")
            if self._state.current_song_id == song.id:
                self._dispatch(PlayRejected(song.id))
                self._notice(PlaybackNotice.AUTOPLAY_BLOCKED, str(e))
            return False

        return self._state.is_playing and self._state.current_song_id == song.id

    def pause(self) -> None:
        if self._state.current_song is None:
            return
        self._device.pause()
        self._dispatch(Paused())

    async def toggle(self) -> bool:
        """Flip play intent; returns the resulting is_playing."""
        if self._state.is_playing:
            self.pause()
            return False
        return await self.play()

    def seek(self, seconds: float) -> None:
        """Move to ``seconds`` clamped to [0, duration]."""
        if self._state.current_song is None:
            return
        state = self._dispatch(Seeked(seconds))
        self._device.seek(state.current_time)

    def set_volume(self, volume: float) -> None:
        """Set volume clamped to [0, 1]; kept across song changes."""
        state = self._dispatch(VolumeChanged(volume))
        self._device.set_volume(state.volume)

    def expand(self) -> None:
        self._dispatch(ExpandedChanged(True))

    def collapse(self) -> None:
        self._dispatch(ExpandedChanged(False))

    # ------------------------------------------------------------------
    # Device events
    # ------------------------------------------------------------------

    def handle_device_event(self, event: DeviceEvent) -> None:
        if is_stale(self._state, event):
            logger.debug(f"Ignoring stale {type(event).__name__} for {event.tag}")
            return

        state = self._dispatch(event)

        if isinstance(event, LoadedMetadata) and self._on_duration is not None:
            self._on_duration(event.tag, state.duration)
        elif isinstance(event, DeviceFailed):
            logger.error(f"Playback error for {event.tag}: {event.detail}")
            self._notice(PlaybackNotice.PLAYBACK_ERROR, event.detail)
