"""
Playback state and its transition function.

All playback changes go through ``reduce(state, event)``, a pure function.
Events reported by the audio device carry the id of the song they were
bound for; events whose tag is not the current song are ignored, so a
resource being torn down can never touch the state of its successor.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from ..library.models import Song


class PlaybackStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    ERRORED = "errored"


class PlaybackNotice(Enum):
    """Non-fatal playback conditions the user should hear about."""

    AUTOPLAY_BLOCKED = "autoplay_blocked"
    PLAYBACK_ERROR = "playback_error"


@dataclass(frozen=True)
class PlaybackState:
    """Immutable playback state."""

    status: PlaybackStatus = PlaybackStatus.IDLE
    current_song: Optional[Song] = None
    is_playing: bool = False
    current_time: float = 0.0
    duration: float = 0.0
    volume: float = 0.8
    expanded: bool = False  # Full player vs mini player
    error: Optional[str] = None
    version: int = 0

    @property
    def current_song_id(self) -> Optional[str]:
        return self.current_song.id if self.current_song else None

    @property
    def progress(self) -> float:
        """Fraction of the track played (0.0 - 1.0)."""
        if self.duration <= 0:
            return 0.0
        return min(1.0, self.current_time / self.duration)


# Controller-issued events


@dataclass(frozen=True)
class LoadSong:
    song: Song


@dataclass(frozen=True)
class Unload:
    pass


@dataclass(frozen=True)
class PlayRequested:
    pass


@dataclass(frozen=True)
class PlayRejected:
    tag: str


@dataclass(frozen=True)
class Paused:
    pass


@dataclass(frozen=True)
class Seeked:
    time: float


@dataclass(frozen=True)
class VolumeChanged:
    volume: float


@dataclass(frozen=True)
class ExpandedChanged:
    expanded: bool


# Device-reported events (tagged with the song id they were bound for)


@dataclass(frozen=True)
class TimeUpdate:
    tag: str
    time: float


@dataclass(frozen=True)
class LoadedMetadata:
    tag: str
    duration: float


@dataclass(frozen=True)
class Ended:
    tag: str


@dataclass(frozen=True)
class DeviceFailed:
    tag: str
    detail: str = "unsupported format"


DeviceEvent = Union[TimeUpdate, LoadedMetadata, Ended, DeviceFailed]
PlaybackEvent = Union[
    LoadSong,
    Unload,
    PlayRequested,
    PlayRejected,
    Paused,
    Seeked,
    VolumeChanged,
    ExpandedChanged,
    TimeUpdate,
    LoadedMetadata,
    Ended,
    DeviceFailed,
]

DEVICE_EVENTS = (TimeUpdate, LoadedMetadata, Ended, DeviceFailed)


def clamp_volume(volume: float) -> float:
    """Clamp any real number to [0, 1]; NaN counts as silence."""
    if volume is None or math.isnan(volume):
        return 0.0
    return min(1.0, max(0.0, float(volume)))


def clamp_time(time: float, duration: float) -> float:
    """Clamp a position to [0, duration] (upper bound only once duration is known)."""
    if time is None or math.isnan(time):
        return 0.0
    time = max(0.0, float(time))
    if duration > 0:
        time = min(time, duration)
    return time


def is_stale(state: PlaybackState, event: PlaybackEvent) -> bool:
    """True for a tagged event that does not belong to the current song."""
    tag = getattr(event, "tag", None)
    if not isinstance(event, DEVICE_EVENTS + (PlayRejected,)):
        return False
    return state.current_song is None or tag != state.current_song.id


def _next(state: PlaybackState, **changes) -> PlaybackState:
    return replace(state, version=state.version + 1, **changes)


def reduce(state: PlaybackState, event: PlaybackEvent) -> PlaybackState:
    """Apply one event and return the new state (the same object if unchanged)."""
    if is_stale(state, event):
        return state

    if isinstance(event, LoadSong):
        return _next(
            state,
            status=PlaybackStatus.LOADING,
            current_song=event.song,
            is_playing=False,
            current_time=0.0,
            duration=max(0.0, event.song.duration_seconds),
            error=None,
        )

    if isinstance(event, Unload):
        if state.current_song is None and state.status is PlaybackStatus.IDLE:
            return state
        return _next(
            state,
            status=PlaybackStatus.IDLE,
            current_song=None,
            is_playing=False,
            current_time=0.0,
            duration=0.0,
            expanded=False,
            error=None,
        )

    if isinstance(event, PlayRequested):
        if state.current_song is None or state.status in (
            PlaybackStatus.IDLE,
            PlaybackStatus.ERRORED,
        ):
            return state
        if state.status is PlaybackStatus.PLAYING:
            return state
        current_time = 0.0 if state.status is PlaybackStatus.ENDED else state.current_time
        return _next(
            state,
            status=PlaybackStatus.PLAYING,
            is_playing=True,
            current_time=current_time,
        )

    if isinstance(event, PlayRejected):
        if not state.is_playing:
            return state
        return _next(state, status=PlaybackStatus.PAUSED, is_playing=False)

    if isinstance(event, Paused):
        if not state.is_playing:
            return state
        return _next(state, status=PlaybackStatus.PAUSED, is_playing=False)

    if isinstance(event, Seeked):
        if state.current_song is None:
            return state
        status = state.status
        time = clamp_time(event.time, state.duration)
        if status is PlaybackStatus.ENDED and time < state.duration:
            status = PlaybackStatus.PAUSED
        return _next(state, status=status, current_time=time)

    if isinstance(event, VolumeChanged):
        volume = clamp_volume(event.volume)
        if volume == state.volume:
            return state
        return _next(state, volume=volume)

    if isinstance(event, ExpandedChanged):
        if event.expanded == state.expanded:
            return state
        return _next(state, expanded=event.expanded)

    if isinstance(event, TimeUpdate):
        if state.status not in (PlaybackStatus.PLAYING, PlaybackStatus.PAUSED):
            return state
        return _next(state, current_time=clamp_time(event.time, state.duration))

    if isinstance(event, LoadedMetadata):
        duration = max(0.0, float(event.duration))
        status = state.status
        if status is PlaybackStatus.LOADING:
            status = PlaybackStatus.PAUSED
        return _next(
            state,
            status=status,
            duration=duration,
            current_time=clamp_time(state.current_time, duration),
        )

    if isinstance(event, Ended):
        return _next(
            state,
            status=PlaybackStatus.ENDED,
            is_playing=False,
            current_time=state.duration,
        )

    if isinstance(event, DeviceFailed):
        return _next(
            state,
            status=PlaybackStatus.ERRORED,
            is_playing=False,
            error=event.detail,
        )

    return state


def format_time(seconds: float) -> str:
    """Format seconds as m:ss."""
    if seconds is None or math.isnan(seconds) or seconds < 0:
        seconds = 0
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"
