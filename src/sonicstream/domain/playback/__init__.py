"""Playback domain - device adapter, state reducer and controller.

This domain handles:
- MPV player integration via JSON IPC
- Playback state transitions as a pure reducer
- Tagging device events so stale resources never touch the current song
"""

from .controller import PlaybackController
from .device import AudioDevice, MpvAudioDevice, PlaybackRejected, check_mpv_available
from .state import (
    DeviceFailed,
    Ended,
    LoadedMetadata,
    PlaybackNotice,
    PlaybackState,
    PlaybackStatus,
    TimeUpdate,
    clamp_time,
    clamp_volume,
    format_time,
    reduce,
)

__all__ = [
    "PlaybackController",
    "AudioDevice",
    "MpvAudioDevice",
    "PlaybackRejected",
    "check_mpv_available",
    "DeviceFailed",
    "Ended",
    "LoadedMetadata",
    "PlaybackNotice",
    "PlaybackState",
    "PlaybackStatus",
    "TimeUpdate",
    "clamp_time",
    "clamp_volume",
    "format_time",
    "reduce",
]
