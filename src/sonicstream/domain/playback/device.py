"""
Audio device adapter.

Defines the contract the playback controller drives and an mpv
implementation using JSON IPC over a unix socket. One resource is bound at
a time; every event the device reports is tagged with the song id the
resource was bound for.
"""

import asyncio
import json
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from loguru import logger

from sonicstream.core.config import PlayerConfig

from ..library.resources import LocalResources, ResourceRevokedError
from .state import DeviceEvent, DeviceFailed, Ended, LoadedMetadata, TimeUpdate

EventSink = Callable[[DeviceEvent], None]

# Property observer ids
_OBSERVE_TIME_POS = 1
_OBSERVE_DURATION = 2


class PlaybackRejected(Exception):
    """Raised when the device refuses to start playback."""

    pass


class AudioDevice(Protocol):
    """Contract for the host audio renderer."""

    def set_event_sink(self, sink: EventSink) -> None:
        ...

    def bind(self, locator: str, tag: str) -> None:
        """Load a resource (paused) and tag its events with ``tag``."""
        ...

    async def play(self) -> None:
        """Start playback.

        A device that is gone reports ``DeviceFailed`` for the bound tag
        instead of raising.

        Raises:
            PlaybackRejected: If the host refuses to play
        """
        ...

    def pause(self) -> None:
        ...

    def seek(self, seconds: float) -> None:
        ...

    def set_volume(self, volume: float) -> None:
        """Volume in [0, 1]."""
        ...

    def release(self) -> None:
        """Stop and unbind the current resource."""
        ...


def check_mpv_available() -> bool:
    """Check if MPV is available on the system."""
    return shutil.which("mpv") is not None


class MpvAudioDevice:
    """mpv process driven over JSON IPC."""

    def __init__(self, config: PlayerConfig, resources: LocalResources):
        if config.mpv_socket_path:
            self._socket_path = config.mpv_socket_path
        else:
            temp_dir = Path(tempfile.gettempdir())
            self._socket_path = str(temp_dir / f"sonicstream-mpv-{os.getpid()}")
        self._resources = resources
        self._initial_volume = config.volume
        self._process: Optional[subprocess.Popen] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: dict[int, asyncio.Future] = {}
        self._request_id = 0
        self._sink: Optional[EventSink] = None
        # Tag of the file mpv is currently playing, the latest requested one,
        # and the tags of loaded playlist entries that have not started yet
        self._tag: Optional[str] = None
        self._bound_tag: Optional[str] = None
        self._entry_tags: dict[int, str] = {}

    @property
    def is_running(self) -> bool:
        return (
            self._process is not None
            and self._process.poll() is None
            and self._writer is not None
        )

    def set_event_sink(self, sink: EventSink) -> None:
        self._sink = sink

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    async def start(self, timeout: float = 5.0) -> bool:
        """Start mpv with JSON IPC and connect to its socket."""
        logger.info(f"Starting MPV player with socket: {self._socket_path}")

        if os.path.exists(self._socket_path):
            logger.debug(f"Removing existing socket: {self._socket_path}")
            os.unlink(self._socket_path)

        cmd = [
            "mpv",
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            f"--input-ipc-server={self._socket_path}",
            f"--volume={int(round(self._initial_volume * 100))}",
            "--keep-open=no",
            "--pause=yes",
            "--load-scripts=no",
        ]

        try:
            self._process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                stdin=subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Failed to start MPV: {e}")
            return False

        # Wait for socket to be created
        waited = 0.0
        while not os.path.exists(self._socket_path):
            if waited > timeout:
                logger.error(f"MPV socket creation timeout after {timeout}s")
                self._process.kill()
                return False
            await asyncio.sleep(0.1)
            waited += 0.1

        try:
            self._reader, self._writer = await asyncio.open_unix_connection(
                self._socket_path
            )
        except OSError as e:
            logger.error(f"MPV socket connection failed: {e}")
            self._process.kill()
            return False

        self._reader_task = asyncio.create_task(self._read_messages())
        self._send("observe_property", _OBSERVE_TIME_POS, "time-pos")
        self._send("observe_property", _OBSERVE_DURATION, "duration")
        logger.info("MPV started successfully")
        return True

    async def stop(self) -> None:
        """Stop MPV process and cleanup."""
        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        if self._writer:
            self._writer.close()
            self._writer = None

        if self._process:
            try:
                self._process.kill()
                self._process.wait(timeout=2.0)
            except (OSError, subprocess.TimeoutExpired):
                pass  # Process already terminated or couldn't be killed
            self._process = None

        if os.path.exists(self._socket_path):
            try:
                os.unlink(self._socket_path)
            except OSError:
                pass

    # ------------------------------------------------------------------
    # IPC
    # ------------------------------------------------------------------

    def _send(self, *command: Any) -> Optional[asyncio.Future]:
        """Write a command; returns a future for mpv's reply."""
        if self._writer is None:
            return None

        self._request_id += 1
        request_id = self._request_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        payload = {"command": list(command), "request_id": request_id}
        self._writer.write((json.dumps(payload) + "\n").encode("utf-8"))
        return future

    async def _read_messages(self) -> None:
        assert self._reader is not None
        while True:
            line = await self._reader.readline()
            if not line:
                logger.warning("MPV IPC connection closed")
                break
            try:
                message = json.loads(line.decode("utf-8"))
            except json.JSONDecodeError:
                continue

            request_id = message.get("request_id")
            if request_id is not None and "event" not in message:
                future = self._pending.pop(request_id, None)
                if future and not future.done():
                    future.set_result(message)
                continue

            self._handle_event(message)

        for future in self._pending.values():
            if not future.done():
                future.set_result({"error": "connection closed"})
        self._pending.clear()

    def _emit(self, event: DeviceEvent) -> None:
        if self._sink is not None:
            self._sink(event)

    def _handle_event(self, message: dict[str, Any]) -> None:
        event = message.get("event")

        if event == "start-file":
            # Everything after this belongs to the entry mpv just opened
            self._tag = self._entry_tags.pop(message.get("playlist_entry_id"), None)
            return

        tag = self._tag
        if tag is None:
            return

        if event == "property-change":
            name = message.get("name")
            data = message.get("data")
            if data is None:
                return
            if name == "time-pos":
                self._emit(TimeUpdate(tag, float(data)))
            elif name == "duration" and float(data) > 0:
                self._emit(LoadedMetadata(tag, float(data)))
        elif event == "end-file":
            reason = message.get("reason")
            if reason == "eof":
                self._emit(Ended(tag))
            elif reason == "error":
                detail = message.get("file_error") or "unsupported format"
                self._emit(DeviceFailed(tag, detail))

    # ------------------------------------------------------------------
    # AudioDevice
    # ------------------------------------------------------------------

    def _resolve(self, locator: str) -> str:
        if not LocalResources.is_local(locator):
            return locator
        target = self._resources.resolve(locator)
        if isinstance(target, bytes):
            raise ResourceRevokedError(locator)
        return str(target)

    def bind(self, locator: str, tag: str) -> None:
        try:
            target = self._resolve(locator)
        except ResourceRevokedError as e:
            logger.warning(f"Cannot bind {tag}: {e}")
            self._emit(DeviceFailed(tag, str(e)))
            return

        if not self.is_running:
            self._emit(DeviceFailed(tag, "Audio device is not running"))
            return

        self._bound_tag = tag
        self._send("set_property", "pause", True)
        future = self._send("loadfile", target, "replace")
        future.add_done_callback(lambda reply: self._on_loadfile_reply(tag, reply))
        logger.debug(f"Loading {target} for {tag}")

    def _on_loadfile_reply(self, tag: str, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        reply = future.result()
        if reply.get("error") != "success":
            logger.warning(f"mpv refused to load {tag}: {reply.get('error')}")
            if tag == self._bound_tag:
                self._emit(DeviceFailed(tag, str(reply.get("error"))))
            return

        entry_id = (reply.get("data") or {}).get("playlist_entry_id")
        if entry_id is not None:
            self._entry_tags[entry_id] = tag

    async def play(self) -> None:
        future = self._send("set_property", "pause", False)
        if future is None:
            self._device_lost("Audio device is not running")
            return

        try:
            response = await asyncio.wait_for(future, timeout=2.0)
        except asyncio.TimeoutError:
            self._device_lost("Audio device did not respond")
            return

        if response.get("error") != "success":
            raise PlaybackRejected(str(response.get("error")))

    def _device_lost(self, detail: str) -> None:
        logger.error(detail)
        if self._bound_tag is not None:
            self._emit(DeviceFailed(self._bound_tag, detail))

    def pause(self) -> None:
        self._send("set_property", "pause", True)

    def seek(self, seconds: float) -> None:
        self._send("seek", max(0.0, float(seconds)), "absolute")

    def set_volume(self, volume: float) -> None:
        self._send("set_property", "volume", int(round(volume * 100)))

    def release(self) -> None:
        # Drop late events from the outgoing file before they are read
        self._tag = None
        self._bound_tag = None
        self._entry_tags.clear()
        self._send("stop")
