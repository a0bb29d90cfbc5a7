"""Shared fixtures: in-memory remote store and audio device fakes."""

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from sonicstream.domain.library import LocalResources
from sonicstream.domain.playback import DeviceFailed, PlaybackRejected
from sonicstream.domain.remote import Identity, TrackRecord


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeRemoteStore:
    """RemoteStore double recording every call.

    Errors are injected per operation; listings can be held open with an
    asyncio.Event per owner to control completion order.
    """

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.records: dict[str, list[TrackRecord]] = {}
        self.calls: list[str] = []
        self.deleted: list[str] = []
        self.inserted: list[dict] = []
        self.list_gates: dict[str, asyncio.Event] = {}
        self.initial_identity: Optional[Identity] = None
        self.auth_events: asyncio.Queue = asyncio.Queue()

        self.upload_error: Optional[Exception] = None
        self.insert_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.sign_in_error: Optional[Exception] = None
        self.sign_out_error: Optional[Exception] = None
        self.provider_error: Optional[Exception] = None
        self.sign_up_identity: Optional[Identity] = None
        self.provider_identity = Identity(id="user-oauth", email="oauth@example.com")
        self._next_id = 100

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def upload_binary(self, owner_id: str, path: Path) -> str:
        self.calls.append("upload_binary")
        if self.upload_error:
            raise self.upload_error
        return f"https://cdn.test/audio/{owner_id}/{Path(path).name}"

    async def insert_record(self, owner_id, title, artist, location, duration) -> TrackRecord:
        self.calls.append("insert_record")
        if self.insert_error:
            raise self.insert_error
        self._next_id += 1
        record = TrackRecord(
            id=str(self._next_id),
            owner_id=owner_id,
            title=title,
            url=location,
            artist=artist,
            duration=duration,
        )
        self.inserted.append(
            {"owner_id": owner_id, "title": title, "artist": artist, "duration": duration}
        )
        self.records.setdefault(owner_id, []).insert(0, record)
        return record

    async def delete_binary(self, location: str) -> None:
        self.calls.append("delete_binary")
        if self.delete_error:
            raise self.delete_error
        self.deleted.append(location)

    async def list_records(self, owner_id: str) -> list[TrackRecord]:
        self.calls.append("list_records")
        gate = self.list_gates.get(owner_id)
        if gate is not None:
            await gate.wait()
        if self.list_error:
            raise self.list_error
        return list(self.records.get(owner_id, []))

    async def observe_auth(self):
        yield self.initial_identity
        while True:
            yield await self.auth_events.get()

    def push_identity(self, identity: Optional[Identity]) -> None:
        self.auth_events.put_nowait(identity)

    async def sign_in(self, email: str, password: str) -> Identity:
        self.calls.append("sign_in")
        if self.sign_in_error:
            raise self.sign_in_error
        return Identity(id=f"user-{email.split('@')[0]}", email=email)

    async def sign_in_with_provider(self, name: str) -> str:
        self.calls.append("sign_in_with_provider")
        if self.provider_error:
            raise self.provider_error
        return f"https://auth.test/authorize?provider={name}"

    async def complete_provider_sign_in(self, access_token: str, refresh_token: str) -> Identity:
        self.calls.append("complete_provider_sign_in")
        if self.provider_error:
            raise self.provider_error
        return self.provider_identity

    async def sign_up(self, email: str, password: str) -> Optional[Identity]:
        self.calls.append("sign_up")
        return self.sign_up_identity

    async def sign_out(self) -> None:
        self.calls.append("sign_out")
        if self.sign_out_error:
            raise self.sign_out_error


class FakeAudioDevice:
    """AudioDevice double; tests push device events through ``emit``."""

    def __init__(self):
        self.sink = None
        self.tag: Optional[str] = None
        self.locator: Optional[str] = None
        self.commands: list[tuple] = []
        self.reject_with: Optional[str] = None
        self.fail_with: Optional[str] = None
        self.volume: Optional[float] = None

    def set_event_sink(self, sink) -> None:
        self.sink = sink

    def bind(self, locator: str, tag: str) -> None:
        self.commands.append(("bind", locator, tag))
        self.locator = locator
        self.tag = tag

    async def play(self) -> None:
        self.commands.append(("play",))
        if self.reject_with:
            raise PlaybackRejected(self.reject_with)
        if self.fail_with:
            self.sink(DeviceFailed(self.tag, self.fail_with))

    def pause(self) -> None:
        self.commands.append(("pause",))

    def seek(self, seconds: float) -> None:
        self.commands.append(("seek", seconds))

    def set_volume(self, volume: float) -> None:
        self.commands.append(("volume", volume))
        self.volume = volume

    def release(self) -> None:
        self.commands.append(("release",))
        self.tag = None
        self.locator = None

    def emit(self, event) -> None:
        self.sink(event)


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def device() -> FakeAudioDevice:
    return FakeAudioDevice()


@pytest.fixture
def resources() -> LocalResources:
    return LocalResources()


@pytest.fixture
def settle():
    """Let pending tasks and queue consumers run."""

    async def _settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def audio_file(tmp_path) -> Path:
    """A file that is not recognizable audio; tag extraction finds nothing."""
    path = tmp_path / "Midnight Drive.mp3"
    path.write_bytes(b"not really audio data")
    return path


@pytest.fixture
def unconfigured_remote() -> FakeRemoteStore:
    return FakeRemoteStore(configured=False)
