"""Tests for the library store and its reconciliation with the session."""

import asyncio

import pytest

from sonicstream.domain.library import LibraryStatus, LibraryStore, Song
from sonicstream.domain.remote import FetchError, TrackRecord
from sonicstream.domain.session import Session


def make_record(record_id: int, owner_id: str, title: str = "Track") -> TrackRecord:
    return TrackRecord(
        id=str(record_id),
        owner_id=owner_id,
        title=f"{title} {record_id}",
        url=f"https://cdn.test/audio/{owner_id}/{record_id}.mp3",
        artist="Artist",
        duration=200.0,
    )


@pytest.fixture
def store(remote, resources) -> LibraryStore:
    return LibraryStore(remote, resources)


@pytest.mark.anyio
async def test_guest_reconcile_clears_without_network(store, remote, resources):
    locator = resources.allocate_file("/music/a.mp3")
    store.reconcile(Session.guest())
    store.insert(Song(id="local-1", source_url=locator, title="A", owner_id="guest"))

    task = store.reconcile(Session.unauthenticated())

    assert task is None
    assert store.songs == ()
    assert remote.calls == []
    # Evicted local resource is revoked
    assert len(resources) == 0


@pytest.mark.anyio
async def test_authenticated_reconcile_loads_newest_first(store, remote):
    remote.records["u1"] = [make_record(3, "u1"), make_record(2, "u1"), make_record(1, "u1")]

    task = store.reconcile(Session.authenticated("u1"))
    assert store.status is LibraryStatus.SYNCING
    assert await task is True

    assert [song.id for song in store.songs] == ["3", "2", "1"]
    assert store.status is LibraryStatus.READY
    assert all(song.owner_id == "u1" for song in store.songs)


@pytest.mark.anyio
async def test_stale_listing_is_discarded(store, remote):
    """A slow listing for a previous session never overwrites the current one."""
    remote.records["u1"] = [make_record(1, "u1")]
    remote.records["u2"] = [make_record(7, "u2")]
    gate = asyncio.Event()
    remote.list_gates["u1"] = gate

    first = store.reconcile(Session.authenticated("u1"))
    store.reconcile(Session.unauthenticated())
    second = store.reconcile(Session.authenticated("u2"))
    assert await second is True

    gate.set()
    assert await first is False
    assert [song.id for song in store.songs] == ["7"]
    assert store.owner_id == "u2"


@pytest.mark.anyio
async def test_back_to_back_reconcile_is_last_write_wins(store, remote):
    remote.records["u1"] = [make_record(1, "u1")]
    remote.records["u2"] = [make_record(2, "u2")]
    gate = asyncio.Event()
    remote.list_gates["u1"] = gate

    first = store.reconcile(Session.authenticated("u1"))
    second = store.reconcile(Session.authenticated("u2"))
    await second
    gate.set()
    await first

    assert [song.id for song in store.songs] == ["2"]


@pytest.mark.anyio
async def test_stale_listing_after_sign_out_leaves_library_empty(store, remote):
    remote.records["u1"] = [make_record(1, "u1")]
    gate = asyncio.Event()
    remote.list_gates["u1"] = gate

    pending = store.reconcile(Session.authenticated("u1"))
    store.reconcile(Session.unauthenticated())
    gate.set()

    assert await pending is False
    assert store.songs == ()


@pytest.mark.anyio
async def test_fetch_failure_empties_library(store, remote):
    remote.records["u1"] = [make_record(1, "u1")]
    await store.reconcile(Session.authenticated("u1"))

    remote.list_error = FetchError("Track Listing Failed: timeout", network=True)
    assert await store.refresh("u1") is False

    assert store.songs == ()
    assert store.status is LibraryStatus.FAILED
    assert "timeout" in store.last_error


@pytest.mark.anyio
async def test_refresh_replaces_wholesale(store, remote):
    remote.records["u1"] = [make_record(1, "u1")]
    await store.reconcile(Session.authenticated("u1"))

    remote.records["u1"] = [make_record(2, "u1"), make_record(1, "u1")]
    await store.refresh("u1")

    assert [song.id for song in store.songs] == ["2", "1"]


@pytest.mark.anyio
async def test_refresh_keeps_session_covers(store, remote, resources):
    remote.records["u1"] = [make_record(1, "u1")]
    await store.reconcile(Session.authenticated("u1"))
    cover = resources.allocate_bytes(b"png", "image/png")
    store._songs = (store.songs[0].with_cover(cover),)

    await store.refresh("u1")

    assert store.songs[0].cover_image_url == cover


@pytest.mark.anyio
async def test_refresh_ignored_for_guest_and_inactive_owner(store, remote):
    store.reconcile(Session.guest())
    assert store.refresh("guest") is None
    assert store.refresh("someone-else") is None
    assert store.refresh(None) is None
    assert remote.calls == []


@pytest.mark.anyio
async def test_insert_prepends_for_active_owner(store, remote):
    remote.records["u1"] = [make_record(1, "u1")]
    await store.reconcile(Session.authenticated("u1"))

    added = Song(id="9", source_url="https://cdn.test/9.mp3", title="New", owner_id="u1")
    assert store.insert(added) is True
    assert store.songs[0] == added


@pytest.mark.anyio
async def test_insert_rejects_other_owner_and_releases(store, resources):
    store.reconcile(Session.guest())
    locator = resources.allocate_file("/music/a.mp3")
    song = Song(id="local-1", source_url=locator, title="A", owner_id="u1")

    assert store.insert(song) is False
    assert store.songs == ()
    assert resources.revoke(locator) is False


@pytest.mark.anyio
async def test_switching_owner_clears_immediately(store, remote):
    remote.records["u1"] = [make_record(1, "u1")]
    await store.reconcile(Session.authenticated("u1"))

    remote.list_gates["u2"] = asyncio.Event()
    pending = store.reconcile(Session.authenticated("u2"))

    assert store.songs == ()
    remote.list_gates["u2"].set()
    await pending


def test_update_duration(remote, resources):
    store = LibraryStore(remote, resources)
    store._owner_id = "guest"
    store.insert(Song(id="a", source_url="blob:x", title="A", owner_id="guest"))
    seen = []
    store.add_listener(seen.append)

    updated = store.update_duration("a", 215.5)

    assert updated.duration_seconds == 215.5
    assert store.find("a").duration_seconds == 215.5
    assert len(seen) == 1
    assert store.update_duration("missing", 10.0) is None


def test_listener_removal(remote, resources):
    store = LibraryStore(remote, resources)
    seen = []
    remove = store.add_listener(seen.append)
    remove()
    store._owner_id = "guest"
    store.insert(Song(id="a", source_url="blob:x", title="A", owner_id="guest"))
    assert seen == []
