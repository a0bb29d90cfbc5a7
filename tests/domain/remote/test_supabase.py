"""Tests for the Supabase remote store (HTTP mocked)."""

import json
from unittest.mock import Mock, patch

import pytest
import requests

from sonicstream.core.config import BackendConfig
from sonicstream.domain.remote import (
    AuthError,
    FetchError,
    Identity,
    RecordError,
    StorageError,
    SupabaseRemoteStore,
)

BASE = "https://proj.supabase.co"


def response(status: int = 200, payload=None, text: str = "") -> Mock:
    mock = Mock()
    mock.status_code = status
    mock.reason = "Error" if status >= 400 else "OK"
    mock.text = text
    if payload is None:
        mock.json.side_effect = ValueError("no json")
    else:
        mock.json.return_value = payload
    return mock


@pytest.fixture
def config() -> BackendConfig:
    return BackendConfig(url=BASE, anon_key="anon")


@pytest.fixture
def store(config, tmp_path) -> SupabaseRemoteStore:
    return SupabaseRemoteStore(config, session_file=tmp_path / "auth_session.json")


@pytest.fixture
def mock_request():
    with patch("sonicstream.domain.remote.supabase.requests.request") as mock:
        yield mock


class TestRemoteErrors:
    """Tests for backend error classification."""

    def test_rls_message_is_permission_denied(self):
        error = StorageError("Storage Upload Failed: new row violates row-level security policy")
        assert error.permission_denied
        assert not error.not_configured

    def test_missing_bucket_is_not_configured(self):
        assert StorageError("Storage Upload Failed: Bucket not found").not_configured

    def test_network_flag(self):
        assert RecordError("x", network=True).network


@pytest.mark.anyio
async def test_placeholder_backend_raises_without_request(tmp_path, mock_request):
    store = SupabaseRemoteStore(BackendConfig(), session_file=tmp_path / "s.json")

    assert not store.is_configured
    with pytest.raises(FetchError, match="Backend is not configured"):
        await store.list_records("u1")
    mock_request.assert_not_called()


@pytest.mark.anyio
async def test_list_records_request_shape(store, mock_request):
    mock_request.return_value = response(
        payload=[
            {"id": 12, "user_id": "u1", "title": "B", "url": "https://x/b.mp3", "artist": None},
            {"id": 11, "user_id": "u1", "title": "A", "url": "https://x/a.mp3", "duration": 61},
        ]
    )

    records = await store.list_records("u1")

    method, url = mock_request.call_args.args
    kwargs = mock_request.call_args.kwargs
    assert method == "GET"
    assert url == f"{BASE}/rest/v1/tracks"
    assert kwargs["params"] == {"select": "*", "user_id": "eq.u1", "order": "id.desc"}
    assert kwargs["headers"]["apikey"] == "anon"
    assert kwargs["timeout"] == 30.0

    assert [r.id for r in records] == ["12", "11"]
    assert records[1].duration == 61.0
    assert records[0].to_song().artist == "Unknown Artist"


@pytest.mark.anyio
async def test_list_records_http_error(store, mock_request):
    mock_request.return_value = response(500, {"message": "relation does not exist"})

    with pytest.raises(FetchError) as exc_info:
        await store.list_records("u1")

    assert exc_info.value.status_code == 500
    assert "relation does not exist" in str(exc_info.value)


@pytest.mark.anyio
async def test_network_failure_is_flagged(store, mock_request):
    mock_request.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(FetchError) as exc_info:
        await store.list_records("u1")

    assert exc_info.value.network


@pytest.mark.anyio
async def test_upload_binary(store, mock_request, tmp_path):
    path = tmp_path / "song.mp3"
    path.write_bytes(b"ID3data")
    mock_request.return_value = response(payload={"Key": "audio/u1/x.mp3"})

    location = await store.upload_binary("u1", path)

    method, url = mock_request.call_args.args
    kwargs = mock_request.call_args.kwargs
    assert method == "POST"
    assert url.startswith(f"{BASE}/storage/v1/object/audio/u1/")
    assert url.endswith(".mp3")
    assert kwargs["data"] == b"ID3data"
    assert kwargs["headers"]["Content-Type"] == "audio/mpeg"
    assert location.startswith(f"{BASE}/storage/v1/object/public/audio/u1/")


@pytest.mark.anyio
async def test_upload_binary_rls_failure(store, mock_request, tmp_path):
    path = tmp_path / "song.mp3"
    path.write_bytes(b"ID3data")
    mock_request.return_value = response(
        403, {"statusCode": "403", "message": "new row violates row-level security policy"}
    )

    with pytest.raises(StorageError) as exc_info:
        await store.upload_binary("u1", path)

    assert exc_info.value.permission_denied
    assert str(exc_info.value).startswith("Storage Upload Failed:")


@pytest.mark.anyio
async def test_insert_record(store, mock_request):
    mock_request.return_value = response(
        201, [{"id": 7, "user_id": "u1", "title": "T", "url": "https://x/t.mp3", "artist": "A"}]
    )

    record = await store.insert_record("u1", "T", "A", "https://x/t.mp3", 12.5)

    kwargs = mock_request.call_args.kwargs
    assert kwargs["json"] == {
        "user_id": "u1",
        "title": "T",
        "artist": "A",
        "url": "https://x/t.mp3",
        "duration": 12.5,
    }
    assert kwargs["headers"]["Prefer"] == "return=representation"
    assert record.id == "7"


@pytest.mark.anyio
async def test_insert_record_empty_representation(store, mock_request):
    mock_request.return_value = response(201, [])

    with pytest.raises(RecordError) as exc_info:
        await store.insert_record("u1", "T", "A", "https://x/t.mp3", 0.0)

    assert exc_info.value.permission_denied


@pytest.mark.anyio
async def test_insert_record_error_includes_code(store, mock_request):
    mock_request.return_value = response(400, {"message": "column missing", "code": "PGRST204"})

    with pytest.raises(RecordError, match=r"\(Code: PGRST204\)"):
        await store.insert_record("u1", "T", "A", "https://x/t.mp3", 0.0)


@pytest.mark.anyio
async def test_delete_binary_uses_object_name(store, mock_request):
    mock_request.return_value = response(payload=[])

    await store.delete_binary(f"{BASE}/storage/v1/object/public/audio/u1/1-ab.mp3")

    method, url = mock_request.call_args.args
    assert method == "DELETE"
    assert url == f"{BASE}/storage/v1/object/audio"
    assert mock_request.call_args.kwargs["json"] == {"prefixes": ["u1/1-ab.mp3"]}


@pytest.mark.anyio
async def test_sign_in_persists_session(store, mock_request, tmp_path):
    mock_request.return_value = response(
        payload={
            "access_token": "tok",
            "refresh_token": "ref",
            "expires_in": 3600,
            "user": {"id": "u1", "email": "ann@example.com"},
        }
    )

    identity = await store.sign_in("ann@example.com", "secret")

    assert identity == Identity(id="u1", email="ann@example.com")
    assert mock_request.call_args.args[1] == f"{BASE}/auth/v1/token?grant_type=password"
    saved = json.loads((tmp_path / "auth_session.json").read_text())
    assert saved["access_token"] == "tok"
    assert "expires_at" in saved


@pytest.mark.anyio
async def test_sign_in_rejected(store, mock_request):
    mock_request.return_value = response(
        400, {"error": "invalid_grant", "error_description": "Invalid login credentials"}
    )

    with pytest.raises(AuthError, match="Invalid login credentials"):
        await store.sign_in("ann@example.com", "wrong")


@pytest.mark.anyio
async def test_observe_auth_restores_persisted_session(store, mock_request, tmp_path):
    (tmp_path / "auth_session.json").write_text(
        json.dumps(
            {
                "access_token": "tok",
                "expires_at": "2999-01-01T00:00:00",
                "user": {"id": "u1", "email": "ann@example.com"},
            }
        )
    )

    stream = store.observe_auth()
    first = await stream.__anext__()
    await stream.aclose()

    assert first == Identity(id="u1", email="ann@example.com")
    mock_request.assert_not_called()


@pytest.mark.anyio
async def test_observe_auth_without_session(store):
    stream = store.observe_auth()
    assert await stream.__anext__() is None
    await stream.aclose()


@pytest.mark.anyio
async def test_sign_out_clears_local_session_first(store, mock_request, tmp_path):
    mock_request.return_value = response(
        payload={"access_token": "tok", "user": {"id": "u1", "email": "a@b.c"}}
    )
    await store.sign_in("a@b.c", "pw")

    mock_request.side_effect = requests.Timeout("slow")
    with pytest.raises(AuthError):
        await store.sign_out()

    assert not (tmp_path / "auth_session.json").exists()


@pytest.mark.anyio
async def test_provider_not_enabled(store, mock_request):
    mock_request.return_value = response(payload={"external": {"google": False}})

    with pytest.raises(AuthError, match="provider is not enabled"):
        await store.sign_in_with_provider("google")


@pytest.mark.anyio
async def test_provider_sign_in_opens_browser(store, mock_request):
    mock_request.return_value = response(payload={"external": {"google": True}})

    with patch("sonicstream.domain.remote.supabase.webbrowser.open") as mock_open:
        url = await store.sign_in_with_provider("google")

    assert url.startswith(f"{BASE}/auth/v1/authorize?provider=google")
    mock_open.assert_called_once_with(url)


@pytest.mark.anyio
async def test_sign_up_pending_confirmation(store, mock_request):
    mock_request.return_value = response(payload={"id": "u5", "email": "new@example.com"})
    assert await store.sign_up("new@example.com", "pw") is None


@pytest.mark.anyio
async def test_complete_provider_sign_in_publishes_identity(store, mock_request, tmp_path):
    mock_request.return_value = response(payload={"id": "u9", "email": "oauth@example.com"})
    stream = store.observe_auth()
    assert await stream.__anext__() is None

    identity = await store.complete_provider_sign_in("tok", "ref")

    assert identity == Identity(id="u9", email="oauth@example.com")
    method, url = mock_request.call_args.args
    assert (method, url) == ("GET", f"{BASE}/auth/v1/user")
    assert mock_request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"
    assert await stream.__anext__() == identity
    saved = json.loads((tmp_path / "auth_session.json").read_text())
    assert saved["refresh_token"] == "ref"
    await stream.aclose()


@pytest.mark.anyio
async def test_malformed_listing_row_is_fetch_error(store, mock_request):
    mock_request.return_value = response(
        payload=[{"user_id": "u1", "title": "No id"}, {"id": 3, "duration": "long"}]
    )

    with pytest.raises(FetchError, match="malformed track row"):
        await store.list_records("u1")
