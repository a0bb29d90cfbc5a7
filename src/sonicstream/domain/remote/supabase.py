"""
Supabase-backed remote store.

Talks to the Supabase REST surfaces directly:
- Storage  (/storage/v1) for audio binaries
- PostgREST (/rest/v1) for track records
- GoTrue   (/auth/v1) for password and OAuth sessions

Requests run in worker threads so the event loop never blocks.
"""

import asyncio
import json
import mimetypes
import secrets
import time
import webbrowser
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import quote, urlencode

import requests
from loguru import logger

from sonicstream.core.config import BackendConfig

from .base import Identity, TrackRecord
from .errors import AuthError, FetchError, RecordError, RemoteError, StorageError


def _error_message(response: requests.Response) -> tuple[str, Optional[str]]:
    """Pull (message, code) out of a Supabase error payload."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason or "Unknown error", None

    if not isinstance(data, dict):
        return str(data), None

    message = (
        data.get("message")
        or data.get("error_description")
        or data.get("msg")
        or data.get("error")
        or response.reason
        or "Unknown error"
    )
    code = data.get("code") or data.get("error_code") or data.get("statusCode")
    return str(message), str(code) if code is not None else None


def _object_name(owner_id: str, path: Path) -> str:
    """Storage object name: <owner>/<ms timestamp>-<random>.<ext>."""
    suffix = path.suffix.lstrip(".") or "bin"
    return f"{owner_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.{suffix}"


class SupabaseRemoteStore:
    """RemoteStore implementation for a Supabase project."""

    def __init__(self, config: BackendConfig, session_file: Optional[Path] = None):
        self._config = config
        self._base_url = config.url.rstrip("/")
        self._session_file = session_file
        self._token_data: Optional[Dict[str, Any]] = None
        self._subscribers: list[asyncio.Queue] = []
        self._restored = False

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        bearer = self._config.anon_key
        if self._token_data and self._token_data.get("access_token"):
            bearer = self._token_data["access_token"]
        headers = {"apikey": self._config.anon_key, "Authorization": f"Bearer {bearer}"}
        if extra:
            headers.update(extra)
        return headers

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Blocking request against the project URL."""
        kwargs.setdefault("timeout", self._config.timeout_seconds)
        return requests.request(method, f"{self._base_url}{path}", **kwargs)

    async def _request(
        self,
        error_cls: type[RemoteError],
        prefix: str,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> requests.Response:
        """Run a request in a worker thread and map failures to error_cls."""
        if not self.is_configured:
            raise error_cls(f"{prefix}: Backend is not configured")

        try:
            response = await asyncio.to_thread(self._send, method, path, **kwargs)
        except requests.RequestException as e:
            raise error_cls(f"{prefix}: {e}", network=True) from e

        if response.status_code >= 400:
            message, code = _error_message(response)
            detail = f"{prefix}: {message}"
            if error_cls is RecordError and code:
                detail += f" (Code: {code})"
            raise error_cls(detail, status_code=response.status_code, code=code)

        return response

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def public_url(self, object_name: str) -> str:
        return (
            f"{self._base_url}/storage/v1/object/public/"
            f"{self._config.bucket}/{quote(object_name)}"
        )

    def object_name_from_url(self, location: str) -> str:
        prefix = f"{self._base_url}/storage/v1/object/public/{self._config.bucket}/"
        if location.startswith(prefix):
            return location[len(prefix):]
        return location

    async def upload_binary(self, owner_id: str, path: Path) -> str:
        path = Path(path)
        object_name = _object_name(owner_id, path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StorageError(f"Storage Upload Failed: {e}") from e

        await self._request(
            StorageError,
            "Storage Upload Failed",
            "POST",
            f"/storage/v1/object/{self._config.bucket}/{quote(object_name)}",
            data=data,
            headers=self._headers(
                {
                    "Content-Type": content_type,
                    "cache-control": "3600",
                    "x-upsert": "false",
                }
            ),
        )

        logger.info(f"Uploaded {path.name} to {self._config.bucket}/{object_name}")
        return self.public_url(object_name)

    async def delete_binary(self, location: str) -> None:
        object_name = self.object_name_from_url(location)
        await self._request(
            StorageError,
            "Storage Cleanup Failed",
            "DELETE",
            f"/storage/v1/object/{self._config.bucket}",
            json={"prefixes": [object_name]},
            headers=self._headers(),
        )
        logger.info(f"Removed orphaned object {object_name}")

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    @staticmethod
    def _record_from_row(row: Dict[str, Any]) -> TrackRecord:
        return TrackRecord(
            id=str(row["id"]),
            owner_id=str(row.get("user_id", "")),
            title=row.get("title") or row.get("name") or "",
            url=row.get("url", ""),
            artist=row.get("artist"),
            duration=float(row.get("duration") or 0.0),
        )

    async def insert_record(
        self,
        owner_id: str,
        title: str,
        artist: str,
        location: str,
        duration: float,
    ) -> TrackRecord:
        response = await self._request(
            RecordError,
            "Database Record Creation Failed",
            "POST",
            f"/rest/v1/{self._config.table}",
            json={
                "user_id": owner_id,
                "title": title,
                "artist": artist,
                "url": location,
                "duration": duration,
            },
            headers=self._headers({"Prefer": "return=representation"}),
        )

        try:
            rows = response.json()
        except ValueError:
            rows = []
        if not rows:
            raise RecordError(
                "Database Insert succeeded but returned no data. Check RLS policies."
            )

        try:
            return self._record_from_row(rows[0])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RecordError(f"Database Record Creation Failed: malformed row ({e!r})") from e

    async def list_records(self, owner_id: str) -> list[TrackRecord]:
        response = await self._request(
            FetchError,
            "Track Listing Failed",
            "GET",
            f"/rest/v1/{self._config.table}",
            params={
                "select": "*",
                "user_id": f"eq.{owner_id}",
                "order": "id.desc",
            },
            headers=self._headers(),
        )

        try:
            rows = response.json()
        except ValueError as e:
            raise FetchError(f"Track Listing Failed: invalid response ({e})") from e

        try:
            return [self._record_from_row(row) for row in rows or []]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise FetchError(f"Track Listing Failed: malformed track row ({e!r})") from e

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def _load_session(self) -> Optional[Dict[str, Any]]:
        if not self._session_file or not self._session_file.exists():
            return None
        try:
            with open(self._session_file) as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file: {e}")
            return None

    def _save_session(self, token_data: Optional[Dict[str, Any]]) -> None:
        if not self._session_file:
            return
        if token_data is None:
            self._session_file.unlink(missing_ok=True)
            return
        self._session_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._session_file, "w") as f:
            json.dump(token_data, f, indent=2)
        # Set file permissions to 0600 (owner read/write only)
        self._session_file.chmod(0o600)

    @staticmethod
    def _identity_from(token_data: Optional[Dict[str, Any]]) -> Optional[Identity]:
        if not token_data or not token_data.get("user"):
            return None
        user = token_data["user"]
        return Identity(id=str(user["id"]), email=user.get("email") or "")

    def _set_session(self, token_data: Optional[Dict[str, Any]]) -> None:
        """Store the active session and push the change to subscribers."""
        if token_data is not None and "expires_at" not in token_data:
            expires_in = token_data.get("expires_in", 3600)  # Default 1 hour
            expires_at = datetime.now() + timedelta(seconds=expires_in)
            token_data = {**token_data, "expires_at": expires_at.isoformat()}

        self._token_data = token_data
        self._save_session(token_data)

        identity = self._identity_from(token_data)
        for queue in list(self._subscribers):
            queue.put_nowait(identity)

    async def _token_request(self, grant_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request(
            AuthError,
            "Sign in failed",
            "POST",
            f"/auth/v1/token?grant_type={grant_type}",
            json=payload,
            headers=self._headers(),
        )
        return response.json()

    async def _restore_session(self) -> Optional[Identity]:
        """Resolve the persisted session at cold start (refreshing if expired)."""
        if self._restored:
            return self._identity_from(self._token_data)
        self._restored = True

        stored = self._load_session()
        if not stored or not self.is_configured:
            return None

        expires_at = stored.get("expires_at")
        expired = True
        if expires_at:
            try:
                expired = datetime.now() >= datetime.fromisoformat(expires_at) - timedelta(
                    minutes=5
                )
            except ValueError:
                expired = True

        if not expired:
            self._token_data = stored
            return self._identity_from(stored)

        refresh_value = stored.get("refresh_token")
        if not refresh_value:
            self._save_session(None)
            return None

        try:
            token_data = await self._token_request(
                "refresh_token", {"refresh_token": refresh_value}
            )
        except AuthError as e:
            logger.info(f"Stored session could not be refreshed: {e}")
            self._save_session(None)
            return None

        self._set_session(token_data)
        return self._identity_from(self._token_data)

    async def observe_auth(self) -> AsyncIterator[Optional[Identity]]:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            yield await self._restore_session()
            while True:
                yield await queue.get()
        finally:
            self._subscribers.remove(queue)

    async def sign_in(self, email: str, password: str) -> Identity:
        token_data = await self._token_request(
            "password", {"email": email, "password": password}
        )
        self._set_session(token_data)
        identity = self._identity_from(token_data)
        if identity is None:
            raise AuthError("Sign in failed: no user returned")
        return identity

    async def sign_up(self, email: str, password: str) -> Optional[Identity]:
        response = await self._request(
            AuthError,
            "Sign up failed",
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password},
            headers=self._headers(),
        )
        data = response.json()
        if data.get("access_token"):
            self._set_session(data)
            return self._identity_from(data)
        # Confirmation e-mail pending; no session yet
        return None

    async def sign_in_with_provider(self, name: str) -> str:
        response = await self._request(
            AuthError, "Provider sign in failed", "GET", "/auth/v1/settings",
            headers=self._headers(),
        )
        external = response.json().get("external", {})
        if not external.get(name):
            raise AuthError(f"Unsupported provider: provider is not enabled ({name})")

        params = {
            "provider": name,
            "access_type": "offline",
            "prompt": "select_account",
            "include_granted_scopes": "true",
        }
        auth_url = f"{self._base_url}/auth/v1/authorize?{urlencode(params)}"
        webbrowser.open(auth_url)
        return auth_url

    async def complete_provider_sign_in(self, access_token: str, refresh_token: str) -> Identity:
        """Finish an OAuth flow with tokens from the redirect callback."""
        response = await self._request(
            AuthError,
            "Provider sign in failed",
            "GET",
            "/auth/v1/user",
            headers={"apikey": self._config.anon_key, "Authorization": f"Bearer {access_token}"},
        )
        user = response.json()
        if not isinstance(user, dict) or not user.get("id"):
            raise AuthError("Provider sign in failed: no user returned")
        self._set_session(
            {"access_token": access_token, "refresh_token": refresh_token, "user": user}
        )
        return Identity(id=str(user["id"]), email=user.get("email") or "")

    async def sign_out(self) -> None:
        had_session = self._token_data is not None
        headers = self._headers()
        # Local session is dropped whether or not the server acknowledges
        self._set_session(None)
        if had_session:
            await self._request(
                AuthError, "Sign out failed", "POST", "/auth/v1/logout", headers=headers
            )
