"""
Session state machine.

States: Unauthenticated, Guest, Authenticated. Legal edges:

    Unauthenticated -> Authenticated   (sign in)
    Unauthenticated -> Guest           (enter guest)
    Authenticated   -> Unauthenticated (sign out / session expiry)
    Guest           -> Unauthenticated (sign out)

There is no direct edge between Guest and Authenticated. An identity that
arrives while in Guest passes through Unauthenticated first so the guest
library is cleared before the account library is fetched.
"""

import asyncio
from typing import AsyncIterator, Callable, Optional

from loguru import logger

from ..remote.base import Identity, RemoteStore
from ..remote.errors import AuthError, RemoteError
from .models import Session, SessionMode

SessionListener = Callable[[Session, Session], None]

LEGAL_TRANSITIONS = {
    (SessionMode.UNAUTHENTICATED, SessionMode.AUTHENTICATED),
    (SessionMode.UNAUTHENTICATED, SessionMode.GUEST),
    (SessionMode.AUTHENTICATED, SessionMode.UNAUTHENTICATED),
    (SessionMode.GUEST, SessionMode.UNAUTHENTICATED),
}

BACKEND_NOT_CONFIGURED = "Backend is not configured. Please continue as Guest."


class SessionTransitionError(Exception):
    """Raised when a requested session change has no legal path."""

    def __init__(self, current: Session, target: Session):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot switch session from {current.mode.value} to {target.mode.value}"
        )


def next_session(current: Session, target: Session) -> list[Session]:
    """Return the sessions to pass through to reach target (pure).

    Returns an empty list when target equals current. Guest -> Authenticated
    and account switches are routed through Unauthenticated.

    Raises:
        SessionTransitionError: For Authenticated -> Guest
    """
    if current == target:
        return []

    edge = (current.mode, target.mode)
    if edge in LEGAL_TRANSITIONS:
        return [target]

    if target.mode is SessionMode.AUTHENTICATED:
        # Guest -> Authenticated, or switching accounts
        return [Session.unauthenticated(), target]

    raise SessionTransitionError(current, target)


class SessionManager:
    """Owns the process-wide session and its transitions."""

    def __init__(self, remote: RemoteStore):
        self._remote = remote
        self._current = Session.unauthenticated()
        self._listeners: list[SessionListener] = []
        self._queues: list[asyncio.Queue] = []
        self._auth_task: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()

    @property
    def current(self) -> Session:
        return self._current

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Register a synchronous (new, previous) transition hook.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _transition(self, target: Session) -> None:
        for session in next_session(self._current, target):
            previous = self._current
            self._current = session
            logger.info(f"Session {previous.mode.value} -> {session.mode.value}")

            for listener in list(self._listeners):
                try:
                    listener(session, previous)
                except Exception:
                    logger.exception("Session listener failed")

            for queue in self._queues:
                queue.put_nowait(session)

    async def observe_session(self) -> AsyncIterator[Session]:
        """Yield the current session, then every subsequent transition.

        Each call is an independent subscription; closing the iterator
        unsubscribes.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        try:
            yield self._current
            while True:
                yield await queue.get()
        finally:
            self._queues.remove(queue)

    # ------------------------------------------------------------------
    # Remote auth state
    # ------------------------------------------------------------------

    async def start(self) -> Session:
        """Follow remote auth changes; returns once cold start is resolved."""
        if self._auth_task is None:
            self._auth_task = asyncio.create_task(self._follow_remote_auth())
        await self._ready.wait()
        return self._current

    async def stop(self) -> None:
        if self._auth_task is None:
            return
        self._auth_task.cancel()
        try:
            await self._auth_task
        except asyncio.CancelledError:
            pass
        self._auth_task = None

    async def _follow_remote_auth(self) -> None:
        try:
            async for identity in self._remote.observe_auth():
                self._apply_identity(identity)
                self._ready.set()
        except RemoteError as e:
            logger.warning(f"Auth state unavailable, staying {self._current.mode.value}: {e}")
        finally:
            self._ready.set()

    def _apply_identity(self, identity: Optional[Identity]) -> None:
        if identity is None:
            # Remote session ended (expiry or sign out elsewhere). Guest is local-only.
            if self._current.is_authenticated:
                logger.info("Remote session ended")
                self._transition(Session.unauthenticated())
            return

        if self._current.is_authenticated and self._current.user_id == identity.id:
            return
        self._transition(Session.authenticated(identity.id, identity.email))

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def enter_guest(self) -> Session:
        """Switch to guest mode locally. No network call.

        Raises:
            SessionTransitionError: If currently authenticated
        """
        self._transition(Session.guest())
        return self._current

    def _require_backend(self) -> None:
        if not self._remote.is_configured:
            raise AuthError(BACKEND_NOT_CONFIGURED)

    async def sign_in(self, email: str, password: str) -> Session:
        """Password sign in.

        Raises:
            AuthError: On rejected credentials or unreachable backend
        """
        self._require_backend()
        if not email.strip() or not password.strip():
            raise AuthError("Email and password are required")

        identity = await self._remote.sign_in(email.strip(), password)
        self._transition(Session.authenticated(identity.id, identity.email))
        return self._current

    async def sign_up(self, email: str, password: str) -> Session:
        """Create an account. The session is unchanged while confirmation is pending.

        Raises:
            AuthError: If the backend rejects the sign up
        """
        self._require_backend()
        if not email.strip() or not password.strip():
            raise AuthError("Email and password are required")

        identity = await self._remote.sign_up(email.strip(), password)
        if identity is None:
            logger.info("Account created; waiting for e-mail confirmation")
            return self._current

        self._transition(Session.authenticated(identity.id, identity.email))
        return self._current

    async def sign_in_with_provider(self, name: str) -> str:
        """Start an OAuth sign in and return the authorization URL.

        The Authenticated transition follows once the redirect callback hands
        its tokens to ``complete_provider_sign_in``.

        Raises:
            AuthError: If the provider is not enabled or the request fails
        """
        self._require_backend()

        if not self._current.is_authenticated:
            # Drop any stale remote session before the redirect
            try:
                await self._remote.sign_out()
            except RemoteError as e:
                logger.debug(f"Ignoring stale session cleanup failure: {e}")

        try:
            return await self._remote.sign_in_with_provider(name)
        except AuthError as e:
            message = str(e)
            if "provider is not enabled" in message or "Unsupported provider" in message:
                raise AuthError(
                    f"Configuration Error: {name.title()} Login is not enabled in Supabase. "
                    "Please enable it in Authentication > Providers."
                ) from e
            raise

    async def complete_provider_sign_in(self, access_token: str, refresh_token: str) -> Session:
        """Finish an OAuth sign in with the tokens from the redirect callback.

        Raises:
            AuthError: If the backend rejects the tokens
        """
        self._require_backend()
        if not access_token:
            raise AuthError("Provider sign in failed: missing access token")

        identity = await self._remote.complete_provider_sign_in(access_token, refresh_token)
        self._transition(Session.authenticated(identity.id, identity.email))
        return self._current

    async def sign_out(self) -> None:
        """Return to Unauthenticated.

        Local state changes first; a failed remote sign out is logged only.
        """
        previous = self._current
        if previous.mode is SessionMode.UNAUTHENTICATED:
            return

        self._transition(Session.unauthenticated())

        if previous.is_guest:
            return

        try:
            await self._remote.sign_out()
        except RemoteError as e:
            logger.error(f"Error signing out: {e}")
