"""
Session manager.

Owns the session state machine and is the only component that writes
tokens. Every authenticated call made by the resource stores goes
through ``SessionManager.authorized`` so that token refresh happens in
exactly one place.

Example usage:
    ```python
    session = SessionManager(api, tokens)
    await session.initialize()
    try:
        user = await session.login("ada@example.com", "hunter22")
    except InvalidCredentialsError:
        print(session.error)
    ```
"""
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .logging import mask_sensitive_data, mask_value
from .models.errors import (
    NetworkError,
    NotAuthenticatedError,
    ServerError,
    SessionExpiredError,
    StorefrontError,
    UnauthorizedError,
    VerificationRequiredError,
)
from .models.session import FailureReason, SessionState, SessionStatus, error_message, reason_for
from .models.user import User, normalize_user
from .reducers.session import (
    AuthFailed,
    AuthStarted,
    ErrorCleared,
    LoggedOut,
    LoginSucceeded,
    NoStoredToken,
    ProfileLoaded,
    ProfileRejected,
    RefreshFailed,
    RefreshStarted,
    RefreshSucceeded,
    SessionEvent,
    SessionExpired,
    UserUpdated,
    VerificationRequired,
    transition,
)
from .tokens import DEFAULT_REFRESH_HORIZON, TokenStore
from .transport import AuthResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionListener = Callable[[SessionState, SessionState], None]

# Refresh failures that say nothing about the refresh token itself.
TRANSIENT_ERRORS = (NetworkError, ServerError)


class SessionManager:
    """
    Client session state machine.

    Args:
        api: Transport exposing the ``/auth`` endpoints
        tokens: The token store this manager owns
        refresh_horizon: Refresh proactively when the access token expires within this window
        profile_timeout: Seconds allowed for the profile fetch while restoring a session
    """

    def __init__(
        self,
        api: Any,
        tokens: TokenStore,
        refresh_horizon: timedelta = DEFAULT_REFRESH_HORIZON,
        profile_timeout: float = 5.0,
    ):
        self._api = api
        self._tokens = tokens
        self._refresh_horizon = refresh_horizon
        self._profile_timeout = profile_timeout
        self._state = SessionState()
        self._listeners: list[SessionListener] = []
        self._inflight: dict[str, asyncio.Task[Any]] = {}
        # Bumped by logout; work started under an older epoch is discarded.
        self._epoch = 0

    # ==================== State ====================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def user(self) -> Optional[User]:
        return self._state.user

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def reason(self) -> Optional[FailureReason]:
        return self._state.reason

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def tokens(self) -> TokenStore:
        return self._tokens

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call ``listener(previous, current)`` on every state change.

        Returns a function that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _dispatch(self, event: SessionEvent) -> None:
        previous = self._state
        current = transition(previous, event)
        if current == previous:
            return
        self._state = current
        logger.info(
            "Session %s -> %s (%s)",
            previous.status.value,
            current.status.value,
            type(event).__name__,
        )
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception as e:
                logger.error(f"Session listener {listener!r} failed: {e}", exc_info=True)

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch

    def _fail(self, error: StorefrontError, epoch: int) -> None:
        if self._is_current(epoch):
            self._dispatch(AuthFailed(reason_for(error), error_message(error)))

    def _expire(self, epoch: int) -> None:
        """Refresh was rejected: drop credentials and sign out."""
        if self._is_current(epoch):
            self._tokens.clear()
            self._dispatch(RefreshFailed())

    def _single_flight(self, key: str, factory: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        """Return the in-flight task for ``key``, starting one if there is none."""
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(factory())
            self._inflight[key] = task

            def _forget(done: asyncio.Task[Any]) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]
                if not done.cancelled():
                    # Retrieved here so an unawaited failure is never reported as lost.
                    done.exception()

            task.add_done_callback(_forget)
        else:
            logger.debug("Joining in-flight %s", key)
        return task

    # ==================== Startup ====================

    async def initialize(self) -> SessionState:
        """Restore the persisted session, if any.

        Failures end up in the returned state rather than being raised.
        """
        if not self._tokens.is_authenticated():
            self._dispatch(NoStoredToken())
            return self._state

        epoch = self._epoch
        self._dispatch(AuthStarted())
        try:
            await self._load_profile(epoch)
        except StorefrontError as e:
            logger.info("Could not restore session: %s", e)
        return self._state

    async def _fetch_profile(self) -> User:
        try:
            return await asyncio.wait_for(self._api.get_profile(), timeout=self._profile_timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError("Timed out loading the user profile") from e

    async def _load_profile(self, epoch: int, allow_refresh: bool = True) -> User:
        """From AUTHENTICATING: fetch the profile, refreshing once on a 401."""
        try:
            user = await self._fetch_profile()
        except UnauthorizedError as e:
            if not allow_refresh or not self._is_current(epoch):
                self._expire(epoch)
                raise SessionExpiredError() from e
            self._dispatch(ProfileRejected())
            await self._refresh_or_expire(epoch)
            self._dispatch(RefreshSucceeded())
            return await self._load_profile(epoch, allow_refresh=False)
        except StorefrontError as e:
            self._fail(e, epoch)
            raise

        if not self._is_current(epoch):
            raise SessionExpiredError("The session changed while the profile was loading")
        self._dispatch(ProfileLoaded(user))
        return user

    # ==================== Refresh ====================

    async def _refresh_tokens(self) -> None:
        """Refresh the token pair. Concurrent callers share one request."""
        await asyncio.shield(self._single_flight("refresh", self._do_refresh))

    async def _do_refresh(self) -> None:
        refresh_token = self._tokens.refresh_token
        if not refresh_token:
            raise SessionExpiredError("No refresh token available")

        epoch = self._epoch
        logger.debug("Refreshing access token with refresh token %s", mask_value(refresh_token))
        pair = await self._api.refresh(refresh_token)
        if not self._is_current(epoch):
            raise SessionExpiredError("The session changed while the token was refreshing")
        self._tokens.set_tokens(pair.access_token, pair.refresh_token)

    async def _refresh_or_expire(self, epoch: int) -> None:
        """Refresh with the state visible: transient failures go to FAILED, rejections sign out."""
        try:
            await self._refresh_tokens()
        except TRANSIENT_ERRORS as e:
            self._fail(e, epoch)
            raise
        except StorefrontError as e:
            self._expire(epoch)
            raise SessionExpiredError() from e

    async def _silent_refresh(self) -> None:
        """Refresh behind an authenticated call; the status stays AUTHENTICATED."""
        epoch = self._epoch
        try:
            await self._refresh_tokens()
        except TRANSIENT_ERRORS:
            raise
        except StorefrontError as e:
            self._expire(epoch)
            raise SessionExpiredError() from e

    async def refresh_session(self) -> User:
        """Manual recovery: refresh the tokens and reload the profile."""
        return await asyncio.shield(self._single_flight("refresh_session", self._refresh_session))

    async def _refresh_session(self) -> User:
        epoch = self._epoch
        if not self._tokens.refresh_token:
            self._expire(epoch)
            raise SessionExpiredError("No refresh token available")

        self._dispatch(RefreshStarted())
        await self._refresh_or_expire(epoch)
        self._dispatch(RefreshSucceeded())
        return await self._load_profile(epoch, allow_refresh=False)

    # ==================== Authorized calls ====================

    async def authorized(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` with a fresh access token.

        Refreshes proactively when the token is about to expire. A 401
        triggers exactly one refresh and one retry; a second 401 ends the
        session.
        """
        if not self.is_authenticated:
            raise NotAuthenticatedError()

        if self._tokens.needs_refresh(self._refresh_horizon):
            await self._silent_refresh()

        token_used = self._tokens.access_token
        try:
            return await operation()
        except UnauthorizedError:
            # Another call may already have refreshed while this one was in flight.
            if self._tokens.access_token == token_used:
                await self._silent_refresh()

        try:
            return await operation()
        except UnauthorizedError as e:
            logger.warning("Request still unauthorized after refresh; ending session")
            self._tokens.clear()
            self._dispatch(SessionExpired(e.message))
            raise SessionExpiredError() from e

    # ==================== Login / register ====================

    async def login(self, email: str, password: str) -> User:
        """Sign in. A second call while one is in flight joins the first."""
        return await asyncio.shield(self._single_flight("login", lambda: self._login(email, password)))

    async def _login(self, email: str, password: str) -> User:
        epoch = self._epoch
        logger.debug("Login: %s", mask_sensitive_data({"email": email, "password": password}))
        self._dispatch(AuthStarted())
        try:
            auth = await self._api.login(email, password)
        except StorefrontError as e:
            self._fail(e, epoch)
            raise

        if not self._is_current(epoch):
            raise SessionExpiredError("The session changed while signing in")
        self._require_access_token(auth, epoch)
        self._tokens.set_tokens(auth.access_token, auth.refresh_token)

        if not auth.user.is_verified:
            message = auth.message or "Please verify your email to continue"
            self._dispatch(VerificationRequired(auth.user, message))
            raise VerificationRequiredError(message, user=auth.user)

        self._dispatch(LoginSucceeded(auth.user))
        return auth.user

    def _require_access_token(self, auth: AuthResponse, epoch: int) -> None:
        """A verified user cannot be signed in without an access token."""
        if auth.user.is_verified and not auth.access_token:
            error = ServerError("The server did not return an access token")
            self._fail(error, epoch)
            raise error

    async def register(self, profile: dict[str, Any]) -> User:
        """Create an account.

        An unverified account still succeeds: the tokens are kept and the
        session goes to ``FAILED(VERIFICATION_REQUIRED)`` carrying the
        new user, so a verification step can follow.
        """
        return await asyncio.shield(self._single_flight("register", lambda: self._register(profile)))

    async def _register(self, profile: dict[str, Any]) -> User:
        epoch = self._epoch
        logger.debug("Register: %s", mask_sensitive_data(profile))
        self._dispatch(AuthStarted())
        try:
            auth = await self._api.register(profile)
        except StorefrontError as e:
            self._fail(e, epoch)
            raise

        if not self._is_current(epoch):
            raise SessionExpiredError("The session changed while registering")
        self._require_access_token(auth, epoch)
        self._tokens.set_tokens(auth.access_token, auth.refresh_token)

        if auth.user.is_verified:
            self._dispatch(LoginSucceeded(auth.user))
        else:
            message = auth.message or "Please verify your email to complete registration"
            self._dispatch(VerificationRequired(auth.user, message))
        return auth.user

    async def adopt_session(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        user: Any = None,
    ) -> User:
        """Install tokens obtained out of band, e.g. from an OAuth callback.

        Without a ``user`` the profile is fetched with the new token.
        """
        epoch = self._epoch
        self._tokens.set_tokens(access_token, refresh_token)
        self._dispatch(AuthStarted())
        normalized = normalize_user(user)
        if normalized is None:
            return await self._load_profile(epoch)
        self._dispatch(LoginSucceeded(normalized))
        return normalized

    # ==================== Logout / errors ====================

    async def logout(self) -> None:
        """Sign out locally, then tell the server on a best-effort basis."""
        access_token = self._tokens.access_token
        self._epoch += 1
        self._tokens.clear()
        self._dispatch(LoggedOut())

        if not access_token:
            return
        try:
            await self._api.logout(access_token)
        except StorefrontError as e:
            logger.warning("Server-side logout failed: %s", e)

    def signal_session_expired(self, message: str = "Your session has expired. Please sign in again.") -> None:
        """External "session expired" signal, e.g. from another tab or a push message."""
        self._dispatch(SessionExpired(message))

    def clear_error(self) -> None:
        self._dispatch(ErrorCleared())

    def require_verified(self) -> User:
        """Return the signed-in user, or raise if verification is pending."""
        if self._state.needs_verification:
            raise VerificationRequiredError(self._state.error or "Please verify your email", user=self._state.user)
        if not self.is_authenticated or self._state.user is None:
            raise NotAuthenticatedError()
        return self._state.user

    async def update_profile(self, data: dict[str, Any]) -> User:
        """Save profile changes and merge the server's answer into the session user."""
        updated = await self.authorized(lambda: self._api.update_profile(data))
        self._dispatch(UserUpdated(updated))
        return self._state.user or updated
