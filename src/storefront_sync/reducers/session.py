"""Session state machine.

Events are small frozen dataclasses; ``transition`` is a pure function
from ``(state, event)`` to the next state. Events that make no sense in
the current state leave it unchanged, so a late event can never drag the
session back into a state it already left.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Union

from ..models.session import FailureReason, SessionState, SessionStatus
from ..models.user import User


@dataclass(frozen=True)
class NoStoredToken:
    """Startup found no access token."""


@dataclass(frozen=True)
class AuthStarted:
    """Startup found a token, or ``login``/``register`` was called."""


@dataclass(frozen=True)
class ProfileLoaded:
    user: User


@dataclass(frozen=True)
class ProfileRejected:
    """The profile fetch came back 401."""


@dataclass(frozen=True)
class RefreshStarted:
    """Manual ``refresh_session`` re-entry."""


@dataclass(frozen=True)
class RefreshSucceeded:
    pass


@dataclass(frozen=True)
class RefreshFailed:
    """Refresh was rejected or there was no refresh token."""


@dataclass(frozen=True)
class LoginSucceeded:
    user: User


@dataclass(frozen=True)
class AuthFailed:
    reason: FailureReason
    message: str


@dataclass(frozen=True)
class VerificationRequired:
    user: User
    message: str


@dataclass(frozen=True)
class LoggedOut:
    pass


@dataclass(frozen=True)
class SessionExpired:
    message: str


@dataclass(frozen=True)
class UserUpdated:
    user: User


@dataclass(frozen=True)
class ErrorCleared:
    pass


SessionEvent = Union[
    NoStoredToken,
    AuthStarted,
    ProfileLoaded,
    ProfileRejected,
    RefreshStarted,
    RefreshSucceeded,
    RefreshFailed,
    LoginSucceeded,
    AuthFailed,
    VerificationRequired,
    LoggedOut,
    SessionExpired,
    UserUpdated,
    ErrorCleared,
]

UNAUTHENTICATED = SessionState(status=SessionStatus.UNAUTHENTICATED)


def _authenticated(user: User) -> SessionState:
    return SessionState(status=SessionStatus.AUTHENTICATED, user=user)


def _failed(reason: FailureReason, message: str, user: Optional[User] = None) -> SessionState:
    return SessionState(status=SessionStatus.FAILED, user=user, reason=reason, error=message)


def transition(state: SessionState, event: SessionEvent) -> SessionState:
    """Return the session state that follows ``event``."""
    status = state.status

    if isinstance(event, (NoStoredToken, RefreshFailed, LoggedOut)):
        return UNAUTHENTICATED

    if isinstance(event, AuthStarted):
        # Keep the current user visible while a re-login is in flight.
        user = state.user if status == SessionStatus.AUTHENTICATED else None
        return SessionState(status=SessionStatus.AUTHENTICATING, user=user)

    if isinstance(event, (ProfileLoaded, LoginSucceeded)):
        if status != SessionStatus.AUTHENTICATING:
            return state
        return _authenticated(event.user)

    if isinstance(event, ProfileRejected):
        if status != SessionStatus.AUTHENTICATING:
            return state
        return SessionState(status=SessionStatus.REFRESHING)

    if isinstance(event, RefreshStarted):
        return SessionState(status=SessionStatus.REFRESHING, user=state.user)

    if isinstance(event, RefreshSucceeded):
        if status != SessionStatus.REFRESHING:
            return state
        return SessionState(status=SessionStatus.AUTHENTICATING, user=state.user)

    if isinstance(event, AuthFailed):
        return _failed(event.reason, event.message)

    if isinstance(event, VerificationRequired):
        return _failed(FailureReason.VERIFICATION_REQUIRED, event.message, user=event.user)

    if isinstance(event, SessionExpired):
        return _failed(FailureReason.SESSION_EXPIRED, event.message)

    if isinstance(event, UserUpdated):
        if status != SessionStatus.AUTHENTICATED or state.user is None:
            return state
        return replace(state, user=state.user.merged(event.user))

    if isinstance(event, ErrorCleared):
        if status == SessionStatus.FAILED:
            return UNAUTHENTICATED
        return replace(state, error=None, reason=None)

    raise TypeError(f"Unknown session event: {event!r}")
