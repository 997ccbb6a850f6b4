"""Session state types."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import (
    InvalidCredentialsError,
    NetworkError,
    ServerError,
    SessionExpiredError,
    StorefrontError,
    UnauthorizedError,
    ValidationError,
    VerificationRequiredError,
)
from .user import User


class SessionStatus(str, Enum):
    """Lifecycle status of the client session."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why the session is in ``FAILED``."""

    INVALID_CREDENTIALS = "invalid_credentials"
    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"
    VERIFICATION_REQUIRED = "verification_required"
    SESSION_EXPIRED = "session_expired"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of the session.

    ``user`` is set in ``AUTHENTICATED`` and, for unverified registrations,
    in ``FAILED(VERIFICATION_REQUIRED)``.
    """

    status: SessionStatus = SessionStatus.UNAUTHENTICATED
    user: Optional[User] = None
    reason: Optional[FailureReason] = None
    error: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED

    @property
    def needs_verification(self) -> bool:
        return self.status == SessionStatus.FAILED and self.reason == FailureReason.VERIFICATION_REQUIRED


def reason_for(error: BaseException) -> FailureReason:
    """Map an exception onto the session failure reason it represents."""
    if isinstance(error, InvalidCredentialsError):
        return FailureReason.INVALID_CREDENTIALS
    if isinstance(error, NetworkError):
        return FailureReason.NETWORK_ERROR
    if isinstance(error, ServerError):
        return FailureReason.SERVER_ERROR
    if isinstance(error, VerificationRequiredError):
        return FailureReason.VERIFICATION_REQUIRED
    if isinstance(error, (SessionExpiredError, UnauthorizedError)):
        return FailureReason.SESSION_EXPIRED
    if isinstance(error, ValidationError):
        return FailureReason.VALIDATION
    return FailureReason.UNKNOWN


def error_message(error: BaseException) -> str:
    if isinstance(error, StorefrontError):
        return error.message
    return str(error) or error.__class__.__name__
