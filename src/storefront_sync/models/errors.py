"""Error models for storefront-sync.

Every failure that crosses the transport, the session manager or a
resource store is one of these types, so callers can branch on the
class (or on ``code``) instead of parsing messages.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Stable error codes carried by every ``StorefrontError``."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    API_ERROR = "API_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    VERIFICATION_REQUIRED = "VERIFICATION_REQUIRED"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    SESSION_EXPIRED = "SESSION_EXPIRED"


# Fallback messages used when the server body carries nothing readable.
STATUS_MESSAGES: dict[int, str] = {
    400: "Invalid request. Please check your information.",
    401: "Invalid credentials. Please check your email and password.",
    403: "Access denied. You do not have permission.",
    404: "Resource not found. Please try again.",
    409: "Conflict. This resource already exists.",
    422: "Validation error. Please check your input.",
    429: "Too many requests. Please try again later.",
    500: "Server error. Please try again later.",
    502: "Server error. Please try again later.",
    503: "Server error. Please try again later.",
}

DEFAULT_MESSAGE = "An error occurred. Please try again."


class StorefrontError(Exception):
    """Base exception for storefront-sync."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or ErrorCode.UNKNOWN_ERROR.value
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class NetworkError(StorefrontError):
    """The transport was unreachable or timed out."""

    def __init__(self, message: str = "Connection error. Please check your internet connection and try again."):
        super().__init__(message, code=ErrorCode.NETWORK_ERROR.value)


class APIError(StorefrontError):
    """Error from an API response."""

    def __init__(
        self,
        message: str,
        status_code: int,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code or ErrorCode.API_ERROR.value, details)
        self.status_code = status_code

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> "APIError":
        """Create the most specific APIError for an HTTP error response."""
        message = extract_error_message(status_code, body)
        details: dict[str, Any] = {}
        if isinstance(body, dict):
            details = {k: v for k, v in body.items() if k not in ("message", "error")}

        if status_code == 401:
            return UnauthorizedError(message, details=details)
        if status_code == 403:
            return ForbiddenError(message, details=details)
        if status_code == 404:
            return NotFoundError(message, details=details)
        if status_code == 409:
            return ConflictError(message, details=details)
        if status_code in (400, 422):
            return ValidationError(
                message,
                field_errors=extract_field_errors(body),
                status_code=status_code,
            )
        if status_code == 429:
            retry_after = details.get("retry_after")
            return RateLimitError(message, retry_after=retry_after)
        if status_code >= 500:
            return ServerError(message, status_code=status_code, details=details)
        return cls(message, status_code=status_code, details=details)


class UnauthorizedError(APIError):
    """401: the access token is missing, expired or revoked."""

    def __init__(self, message: str = "Authentication required", details: Optional[dict[str, Any]] = None):
        super().__init__(message, 401, ErrorCode.UNAUTHORIZED.value, details)


class ForbiddenError(APIError):
    """403: authenticated but not allowed."""

    def __init__(self, message: str = STATUS_MESSAGES[403], details: Optional[dict[str, Any]] = None):
        super().__init__(message, 403, ErrorCode.FORBIDDEN.value, details)


class NotFoundError(APIError):
    """404: the resource does not exist on the server."""

    def __init__(self, message: str = STATUS_MESSAGES[404], details: Optional[dict[str, Any]] = None):
        super().__init__(message, 404, ErrorCode.NOT_FOUND.value, details)


class ConflictError(APIError):
    """409: the write was based on stale state. Re-fetch instead of retrying."""

    def __init__(self, message: str = STATUS_MESSAGES[409], details: Optional[dict[str, Any]] = None):
        super().__init__(message, 409, ErrorCode.CONFLICT.value, details)


class ValidationError(APIError):
    """400/422: field-level validation failure."""

    def __init__(
        self,
        message: str = STATUS_MESSAGES[422],
        field_errors: Optional[dict[str, str]] = None,
        status_code: int = 422,
    ):
        field_errors = field_errors or {}
        super().__init__(
            message,
            status_code,
            ErrorCode.VALIDATION_ERROR.value,
            {"field_errors": field_errors},
        )
        self.field_errors = field_errors


class RateLimitError(APIError):
    """429: too many requests."""

    def __init__(self, message: str = STATUS_MESSAGES[429], retry_after: Optional[int] = None):
        super().__init__(message, 429, ErrorCode.RATE_LIMITED.value, {"retry_after": retry_after})
        self.retry_after = retry_after


class ServerError(APIError):
    """5xx: surfaced generically and never retried automatically."""

    def __init__(
        self,
        message: str = STATUS_MESSAGES[500],
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, status_code, ErrorCode.SERVER_ERROR.value, details)


class InvalidCredentialsError(APIError):
    """The login endpoint rejected the email/password pair."""

    def __init__(self, message: str = STATUS_MESSAGES[401]):
        super().__init__(message, 401, ErrorCode.INVALID_CREDENTIALS.value)


class VerificationRequiredError(StorefrontError):
    """The account exists but its email address is not verified yet.

    ``user`` carries the unverified profile so a verification step can
    pick up where sign-in stopped.
    """

    def __init__(self, message: str = "Please verify your email to complete registration", user: Any = None):
        super().__init__(message, code=ErrorCode.VERIFICATION_REQUIRED.value)
        self.user = user


class NotAuthenticatedError(StorefrontError):
    """An operation that needs an authenticated session was called without one."""

    def __init__(self, message: str = "Sign in to continue"):
        super().__init__(message, code=ErrorCode.NOT_AUTHENTICATED.value)


class SessionExpiredError(StorefrontError):
    """The session could not be renewed and the user has to sign in again."""

    def __init__(self, message: str = "Your session has expired. Please sign in again."):
        super().__init__(message, code=ErrorCode.SESSION_EXPIRED.value)


def extract_error_message(status_code: Optional[int], body: Any, default: str = DEFAULT_MESSAGE) -> str:
    """Pick the most user-friendly message out of an error response body.

    Priority: ``message``, then ``error`` (when a string), then the first
    entry of ``errors`` or a string ``detail``, then a per-status fallback.
    """
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict) and first.get("message"):
                return str(first["message"])
            if isinstance(first, str):
                return first
    elif isinstance(body, str) and body.strip():
        return body.strip()

    if status_code is not None and status_code in STATUS_MESSAGES:
        return STATUS_MESSAGES[status_code]
    if status_code is not None and status_code >= 500:
        return STATUS_MESSAGES[500]
    return default


def extract_field_errors(body: Any) -> dict[str, str]:
    """Build a ``field -> message`` map from a validation error body."""
    field_errors: dict[str, str] = {}
    if not isinstance(body, dict):
        return field_errors

    errors = body.get("errors")
    if isinstance(errors, dict):
        for name, value in errors.items():
            if isinstance(value, list) and value:
                field_errors[name] = str(value[0])
            elif isinstance(value, str):
                field_errors[name] = value

    validation = body.get("validation")
    if isinstance(validation, dict):
        field_errors.update({name: str(msg) for name, msg in validation.items()})

    # FastAPI style: {"detail": [{"loc": ["body", "email"], "msg": "..."}]}
    detail = body.get("detail")
    if isinstance(detail, list):
        for entry in detail:
            if not isinstance(entry, dict):
                continue
            loc = entry.get("loc") or []
            name = str(loc[-1]) if loc else "__all__"
            field_errors.setdefault(name, str(entry.get("msg", "invalid")))

    return field_errors
