"""Models for storefront-sync."""
from .base import StorefrontModel
from .catalog import Product, Variant
from .errors import (
    APIError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    InvalidCredentialsError,
    NetworkError,
    NotAuthenticatedError,
    NotFoundError,
    RateLimitError,
    ServerError,
    SessionExpiredError,
    StorefrontError,
    UnauthorizedError,
    ValidationError,
    VerificationRequiredError,
    extract_error_message,
    extract_field_errors,
)
from .items import CartLine, ItemStatus, ResourceCollection, ResourceItem, WishlistEntry, new_local_id
from .session import FailureReason, SessionState, SessionStatus, reason_for
from .user import User, normalize_user

__all__ = [
    "StorefrontModel",
    # Catalog
    "Product",
    "Variant",
    # Errors
    "APIError",
    "ConflictError",
    "ErrorCode",
    "ForbiddenError",
    "InvalidCredentialsError",
    "NetworkError",
    "NotAuthenticatedError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
    "SessionExpiredError",
    "StorefrontError",
    "UnauthorizedError",
    "ValidationError",
    "VerificationRequiredError",
    "extract_error_message",
    "extract_field_errors",
    # Items
    "CartLine",
    "ItemStatus",
    "ResourceCollection",
    "ResourceItem",
    "WishlistEntry",
    "new_local_id",
    # Session
    "FailureReason",
    "SessionState",
    "SessionStatus",
    "reason_for",
    # Users
    "User",
    "normalize_user",
]
