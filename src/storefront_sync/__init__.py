"""
storefront-sync

Client-side session and optimistic cart/wishlist state for a storefront REST API.
"""

# Set before the submodule imports; the transport reads it for its User-Agent.
__version__ = "0.1.0"

from .client import StorefrontClient
from .config import StorefrontSettings, get_settings
from .logging import configure_logging
from .models.catalog import Product, Variant
from .models.errors import (
    APIError,
    ConflictError,
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
)
from .models.items import ItemStatus, ResourceCollection, ResourceItem
from .models.session import FailureReason, SessionState, SessionStatus
from .models.user import User
from .orchestration import SessionOrchestrator
from .session import SessionManager
from .stores import CartStore, ResourceKind, ResourceStore, WishlistStore
from .tokens import FileTokenStorage, InMemoryTokenStorage, TokenStorage, TokenStore, decode_token_expiry
from .transport import StorefrontAPI

__all__ = [
    # Client
    "StorefrontClient",
    "StorefrontSettings",
    "get_settings",
    "configure_logging",
    # Session
    "SessionManager",
    "SessionOrchestrator",
    "SessionState",
    "SessionStatus",
    "FailureReason",
    "User",
    # Tokens
    "TokenStore",
    "TokenStorage",
    "InMemoryTokenStorage",
    "FileTokenStorage",
    "decode_token_expiry",
    # Stores
    "CartStore",
    "WishlistStore",
    "ResourceStore",
    "ResourceKind",
    "ResourceCollection",
    "ResourceItem",
    "ItemStatus",
    "Product",
    "Variant",
    # Transport
    "StorefrontAPI",
    # Errors
    "StorefrontError",
    "APIError",
    "NetworkError",
    "UnauthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "RateLimitError",
    "ServerError",
    "InvalidCredentialsError",
    "VerificationRequiredError",
    "NotAuthenticatedError",
    "SessionExpiredError",
]
