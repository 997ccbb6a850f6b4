"""
HTTP transport for the storefront REST API.

Example usage:
    ```python
    tokens = TokenStore()
    async with StorefrontAPI(base_url="https://shop.example.com/api/v1", tokens=tokens) as api:
        auth = await api.login("ada@example.com", "hunter22")
        tokens.set_tokens(auth.access_token, auth.refresh_token)
        cart = await api.get_cart()
    ```

Every method returns decoded JSON (or a small model) and raises one of
the ``storefront_sync.models.errors`` types on failure. Only GETs are
retried, and only on network failures.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx
from pydantic import AliasChoices, Field

from . import __version__
from .logging import mask_headers
from .models.base import StorefrontModel
from .models.errors import (
    APIError,
    InvalidCredentialsError,
    NetworkError,
    UnauthorizedError,
)
from .models.user import User
from .tokens import TokenStore

logger = logging.getLogger(__name__)


class TokenPair(StorefrontModel):
    """Tokens returned by ``/auth/refresh``."""

    access_token: str = Field(validation_alias=AliasChoices("access_token", "accessToken"))
    refresh_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("refresh_token", "refreshToken"),
    )
    expires_in: Optional[int] = Field(default=None, validation_alias=AliasChoices("expires_in", "expiresIn"))


class AuthResponse(TokenPair):
    """Tokens plus profile, returned by ``/auth/login`` and ``/auth/register``."""

    access_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("access_token", "accessToken"),
    )
    user: User
    message: Optional[str] = None


class StorefrontAPI:
    """
    Storefront REST API client.

    Args:
        base_url: API base URL, e.g. ``https://shop.example.com/api/v1``
        tokens: Token store the bearer token is read from
        timeout: Request timeout in seconds (default: 10)
        max_retries: Retries for GETs that fail at the network level (default: 2)
        retry_base_delay: Base delay of the exponential backoff in seconds
        client: Pre-built ``httpx.AsyncClient`` (tests pass one with a MockTransport)
    """

    DEFAULT_BASE_URL = "http://localhost:8080/api/v1"
    DEFAULT_TIMEOUT = 10.0
    DEFAULT_MAX_RETRIES = 2

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        tokens: Optional[TokenStore] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._tokens = tokens or TokenStore()
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": f"storefront-sync/{__version__}",
                },
                timeout=self._timeout,
            )
            self._owns_client = True
        return self._client

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        authenticated: bool = True,
        access_token: Optional[str] = None,
    ) -> Any:
        """Make an HTTP request; retry GETs on network failure."""
        client = await self._get_client()

        headers: dict[str, str] = {}
        token = access_token or (self._tokens.access_token if authenticated else None)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        logger.debug("%s %s headers=%s", method, path, mask_headers(headers))

        attempts = self._max_retries + 1 if method == "GET" else 1
        for attempt in range(attempts):
            try:
                response = await client.request(
                    method=method,
                    url=self._url(path),
                    json=json,
                    headers=headers,
                )
            except httpx.TimeoutException as e:
                error: NetworkError = NetworkError(f"Request timed out: {method} {path}")
                cause: Exception = e
            except httpx.RequestError as e:
                error = NetworkError(f"Could not reach the API: {e}")
                cause = e
            else:
                return self._handle_response(method, path, response)

            if attempt < attempts - 1:
                delay = self._retry_base_delay * (2 ** attempt)
                logger.debug("Retrying %s %s in %.2fs after %s", method, path, delay, cause)
                await asyncio.sleep(delay)
                continue
            raise error from cause

        raise RuntimeError("Unexpected error in request retry loop")

    @staticmethod
    def _handle_response(method: str, path: str, response: httpx.Response) -> Any:
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"message": response.text} if response.text else {}
            error = APIError.from_response(response.status_code, body)
            logger.debug("%s %s failed: %s", method, path, error)
            raise error

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    # ==================== Auth ====================

    async def login(self, email: str, password: str) -> AuthResponse:
        """``POST /auth/login``. A 401 here means wrong credentials, not an expired token."""
        try:
            body = await self._request(
                "POST",
                "/auth/login",
                json={"email": email, "password": password},
                authenticated=False,
            )
        except UnauthorizedError as e:
            raise InvalidCredentialsError(e.message) from e
        return AuthResponse.model_validate(body)

    async def register(self, profile: dict[str, Any]) -> AuthResponse:
        """``POST /auth/register``. The returned user may be unverified."""
        body = await self._request("POST", "/auth/register", json=profile, authenticated=False)
        return AuthResponse.model_validate(body)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """``POST /auth/refresh``."""
        body = await self._request(
            "POST",
            "/auth/refresh",
            json={"refresh_token": refresh_token},
            authenticated=False,
        )
        return TokenPair.model_validate(body)

    async def get_profile(self) -> User:
        """``GET /auth/profile``."""
        body = await self._request("GET", "/auth/profile")
        if isinstance(body, dict) and isinstance(body.get("user"), dict):
            body = body["user"]
        return User.model_validate(body or {})

    async def update_profile(self, data: dict[str, Any]) -> User:
        """``PUT /auth/profile``."""
        body = await self._request("PUT", "/auth/profile", json=data)
        if isinstance(body, dict) and isinstance(body.get("user"), dict):
            body = body["user"]
        return User.model_validate(body or {})

    async def logout(self, access_token: Optional[str] = None) -> Any:
        """``POST /auth/logout`` with an explicit token (the store may already be cleared)."""
        return await self._request("POST", "/auth/logout", access_token=access_token)

    # ==================== Cart ====================

    async def get_cart(self) -> Any:
        return await self._request("GET", "/cart")

    async def add_cart_item(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> Any:
        return await self._request(
            "POST",
            "/cart/items",
            json={
                "product_resource_id": product_id,
                "quantity": quantity,
                "variant_id": variant_id,
            },
        )

    async def update_cart_item(self, item_id: str, quantity: int) -> Any:
        return await self._request("PATCH", f"/cart/items/{item_id}", json={"quantity": quantity})

    async def remove_cart_item(self, item_id: str) -> Any:
        return await self._request("DELETE", f"/cart/items/{item_id}")

    async def clear_cart(self) -> Any:
        return await self._request("DELETE", "/cart")

    # ==================== Wishlist ====================

    async def get_wishlist(self) -> Any:
        return await self._request("GET", "/wishlist")

    async def add_wishlist_item(self, product_id: str) -> Any:
        return await self._request("POST", "/wishlist", json={"product_id": product_id})

    async def remove_wishlist_item(self, product_id: str) -> Any:
        return await self._request("DELETE", f"/wishlist/{product_id}")

    # ==================== Lifecycle ====================

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client and not self._client.is_closed and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "StorefrontAPI":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
