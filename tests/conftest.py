"""
Pytest configuration and fixtures for storefront-sync tests.
"""
from __future__ import annotations

import asyncio
import base64
import copy
import json
import time
from collections import defaultdict
from decimal import Decimal
from typing import Any, Optional

import httpx
import pytest

from storefront_sync.models.catalog import Product, Variant
from storefront_sync.models.errors import InvalidCredentialsError, NotFoundError, UnauthorizedError
from storefront_sync.models.user import User
from storefront_sync.session import SessionManager
from storefront_sync.stores import CartStore, WishlistStore
from storefront_sync.tokens import TokenStore
from storefront_sync.transport import AuthResponse, StorefrontAPI, TokenPair

BASE_URL = "https://shop.test/api/v1"
EMAIL = "ada@example.com"
PASSWORD = "correct-horse"


def make_jwt(exp: Optional[float] = None, **claims: Any) -> str:
    """Build an unsigned JWT-shaped token carrying ``exp`` and ``claims``."""

    def segment(data: dict[str, Any]) -> str:
        raw = base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).decode("ascii")
        return raw.rstrip("=")

    payload = dict(claims)
    if exp is not None:
        payload["exp"] = exp
    return f"{segment({'alg': 'none', 'typ': 'JWT'})}.{segment(payload)}.signature"


def jwt_expiring_in(seconds: float, **claims: Any) -> str:
    return make_jwt(exp=time.time() + seconds, **claims)


# Methods that need a bearer token on the real API.
AUTHENTICATED_METHODS = frozenset({
    "get_profile",
    "update_profile",
    "get_cart",
    "add_cart_item",
    "update_cart_item",
    "remove_cart_item",
    "clear_cart",
    "get_wishlist",
    "add_wishlist_item",
    "remove_wishlist_item",
})


class FakeStorefrontAPI:
    """In-memory stand-in for ``StorefrontAPI`` with a server-side cart and wishlist.

    ``fail_next`` queues an error for the next call of a method; ``hold``
    returns an event that blocks every call of a method until it is set.
    Access tokens listed in ``revoked`` are answered with a 401.
    """

    def __init__(self, tokens: TokenStore):
        self.tokens = tokens
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, list[Exception]] = defaultdict(list)
        self.gates: dict[str, asyncio.Event] = {}
        self.next_gates: dict[str, list[asyncio.Event]] = defaultdict(list)
        self.revoked: set[str] = set()
        self.password = PASSWORD
        self.user: dict[str, Any] = {
            "resource_id": "usr_1",
            "email": EMAIL,
            "username": "ada",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "is_verified": True,
        }
        self.register_verified = True
        self.omit_access_token = False
        self.prices: dict[str, str] = {}
        self.cart: list[dict[str, Any]] = []
        self.wishlist: list[dict[str, Any]] = []
        self._next_id = 100
        self._token_serial = 0

    # ---- scripting helpers ----

    def fail_next(self, method: str, error: Exception) -> None:
        self.failures[method].append(error)

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    def hold_next(self, method: str) -> asyncio.Event:
        """Block only the next call of ``method`` until the returned event is set."""
        gate = asyncio.Event()
        self.next_gates[method].append(gate)
        return gate

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def issue_access_token(self, ttl: float = 3600) -> str:
        self._token_serial += 1
        return jwt_expiring_in(ttl, sub=self.user["resource_id"], n=self._token_serial)

    def seed_cart(self, product_id: str, quantity: int, price: str = "10.00", variant_id: Optional[str] = None) -> dict[str, Any]:
        self.prices[product_id] = price
        line = self._new_line(product_id, quantity, variant_id)
        self.cart.append(line)
        return line

    async def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        if self.next_gates[method]:
            gate: Optional[asyncio.Event] = self.next_gates[method].pop(0)
        else:
            gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if self.failures[method]:
            raise self.failures[method].pop(0)
        if method in AUTHENTICATED_METHODS and self.tokens.access_token in self.revoked:
            raise UnauthorizedError("Token expired")

    def _new_line(self, product_id: str, quantity: int, variant_id: Optional[str]) -> dict[str, Any]:
        self._next_id += 1
        return {
            "id": self._next_id,
            "product_id": product_id,
            "variant_id": variant_id,
            "quantity": quantity,
            "price": self.prices.get(product_id, "10.00"),
            "product": {"id": product_id, "name": f"Product {product_id}"},
        }

    def _cart_snapshot(self) -> dict[str, Any]:
        total = sum(Decimal(line["price"]) * line["quantity"] for line in self.cart)
        return {
            "items": copy.deepcopy(self.cart),
            "total_items": sum(line["quantity"] for line in self.cart),
            "total": str(total),
        }

    def _auth_response(self, user: dict[str, Any]) -> AuthResponse:
        return AuthResponse(
            access_token=None if self.omit_access_token else self.issue_access_token(),
            refresh_token=f"refresh-{self._token_serial}",
            user=User.model_validate(user),
        )

    # ---- auth ----

    async def login(self, email: str, password: str) -> AuthResponse:
        await self._enter("login", email)
        if email != self.user["email"] or password != self.password:
            raise InvalidCredentialsError()
        return self._auth_response(self.user)

    async def register(self, profile: dict[str, Any]) -> AuthResponse:
        await self._enter("register", profile.get("email"))
        user = {**self.user, "email": profile.get("email", ""), "is_verified": self.register_verified}
        return self._auth_response(user)

    async def refresh(self, refresh_token: str) -> TokenPair:
        await self._enter("refresh", refresh_token)
        access = self.issue_access_token()
        return TokenPair(access_token=access, refresh_token=f"refresh-{self._token_serial}")

    async def get_profile(self) -> User:
        await self._enter("get_profile")
        return User.model_validate(self.user)

    async def update_profile(self, data: dict[str, Any]) -> User:
        await self._enter("update_profile", data)
        self.user.update(data)
        return User.model_validate(self.user)

    async def logout(self, access_token: Optional[str] = None) -> Any:
        await self._enter("logout", access_token)
        return {"message": "Logged out"}

    # ---- cart ----

    async def get_cart(self) -> Any:
        await self._enter("get_cart")
        return self._cart_snapshot()

    async def add_cart_item(self, product_id: str, quantity: int, variant_id: Optional[str] = None) -> Any:
        await self._enter("add_cart_item", product_id, quantity, variant_id)
        for line in self.cart:
            if line["product_id"] == product_id and line["variant_id"] == variant_id:
                line["quantity"] += quantity
                break
        else:
            self.cart.append(self._new_line(product_id, quantity, variant_id))
        return self._cart_snapshot()

    async def update_cart_item(self, item_id: str, quantity: int) -> Any:
        await self._enter("update_cart_item", item_id, quantity)
        for line in self.cart:
            if str(line["id"]) == str(item_id):
                line["quantity"] = quantity
                return self._cart_snapshot()
        raise NotFoundError("Cart item not found")

    async def remove_cart_item(self, item_id: str) -> Any:
        await self._enter("remove_cart_item", item_id)
        self.cart = [line for line in self.cart if str(line["id"]) != str(item_id)]
        return {"message": "Item removed"}

    async def clear_cart(self) -> Any:
        await self._enter("clear_cart")
        self.cart = []
        return {"message": "Cart cleared"}

    # ---- wishlist ----

    async def get_wishlist(self) -> Any:
        await self._enter("get_wishlist")
        return copy.deepcopy(self.wishlist)

    async def add_wishlist_item(self, product_id: str) -> Any:
        await self._enter("add_wishlist_item", product_id)
        self._next_id += 1
        entry = {
            "resource_id": f"wl_{self._next_id}",
            "product_id": product_id,
            "product": {"id": product_id, "price": self.prices.get(product_id, "10.00")},
        }
        self.wishlist.append(entry)
        return copy.deepcopy(entry)

    async def remove_wishlist_item(self, product_id: str) -> Any:
        await self._enter("remove_wishlist_item", product_id)
        self.wishlist = [e for e in self.wishlist if e["product_id"] != product_id]
        return {"message": "Removed from wishlist"}


class MockServer:
    """Queued responses for an ``httpx.MockTransport``, keyed by method and path."""

    def __init__(self, prefix: str = "/api/v1"):
        self.prefix = prefix
        self.routes: dict[tuple[str, str], list[Any]] = defaultdict(list)
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, status_code: int = 200, json: Any = None, text: Optional[str] = None) -> None:
        if text is not None:
            response = httpx.Response(status_code, text=text)
        elif json is not None:
            response = httpx.Response(status_code, json=json)
        else:
            response = httpx.Response(status_code)
        self.routes[(method.upper(), self.prefix + path)].append(response)

    def add_exception(self, method: str, path: str, exception: Exception) -> None:
        self.routes[(method.upper(), self.prefix + path)].append(exception)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            raise AssertionError(f"No mocked response for {request.method} {request.url.path}")
        entry = queue.pop(0)
        if isinstance(entry, Exception):
            raise entry
        return entry


@pytest.fixture
def tokens() -> TokenStore:
    return TokenStore()


@pytest.fixture
def fake_api(tokens) -> FakeStorefrontAPI:
    return FakeStorefrontAPI(tokens)


@pytest.fixture
def session(fake_api, tokens) -> SessionManager:
    return SessionManager(fake_api, tokens)


@pytest.fixture
async def signed_in(session) -> SessionManager:
    """A session that has logged in successfully."""
    await session.login(EMAIL, PASSWORD)
    return session


@pytest.fixture
def cart(fake_api, session) -> CartStore:
    return CartStore(fake_api, session)


@pytest.fixture
def wishlist(fake_api, session) -> WishlistStore:
    return WishlistStore(fake_api, session)


@pytest.fixture
def shirt(fake_api) -> Product:
    fake_api.prices["p1"] = "19.99"
    return Product(id="p1", name="Linen Shirt", price=Decimal("19.99"))


@pytest.fixture
def mug(fake_api) -> Product:
    fake_api.prices["p2"] = "8.50"
    return Product(id="p2", name="Enamel Mug", price=Decimal("8.50"))


@pytest.fixture
def large() -> Variant:
    return Variant(id="v-large", name="L")


@pytest.fixture
def mock_server() -> MockServer:
    return MockServer()


@pytest.fixture
async def api(mock_server, tokens):
    """A real ``StorefrontAPI`` talking to ``mock_server``."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(mock_server.handler))
    client = StorefrontAPI(
        base_url=BASE_URL,
        tokens=tokens,
        max_retries=2,
        retry_base_delay=0,
        client=http_client,
    )
    yield client
    await http_client.aclose()
