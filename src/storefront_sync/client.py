"""
Storefront client handle.

Builds one token store, transport, session manager, cart, wishlist and
orchestrator, wired together. Pass the handle around instead of keeping
module-level singletons.

Example usage:
    ```python
    async with StorefrontClient() as shop:
        session = shop.use_session()
        await session.login("ada@example.com", "hunter22")
        cart = shop.use_resource_store(ResourceKind.CART)
        await cart.add(product)
    ```
"""
from __future__ import annotations

from typing import Any, Optional, Union

import httpx

from .config import StorefrontSettings, get_settings
from .logging import configure_logging
from .models.session import SessionState
from .orchestration import SessionOrchestrator
from .session import SessionManager
from .stores import CartStore, ResourceKind, ResourceStore, WishlistStore
from .tokens import FileTokenStorage, InMemoryTokenStorage, TokenStorage, TokenStore
from .transport import StorefrontAPI


class StorefrontClient:
    """
    Storefront state client.

    Args:
        settings: Settings to build from (default: ``get_settings()``)
        tokens: Token store to use instead of one built from settings
        api: Transport to use instead of a ``StorefrontAPI``
        http_client: ``httpx.AsyncClient`` for the default transport
        setup_logging: Apply ``log_level``/``json_logs`` from settings
    """

    def __init__(
        self,
        settings: Optional[StorefrontSettings] = None,
        *,
        tokens: Optional[TokenStore] = None,
        api: Any = None,
        http_client: Optional[httpx.AsyncClient] = None,
        setup_logging: bool = False,
    ):
        self.settings = settings or get_settings()
        if setup_logging:
            configure_logging(self.settings.log_level, json_format=self.settings.json_logs)

        self.tokens = tokens or TokenStore(self._build_storage(self.settings))
        self.api = api or StorefrontAPI(
            base_url=self.settings.api_base_url,
            tokens=self.tokens,
            timeout=self.settings.request_timeout,
            max_retries=self.settings.max_retries,
            retry_base_delay=self.settings.retry_base_delay,
            client=http_client,
        )
        self.session = SessionManager(
            self.api,
            self.tokens,
            refresh_horizon=self.settings.refresh_horizon,
            profile_timeout=self.settings.profile_timeout,
        )
        self.cart = CartStore(self.api, self.session)
        self.wishlist = WishlistStore(self.api, self.session)
        self.orchestrator = SessionOrchestrator(self.session, [self.cart, self.wishlist])
        self.orchestrator.attach()

    @staticmethod
    def _build_storage(settings: StorefrontSettings) -> TokenStorage:
        if settings.token_store_path:
            return FileTokenStorage(settings.token_store_path)
        return InMemoryTokenStorage()

    def use_session(self) -> SessionManager:
        return self.session

    def use_resource_store(self, kind: Union[ResourceKind, str]) -> ResourceStore:
        """Return the store for ``kind`` (``"cart"`` or ``"wishlist"``)."""
        kind = ResourceKind(kind)
        if kind == ResourceKind.CART:
            return self.cart
        return self.wishlist

    async def start(self) -> SessionState:
        """Restore a persisted session; the stores load if it is still valid."""
        return await self.session.initialize()

    async def close(self) -> None:
        self.orchestrator.detach()
        if isinstance(self.api, StorefrontAPI):
            await self.api.close()

    async def __aenter__(self) -> "StorefrontClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
