"""Cart store."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from ..models.catalog import Product, Variant
from ..models.items import CartLine, ItemStatus, ResourceCollection, ResourceItem, new_local_id
from ..reducers.collection import OptimisticAdd
from .base import Items, PendingEdit, ResourceKind, ResourceStore

# Keys that mark a dict body as a cart snapshot even when it has no items.
_CART_KEYS = ("items", "total", "subtotal", "total_items")


class CartStore(ResourceStore):
    """
    Optimistic cart.

    One line per product/variant pair: adding a pair that is already in
    the cart raises that line's quantity.

    Example:
        ```python
        task = cart.add(product, quantity=2)
        assert cart.total == product.price * 2   # before the server answers
        await task                               # reconciled, or rolled back and raised
        ```
    """

    kind = ResourceKind.CART

    async def _fetch(self) -> Any:
        return await self._api.get_cart()

    def _parse(self, body: Any) -> Optional[Items]:
        if isinstance(body, dict) and isinstance(body.get("cart"), dict):
            body = body["cart"]
        if isinstance(body, list):
            lines = body
        elif isinstance(body, dict) and any(key in body for key in _CART_KEYS):
            lines = body.get("items") or []
        else:
            return None
        return tuple(CartLine.model_validate(line).to_item() for line in lines)

    def _add_call(self, item: ResourceItem, quantity: int) -> Callable[[], Awaitable[Any]]:
        product_ref = item.product.get("resource_id") or item.product_id
        return lambda: self._api.add_cart_item(product_ref, quantity, item.variant_id)

    def _remove_call(self, item: ResourceItem) -> Callable[[], Awaitable[Any]]:
        server_id = item.server_id
        return lambda: self._api.remove_cart_item(server_id)

    def add(
        self,
        product: Product,
        quantity: int = 1,
        variant: Optional[Variant] = None,
    ) -> "asyncio.Task[ResourceCollection]":
        """Add ``quantity`` of a product, merging into an existing line for the same variant."""
        self._require_session()
        if quantity < 1:
            raise ValueError(f"quantity must be at least 1, got {quantity}")

        variant_id = variant.id if variant is not None else None
        existing = self._state.find_by_key(product.id, variant_id)
        generation = self._generation

        if existing is not None:
            edit = self._optimistic_update(existing, existing.quantity + quantity)
            return self._schedule(self._run_mutation(generation, [edit], self._add_call(existing, quantity)))

        item = ResourceItem(
            local_id=new_local_id(),
            product_id=product.id,
            variant_id=variant_id,
            quantity=quantity,
            unit_price=product.unit_price(variant),
            status=ItemStatus.PENDING_ADD,
            product=product.summary(),
        )
        self._apply(OptimisticAdd(item))
        edit = self._begin_edit(item.local_id, None, item)
        task = self._schedule(self._run_mutation(generation, [edit], self._add_call(item, quantity)))
        self._track_add(item.local_id, task)
        return task

    def update_quantity(self, local_id: str, quantity: int) -> "asyncio.Task[ResourceCollection]":
        """Set a line's quantity. Anything below 1 removes the line."""
        self._require_session()
        if quantity < 1:
            return self.remove(local_id)

        item = self._state.find(local_id)
        if item is None or item.is_removed:
            return self._resolved()
        if item.quantity == quantity and not item.is_pending:
            return self._resolved()

        edit = self._optimistic_update(item, quantity)
        return self._schedule(self._update(self._generation, item, quantity, edit))

    async def _update(
        self,
        generation: int,
        item: ResourceItem,
        quantity: int,
        edit: PendingEdit,
    ) -> ResourceCollection:
        if item.server_id is None:
            confirmed = await self._confirmed(item.local_id)
            if generation != self._generation:
                return self._state
            if confirmed is None:
                self._undo(edit)
                return self._state
            # The add's snapshot replaced the line; apply the new quantity again.
            self._finish_edit(edit)
            item = confirmed
            edit = self._optimistic_update(confirmed, quantity)

        server_id = item.server_id
        return await self._run_mutation(
            generation,
            [edit],
            lambda: self._api.update_cart_item(server_id, quantity),
        )

    def clear(self) -> "asyncio.Task[ResourceCollection]":
        """Empty the cart on the server, marking every line removed until it answers."""
        self._require_session()
        lines = [item for item in self._state.items if not item.is_removed]
        if not lines:
            return self._resolved()

        edits = [self._optimistic_remove(item) for item in lines]
        return self._schedule(self._run_mutation(self._generation, edits, self._clear_call))

    async def _clear_call(self) -> Any:
        body = await self._api.clear_cart()
        # An acknowledgement instead of a snapshot means the cart is now empty.
        return body if self._parse(body) is not None else {"items": []}
