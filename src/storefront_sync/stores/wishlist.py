"""Wishlist store."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from ..models.catalog import Product
from ..models.items import ItemStatus, ResourceCollection, ResourceItem, WishlistEntry, new_local_id
from ..reducers.collection import OptimisticAdd
from .base import Items, ResourceKind, ResourceStore


class WishlistStore(ResourceStore):
    """
    Optimistic wishlist.

    Entries have no quantity: adding a product that is already on the
    list succeeds without a network call. The server addresses entries by
    product id, and its write endpoints answer with the single entry, so
    every successful write is followed by a fetch of the full list.
    """

    kind = ResourceKind.WISHLIST

    async def _fetch(self) -> Any:
        return await self._api.get_wishlist()

    def _parse(self, body: Any) -> Optional[Items]:
        if isinstance(body, dict) and isinstance(body.get("items"), list):
            body = body["items"]
        if not isinstance(body, list):
            return None
        return tuple(WishlistEntry.model_validate(entry).to_item() for entry in body)

    def _add_call(self, item: ResourceItem, quantity: int = 1) -> Callable[[], Awaitable[Any]]:
        product_id = item.product_id
        return lambda: self._api.add_wishlist_item(product_id)

    def _remove_call(self, item: ResourceItem) -> Callable[[], Awaitable[Any]]:
        product_id = item.product_id
        return lambda: self._api.remove_wishlist_item(product_id)

    def add(self, product: Product) -> "asyncio.Task[ResourceCollection]":
        """Put a product on the wishlist."""
        self._require_session()
        if self._state.find_by_key(product.id) is not None:
            return self._resolved()

        item = ResourceItem(
            local_id=new_local_id(),
            product_id=product.id,
            quantity=1,
            unit_price=product.price,
            status=ItemStatus.PENDING_ADD,
            product=product.summary(),
        )
        self._apply(OptimisticAdd(item))
        edit = self._begin_edit(item.local_id, None, item)
        task = self._schedule(self._run_mutation(self._generation, [edit], self._add_call(item)))
        self._track_add(item.local_id, task)
        return task

    def remove_product(self, product_id: Any) -> "asyncio.Task[ResourceCollection]":
        """Remove the entry for ``product_id``, if there is one."""
        self._require_session()
        item = self._state.find_by_key(str(product_id))
        if item is None:
            return self._resolved()
        return self.remove(item.local_id)

    def toggle(self, product: Product) -> "asyncio.Task[ResourceCollection]":
        if self.contains(product.id):
            return self.remove_product(product.id)
        return self.add(product)
