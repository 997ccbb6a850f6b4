"""
Base class for optimistic resource stores.

A mutation runs in two halves. The synchronous half checks the session,
writes the optimistic change and returns a task. The task makes the
server call and then either replaces the collection with the server's
snapshot or rolls the change back and re-raises.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Optional, Sequence

from ..models.errors import ConflictError, NotAuthenticatedError, StorefrontError
from ..models.items import ItemStatus, ResourceCollection, ResourceItem
from ..reducers.collection import (
    EMPTY,
    Cleared,
    CollectionAction,
    ErrorCleared,
    LoadFailed,
    Loaded,
    LoadStarted,
    MutationFailed,
    OptimisticRemove,
    OptimisticUpdate,
    Reconciled,
    RolledBack,
    reduce,
)

logger = logging.getLogger(__name__)

CollectionListener = Callable[[ResourceCollection], None]
Items = tuple[ResourceItem, ...]


class ResourceKind(str, Enum):
    """The resource collections a client keeps in sync."""

    CART = "cart"
    WISHLIST = "wishlist"


@dataclass(eq=False)
class PendingEdit:
    """One optimistic write that the server has not answered yet.

    ``previous`` is the line exactly as it was before the write (None when
    the write created it); ``applied`` is what the write put in its place.
    """

    local_id: str
    previous: Optional[ResourceItem]
    applied: Optional[ResourceItem]

    def rollback(self) -> RolledBack:
        return RolledBack(self.local_id, self.previous, self.applied)


class ResourceStore:
    """
    Optimistic store for one server-side collection.

    Subclasses provide the endpoints (``_fetch``, ``_add_call``,
    ``_remove_call``) and the snapshot parser (``_parse``).

    Args:
        api: Transport for the resource endpoints
        session: Session manager; every call goes through ``session.authorized``
    """

    kind: ResourceKind

    def __init__(self, api: Any, session: Any):
        self._api = api
        self._session = session
        self._state: ResourceCollection = EMPTY
        # Bumped on every reset; responses started under an older generation are dropped.
        self._generation = 0
        self._listeners: list[CollectionListener] = []
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._pending_adds: dict[str, asyncio.Task[Any]] = {}
        self._edits: list[PendingEdit] = []

    # ==================== State ====================

    @property
    def collection(self) -> ResourceCollection:
        return self._state

    @property
    def items(self) -> tuple[ResourceItem, ...]:
        return self._state.items

    @property
    def total(self):
        return self._state.total

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> Optional[StorefrontError]:
        return self._state.last_error

    @property
    def item_count(self) -> int:
        return self._state.item_count

    def find(self, local_id: str) -> Optional[ResourceItem]:
        return self._state.find(local_id)

    def subscribe(self, listener: CollectionListener) -> Callable[[], None]:
        """Call ``listener(collection)`` after every change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _apply(self, action: CollectionAction) -> None:
        previous = self._state
        self._state = reduce(previous, action)
        if self._state is previous:
            return
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(f"{self.kind.value} listener {listener!r} failed: {e}", exc_info=True)

    # ==================== Tasks ====================

    def _schedule(self, coro: Coroutine[Any, Any, ResourceCollection]) -> "asyncio.Task[ResourceCollection]":
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, StorefrontError):
            # Delivered to whoever awaits the task and recorded in ``error``.
            logger.debug("%s mutation failed: %s", self.kind.value, error)
        elif error is not None:
            logger.error("%s task failed", self.kind.value, exc_info=error)

    def _resolved(self) -> "asyncio.Task[ResourceCollection]":
        """A task that resolves to the current collection without a network call."""

        async def current() -> ResourceCollection:
            return self._state

        return self._schedule(current())

    async def wait_idle(self) -> None:
        """Wait until every mutation started so far has settled."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def _require_session(self) -> None:
        if not self._session.is_authenticated:
            raise NotAuthenticatedError()

    # ==================== Endpoints ====================

    async def _fetch(self) -> Any:
        raise NotImplementedError

    def _parse(self, body: Any) -> Optional[Items]:
        """Turn a response body into items, or None when it is not a collection snapshot."""
        raise NotImplementedError

    def _add_call(self, item: ResourceItem, quantity: int) -> Callable[[], Awaitable[Any]]:
        raise NotImplementedError

    def _remove_call(self, item: ResourceItem) -> Callable[[], Awaitable[Any]]:
        raise NotImplementedError

    async def _fetch_items(self) -> Items:
        body = await self._session.authorized(self._fetch)
        items = self._parse(body)
        return items if items is not None else ()

    # ==================== Loading ====================

    def reset(self) -> None:
        """Drop all local state. In-flight responses are discarded when they land."""
        self._generation += 1
        self._pending_adds.clear()
        self._edits.clear()
        self._apply(Cleared())

    async def load(self) -> ResourceCollection:
        """Replace the collection with the server's.

        Failures are recorded in ``error``; the current collection is returned.
        """
        if not self._session.is_authenticated:
            self._apply(Cleared())
            return self._state

        generation = self._generation
        self._apply(LoadStarted())
        try:
            items = await self._fetch_items()
        except StorefrontError as e:
            if generation == self._generation:
                self._apply(LoadFailed(e))
            logger.warning("Failed to load %s: %s", self.kind.value, e)
            return self._state

        if generation != self._generation:
            logger.info("Discarding stale %s load", self.kind.value)
            return self._state
        self._apply(Loaded(items))
        return self._state

    async def reload(self) -> ResourceCollection:
        self.reset()
        return await self.load()

    def clear_error(self) -> None:
        self._apply(ErrorCleared())

    # ==================== Mutations ====================

    def _begin_edit(
        self,
        local_id: str,
        previous: Optional[ResourceItem],
        applied: Optional[ResourceItem],
    ) -> PendingEdit:
        edit = PendingEdit(local_id, previous, applied)
        self._edits.append(edit)
        return edit

    def _finish_edit(self, edit: PendingEdit) -> None:
        self._edits = [e for e in self._edits if e is not edit]

    def _optimistic_update(self, item: ResourceItem, quantity: int) -> PendingEdit:
        status = ItemStatus.PENDING_ADD if item.server_id is None else ItemStatus.PENDING_UPDATE
        updated = replace(item, quantity=quantity, status=status)
        self._apply(OptimisticUpdate(updated))
        return self._begin_edit(item.local_id, item, updated)

    def _optimistic_remove(self, item: ResourceItem) -> PendingEdit:
        self._apply(OptimisticRemove(item.local_id))
        return self._begin_edit(item.local_id, item, self._state.find(item.local_id))

    def _undo(self, edit: PendingEdit) -> None:
        """Roll back one write.

        When a newer write was layered on top of this one, the line is left
        as it is and the newer write now rolls back to what this one replaced.
        """
        current = self._state.find(edit.local_id)
        if current is not None and current != edit.applied:
            for other in self._edits:
                if other is not edit and other.local_id == edit.local_id and other.previous == edit.applied:
                    other.previous = edit.previous
        self._apply(edit.rollback())
        self._finish_edit(edit)

    async def _run_mutation(
        self,
        generation: int,
        edits: Sequence[PendingEdit],
        write: Callable[[], Awaitable[Any]],
    ) -> ResourceCollection:
        """Make the server call, then reconcile or roll back."""
        try:
            body = await self._session.authorized(write)
            items = self._parse(body)
            if items is None:
                items = await self._fetch_items()
        except ConflictError as e:
            if generation != self._generation:
                raise
            self._roll_back(edits, e)
            await self._resync(generation, e)
            raise
        except StorefrontError as e:
            if generation != self._generation:
                raise
            self._roll_back(edits, e)
            raise

        for edit in edits:
            self._finish_edit(edit)
        if generation != self._generation:
            logger.info("Discarding stale %s response", self.kind.value)
            return self._state
        self._apply(Reconciled(items))
        return self._state

    def _roll_back(self, edits: Sequence[PendingEdit], error: StorefrontError) -> None:
        for edit in edits:
            self._undo(edit)
        self._apply(MutationFailed(error))
        logger.info("Rolled back %s change: %s", self.kind.value, error)

    async def _resync(self, generation: int, error: StorefrontError) -> None:
        """After a conflict, take the server's collection instead of retrying the write."""
        try:
            items = await self._fetch_items()
        except StorefrontError as e:
            logger.warning("Could not re-fetch %s after conflict: %s", self.kind.value, e)
            return
        if generation == self._generation:
            self._apply(Reconciled(items))
            self._apply(MutationFailed(error))

    def _track_add(self, local_id: str, task: "asyncio.Task[Any]") -> None:
        self._pending_adds[local_id] = task

        def _untrack(done: asyncio.Task[Any]) -> None:
            if self._pending_adds.get(local_id) is done:
                del self._pending_adds[local_id]

        task.add_done_callback(_untrack)

    async def _confirmed(self, local_id: str) -> Optional[ResourceItem]:
        """The line once the server knows it, waiting for its add if that is still in flight."""
        pending = self._pending_adds.get(local_id)
        if pending is not None:
            try:
                await asyncio.shield(pending)
            except StorefrontError:
                # The add's own caller gets this error; the line is gone.
                return None
        item = self._state.find(local_id)
        if item is None or item.server_id is None:
            return None
        return item

    def remove(self, local_id: str) -> "asyncio.Task[ResourceCollection]":
        """Remove a line. Removing a line that is not there succeeds without a call."""
        self._require_session()
        item = self._state.find(local_id)
        if item is None or item.is_removed:
            return self._resolved()

        edit = self._optimistic_remove(item)
        return self._schedule(self._remove(self._generation, item, edit))

    async def _remove(self, generation: int, item: ResourceItem, edit: PendingEdit) -> ResourceCollection:
        if item.server_id is None:
            confirmed = await self._confirmed(item.local_id)
            if generation != self._generation:
                return self._state
            if confirmed is None:
                self._undo(edit)
                return self._state
            # The add's snapshot replaced the line; mark it again.
            self._finish_edit(edit)
            item = confirmed
            edit = self._optimistic_remove(confirmed)
        return await self._run_mutation(generation, [edit], self._remove_call(item))

    def contains(self, product_id: Any, variant_id: Optional[Any] = None) -> bool:
        variant = str(variant_id) if variant_id is not None else None
        return self._state.find_by_key(str(product_id), variant) is not None
