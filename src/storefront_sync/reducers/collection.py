"""Resource collection reducer.

All writes to a resource store go through ``reduce``; the store only
decides *which* action to apply and when.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence, Union

from ..models.errors import StorefrontError
from ..models.items import ItemStatus, ResourceCollection, ResourceItem


@dataclass(frozen=True)
class LoadStarted:
    pass


@dataclass(frozen=True)
class Loaded:
    """A full-collection fetch resolved. Authoritative."""

    items: tuple[ResourceItem, ...]


@dataclass(frozen=True)
class LoadFailed:
    error: StorefrontError


@dataclass(frozen=True)
class OptimisticAdd:
    item: ResourceItem


@dataclass(frozen=True)
class OptimisticUpdate:
    """Replace the line with the same ``local_id``."""

    item: ResourceItem


@dataclass(frozen=True)
class OptimisticRemove:
    local_id: str


@dataclass(frozen=True)
class Reconciled:
    """A write succeeded and returned the authoritative collection."""

    items: tuple[ResourceItem, ...]


@dataclass(frozen=True)
class RolledBack:
    """Undo one optimistic write.

    ``previous`` is the line as it was before the write, or None when the
    write created the line. ``applied`` is what the write put in its place;
    when the line no longer looks like that, something newer owns it.
    """

    local_id: str
    previous: Optional[ResourceItem]
    applied: Optional[ResourceItem] = None


@dataclass(frozen=True)
class MutationFailed:
    error: StorefrontError


@dataclass(frozen=True)
class Cleared:
    pass


@dataclass(frozen=True)
class ErrorCleared:
    pass


CollectionAction = Union[
    LoadStarted,
    Loaded,
    LoadFailed,
    OptimisticAdd,
    OptimisticUpdate,
    OptimisticRemove,
    Reconciled,
    RolledBack,
    MutationFailed,
    Cleared,
    ErrorCleared,
]

EMPTY = ResourceCollection()


def adopt_local_ids(
    current: Sequence[ResourceItem],
    incoming: Sequence[ResourceItem],
) -> tuple[ResourceItem, ...]:
    """Carry local ids over to the server's lines.

    A server line keeps the local id of the current line with the same
    ``server_id``; failing that, of an unconfirmed line with the same
    product/variant key (the optimistic line the server just confirmed).
    """
    by_server_id = {i.server_id: i.local_id for i in current if i.server_id}
    unconfirmed: dict[tuple, str] = {}
    for item in current:
        if item.server_id is None:
            unconfirmed.setdefault(item.key, item.local_id)

    used: set[str] = set()
    result = []
    for item in incoming:
        local_id = by_server_id.get(item.server_id) if item.server_id else None
        if local_id is None or local_id in used:
            local_id = unconfirmed.pop(item.key, None)
        if local_id is None or local_id in used:
            result.append(item)
            continue
        used.add(local_id)
        result.append(replace(item, local_id=local_id))
    return tuple(result)


def _replace_item(items: tuple[ResourceItem, ...], item: ResourceItem) -> tuple[ResourceItem, ...]:
    return tuple(item if i.local_id == item.local_id else i for i in items)


def reduce(state: ResourceCollection, action: CollectionAction) -> ResourceCollection:
    """Return the collection that follows ``action``."""
    if isinstance(action, LoadStarted):
        return replace(state, is_loading=True, last_error=None)

    if isinstance(action, Loaded):
        return ResourceCollection(items=adopt_local_ids(state.items, action.items))

    if isinstance(action, LoadFailed):
        return replace(state, is_loading=False, last_error=action.error)

    if isinstance(action, OptimisticAdd):
        return replace(state, items=state.items + (action.item,))

    if isinstance(action, OptimisticUpdate):
        if state.find(action.item.local_id) is None:
            return state
        return replace(state, items=_replace_item(state.items, action.item))

    if isinstance(action, OptimisticRemove):
        item = state.find(action.local_id)
        if item is None:
            return state
        removed = replace(item, status=ItemStatus.PENDING_REMOVE)
        return replace(state, items=_replace_item(state.items, removed))

    if isinstance(action, Reconciled):
        return replace(state, items=adopt_local_ids(state.items, action.items), last_error=None)

    if isinstance(action, RolledBack):
        current = state.find(action.local_id)
        if current is None or (action.applied is not None and current != action.applied):
            # Replaced by a later server snapshot or a newer local edit.
            return state
        if action.previous is None:
            items = tuple(i for i in state.items if i.local_id != action.local_id)
        else:
            items = _replace_item(state.items, action.previous)
        return replace(state, items=items)

    if isinstance(action, MutationFailed):
        return replace(state, last_error=action.error)

    if isinstance(action, Cleared):
        return EMPTY

    if isinstance(action, ErrorCleared):
        return replace(state, last_error=None)

    raise TypeError(f"Unknown collection action: {action!r}")
