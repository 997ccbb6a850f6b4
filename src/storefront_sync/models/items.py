"""Local resource items and collections, plus the server line formats."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Mapping, Optional

from pydantic import AliasChoices, BeforeValidator, Field, field_validator

from .base import StorefrontModel
from .errors import StorefrontError


class ItemStatus(str, Enum):
    """Sync status of a single line."""

    CONFIRMED = "confirmed"
    PENDING_ADD = "pending_add"
    PENDING_UPDATE = "pending_update"
    PENDING_REMOVE = "pending_remove"


def new_local_id() -> str:
    return f"loc_{uuid.uuid4().hex[:16]}"


@dataclass(frozen=True)
class ResourceItem:
    """A cart line or wishlist entry as the client sees it.

    ``local_id`` never changes while the item lives in the store;
    ``server_id`` is only known once the server has confirmed the line.
    """

    local_id: str
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = 1
    unit_price: Decimal = Decimal("0")
    server_id: Optional[str] = None
    status: ItemStatus = ItemStatus.CONFIRMED
    product: Mapping[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, Optional[str]]:
        """Dedup key: one line per product/variant pair."""
        return (self.product_id, self.variant_id)

    @property
    def is_removed(self) -> bool:
        return self.status == ItemStatus.PENDING_REMOVE

    @property
    def is_pending(self) -> bool:
        return self.status != ItemStatus.CONFIRMED

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class ResourceCollection:
    """Immutable snapshot of one resource store.

    ``total`` is always derived from ``items``; it is never stored.
    """

    items: tuple[ResourceItem, ...] = ()
    is_loading: bool = False
    last_error: Optional[StorefrontError] = None

    @property
    def total(self) -> Decimal:
        return sum((i.line_total for i in self.items if not i.is_removed), Decimal("0"))

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.items if not i.is_removed)

    @property
    def active_items(self) -> tuple[ResourceItem, ...]:
        return tuple(i for i in self.items if not i.is_removed)

    def find(self, local_id: str) -> Optional[ResourceItem]:
        for item in self.items:
            if item.local_id == local_id:
                return item
        return None

    def index_of(self, local_id: str) -> int:
        for index, item in enumerate(self.items):
            if item.local_id == local_id:
                return index
        return -1

    def find_by_key(self, product_id: str, variant_id: Optional[str] = None) -> Optional[ResourceItem]:
        for item in self.items:
            if item.key == (product_id, variant_id) and not item.is_removed:
                return item
        return None


def _optional_str(value: Any) -> Any:
    if value is None or value == "":
        return None
    return str(value)


# Server ids arrive as ints or strings; the client only ever compares them.
ServerId = Annotated[str, BeforeValidator(str)]
OptionalServerId = Annotated[Optional[str], BeforeValidator(_optional_str)]


class CartLine(StorefrontModel):
    """A cart line as returned by ``GET /cart`` and the cart write endpoints."""

    id: ServerId = Field(validation_alias=AliasChoices("id", "resource_id", "item_id"))
    product_id: ServerId = Field(validation_alias=AliasChoices("product_id", "productId"))
    variant_id: OptionalServerId = Field(default=None, validation_alias=AliasChoices("variant_id", "variantId"))
    quantity: int = 1
    price: Decimal = Field(default=Decimal("0"), validation_alias=AliasChoices("price", "unit_price", "unitPrice"))
    product: dict[str, Any] = Field(default_factory=dict)

    @field_validator("product", mode="before")
    @classmethod
    def _product_dict(cls, value: Any) -> Any:
        return value or {}

    def to_item(self, local_id: Optional[str] = None) -> ResourceItem:
        return ResourceItem(
            local_id=local_id or new_local_id(),
            product_id=self.product_id,
            variant_id=self.variant_id,
            quantity=self.quantity,
            unit_price=self.price,
            server_id=self.id,
            status=ItemStatus.CONFIRMED,
            product=self.product,
        )


class WishlistEntry(StorefrontModel):
    """A wishlist entry as returned by ``GET /wishlist``."""

    id: OptionalServerId = Field(default=None, validation_alias=AliasChoices("resource_id", "id"))
    product_id: ServerId = Field(validation_alias=AliasChoices("product_id", "productId"))
    product: dict[str, Any] = Field(default_factory=dict)

    @field_validator("product", mode="before")
    @classmethod
    def _product_dict(cls, value: Any) -> Any:
        return value or {}

    @property
    def price(self) -> Decimal:
        raw = self.product.get("price")
        if raw is None:
            return Decimal("0")
        return Decimal(str(raw))

    def to_item(self, local_id: Optional[str] = None) -> ResourceItem:
        return ResourceItem(
            local_id=local_id or new_local_id(),
            product_id=self.product_id,
            quantity=1,
            unit_price=self.price,
            # Wishlist entries are addressed by product id on the server.
            server_id=self.id or self.product_id,
            status=ItemStatus.CONFIRMED,
            product=self.product,
        )
