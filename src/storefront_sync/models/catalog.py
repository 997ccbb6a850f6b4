"""Product references passed into the resource stores."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from pydantic import Field, field_validator

from .base import StorefrontModel


class Variant(StorefrontModel):
    """A purchasable variant of a product (size, colour, ...)."""

    id: str
    price: Optional[Decimal] = None
    name: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value)


class Product(StorefrontModel):
    """The slice of a catalog product the stores need."""

    id: str
    price: Decimal = Decimal("0")
    name: str = ""
    resource_id: Optional[str] = None
    slug: Optional[str] = None
    image: Optional[str] = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", "resource_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if value is None:
            return None
        return str(value)

    def unit_price(self, variant: Optional[Variant] = None) -> Decimal:
        """Price of one unit, preferring the variant price when it has one."""
        if variant is not None and variant.price is not None:
            return variant.price
        return self.price

    def summary(self) -> dict[str, Any]:
        """Product info carried on optimistic lines until the server responds."""
        return {
            "id": self.id,
            "resource_id": self.resource_id,
            "name": self.name,
            "slug": self.slug,
            "image": self.image or "",
            "price": str(self.price),
        }
