"""Optimistic resource stores."""
from .base import ResourceKind, ResourceStore
from .cart import CartStore
from .wishlist import WishlistStore

__all__ = [
    "CartStore",
    "ResourceKind",
    "ResourceStore",
    "WishlistStore",
]
