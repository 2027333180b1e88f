"""Pydantic models for catalog data, the cart and change events."""

from pyumkm.models.cart import CartLine, CartSnapshot, LineMeta, LineStatus, MutationKind, PendingMutation
from pyumkm.models.catalog import ApiResponse, Category, ListPage, Pagination, Product, Umkm

__all__ = [
    "ApiResponse",
    "CartLine",
    "CartSnapshot",
    "Category",
    "LineMeta",
    "LineStatus",
    "ListPage",
    "MutationKind",
    "Pagination",
    "PendingMutation",
    "Product",
    "Umkm",
]
