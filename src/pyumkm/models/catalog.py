"""Catalog models: products, UMKM shops, categories, and the API envelope."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from pyumkm.models._base import UmkmBaseModel


class Product(UmkmBaseModel):
    """A product listed by an approved UMKM."""

    id: str
    name: str = ""
    price: Decimal = Decimal(0)
    description: str = ""
    image: str | None = None
    stock: int | None = None
    is_available: bool = True
    umkm_id: str = ""
    umkm_name: str = ""
    category: str = ""
    umkm_image: str | None = None
    umkm_rating: float | None = None
    created_at: datetime | None = None

    @field_validator("id", "umkm_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)


class Umkm(UmkmBaseModel):
    """A small business (UMKM) storefront."""

    id: str
    name: str = ""
    category: str = ""
    image: str | None = None
    description: str = ""
    address: str = ""
    contact: str = ""
    product_count: int = 0
    rating: float | None = None
    created_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)


class Category(UmkmBaseModel):
    """A product category with the number of listed items."""

    name: str
    count: int = 0
    slug: str = ""


class Pagination(BaseModel):
    """Page metadata attached to list responses."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    current_page: int = 1
    total_pages: int = 1
    total_items: int = 0
    has_next_page: bool = False
    has_prev_page: bool = False


class ApiResponse(BaseModel):
    """The ``{success, data, error, pagination?}`` envelope every endpoint returns."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    success: bool = False
    data: Any = None
    error: str | None = None
    code: str | None = None
    pagination: Pagination | None = None

    @model_validator(mode="before")
    @classmethod
    def _unwrap_error(cls, values: Any) -> Any:
        # Some routes nest the error as {message, code}.
        if not isinstance(values, dict):
            return values
        error = values.get("error")
        if not isinstance(error, dict):
            return values
        merged = dict(values)
        merged["error"] = error.get("message") or error.get("code") or "error"
        if merged.get("code") is None and error.get("code") is not None:
            merged["code"] = error.get("code")
        return merged

    @field_validator("error", "code", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        if value is None:
            return None
        return str(value)


class ListPage(BaseModel):
    """One page of a catalog list, as cached and returned by the data service."""

    model_config = ConfigDict(frozen=True)

    items: tuple[Any, ...] = Field(default_factory=tuple)
    pagination: Pagination | None = None
