"""Cart line and snapshot models."""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from pyumkm._constants import UNKNOWN_PRODUCT_NAME, UNKNOWN_UMKM_NAME


class LineMeta(BaseModel):
    """Display fields shown next to a cart line."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str = Field(
        default=UNKNOWN_PRODUCT_NAME,
        validation_alias=AliasChoices("name", "product_name", "productName"),
    )
    image_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("image_url", "imageUrl", "product_image", "productImage", "image"),
    )
    umkm_name: str = Field(
        default=UNKNOWN_UMKM_NAME,
        validation_alias=AliasChoices("umkm_name", "umkmName"),
    )


_META_KEYS = ("name", "product_name", "productName", "image_url", "imageUrl", "product_image", "productImage", "umkm_name", "umkmName")


class CartLine(BaseModel):
    """One product in the cart.

    A cart holds at most one line per ``product_ref``.  ``line_id`` is the
    server-side row id and is ``None`` until the create call commits.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    product_ref: str = Field(validation_alias=AliasChoices("product_ref", "productRef", "product_id", "productId"))
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(
        default=Decimal(0),
        validation_alias=AliasChoices("unit_price", "unitPrice", "product_price", "productPrice", "price"),
    )
    stock_snapshot: int | None = Field(
        default=None,
        validation_alias=AliasChoices("stock_snapshot", "stockSnapshot", "stock"),
    )
    meta: LineMeta = Field(default_factory=LineMeta)
    line_id: str | None = Field(default=None, validation_alias=AliasChoices("line_id", "lineId", "id"))

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_meta(cls, values: Any) -> Any:
        # Cart rows come back flat: product_name, image_url, umkm_name.
        if not isinstance(values, dict) or "meta" in values:
            return values
        flat = {key: values[key] for key in _META_KEYS if values.get(key) is not None}
        if not flat:
            return values
        merged = dict(values)
        merged["meta"] = flat
        return merged

    @field_validator("product_ref", "line_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str | None:
        if value is None:
            return None
        return str(value)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> CartLine:
        return self.model_copy(update={"quantity": quantity})


class MutationKind(StrEnum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


class LineStatus(StrEnum):
    """Where a line sits in the optimistic mutation lifecycle."""

    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class PendingMutation(BaseModel):
    """A mutation whose remote call is still in flight.

    ``prior`` is the line as it was before the optimistic apply (``None``
    for an add) and ``prior_index`` its position, so a rollback restores
    the cart to exactly its previous shape.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    product_ref: str
    kind: MutationKind
    submitted: CartLine | None = None
    prior: CartLine | None = None
    prior_index: int | None = None


class CartSnapshot(BaseModel):
    """Immutable view of the cart handed to observers and callers.

    ``count`` and ``total`` are recomputed from ``lines`` on every access.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    lines: tuple[CartLine, ...] = ()
    loading: bool = False
    pending: frozenset[str] = frozenset()
    settled: dict[str, LineStatus] = Field(default_factory=dict)

    @property
    def count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def total(self) -> Decimal:
        return sum((line.subtotal for line in self.lines), Decimal(0))

    def get(self, product_ref: str) -> CartLine | None:
        for line in self.lines:
            if line.product_ref == product_ref:
                return line
        return None

    def status(self, product_ref: str) -> LineStatus:
        """Lifecycle position of the last mutation for *product_ref*."""
        if product_ref in self.pending:
            return LineStatus.PENDING
        return self.settled.get(product_ref, LineStatus.IDLE)
