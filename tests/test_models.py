from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from pyumkm.models import ApiResponse, CartLine, CartSnapshot, LineMeta, LineStatus, Product, Umkm
from pyumkm.state.events import ChangeEvent, ChangeKind


def test_product_accepts_camel_and_snake_keys() -> None:
    camel = Product.model_validate({"id": 3, "name": "Batik", "price": "125000", "umkmName": "Batik Ayu", "isAvailable": False})
    snake = Product.model_validate({"id": "3", "name": "Batik", "price": 125000, "umkm_name": "Batik Ayu"})

    assert camel.id == snake.id == "3"
    assert camel.price == snake.price == Decimal(125000)
    assert camel.umkm_name == snake.umkm_name == "Batik Ayu"
    assert camel.is_available is False
    assert camel.raw["umkmName"] == "Batik Ayu"


def test_blank_values_fall_back_to_defaults() -> None:
    umkm = Umkm.model_validate({"id": 9, "name": "Kedai", "address": "", "rating": None})
    assert umkm.address == ""
    assert umkm.rating is None
    assert umkm.raw["address"] == ""


def test_cart_line_lifts_flat_display_fields() -> None:
    line = CartLine.model_validate(
        {
            "id": 77,
            "product_id": 12,
            "quantity": 2,
            "product_price": "15000",
            "product_name": "Keripik Tempe",
            "product_image": "/img/k.jpg",
            "umkm_name": "Dapur Bu Sri",
            "stock": 10,
        }
    )
    assert line.line_id == "77"
    assert line.product_ref == "12"
    assert line.unit_price == Decimal(15000)
    assert line.stock_snapshot == 10
    assert line.meta == LineMeta(name="Keripik Tempe", image_url="/img/k.jpg", umkm_name="Dapur Bu Sri")
    assert line.subtotal == Decimal(30000)


def test_cart_line_rejects_zero_quantity() -> None:
    with pytest.raises(ValidationError):
        CartLine(product_ref="p1", quantity=0)


def test_cart_line_placeholders() -> None:
    line = CartLine(product_ref="p1", quantity=1)
    assert line.meta.name == "Unknown Product"
    assert line.meta.umkm_name == "Unknown"
    assert line.with_quantity(4).quantity == 4
    assert line.quantity == 1


def test_snapshot_status_defaults_to_idle() -> None:
    snap = CartSnapshot(pending=frozenset({"a"}), settled={"b": LineStatus.ROLLED_BACK})
    assert snap.status("a") == LineStatus.PENDING
    assert snap.status("b") == LineStatus.ROLLED_BACK
    assert snap.status("c") == LineStatus.IDLE
    assert snap.count == 0
    assert snap.total == Decimal(0)


def test_envelope_unwraps_nested_error() -> None:
    envelope = ApiResponse.model_validate({"success": False, "error": {"message": "Stok habis", "code": 409}})
    assert envelope.error == "Stok habis"
    assert envelope.code == "409"


def test_change_event_normalizes_payload() -> None:
    event = ChangeEvent.model_validate({"event": " Update ", "table": "cart_items", "recordId": 5})
    assert event.event == ChangeKind.UPDATE
    assert event.record_id == "5"

    with pytest.raises(ValidationError):
        ChangeEvent.model_validate({"event": "update", "table": "  "})
