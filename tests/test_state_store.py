from __future__ import annotations

from decimal import Decimal

import pytest

from pyumkm.models.cart import CartLine, CartSnapshot, LineMeta, LineStatus, MutationKind
from pyumkm.state.policy import reconcile
from pyumkm.state.store import CartStore


def _line(ref: str, qty: int = 1, price: int = 1000) -> CartLine:
    return CartLine(product_ref=ref, quantity=qty, unit_price=Decimal(price))


def _seeded(*lines: CartLine) -> CartStore:
    store = CartStore()
    store.replace_all(list(lines))
    return store


def test_begin_then_commit_keeps_tentative_line() -> None:
    store = CartStore()
    store.begin(MutationKind.ADD, "p1", _line("p1", 2))
    assert store.snapshot().status("p1") == LineStatus.PENDING

    store.commit("p1")
    snap = store.snapshot()
    assert snap.get("p1") == _line("p1", 2)
    assert snap.status("p1") == LineStatus.COMMITTED


def test_commit_adopts_server_echo() -> None:
    store = CartStore()
    store.begin(MutationKind.ADD, "p1", _line("p1", 2))
    store.commit("p1", CartLine(product_ref="p1", quantity=2, unit_price=Decimal(1000), line_id="row-9"))
    line = store.get("p1")
    assert line is not None and line.line_id == "row-9"


def test_sparse_echo_keeps_local_display_fields() -> None:
    store = CartStore()
    local = CartLine(product_ref="p1", quantity=1, meta=LineMeta(name="Kopi", umkm_name="Kedai", image_url="/kopi.png"))
    store.begin(MutationKind.ADD, "p1", local)

    store.commit("p1", CartLine.model_validate({"id": "row-9", "product_id": "p1", "quantity": 1, "price": "100"}))

    line = store.get("p1")
    assert line is not None
    assert line.line_id == "row-9"
    assert line.unit_price == Decimal(100)
    assert line.meta == LineMeta(name="Kopi", umkm_name="Kedai", image_url="/kopi.png")


def test_echo_display_fields_override_only_what_was_sent() -> None:
    store = CartStore()
    local = CartLine(
        product_ref="p1",
        quantity=1,
        unit_price=Decimal(500),
        stock_snapshot=4,
        meta=LineMeta(name="Kopi", umkm_name="Kedai"),
    )
    store.begin(MutationKind.ADD, "p1", local)

    store.commit("p1", CartLine.model_validate({"product_id": "p1", "quantity": 2, "product_name": "Kopi Gayo"}))

    line = store.get("p1")
    assert line is not None
    assert line.quantity == 2
    assert line.unit_price == Decimal(500)
    assert line.stock_snapshot == 4
    assert line.meta.name == "Kopi Gayo"
    assert line.meta.umkm_name == "Kedai"


def test_rollback_restores_prior_line_at_its_position() -> None:
    store = _seeded(_line("a"), _line("b", 3), _line("c"))

    store.begin(MutationKind.REMOVE, "b", None)
    assert [line.product_ref for line in store.snapshot().lines] == ["a", "c"]

    store.rollback("b")
    snap = store.snapshot()
    assert [line.product_ref for line in snap.lines] == ["a", "b", "c"]
    assert snap.get("b") == _line("b", 3)
    assert snap.status("b") == LineStatus.ROLLED_BACK


def test_rollback_of_add_leaves_no_line() -> None:
    store = _seeded(_line("a", 2))
    before = store.snapshot()

    store.begin(MutationKind.ADD, "new", _line("new", 1, price=500))
    store.rollback("new")

    after = store.snapshot()
    assert after.get("new") is None
    assert after.count == before.count
    assert after.total == before.total


def test_second_begin_for_same_key_is_rejected() -> None:
    store = CartStore()
    store.begin(MutationKind.ADD, "p1", _line("p1"))
    with pytest.raises(RuntimeError):
        store.begin(MutationKind.UPDATE, "p1", _line("p1", 2))


def test_count_and_total_derive_from_lines() -> None:
    store = _seeded(_line("a", 2, price=1500), _line("b", 1, price=2500))
    snap = store.snapshot()
    assert snap.count == 3
    assert snap.total == Decimal(5500)


def test_observers_see_each_completed_transition() -> None:
    store = CartStore()
    seen: list[CartSnapshot] = []
    unsubscribe = store.subscribe(seen.append)

    store.begin(MutationKind.ADD, "p1", _line("p1"))
    store.commit("p1")
    assert len(seen) == 2
    assert seen[0].pending == frozenset({"p1"})
    assert seen[1].pending == frozenset()

    unsubscribe()
    store.begin(MutationKind.REMOVE, "p1", None)
    assert len(seen) == 2


def test_failing_observer_does_not_break_transition() -> None:
    store = CartStore()
    seen: list[CartSnapshot] = []

    def _boom(_snapshot: CartSnapshot) -> None:
        raise RuntimeError("render failed")

    store.subscribe(_boom)
    store.subscribe(seen.append)
    store.begin(MutationKind.ADD, "p1", _line("p1"))

    assert store.get("p1") is not None
    assert len(seen) == 1


def test_bulk_removal_notifies_once_per_phase() -> None:
    store = _seeded(_line("a"), _line("b"), _line("c"))
    seen: list[CartSnapshot] = []
    store.subscribe(seen.append)

    store.begin_removal(["a", "b", "c"])
    store.commit_many(["a", "b", "c"])

    assert [snap.lines for snap in seen] == [(), ()]
    assert seen[0].pending == frozenset({"a", "b", "c"})
    assert seen[1].pending == frozenset()
    assert seen[1].status("b") == LineStatus.COMMITTED


def test_bulk_rollback_restores_original_order_in_one_notification() -> None:
    store = _seeded(_line("a", 2), _line("b"), _line("c", 3))
    seen: list[CartSnapshot] = []
    store.subscribe(seen.append)

    store.begin_removal(["a", "b", "c"])
    store.rollback_many(["a", "b", "c"])

    assert len(seen) == 2
    assert [(line.product_ref, line.quantity) for line in seen[-1].lines] == [("a", 2), ("b", 1), ("c", 3)]
    assert seen[-1].status("a") == LineStatus.ROLLED_BACK


def test_bulk_removal_rejects_key_already_in_flight() -> None:
    store = _seeded(_line("a"), _line("b"))
    store.begin(MutationKind.UPDATE, "b", _line("b", 5))

    with pytest.raises(RuntimeError):
        store.begin_removal(["a", "b"])
    assert [line.product_ref for line in store.snapshot().lines] == ["a", "b"]
    assert store.snapshot().pending == frozenset({"b"})


def test_replace_all_without_changes_does_not_notify() -> None:
    store = _seeded(_line("a"), _line("b"))
    seen: list[CartSnapshot] = []
    store.subscribe(seen.append)

    assert store.replace_all([_line("a"), _line("b")]) is False
    assert seen == []


def test_replace_all_sets_loading_in_same_notification() -> None:
    store = CartStore()
    store.set_loading(True)
    seen: list[CartSnapshot] = []
    store.subscribe(seen.append)

    store.replace_all([_line("a")], loading=False)
    assert len(seen) == 1
    assert seen[0].loading is False
    assert seen[0].get("a") is not None


def test_replace_all_spares_pending_keys() -> None:
    store = _seeded(_line("a", 1), _line("b", 1))
    store.begin(MutationKind.UPDATE, "a", _line("a", 5))

    store.replace_all([_line("a", 1), _line("b", 4)])
    assert store.get("a") == _line("a", 5)
    assert store.get("b") == _line("b", 4)


def test_reconcile_drops_local_lines_absent_on_server() -> None:
    result = reconcile([_line("a"), _line("gone")], [_line("a")], protected=())
    assert [line.product_ref for line in result] == ["a"]


def test_reconcile_keeps_local_order_and_appends_new_lines() -> None:
    local = [_line("b"), _line("a")]
    server = [_line("c"), _line("a", 2), _line("b"), _line("c", 9)]
    result = reconcile(local, server, protected=())
    assert [(line.product_ref, line.quantity) for line in result] == [("b", 1), ("a", 2), ("c", 1)]


def test_reconcile_protected_absence_is_kept() -> None:
    # A pending remove: the server still lists the row, the local cart does not.
    result = reconcile([_line("a")], [_line("a"), _line("b")], protected={"b"})
    assert [line.product_ref for line in result] == ["a"]


def test_reset_forgets_everything() -> None:
    store = _seeded(_line("a"))
    store.begin(MutationKind.ADD, "b", _line("b"))
    store.set_loading(True)

    store.reset()
    snap = store.snapshot()
    assert snap.lines == ()
    assert snap.pending == frozenset()
    assert snap.loading is False
