"""Deterministic cart reconciliation policy.

This module contains *no* I/O.  It decides what the local cart looks like
after the authoritative server list arrives.
"""

from __future__ import annotations

from collections.abc import Container, Iterable, Sequence

from pyumkm.models.cart import CartLine


def reconcile(
    local: Sequence[CartLine],
    server: Iterable[CartLine],
    protected: Container[str],
) -> list[CartLine]:
    """Return the cart after a refresh.

    Policy:
    - The server list replaces local state wholesale: local lines missing
      on the server are dropped, server lines are adopted as-is.
    - Protected keys keep their local value (or local absence).  These are
      keys with an in-flight mutation, whose commit/rollback decides them,
      and keys that settled after this refresh was requested, whose server
      copy may predate the mutation.
    - Duplicate server rows for one product collapse into the first one.
    - Lines present on both sides keep their local position; new server
      lines are appended in server order.
    """
    server_by_ref: dict[str, CartLine] = {}
    server_order: list[str] = []
    for line in server:
        if line.product_ref in server_by_ref:
            continue
        server_by_ref[line.product_ref] = line
        server_order.append(line.product_ref)

    result: list[CartLine] = []
    placed: set[str] = set()
    for line in local:
        ref = line.product_ref
        if ref in protected:
            result.append(line)
            placed.add(ref)
            continue
        incoming = server_by_ref.get(ref)
        if incoming is not None:
            result.append(incoming)
            placed.add(ref)

    for ref in server_order:
        if ref in placed or ref in protected:
            continue
        result.append(server_by_ref[ref])

    return result


def lines_equal(left: Sequence[CartLine], right: Sequence[CartLine]) -> bool:
    """Whether two carts would render identically."""
    return len(left) == len(right) and all(a == b for a, b in zip(left, right, strict=True))


_ECHO_FIELDS = ("quantity", "unit_price", "stock_snapshot", "line_id")


def adopt_echo(local: CartLine, echo: CartLine) -> CartLine:
    """Fold a server echo of a written line into the optimistic line.

    Only fields the server actually sent are taken over.  Display fields
    it leaves out keep their local value, so catalog or caller metadata
    survives a sparse reply.
    """
    sent = echo.model_fields_set
    update: dict[str, object] = {field: getattr(echo, field) for field in _ECHO_FIELDS if field in sent}
    if "meta" in sent:
        meta_sent = echo.meta.model_fields_set
        update["meta"] = local.meta.model_copy(
            update={field: getattr(echo.meta, field) for field in meta_sent},
        )
    return local.model_copy(update=update)
