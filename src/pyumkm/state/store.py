"""Deterministic in-memory cart store.

This is the only component allowed to change cart lines.  Every change
goes through one of three transitions:

1. ``begin``: tentative local apply, remembering the prior line;
2. ``commit``: the remote call succeeded, the tentative state stays;
3. ``rollback``: the remote call failed, the prior line is restored.

``replace_all`` applies a refresh.  Observers are notified synchronously
after each transition has completed, never in the middle of one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Iterable, Sequence

from pyumkm.models.cart import CartLine, CartSnapshot, LineStatus, MutationKind, PendingMutation
from pyumkm.state.policy import adopt_echo, lines_equal, reconcile

_logger = logging.getLogger(__name__)

CartListener = Callable[[CartSnapshot], None]


class CartStore:
    """Ordered cart lines keyed by product, plus in-flight mutations."""

    def __init__(self) -> None:
        self._lines: list[CartLine] = []
        self._pending: dict[str, PendingMutation] = {}
        self._settled: dict[str, LineStatus] = {}
        self._loading = False
        self._listeners: list[CartListener] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(
            lines=tuple(self._lines),
            loading=self._loading,
            pending=frozenset(self._pending),
            settled=dict(self._settled),
        )

    def get(self, product_ref: str) -> CartLine | None:
        index = self._index_of(product_ref)
        return None if index is None else self._lines[index]

    def pending(self, product_ref: str) -> PendingMutation | None:
        return self._pending.get(product_ref)

    @property
    def loading(self) -> bool:
        return self._loading

    def _index_of(self, product_ref: str) -> int | None:
        for index, line in enumerate(self._lines):
            if line.product_ref == product_ref:
                return index
        return None

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register *listener*; the returned callable unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                _logger.debug("Cart listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Two-phase mutation protocol
    # ------------------------------------------------------------------

    def begin(self, kind: MutationKind, product_ref: str, submitted: CartLine | None) -> PendingMutation:
        """Apply a tentative change and remember how to undo it."""
        mutation = self._apply_begin(kind, product_ref, submitted)
        self._notify()
        return mutation

    def commit(self, product_ref: str, confirmed: CartLine | None = None) -> None:
        """Keep the tentative state, folding in the server's echo if there is one."""
        if self._apply_commit(product_ref, confirmed):
            self._notify()

    def rollback(self, product_ref: str) -> None:
        """Restore the line exactly as it was before ``begin``."""
        if self._apply_rollback(product_ref):
            self._notify()

    def _apply_begin(self, kind: MutationKind, product_ref: str, submitted: CartLine | None) -> PendingMutation:
        if product_ref in self._pending:
            raise RuntimeError(f"mutation already in flight for {product_ref}")

        prior_index = self._index_of(product_ref)
        prior = None if prior_index is None else self._lines[prior_index]
        mutation = PendingMutation(
            product_ref=product_ref,
            kind=kind,
            submitted=submitted,
            prior=prior,
            prior_index=prior_index,
        )

        if kind == MutationKind.REMOVE:
            if prior_index is not None:
                del self._lines[prior_index]
        elif submitted is not None:
            if prior_index is None:
                self._lines.append(submitted)
            else:
                self._lines[prior_index] = submitted

        self._pending[product_ref] = mutation
        return mutation

    def _apply_commit(self, product_ref: str, confirmed: CartLine | None) -> bool:
        mutation = self._pending.pop(product_ref, None)
        if mutation is None:
            return False
        if confirmed is not None and mutation.kind != MutationKind.REMOVE:
            index = self._index_of(product_ref)
            if index is not None:
                self._lines[index] = adopt_echo(self._lines[index], confirmed)
        self._settled[product_ref] = LineStatus.COMMITTED
        return True

    def _apply_rollback(self, product_ref: str) -> bool:
        mutation = self._pending.pop(product_ref, None)
        if mutation is None:
            return False

        index = self._index_of(product_ref)
        if index is not None:
            del self._lines[index]
        if mutation.prior is not None:
            position = mutation.prior_index if mutation.prior_index is not None else len(self._lines)
            self._lines.insert(min(position, len(self._lines)), mutation.prior)

        self._settled[product_ref] = LineStatus.ROLLED_BACK
        return True

    # ------------------------------------------------------------------
    # Bulk transitions
    # ------------------------------------------------------------------

    def begin_removal(self, product_refs: Sequence[str]) -> None:
        """Tentatively remove several lines as one transition."""
        duplicate = next((ref for ref in product_refs if ref in self._pending), None)
        if duplicate is not None:
            raise RuntimeError(f"mutation already in flight for {duplicate}")
        for ref in product_refs:
            self._apply_begin(MutationKind.REMOVE, ref, None)
        if product_refs:
            self._notify()

    def commit_many(self, product_refs: Sequence[str]) -> None:
        """Settle several pending mutations as committed, notifying once."""
        changed = [self._apply_commit(ref, None) for ref in product_refs]
        if any(changed):
            self._notify()

    def rollback_many(self, product_refs: Sequence[str]) -> None:
        """Undo several pending mutations, notifying once.

        Lines are restored in reverse order of ``begin`` so every one lands
        back at its former position.
        """
        changed = [self._apply_rollback(ref) for ref in reversed(product_refs)]
        if any(changed):
            self._notify()

    def replace_all(
        self,
        server_lines: Iterable[CartLine],
        *,
        protected: Collection[str] = (),
        loading: bool | None = None,
    ) -> bool:
        """Apply an authoritative server list; return whether any line changed.

        Keys with an in-flight mutation are always protected.  *loading*,
        when given, is updated in the same transition so observers see the
        refreshed lines and the cleared flag together.
        """
        keep = set(self._pending) | set(protected)
        reconciled = reconcile(self._lines, server_lines, keep)
        changed = not lines_equal(self._lines, reconciled)
        if changed:
            self._lines = reconciled
        loading_changed = loading is not None and loading != self._loading
        if loading_changed:
            self._loading = bool(loading)
        if changed or loading_changed:
            self._notify()
        return changed

    def set_loading(self, loading: bool) -> None:
        if self._loading == loading:
            return
        self._loading = loading
        self._notify()

    def reset(self) -> None:
        """Forget every line and in-flight mutation (logout)."""
        self._lines = []
        self._pending.clear()
        self._settled.clear()
        self._loading = False
        self._notify()
