"""Optimistic cart state manager.

Every mutation follows the same two-phase shape: apply locally through
:class:`~pyumkm.state.store.CartStore`, await the persistence call, then
commit or roll back.  Mutations on the same product are serialized in
arrival order; mutations on different products run concurrently.

``refresh()`` pulls the authoritative list from persistence.  Products
with an in-flight mutation keep their local value, and so do products
whose mutation settled while the refresh was on the wire.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from decimal import Decimal
from typing import Protocol

from pyumkm._constants import UNKNOWN_PRODUCT_NAME, UNKNOWN_UMKM_NAME
from pyumkm.catalog import CatalogService
from pyumkm.exceptions import UmkmError, UmkmNotAuthenticatedError, UmkmStaleDataError
from pyumkm.models.cart import CartLine, CartSnapshot, LineMeta, MutationKind
from pyumkm.session import Session
from pyumkm.state.store import CartListener, CartStore

_logger = logging.getLogger(__name__)

ErrorHook = Callable[[UmkmError], None]
SessionProvider = Callable[[], Session | None]


class CartPersistence(Protocol):
    """Remote store of the user's cart lines."""

    async def list_lines(self, session: Session) -> list[CartLine]:
        ...

    async def create_line(self, session: Session, line: CartLine) -> CartLine | None:
        ...

    async def update_quantity(self, session: Session, product_ref: str, quantity: int) -> CartLine | None:
        ...

    async def delete_line(self, session: Session, product_ref: str) -> None:
        ...

    async def clear(self, session: Session) -> None:
        ...


class CartStateManager:
    """Cart operations with optimistic apply and rollback.

    Parameters
    ----------
    persistence : CartPersistence
        Remote cart store.
    session_provider : callable
        Returns the active :class:`~pyumkm.session.Session`, or ``None``
        when signed out.  Consulted before every operation.
    catalog : CatalogService, optional
        Used only to look up cached display fields for new lines.
    on_error : callable, optional
        Called with the error after a failed mutation has been rolled back
        and before it is raised to the caller.
    store : CartStore, optional
        Backing store; a fresh one is created when omitted.
    """

    def __init__(
        self,
        persistence: CartPersistence,
        *,
        session_provider: SessionProvider,
        catalog: CatalogService | None = None,
        on_error: ErrorHook | None = None,
        store: CartStore | None = None,
    ) -> None:
        self._persistence = persistence
        self._session_provider = session_provider
        self._catalog = catalog
        self._on_error = on_error
        self._store = store if store is not None else CartStore()

        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._clear_lock = asyncio.Lock()

        self._generation = 0
        self._refresh_started = 0
        self._refresh_applied = 0
        self._refreshes_in_flight = 0
        # product_ref -> value of _refresh_started when its mutation settled
        self._settled_at: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Reads and observers
    # ------------------------------------------------------------------

    @property
    def store(self) -> CartStore:
        return self._store

    def snapshot(self) -> CartSnapshot:
        return self._store.snapshot()

    def get(self, product_ref: str) -> CartLine | None:
        return self._store.get(str(product_ref))

    @property
    def count(self) -> int:
        return self._store.snapshot().count

    @property
    def total(self) -> Decimal:
        return self._store.snapshot().total

    @property
    def loading(self) -> bool:
        return self._store.loading

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        return self._store.subscribe(listener)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_session(self) -> Session:
        session = self._session_provider()
        if session is None or session.is_expired:
            raise UmkmNotAuthenticatedError("No active session for cart operation", code="not_authenticated")
        return session

    @contextlib.asynccontextmanager
    async def _serialized(self, product_ref: str) -> AsyncIterator[None]:
        """Hold the per-product lock; waiters are served in arrival order."""
        lock = self._locks.get(product_ref)
        if lock is None:
            lock = self._locks[product_ref] = asyncio.Lock()
        self._lock_users[product_ref] = self._lock_users.get(product_ref, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[product_ref] - 1
            if remaining:
                self._lock_users[product_ref] = remaining
            else:
                del self._lock_users[product_ref]
                del self._locks[product_ref]

    def _mark_settled(self, product_ref: str) -> None:
        self._settled_at[product_ref] = self._refresh_started

    def _draft_line(
        self,
        product_ref: str,
        quantity: int,
        *,
        meta: LineMeta | None,
        unit_price: Decimal | None,
        stock: int | None,
    ) -> CartLine:
        """Build a new line from explicit arguments, cached catalog data, or placeholders."""
        product = self._catalog.peek_product(product_ref) if self._catalog is not None else None
        if meta is None:
            if product is not None:
                meta = LineMeta(
                    name=product.name or UNKNOWN_PRODUCT_NAME,
                    image_url=product.image,
                    umkm_name=product.umkm_name or UNKNOWN_UMKM_NAME,
                )
            else:
                meta = LineMeta()
        if unit_price is None:
            unit_price = product.price if product is not None else Decimal(0)
        if stock is None and product is not None:
            stock = product.stock
        return CartLine(
            product_ref=product_ref,
            quantity=quantity,
            unit_price=Decimal(str(unit_price)),
            stock_snapshot=stock,
            meta=meta,
        )

    def _report(self, exc: UmkmError) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(exc)
        except Exception:
            _logger.debug("Cart error hook failed", exc_info=True)

    async def _run_mutation(
        self,
        session: Session,
        kind: MutationKind,
        product_ref: str,
        submitted: CartLine | None,
    ) -> CartLine | None:
        """Apply *submitted* locally, persist it, then commit or roll back."""
        self._store.begin(kind, product_ref, submitted)
        try:
            if kind == MutationKind.ADD:
                assert submitted is not None  # noqa: S101
                confirmed = await self._persistence.create_line(session, submitted)
            elif kind == MutationKind.UPDATE:
                assert submitted is not None  # noqa: S101
                confirmed = await self._persistence.update_quantity(session, product_ref, submitted.quantity)
            else:
                await self._persistence.delete_line(session, product_ref)
                confirmed = None
        except UmkmError as exc:
            self._store.rollback(product_ref)
            self._mark_settled(product_ref)
            _logger.warning("Cart %s for product %s rolled back: %s", kind.value, product_ref, exc)
            if isinstance(exc, UmkmStaleDataError):
                await self._refresh_quietly()
            self._report(exc)
            raise
        except BaseException:
            self._store.rollback(product_ref)
            self._mark_settled(product_ref)
            raise

        if confirmed is not None and confirmed.product_ref != product_ref:
            _logger.debug("Ignoring echoed line for %s on %s", confirmed.product_ref, product_ref)
            confirmed = None
        self._store.commit(product_ref, confirmed)
        self._mark_settled(product_ref)
        return self._store.get(product_ref)

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh()
        except Exception:
            _logger.debug("Cart refresh after stale mutation failed", exc_info=True)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_item(
        self,
        product_ref: str,
        quantity: int = 1,
        *,
        meta: LineMeta | None = None,
        unit_price: Decimal | None = None,
        stock: int | None = None,
    ) -> CartLine | None:
        """Add *quantity* units of a product.

        An existing line for the product has its quantity increased
        instead; the cart never holds two lines for one product.
        """
        if quantity < 1:
            raise ValueError(f"quantity must be at least 1, got {quantity}")
        ref = str(product_ref)
        self._require_session()
        async with self._serialized(ref):
            session = self._require_session()
            existing = self._store.get(ref)
            if existing is not None:
                return await self._update_locked(session, existing, existing.quantity + quantity)
            line = self._draft_line(ref, quantity, meta=meta, unit_price=unit_price, stock=stock)
            return await self._run_mutation(session, MutationKind.ADD, ref, line)

    async def update_quantity(self, product_ref: str, quantity: int) -> CartLine | None:
        """Set a line's quantity; anything below 1 removes the line."""
        ref = str(product_ref)
        if quantity < 1:
            await self.remove_item(ref)
            return None
        self._require_session()
        async with self._serialized(ref):
            session = self._require_session()
            existing = self._store.get(ref)
            if existing is None:
                raise UmkmStaleDataError(f"Cart has no line for product {ref}", code="stale_line")
            return await self._update_locked(session, existing, quantity)

    async def _update_locked(self, session: Session, existing: CartLine, quantity: int) -> CartLine | None:
        if existing.quantity == quantity:
            return existing
        return await self._run_mutation(
            session,
            MutationKind.UPDATE,
            existing.product_ref,
            existing.with_quantity(quantity),
        )

    async def remove_item(self, product_ref: str) -> None:
        """Delete a product's line.  Removing a product not in the cart is a no-op."""
        ref = str(product_ref)
        self._require_session()
        async with self._serialized(ref):
            session = self._require_session()
            if self._store.get(ref) is None:
                _logger.debug("Remove of %s skipped; not in cart", ref)
                return
            await self._run_mutation(session, MutationKind.REMOVE, ref, None)

    async def clear(self) -> None:
        """Delete every line remotely and locally.

        All lines are removed optimistically; if the remote call fails every
        line is restored in its former position.
        """
        self._require_session()
        async with self._clear_lock, contextlib.AsyncExitStack() as stack:
            held: set[str] = set()
            while True:
                refs = {line.product_ref for line in self._store.snapshot().lines}
                missing = sorted(refs - held)
                if not missing:
                    break
                for ref in missing:
                    await stack.enter_async_context(self._serialized(ref))
                    held.add(ref)

            session = self._require_session()
            lines = self._store.snapshot().lines
            if not lines:
                return
            refs_in_order = [line.product_ref for line in lines]
            self._store.begin_removal(refs_in_order)
            try:
                await self._persistence.clear(session)
            except BaseException as exc:
                self._store.rollback_many(refs_in_order)
                for ref in refs_in_order:
                    self._mark_settled(ref)
                if isinstance(exc, UmkmError):
                    _logger.warning("Cart clear rolled back: %s", exc)
                    self._report(exc)
                raise
            self._store.commit_many(refs_in_order)
            for ref in refs_in_order:
                self._mark_settled(ref)

    # ------------------------------------------------------------------
    # Refresh and lifecycle
    # ------------------------------------------------------------------

    async def refresh(self) -> CartSnapshot:
        """Replace local lines with the server's, sparing in-flight products.

        Without a session the local cart is emptied.  A refresh that
        finishes after a newer one has been applied is discarded.
        """
        session = self._session_provider()
        if session is None or session.is_expired:
            # Refreshes started under the lapsed session must not land.
            self.reset()
            return self._store.snapshot()

        generation = self._generation
        self._refresh_started += 1
        seq = self._refresh_started
        self._refreshes_in_flight += 1
        self._store.set_loading(True)

        try:
            server_lines = await self._persistence.list_lines(session)
        except BaseException:
            if generation == self._generation:
                self._refreshes_in_flight -= 1
                self._store.set_loading(self._refreshes_in_flight > 0)
            raise

        if generation != self._generation:
            _logger.debug("Discarding cart refresh from a previous session")
            return self._store.snapshot()

        self._refreshes_in_flight -= 1
        still_loading = self._refreshes_in_flight > 0
        if seq < self._refresh_applied:
            _logger.debug("Discarding out-of-order cart refresh seq=%d", seq)
            self._store.set_loading(still_loading)
            return self._store.snapshot()

        protected = {ref for ref, settled in self._settled_at.items() if settled >= seq}
        changed = self._store.replace_all(server_lines, protected=protected, loading=still_loading)
        self._refresh_applied = seq
        if not still_loading:
            self._settled_at.clear()
        _logger.debug("Cart refresh seq=%d applied changed=%s protected=%s", seq, changed, sorted(protected))
        return self._store.snapshot()

    def reset(self) -> None:
        """Drop all local state without remote calls (sign-out)."""
        self._generation += 1
        self._refreshes_in_flight = 0
        self._settled_at.clear()
        self._store.reset()
