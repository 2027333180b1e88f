"""Read-through catalog data service.

Lists and details are served from the session cache while fresh and
fetched from the backend otherwise.  Failed fetches come back as a
:class:`FetchResult` carrying the error; they are never cached.

Concurrent misses on the same key are not coalesced: two callers missing
at the same time both reach the backend.  With lifetimes of a few minutes
and one user per session this costs at most a duplicate request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel

from pyumkm._cache import CacheStats, TtlCache
from pyumkm._constants import (
    PREFETCH_CATEGORY_LIMIT,
    PREFETCH_PRODUCTS_LIMIT,
    RESOURCE_CATEGORIES,
    RESOURCE_PRODUCTS,
)
from pyumkm._keys import build_detail_key, build_query_key
from pyumkm.config import CacheTtlPolicy
from pyumkm.exceptions import UmkmError
from pyumkm.models.catalog import ListPage, Pagination, Product

_logger = logging.getLogger(__name__)


class CatalogBackend(Protocol):
    """Remote-fetch collaborator for catalog resources."""

    async def fetch_list(self, resource: str, filters: Mapping[str, Any] | None = None) -> ListPage:
        ...

    async def fetch_detail(self, resource: str, item_id: str) -> BaseModel:
        ...


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a catalog read.

    ``data`` is a tuple of items for list reads and a single model for
    detail reads; it is ``None`` when the read failed.
    """

    data: Any = None
    pagination: Pagination | None = None
    error: str | None = None
    exception: UmkmError | None = None
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def items(self) -> tuple[Any, ...]:
        """List items, or an empty tuple for failed reads."""
        if isinstance(self.data, tuple):
            return self.data
        return ()


class CatalogService:
    """Cache-or-fetch policy over a :class:`CatalogBackend`."""

    def __init__(
        self,
        backend: CatalogBackend,
        *,
        ttl: CacheTtlPolicy | None = None,
        cache: TtlCache | None = None,
    ) -> None:
        self._backend = backend
        self._ttl = ttl or CacheTtlPolicy()
        self._cache = cache if cache is not None else TtlCache()

    # ------------------------------------------------------------------
    # Cache access (never raises)
    # ------------------------------------------------------------------

    def _cache_get(self, key: str) -> Any | None:
        try:
            return self._cache.get(key)
        except Exception:
            _logger.debug("Cache read failed for key=%s; treating as miss", key, exc_info=True)
            return None

    def _cache_set(self, key: str, value: Any, ttl: float) -> None:
        try:
            self._cache.set(key, value, ttl)
        except Exception:
            _logger.debug("Cache write failed for key=%s", key, exc_info=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_list(self, resource: str, filters: Mapping[str, Any] | None = None) -> FetchResult:
        """Return one page of *resource* matching *filters*."""
        ttl = self._ttl.list_ttl(resource)
        key = build_query_key(resource, filters)

        cached = self._cache_get(key)
        if isinstance(cached, ListPage):
            _logger.debug("Cache hit key=%s", key)
            return FetchResult(data=cached.items, pagination=cached.pagination, from_cache=True)

        _logger.debug("Cache miss key=%s; fetching", key)
        try:
            page = await self._backend.fetch_list(resource, filters)
        except UmkmError as exc:
            _logger.debug("Fetch failed key=%s: %s", key, exc)
            return FetchResult(error=str(exc), exception=exc)

        self._cache_set(key, page, ttl)
        return FetchResult(data=page.items, pagination=page.pagination)

    async def get_by_id(self, resource: str, item_id: str) -> FetchResult:
        """Return the single *resource* item identified by *item_id*."""
        ttl = self._ttl.detail_ttl(resource)
        key = build_detail_key(resource, item_id)

        cached = self._cache_get(key)
        if cached is not None:
            _logger.debug("Cache hit key=%s", key)
            return FetchResult(data=cached, from_cache=True)

        _logger.debug("Cache miss key=%s; fetching", key)
        try:
            item = await self._backend.fetch_detail(resource, item_id)
        except UmkmError as exc:
            _logger.debug("Fetch failed key=%s: %s", key, exc)
            return FetchResult(error=str(exc), exception=exc)

        self._cache_set(key, item, ttl)
        return FetchResult(data=item)

    def peek_product(self, product_id: str) -> Product | None:
        """Best cached view of a product without touching the network.

        Looks at the cached detail first, then at any cached product list
        page that contains it.
        """
        detail = self._cache_get(build_detail_key(RESOURCE_PRODUCTS, product_id))
        if isinstance(detail, Product):
            return detail
        for key in self._cache.stats().keys:
            if key != RESOURCE_PRODUCTS and not key.startswith(f"{RESOURCE_PRODUCTS}?"):
                continue
            page = self._cache_get(key)
            if not isinstance(page, ListPage):
                continue
            for item in page.items:
                if isinstance(item, Product) and item.id == product_id:
                    return item
        return None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def prefetch_popular(self) -> None:
        """Warm the cache for the storefront landing page.

        Loads the first product page, the category list, and the first
        page of the top category.  Failures are logged and ignored.
        """
        try:
            products, categories = await asyncio.gather(
                self.get_list(RESOURCE_PRODUCTS, {"page": 1, "limit": PREFETCH_PRODUCTS_LIMIT}),
                self.get_list(RESOURCE_CATEGORIES),
            )
            if not products.ok:
                _logger.debug("Prefetch of products failed: %s", products.error)
            if categories.ok and categories.items:
                top = categories.items[0]
                name = getattr(top, "name", None)
                if name:
                    await self.get_list(
                        RESOURCE_PRODUCTS,
                        {"page": 1, "limit": PREFETCH_CATEGORY_LIMIT, "category": name},
                    )
        except Exception:
            _logger.debug("Prefetch failed", exc_info=True)

    def invalidate(self, resource: str, item_id: str | None = None) -> int:
        """Drop cached entries for *resource* (or for one item of it)."""
        target = resource if item_id is None else build_detail_key(resource, item_id)
        dropped = self._cache.invalidate(target)
        _logger.debug("Invalidated %d cache entries under %s", dropped, target)
        return dropped

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

