"""Catalog endpoints.

Endpoints:
  - /products             (paginated product list)
  - /products/{id}        (single product)
  - /products/categories  (category list with counts)
  - /umkm                 (paginated UMKM list)
  - /umkm/{id}            (single UMKM)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, ValidationError

from pyumkm._api._common import parse_envelope
from pyumkm._constants import RESOURCE_CATEGORIES, RESOURCE_PRODUCTS, RESOURCE_UMKM
from pyumkm._keys import canonical_params
from pyumkm._transport import Transport
from pyumkm.exceptions import UmkmApiError
from pyumkm.models.catalog import Category, ListPage, Product, Umkm

_logger = logging.getLogger(__name__)

_LIST_PATHS: dict[str, str] = {
    RESOURCE_PRODUCTS: "/products",
    RESOURCE_UMKM: "/umkm",
    RESOURCE_CATEGORIES: "/products/categories",
}

_DETAIL_PATHS: dict[str, str] = {
    RESOURCE_PRODUCTS: "/products/{id}",
    RESOURCE_UMKM: "/umkm/{id}",
}

_MODELS: dict[str, type[BaseModel]] = {
    RESOURCE_PRODUCTS: Product,
    RESOURCE_UMKM: Umkm,
    RESOURCE_CATEGORIES: Category,
}


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _coerce_item(resource: str, item: Any) -> Any:
    # Older category routes return bare names instead of objects.
    if resource == RESOURCE_CATEGORIES and isinstance(item, str):
        return {"name": item, "slug": _slugify(item)}
    return item


def _parse_item(endpoint: str, resource: str, item: Any) -> BaseModel:
    model = _MODELS[resource]
    try:
        return model.model_validate(_coerce_item(resource, item))
    except ValidationError as exc:
        raise UmkmApiError(
            f"{endpoint} returned an invalid {resource} item: {exc.error_count()} validation errors",
            code="invalid_payload",
            endpoint=endpoint,
        ) from exc


class HttpCatalogBackend:
    """Remote data backend speaking the storefront's JSON API."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def fetch_list(self, resource: str, filters: Mapping[str, Any] | None = None) -> ListPage:
        path = _LIST_PATHS.get(resource)
        if path is None:
            raise ValueError(f"Unknown catalog resource: {resource!r}")

        result = await self._transport.request_json("GET", path, params=canonical_params(filters))
        envelope = parse_envelope(path, result)

        data = envelope.data
        if data is None:
            data = []
        if not isinstance(data, list):
            raise UmkmApiError(f"{path} data is not a list", code="invalid_payload", endpoint=path)

        items = tuple(_parse_item(path, resource, item) for item in data)
        _logger.debug("Fetched %d %s items", len(items), resource)
        return ListPage(items=items, pagination=envelope.pagination)

    async def fetch_detail(self, resource: str, item_id: str) -> BaseModel:
        template = _DETAIL_PATHS.get(resource)
        if template is None:
            raise ValueError(f"Resource {resource!r} has no detail endpoint")

        path = template.format(id=quote(str(item_id), safe=""))
        result = await self._transport.request_json("GET", path)
        envelope = parse_envelope(path, result)
        if not isinstance(envelope.data, dict):
            raise UmkmApiError(f"{path} returned no item", code="not_found", endpoint=path)
        return _parse_item(path, resource, envelope.data)
