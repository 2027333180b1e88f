"""Canonical cache keys for catalog queries."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urlencode


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_render(item) for item in value)
    return str(value)


def canonical_params(filters: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    """Sorted ``(name, value)`` pairs with unset filters dropped.

    ``None`` and ``""`` mean "filter not applied" and never reach the key
    or the query string.
    """
    if not filters:
        return []
    pairs: list[tuple[str, str]] = []
    for name in sorted(filters):
        value = filters[name]
        if value is None or value == "":
            continue
        pairs.append((str(name), _render(value)))
    return pairs


def build_query_key(resource: str, filters: Mapping[str, Any] | None = None) -> str:
    """Build a key that is independent of filter insertion order."""
    params = canonical_params(filters)
    if not params:
        return resource
    return f"{resource}?{urlencode(params)}"


def build_detail_key(resource: str, item_id: str) -> str:
    return f"{resource}/{quote(str(item_id), safe='')}"
