"""Cart persistence endpoints.

Endpoints:
  - GET    /cart                 (list the user's lines)
  - POST   /cart                 (create a line)
  - PATCH  /cart/{product_id}    (set a line's quantity)
  - DELETE /cart/{product_id}    (delete a line)
  - DELETE /cart                 (delete every line)

All calls are bearer-authenticated with the session token.  A 404 on an
update means the row vanished remotely and raises
:class:`~pyumkm.exceptions.UmkmStaleDataError`; a 404 on a delete already
matches the requested outcome and counts as success.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from pyumkm._api._common import parse_envelope
from pyumkm._constants import NOT_FOUND_STATUS
from pyumkm._transport import Transport
from pyumkm.exceptions import UmkmApiError
from pyumkm.models.cart import CartLine
from pyumkm.session import Session

_logger = logging.getLogger(__name__)

_COLLECTION = "/cart"


def _line_path(product_ref: str) -> str:
    return f"{_COLLECTION}/{quote(product_ref, safe='')}"


def _parse_line(endpoint: str, row: Any) -> CartLine:
    try:
        return CartLine.model_validate(row)
    except ValidationError as exc:
        raise UmkmApiError(
            f"{endpoint} returned an invalid cart line: {exc.error_count()} validation errors",
            code="invalid_payload",
            endpoint=endpoint,
        ) from exc


def _echoed_line(endpoint: str, data: Any) -> CartLine | None:
    # Create/update routes may echo the stored row; older ones return nothing.
    # The write already succeeded, so a partial echo is never an error.
    if not isinstance(data, dict) or not data:
        return None
    try:
        return CartLine.model_validate(data)
    except ValidationError:
        _logger.debug("Ignoring unparseable echo from %s: keys=%s", endpoint, sorted(data), exc_info=True)
        return None


class HttpCartPersistence:
    """Cart persistence collaborator backed by the storefront JSON API."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def list_lines(self, session: Session) -> list[CartLine]:
        result = await self._transport.request_json("GET", _COLLECTION, headers=session.auth_headers())
        envelope = parse_envelope(_COLLECTION, result)
        rows = envelope.data if isinstance(envelope.data, list) else []
        lines = [_parse_line(_COLLECTION, row) for row in rows]
        _logger.debug("Fetched %d cart lines for user=%s", len(lines), session.user_id)
        return lines

    async def create_line(self, session: Session, line: CartLine) -> CartLine | None:
        body = {
            "product_id": line.product_ref,
            "quantity": line.quantity,
            "price": str(line.unit_price),
            "product_name": line.meta.name,
            "image_url": line.meta.image_url,
            "umkm_name": line.meta.umkm_name,
        }
        result = await self._transport.request_json(
            "POST",
            _COLLECTION,
            json_body=body,
            headers=session.auth_headers(),
        )
        envelope = parse_envelope(_COLLECTION, result)
        return _echoed_line(_COLLECTION, envelope.data)

    async def update_quantity(self, session: Session, product_ref: str, quantity: int) -> CartLine | None:
        path = _line_path(product_ref)
        result = await self._transport.request_json(
            "PATCH",
            path,
            json_body={"quantity": quantity},
            headers=session.auth_headers(),
        )
        envelope = parse_envelope(path, result, not_found_is_stale=True)
        return _echoed_line(path, envelope.data)

    async def delete_line(self, session: Session, product_ref: str) -> None:
        path = _line_path(product_ref)
        result = await self._transport.request_json("DELETE", path, headers=session.auth_headers())
        if result.status == NOT_FOUND_STATUS:
            _logger.debug("Cart line %s already gone for user=%s", product_ref, session.user_id)
            return
        parse_envelope(path, result)

    async def clear(self, session: Session) -> None:
        result = await self._transport.request_json("DELETE", _COLLECTION, headers=session.auth_headers())
        parse_envelope(_COLLECTION, result)
