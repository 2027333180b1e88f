"""JSON-over-HTTP transport for the storefront API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp

from pyumkm._constants import USER_AGENT
from pyumkm._redact import redact_for_log
from pyumkm.config import UmkmConfig
from pyumkm.exceptions import UmkmNetworkError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpResult:
    """Decoded response: HTTP status plus the JSON object body."""

    status: int
    body: dict[str, Any]


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles/mocks while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Sequence[tuple[str, str]] | None = None,
        json_body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResult:
        ...


class HttpTransport:
    """aiohttp transport that returns decoded JSON envelopes.

    Connection failures, timeouts, 5xx responses and non-JSON bodies raise
    :class:`UmkmNetworkError`.  4xx responses are returned so the endpoint
    layer can map them to domain errors.
    """

    def __init__(self, config: UmkmConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Sequence[tuple[str, str]] | None = None,
        json_body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResult:
        request_headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if json_body is not None:
            request_headers["content-type"] = "application/json"
        if headers:
            request_headers.update(headers)

        url = self._config.api_url(path)
        _logger.debug(
            "%s %s params=%s headers=%s body=%s",
            method,
            url,
            list(params or []),
            redact_for_log(request_headers),
            redact_for_log(json_body),
        )

        try:
            async with self._http.request(
                method,
                url,
                params=list(params) if params else None,
                data=json.dumps(json_body, default=str) if json_body is not None else None,
                headers=request_headers,
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except TimeoutError as exc:
            raise UmkmNetworkError(f"Request to {path} timed out", endpoint=path) from exc
        except aiohttp.ClientError as exc:
            raise UmkmNetworkError(f"Request to {path} failed: {exc}", endpoint=path) from exc

        if status >= 500:
            raise UmkmNetworkError(
                f"HTTP {status} from {path}: {text[:200]}",
                status_code=status,
                endpoint=path,
            )

        try:
            body = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError as exc:
            raise UmkmNetworkError(
                f"Invalid JSON from {path}: {text[:200]}",
                status_code=status,
                endpoint=path,
            ) from exc

        if not isinstance(body, dict):
            raise UmkmNetworkError(
                f"Expected a JSON object from {path}, got {type(body).__name__}",
                status_code=status,
                endpoint=path,
            )

        _logger.debug("%s %s -> %s %s", method, url, status, redact_for_log(body, max_string=256))
        return HttpResult(status=status, body=body)
