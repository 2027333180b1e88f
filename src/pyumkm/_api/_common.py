"""Shared helpers for storefront endpoint modules.

This module centralizes the most repeated patterns:
- validating the ``{success, data, error, pagination?}`` envelope
- mapping HTTP statuses and backend error codes to exceptions

It is internal to pyumkm and may change at any time.
"""

from __future__ import annotations

from pydantic import ValidationError

from pyumkm._constants import (
    AUTH_CODES,
    AUTH_STATUSES,
    NOT_FOUND_CODES,
    NOT_FOUND_STATUS,
    VALIDATION_CODES,
    VALIDATION_STATUSES,
)
from pyumkm._transport import HttpResult
from pyumkm.exceptions import (
    UmkmApiError,
    UmkmNetworkError,
    UmkmNotAuthenticatedError,
    UmkmStaleDataError,
    UmkmValidationError,
)
from pyumkm.models.catalog import ApiResponse


def _failure(
    *,
    endpoint: str,
    status: int,
    code: str,
    message: str,
    not_found_is_stale: bool,
) -> UmkmApiError:
    text = f"{endpoint} failed: status={status} code={code or '-'} message={message}"
    if status in AUTH_STATUSES or code in AUTH_CODES:
        return UmkmNotAuthenticatedError(text, code=code or str(status), endpoint=endpoint)
    if status == NOT_FOUND_STATUS or code in NOT_FOUND_CODES:
        if not_found_is_stale:
            return UmkmStaleDataError(text, code=code or "not_found", endpoint=endpoint)
        return UmkmApiError(text, code=code or "not_found", endpoint=endpoint)
    if status in VALIDATION_STATUSES or code in VALIDATION_CODES:
        return UmkmValidationError(text, code=code or str(status), endpoint=endpoint)
    return UmkmApiError(text, code=code or str(status), endpoint=endpoint)


def parse_envelope(
    endpoint: str,
    result: HttpResult,
    *,
    not_found_is_stale: bool = False,
) -> ApiResponse:
    """Validate an HTTP result and return its envelope, raising on failure.

    Cart routes pass ``not_found_is_stale=True``: a missing line there means
    the record was changed remotely, not that the caller asked for nonsense.
    """
    try:
        envelope = ApiResponse.model_validate(result.body)
    except ValidationError as exc:
        raise UmkmNetworkError(
            f"Malformed envelope from {endpoint}: {exc.error_count()} validation errors",
            status_code=result.status,
            endpoint=endpoint,
        ) from exc

    if 200 <= result.status < 300 and envelope.success:
        return envelope

    raise _failure(
        endpoint=endpoint,
        status=result.status,
        code=envelope.code or "",
        message=envelope.error or "unknown error",
        not_found_is_stale=not_found_is_stale,
    )
