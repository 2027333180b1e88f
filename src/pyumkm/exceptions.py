"""Custom exception hierarchy for pyumkm."""

from __future__ import annotations


class UmkmError(Exception):
    """Base exception for all pyumkm errors."""


class UmkmConfigError(UmkmError):
    """Invalid or missing configuration."""


class UmkmNetworkError(UmkmError):
    """Transport-level failure (connection, timeout, non-JSON body, bad status)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class UmkmApiError(UmkmError):
    """Backend answered with ``success: false`` (application-level error)."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        super().__init__(message)


class UmkmValidationError(UmkmApiError):
    """Backend rejected the request contents (e.g. quantity or stock constraint)."""


class UmkmNotAuthenticatedError(UmkmApiError):
    """A cart operation was attempted without an active session.

    Also raised when the backend rejects the session token (HTTP 401/403).
    Cart mutations raise this before any optimistic change is applied.
    """


class UmkmStaleDataError(UmkmApiError):
    """A mutation's assumptions no longer hold against server state.

    Raised when the backend reports that the targeted cart line no longer
    exists (HTTP 404), or when an update targets a line the local cart
    dropped after a refresh.
    """
