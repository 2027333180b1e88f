"""Signed-in user state for cart calls and the push topic."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field

#: How long the client trusts a storefront session, in seconds.  Tokens are
#: issued by the auth backend; this only bounds local reuse.
DEFAULT_SESSION_TTL: float = 12 * 3600


class Session(BaseModel):
    """The signed-in shopper.

    Parameters
    ----------
    user_id : str
        Owner of the cart.  Also names the per-user push topic.
    access_token : str
        Bearer token for cart endpoints; empty for cookie-authenticated
        deployments.
    created_at : float
        ``time.monotonic()`` reading at sign-in.
    ttl : float
        Seconds after ``created_at`` at which cart operations start
        failing with :class:`~pyumkm.exceptions.UmkmNotAuthenticatedError`.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )

    user_id: str = Field(min_length=1)
    access_token: str = ""
    created_at: float = Field(default_factory=time.monotonic)
    ttl: float = DEFAULT_SESSION_TTL

    def auth_headers(self) -> dict[str, str]:
        if not self.access_token:
            return {}
        return {"authorization": f"Bearer {self.access_token}"}

    @property
    def expires_in(self) -> float:
        """Seconds left before the session stops being trusted (may be negative)."""
        return self.created_at + self.ttl - time.monotonic()

    @property
    def is_expired(self) -> bool:
        return self.expires_in <= 0
