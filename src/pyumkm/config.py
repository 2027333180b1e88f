"""Client configuration for pyumkm."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyumkm._constants import (
    API_PREFIX,
    BASE_URL,
    DEFAULT_CATEGORIES_TTL,
    DEFAULT_PRODUCT_DETAIL_TTL,
    DEFAULT_PRODUCTS_TTL,
    DEFAULT_UMKM_DETAIL_TTL,
    DEFAULT_UMKM_TTL,
    RESOURCE_CATEGORIES,
    RESOURCE_PRODUCTS,
    RESOURCE_UMKM,
)
from pyumkm.exceptions import UmkmConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(value)
    except ValueError as exc:
        raise UmkmConfigError(f"{env_key} must be numeric, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class CacheTtlPolicy:
    """Per-resource cache lifetimes in seconds.

    Lists of rapidly-changing aggregates get short lifetimes; near-static
    reference data (categories) and single-item details get longer ones.
    """

    categories: float = DEFAULT_CATEGORIES_TTL
    products: float = DEFAULT_PRODUCTS_TTL
    umkm: float = DEFAULT_UMKM_TTL
    product_detail: float = DEFAULT_PRODUCT_DETAIL_TTL
    umkm_detail: float = DEFAULT_UMKM_DETAIL_TTL

    def list_ttl(self, resource: str) -> float:
        """TTL for a list read of *resource*."""
        mapping = {
            RESOURCE_PRODUCTS: self.products,
            RESOURCE_UMKM: self.umkm,
            RESOURCE_CATEGORIES: self.categories,
        }
        if resource not in mapping:
            raise ValueError(f"Unknown catalog resource: {resource!r}")
        return mapping[resource]

    def detail_ttl(self, resource: str) -> float:
        """TTL for a single-item read of *resource*."""
        mapping = {
            RESOURCE_PRODUCTS: self.product_detail,
            RESOURCE_UMKM: self.umkm_detail,
        }
        if resource not in mapping:
            raise ValueError(f"Resource {resource!r} has no detail endpoint")
        return mapping[resource]


@dataclasses.dataclass(frozen=True)
class UmkmConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Storefront origin, e.g. ``"https://umkm.example.com"``.
    api_prefix : str
        Path prefix of the JSON API routes.
    request_timeout : float
        Total per-request timeout in seconds, enforced by aiohttp.
    ttl : CacheTtlPolicy
        Per-resource cache lifetimes.
    push_enabled : bool
        Subscribe to the MQTT change stream while a session is active.
    push_broker_host : str
        MQTT broker host name.
    push_broker_port : int
        MQTT broker port.
    push_topic_prefix : str
        Topic prefix; the per-user topic is ``{prefix}/{user_id}``.
    push_keepalive : int
        MQTT keepalive in seconds.
    push_tls : bool
        Connect to the broker over TLS.
    push_qos : int
        MQTT QoS for the change topic subscription (0, 1 or 2).
    """

    base_url: str = BASE_URL
    api_prefix: str = API_PREFIX
    request_timeout: float = 15.0
    ttl: CacheTtlPolicy = dataclasses.field(default_factory=CacheTtlPolicy)
    push_enabled: bool = False
    push_broker_host: str = "localhost"
    push_broker_port: int = 1883
    push_topic_prefix: str = "umkm/cart"
    push_keepalive: int = 60
    push_tls: bool = False
    push_qos: int = 1

    def __post_init__(self) -> None:
        if not self.base_url.strip():
            raise UmkmConfigError("base_url must be non-empty")
        if self.request_timeout <= 0:
            raise UmkmConfigError("request_timeout must be positive")
        if self.push_qos not in (0, 1, 2):
            raise UmkmConfigError(f"push_qos must be 0, 1 or 2, got {self.push_qos}")

    def api_url(self, path: str) -> str:
        """Absolute URL for an API *path* such as ``"/products"``."""
        return f"{self.base_url.rstrip('/')}{self.api_prefix}{path}"

    @classmethod
    def from_env(cls, **overrides: Any) -> UmkmConfig:
        """Create configuration from environment variables.

        Reads optional ``UMKM_*`` variables.  Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        UmkmConfig
            Populated configuration.
        """
        env = os.environ

        ttl_kwargs: dict[str, float] = {}
        _ENV_TTL_MAP = {
            "UMKM_CATEGORIES_TTL": "categories",
            "UMKM_PRODUCTS_TTL": "products",
            "UMKM_UMKM_TTL": "umkm",
            "UMKM_PRODUCT_DETAIL_TTL": "product_detail",
            "UMKM_UMKM_DETAIL_TTL": "umkm_detail",
        }
        for env_key, field_name in _ENV_TTL_MAP.items():
            val = env.get(env_key)
            if val is not None:
                ttl_kwargs[field_name] = float(_env_number(env_key, val, float))

        # Allow overriding TTL fields via a nested dict
        ttl_overrides = overrides.pop("ttl", None)
        if isinstance(ttl_overrides, dict):
            ttl_kwargs.update(ttl_overrides)
        elif isinstance(ttl_overrides, CacheTtlPolicy):
            ttl_kwargs = dataclasses.asdict(ttl_overrides)

        config_kwargs: dict[str, Any] = {"ttl": CacheTtlPolicy(**ttl_kwargs)}

        _ENV_CONFIG_MAP = {
            "UMKM_BASE_URL": "base_url",
            "UMKM_API_PREFIX": "api_prefix",
            "UMKM_PUSH_BROKER_HOST": "push_broker_host",
            "UMKM_PUSH_TOPIC_PREFIX": "push_topic_prefix",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        timeout_env = env.get("UMKM_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            config_kwargs["request_timeout"] = _env_number("UMKM_REQUEST_TIMEOUT", timeout_env, float)

        port_env = env.get("UMKM_PUSH_BROKER_PORT")
        if port_env is not None and "push_broker_port" not in overrides:
            config_kwargs["push_broker_port"] = _env_number("UMKM_PUSH_BROKER_PORT", port_env, int)

        keepalive_env = env.get("UMKM_PUSH_KEEPALIVE")
        if keepalive_env is not None and "push_keepalive" not in overrides:
            config_kwargs["push_keepalive"] = _env_number("UMKM_PUSH_KEEPALIVE", keepalive_env, int)

        qos_env = env.get("UMKM_PUSH_QOS")
        if qos_env is not None and "push_qos" not in overrides:
            config_kwargs["push_qos"] = _env_number("UMKM_PUSH_QOS", qos_env, int)

        if "push_enabled" not in overrides:
            config_kwargs["push_enabled"] = _env_bool(env.get("UMKM_PUSH_ENABLED"), False)

        if "push_tls" not in overrides:
            config_kwargs["push_tls"] = _env_bool(env.get("UMKM_PUSH_TLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
