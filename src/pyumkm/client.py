"""High-level async client for the UMKM storefront."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from pyumkm._api.cart import HttpCartPersistence
from pyumkm._api.catalog import HttpCatalogBackend
from pyumkm._cache import TtlCache
from pyumkm._push import MqttPushChannel, PushChannel
from pyumkm._transport import HttpTransport
from pyumkm.cart import CartPersistence, CartStateManager, ErrorHook
from pyumkm.catalog import CatalogBackend, CatalogService
from pyumkm.config import UmkmConfig
from pyumkm.exceptions import UmkmError
from pyumkm.listener import ChangeNotificationListener
from pyumkm.session import DEFAULT_SESSION_TTL, Session

_logger = logging.getLogger(__name__)


class UmkmClient:
    """Async client owning the catalog cache, the cart and its push listener.

    Usage::

        async with UmkmClient(UmkmConfig.from_env()) as client:
            products = await client.catalog.get_list("products", {"page": 1})
            await client.start_session(user_id, access_token)
            await client.cart.add_item(products.items[0].id)

    Parameters
    ----------
    config : UmkmConfig
        Endpoint, cache lifetime and push settings.
    session : aiohttp.ClientSession, optional
        Externally owned HTTP session; it is not closed on exit.
    push_channel : PushChannel, optional
        Change notification source.  Defaults to MQTT when
        ``config.push_enabled`` is set; otherwise the cart only refreshes
        on demand.
    catalog_backend, persistence : optional
        Replace the HTTP collaborators (mainly for tests).
    on_error : callable, optional
        Forwarded to :class:`~pyumkm.cart.CartStateManager`.
    """

    def __init__(
        self,
        config: UmkmConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        push_channel: PushChannel | None = None,
        catalog_backend: CatalogBackend | None = None,
        persistence: CartPersistence | None = None,
        on_error: ErrorHook | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._push_channel = push_channel
        self._catalog_backend = catalog_backend
        self._persistence = persistence
        self._on_error = on_error

        self._cache = TtlCache()
        self._transport: HttpTransport | None = None
        self._catalog: CatalogService | None = None
        self._cart: CartStateManager | None = None
        self._listener: ChangeNotificationListener | None = None
        self._session: Session | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> UmkmClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = HttpTransport(self._config, self._http_session)

        backend = self._catalog_backend or HttpCatalogBackend(self._transport)
        persistence = self._persistence or HttpCartPersistence(self._transport)
        self._catalog = CatalogService(backend, ttl=self._config.ttl, cache=self._cache)
        self._cart = CartStateManager(
            persistence,
            session_provider=self._current_session,
            catalog=self._catalog,
            on_error=self._on_error,
        )

        channel = self._push_channel
        if channel is None and self._config.push_enabled:
            channel = MqttPushChannel(self._config)
        if channel is not None:
            self._listener = ChangeNotificationListener(channel, self._cart.refresh)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._cart is not None:
            await self.end_session()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None
        self._catalog = None
        self._cart = None
        self._listener = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def catalog(self) -> CatalogService:
        if self._catalog is None:
            raise UmkmError("Client not initialized. Use 'async with UmkmClient(...) as client:'")
        return self._catalog

    @property
    def cart(self) -> CartStateManager:
        if self._cart is None:
            raise UmkmError("Client not initialized. Use 'async with UmkmClient(...) as client:'")
        return self._cart

    @property
    def session(self) -> Session | None:
        return self._current_session()

    @property
    def listener(self) -> ChangeNotificationListener | None:
        return self._listener

    def _current_session(self) -> Session | None:
        if self._session is not None and self._session.is_expired:
            _logger.debug("Session for user=%s expired", self._session.user_id)
            return None
        return self._session

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_session(
        self,
        user_id: str,
        access_token: str = "",
        *,
        ttl: float = DEFAULT_SESSION_TTL,
    ) -> Session:
        """Sign in: start change notifications and load the user's cart."""
        cart = self.cart
        if self._session is not None:
            await self.end_session()
        self._session = Session(user_id=user_id, access_token=access_token, ttl=ttl)
        if self._listener is not None:
            await self._listener.start(self._session.user_id)
        await cart.refresh()
        return self._session

    async def end_session(self) -> None:
        """Sign out: stop notifications and drop the cart and cached catalog data."""
        if self._listener is not None:
            await self._listener.stop()
        self._session = None
        if self._cart is not None:
            self._cart.reset()
        self._cache.clear()

    logout = end_session
