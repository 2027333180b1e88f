"""Push-driven cart refresh.

Each change notification on the user's topic schedules a cart refresh.
Notifications arriving while a refresh runs collapse into one follow-up
refresh, so a burst costs at most two round trips and the last change is
never missed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pyumkm._push import PushChannel, PushSubscription
from pyumkm.exceptions import UmkmError
from pyumkm.state.events import ChangeEvent

_logger = logging.getLogger(__name__)


class ChangeNotificationListener:
    """Subscribe to a user's change notifications and refresh on each one."""

    def __init__(self, channel: PushChannel, refresh: Callable[[], Awaitable[Any]]) -> None:
        self._channel = channel
        self._refresh = refresh
        self._subscription: PushSubscription | None = None
        self._user_id: str | None = None
        self._active = False
        self._task: asyncio.Task[None] | None = None
        self._again = False
        self._events_seen = 0

    @property
    def active(self) -> bool:
        return self._active

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def events_seen(self) -> int:
        return self._events_seen

    async def start(self, user_id: str) -> bool:
        """Subscribe to *user_id*'s topic; return whether the subscription is live.

        A broker that cannot be reached is logged and leaves the listener
        inactive; the cart still works through explicit refreshes.
        """
        if self._active:
            await self.stop()
        try:
            subscription = await self._channel.subscribe(user_id, self._on_event)
        except UmkmError as exc:
            _logger.warning("Change notifications unavailable for user=%s: %s", user_id, exc)
            return False
        self._subscription = subscription
        self._user_id = user_id
        self._active = True
        _logger.debug("Listening for cart changes user=%s", user_id)
        return True

    async def stop(self) -> None:
        """Unsubscribe and cancel any refresh in flight."""
        self._active = False
        self._again = False
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        subscription = self._subscription
        self._subscription = None
        self._user_id = None
        if subscription is not None:
            try:
                await subscription.close()
            except Exception:
                _logger.debug("Closing change subscription failed", exc_info=True)

    async def wait_idle(self) -> None:
        """Wait until no refresh is scheduled or running."""
        while self._task is not None and not self._task.done():
            task = self._task
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                # A refresh cancelled by stop() just means there is nothing left to wait for.
                if not task.cancelled():
                    raise

    def _on_event(self, event: ChangeEvent) -> None:
        if not self._active:
            _logger.debug("Ignoring change event after stop: %s", event.event)
            return
        self._events_seen += 1
        if self._task is not None and not self._task.done():
            self._again = True
            return
        self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            self._again = False
            try:
                await self._refresh()
            except asyncio.CancelledError:
                raise
            except Exception:
                _logger.debug("Background cart refresh failed", exc_info=True)
            if not (self._again and self._active):
                return
