"""Internal MQTT push channel: payload decoding and the threaded runtime."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, cast

import paho.mqtt.client as mqtt
from pydantic import ValidationError

from pyumkm._constants import CART_TABLE, PUSH_RECONNECT_MAX_DELAY, PUSH_RECONNECT_MIN_DELAY
from pyumkm.config import UmkmConfig
from pyumkm.exceptions import UmkmError, UmkmNetworkError
from pyumkm.state.events import ChangeEvent, ChangeKind

_logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]


class PushSubscription(Protocol):
    """Handle returned by :meth:`PushChannel.subscribe`."""

    async def close(self) -> None:
        ...


class PushChannel(Protocol):
    """Source of per-user change notifications.

    ``on_event`` is always invoked on the event loop that called
    ``subscribe``.
    """

    async def subscribe(self, user_id: str, on_event: ChangeCallback) -> PushSubscription:
        ...


@dataclass(frozen=True)
class PushTarget:
    """Broker details for one user's change topic."""

    broker_host: str
    broker_port: int
    topic: str
    client_id: str
    keepalive: int = 60
    tls: bool = False
    qos: int = 1


def build_push_target(config: UmkmConfig, user_id: str) -> PushTarget:
    prefix = config.push_topic_prefix.rstrip("/")
    return PushTarget(
        broker_host=config.push_broker_host,
        broker_port=config.push_broker_port,
        topic=f"{prefix}/{user_id}",
        client_id=f"pyumkm-{user_id}-{secrets.token_hex(4)}",
        keepalive=config.push_keepalive,
        tls=config.push_tls,
        qos=config.push_qos,
    )


def decode_change_payload(payload: bytes) -> ChangeEvent:
    """Parse a change notification published on a user's topic."""
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise UmkmError(f"Push payload is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise UmkmError("Push payload is not a JSON object")
    try:
        return ChangeEvent.model_validate({**parsed, "raw": parsed})
    except ValidationError as exc:
        raise UmkmError(f"Push payload is not a change event: {exc.error_count()} validation errors") from exc


class PushRuntime:
    """Threaded paho-mqtt runtime feeding one user's change topic into asyncio.

    paho reconnects on its own after a dropped connection.  Every accepted
    CONNACK subscribes the topic again.  A CONNACK that follows an
    unexpected disconnect also emits a synthetic resync event, because
    changes published while offline never reach this client.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_event: ChangeCallback,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._on_event = on_event
        self._logger = logger or _logger
        self._client: mqtt.Client | None = None
        self._target: PushTarget | None = None
        self._dropped = False

    @property
    def is_running(self) -> bool:
        return self._client is not None

    def start(self, target: PushTarget) -> None:
        """Connect to *target*'s broker and start the network thread.

        Blocks on the TCP connect; call it from an executor.
        """
        self.stop()
        self._logger.debug(
            "Push runtime start host=%s port=%s topic=%s qos=%d",
            target.broker_host,
            target.broker_port,
            target.topic,
            target.qos,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=target.client_id,
        )
        client.enable_logger(self._logger)
        client.reconnect_delay_set(min_delay=PUSH_RECONNECT_MIN_DELAY, max_delay=PUSH_RECONNECT_MAX_DELAY)
        if target.tls:
            client.tls_set()
        client.on_connect = self._handle_connect
        client.on_message = self._handle_message
        client.on_disconnect = self._handle_disconnect

        self._target = target
        self._dropped = False
        try:
            client.connect(target.broker_host, target.broker_port, keepalive=target.keepalive)
        except OSError as exc:
            self._target = None
            raise UmkmNetworkError(
                f"Cannot reach push broker {target.broker_host}:{target.broker_port}: {exc}",
                endpoint=target.topic,
            ) from exc
        client.loop_start()
        self._client = client

    def stop(self) -> None:
        """Disconnect and join the network thread.  Safe to call twice."""
        client = self._client
        self._client = None
        self._target = None
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("Push network loop stopped")

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _emit(self, event: ChangeEvent) -> None:
        self._loop.call_soon_threadsafe(self._on_event, event)

    def _handle_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        target = self._target
        if target is None:
            return
        if reason_code.value != 0:
            self._logger.warning("Push broker refused connection: %s", reason_code)
            return
        client.subscribe(target.topic, qos=target.qos)
        if self._dropped:
            self._dropped = False
            self._logger.debug("Push reconnected topic=%s, requesting resync", target.topic)
            self._emit(ChangeEvent(event=ChangeKind.UPDATE, table=CART_TABLE, raw={"reason": "reconnect"}))

    def _handle_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        target = self._target
        if target is None or not mqtt.topic_matches_sub(target.topic, msg.topic):
            self._logger.debug("Push message on foreign topic=%s dropped", msg.topic)
            return
        try:
            event = decode_change_payload(msg.payload)
        except UmkmError:
            self._logger.debug("Push payload decode failure topic=%s", msg.topic, exc_info=True)
            return
        self._logger.debug("Push event=%s table=%s record=%s", event.event, event.table, event.record_id)
        self._emit(event)

    def _handle_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._client is None:
            return
        self._dropped = True
        self._logger.warning("Push broker connection lost (%s); paho will reconnect", reason_code)


class _MqttSubscription:
    def __init__(self, runtime: PushRuntime, loop: asyncio.AbstractEventLoop) -> None:
        self._runtime = runtime
        self._loop = loop

    async def close(self) -> None:
        await self._loop.run_in_executor(None, self._runtime.stop)


class MqttPushChannel:
    """:class:`PushChannel` over an MQTT broker, one topic per user."""

    def __init__(self, config: UmkmConfig) -> None:
        self._config = config

    async def subscribe(self, user_id: str, on_event: ChangeCallback) -> PushSubscription:
        loop = asyncio.get_running_loop()
        runtime = PushRuntime(loop=loop, on_event=on_event)
        target = build_push_target(self._config, user_id)
        await loop.run_in_executor(None, runtime.start, target)
        return _MqttSubscription(runtime, loop)
