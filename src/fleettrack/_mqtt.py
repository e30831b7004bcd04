"""MQTT-backed telemetry source.

Topics (``prefix`` from :class:`fleettrack.config.MqttSourceConfig`):

- ``<prefix>/trips/active`` - JSON list of active trips (or ``{"trips": [...]}``)
- ``<prefix>/trips/<trip_id>/location`` - JSON sample object, or a list of them
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from fleettrack.config import MqttSourceConfig
from fleettrack.exceptions import FleetSourceError, FleetSubscriptionError
from fleettrack.source import CallbackSubscription, SampleCallback, TripsCallback


@dataclass(frozen=True)
class MqttMessage:
    """Decoded inbound message."""

    topic: str
    payload: Any


def active_trips_topic(prefix: str) -> str:
    return f"{prefix}/trips/active"


def location_topic(prefix: str, trip_id: str) -> str:
    return f"{prefix}/trips/{trip_id}/location"


def decode_json_payload(payload: bytes) -> Any:
    """Decode a UTF-8 JSON message body."""
    try:
        return json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FleetSourceError(f"MQTT payload is not JSON: {exc}") from exc


class MqttTelemetrySource:
    """Threaded paho-mqtt client that emits decoded messages onto an asyncio loop.

    Usage::

        async with MqttTelemetrySource(config.mqtt) as source:
            async with FleetEngine(source, config=config) as engine:
                ...

    The paho network thread only decodes payloads; handlers always run on
    the event loop via ``call_soon_threadsafe``, in arrival order.
    """

    def __init__(
        self,
        config: MqttSourceConfig,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._connected = threading.Event()
        self._handlers: dict[str, Callable[[Any], None]] = {}

    @property
    def is_running(self) -> bool:
        return self._client is not None

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    async def __aenter__(self) -> MqttTelemetrySource:
        self._loop = asyncio.get_running_loop()
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the network loop; connection happens in the background."""
        self.stop()
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        config = self._config
        self._logger.debug(
            "MQTT source start requested host=%s port=%s prefix=%s",
            config.host,
            config.port,
            config.topic_prefix,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        if config.username:
            client.username_pw_set(config.username, config.password)
        if config.tls:
            client.tls_set()
        client.reconnect_delay_set(min_delay=1, max_delay=30)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected reason=%s", reason_code)
            self._connected.set()
            # Broker sessions are clean; restore topics after a reconnect.
            for topic in list(self._handlers):
                c.subscribe(topic, qos=config.qos)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                message = MqttMessage(topic=msg.topic, payload=decode_json_payload(msg.payload))
            except FleetSourceError:
                self._logger.debug("MQTT payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            loop = self._loop
            if loop is not None and not loop.is_closed():
                loop.call_soon_threadsafe(self._dispatch, message)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._connected.clear()
            if self._client is not None:
                self._logger.warning("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect_async(config.host, config.port, keepalive=config.keepalive)
        client.loop_start()
        self._client = client
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Disconnect and stop the network loop if running."""
        client = self._client
        self._client = None
        self._connected.clear()
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    # ------------------------------------------------------------------
    # TelemetrySource
    # ------------------------------------------------------------------

    async def subscribe_active_trips(self, on_trips: TripsCallback) -> CallbackSubscription:
        def handle(payload: Any) -> None:
            if isinstance(payload, dict):
                payload = payload.get("trips", [])
            if not isinstance(payload, list):
                self._logger.warning("Ignoring active-trip payload of type %s", type(payload).__name__)
                return
            on_trips(payload)

        return self._subscribe(active_trips_topic(self._config.topic_prefix), handle)

    async def subscribe_trip(self, trip_id: str, on_sample: SampleCallback) -> CallbackSubscription:
        def handle(payload: Any) -> None:
            items = payload if isinstance(payload, list) else [payload]
            for item in items:
                on_sample(item)

        return self._subscribe(location_topic(self._config.topic_prefix, trip_id), handle, trip_id=trip_id)

    def _subscribe(
        self,
        topic: str,
        handler: Callable[[Any], None],
        *,
        trip_id: str | None = None,
    ) -> CallbackSubscription:
        client = self._client
        if client is None or not self.is_connected:
            raise FleetSubscriptionError("MQTT source is not connected", trip_id=trip_id, topic=topic)
        result, _mid = client.subscribe(topic, qos=self._config.qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise FleetSubscriptionError(
                f"MQTT subscribe rejected: {mqtt.error_string(result)}",
                trip_id=trip_id,
                topic=topic,
            )
        self._handlers[topic] = handler
        self._logger.debug("MQTT subscribed topic=%s", topic)
        return CallbackSubscription(lambda: self._unsubscribe(topic), name=topic)

    def _unsubscribe(self, topic: str) -> None:
        self._handlers.pop(topic, None)
        client = self._client
        if client is not None and self.is_connected:
            client.unsubscribe(topic)
        self._logger.debug("MQTT unsubscribed topic=%s", topic)

    def _dispatch(self, message: MqttMessage) -> None:
        handler = self._handlers.get(message.topic)
        if handler is None:
            return
        try:
            handler(message.payload)
        except Exception:
            self._logger.warning("MQTT handler failed topic=%s", message.topic, exc_info=True)
