"""paho-mqtt subscription exposed as a blocking event stream."""

from __future__ import annotations

import logging
import queue
from threading import Event, Lock
from typing import List, Optional

import paho.mqtt.client as mqtt

from broker.events import (
    BrokerConnectionError,
    BrokerEvent,
    EventKind,
    SubscriptionError,
)

logger = logging.getLogger(__name__)

# CONNACK refusals that retrying with the same credentials cannot fix:
# client identifier not valid, bad user name or password, not authorized.
_FATAL_CONNECT_CODES = frozenset({133, 134, 135})


class MqttSubscription:
    """Single-topic MQTT subscription.

    paho runs its network loop on a background thread and reconnects on its
    own; every callback is turned into a ``BrokerEvent`` on an internal queue
    that the ingestion loop drains with ``next_event``.
    """

    def __init__(
        self,
        host: str,
        port: int,
        topic: str,
        qos: int = 0,
        client_id: str = "tds-bridge",
        username: Optional[str] = None,
        password: Optional[str] = None,
        keepalive: int = 5,
        connect_timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.topic = topic
        self.qos = qos
        self.client_id = client_id
        self.username = username
        self.password = password
        self.keepalive = keepalive
        self.connect_timeout = connect_timeout

        self._events: "queue.Queue[BrokerEvent]" = queue.Queue()
        self._client: Optional[mqtt.Client] = None
        self._connack = Event()
        self._connack_code = None
        self._suback = Event()
        self._suback_codes: List = []
        self._opened = False
        self._closed = False
        self._lock = Lock()

    @property
    def broker(self) -> str:
        return f"{self.host}:{self.port}"

    def open(self) -> None:
        client = self._build_client()
        self._client = client

        logger.info("Connecting to MQTT broker", extra={"broker": self.broker})
        try:
            client.connect(self.host, self.port, keepalive=self.keepalive)
        except (OSError, ValueError) as exc:
            raise BrokerConnectionError(f"Could not reach broker {self.broker}: {exc}") from exc
        client.loop_start()

        if not self._connack.wait(self.connect_timeout):
            self._shutdown_client()
            raise BrokerConnectionError(
                f"Timed out waiting for broker {self.broker} to accept the connection."
            )
        if self._connack_code is not None and self._connack_code.is_failure:
            self._shutdown_client()
            raise BrokerConnectionError(
                f"Broker {self.broker} refused the connection: {self._connack_code}"
            )

        result, _mid = client.subscribe(self.topic, qos=self.qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._shutdown_client()
            raise SubscriptionError(
                f"Could not subscribe to {self.topic!r}: {mqtt.error_string(result)}"
            )
        if not self._suback.wait(self.connect_timeout):
            self._shutdown_client()
            raise SubscriptionError(f"Timed out waiting for subscription to {self.topic!r}.")
        rejected = [code for code in self._suback_codes if code.is_failure]
        if rejected:
            self._shutdown_client()
            raise SubscriptionError(f"Broker rejected subscription to {self.topic!r}: {rejected[0]}")

        self._opened = True
        logger.info(
            "Subscribed to topic",
            extra={"topic": self.topic, "broker": self.broker},
        )

    def next_event(self, timeout: Optional[float] = None) -> Optional[BrokerEvent]:
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._shutdown_client()
        self._events.put(BrokerEvent.closed("subscription closed"))
        logger.info("MQTT subscription closed", extra={"broker": self.broker})

    def _build_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
            clean_session=True,
        )
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message
        if self.username:
            client.username_pw_set(self.username, self.password)
        client.reconnect_delay_set(min_delay=1, max_delay=30)
        return client

    def _shutdown_client(self) -> None:
        if self._client is None:
            return
        self._client.disconnect()
        self._client.loop_stop()

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if not self._opened:
            self._connack_code = reason_code
            self._connack.set()
            if not reason_code.is_failure:
                self._events.put(BrokerEvent(kind=EventKind.connected))
            return

        if reason_code.is_failure:
            if reason_code.value in _FATAL_CONNECT_CODES:
                logger.error(
                    "Broker refused reconnection",
                    extra={"broker": self.broker, "reason": str(reason_code)},
                )
                client.disconnect()
                self._events.put(BrokerEvent.closed(str(reason_code), fatal=True))
            else:
                self._events.put(
                    BrokerEvent(kind=EventKind.disconnected, detail=str(reason_code))
                )
            return

        self._events.put(BrokerEvent(kind=EventKind.connected))
        # Clean sessions drop subscriptions, so every reconnect subscribes again.
        result, _mid = client.subscribe(self.topic, qos=self.qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.warning(
                "Resubscribe request failed",
                extra={"topic": self.topic, "reason": mqtt.error_string(result)},
            )

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None) -> None:
        if not self._opened:
            self._suback_codes = list(reason_code_list)
            self._suback.set()
            if not any(code.is_failure for code in reason_code_list):
                self._events.put(BrokerEvent(kind=EventKind.subscribed, topic=self.topic))
            return

        rejected = [code for code in reason_code_list if code.is_failure]
        if rejected:
            logger.error(
                "Broker rejected resubscription",
                extra={"topic": self.topic, "reason": str(rejected[0])},
            )
            client.disconnect()
            self._events.put(BrokerEvent.closed(str(rejected[0]), fatal=True))
            return
        self._events.put(BrokerEvent(kind=EventKind.subscribed, topic=self.topic))

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if self._closed:
            return
        logger.warning(
            "Disconnected from MQTT broker",
            extra={"broker": self.broker, "reason": str(reason_code)},
        )
        self._events.put(BrokerEvent(kind=EventKind.disconnected, detail=str(reason_code)))

    def _on_message(self, client, userdata, message) -> None:
        self._events.put(BrokerEvent.publish(message.topic, bytes(message.payload)))
