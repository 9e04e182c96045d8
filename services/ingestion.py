"""Background ingestion of broker messages into the reading store."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import asdict, dataclass, replace
from enum import Enum
from functools import lru_cache
from threading import Event, Lock
from typing import Any, Callable, Dict, Optional

from broker.events import BrokerError, BrokerEvent, EventKind, EventSource
from broker.mqtt import MqttSubscription
from datastore.base import DuplicateReadingError, ReadingStore, StoreError
from datastore.factory import build_default_store
from logging_config import preview_payload
from models.records import Reading, new_reading_id
from services.decoder import DecodeError, decode_message, parse_value
from settings import get_settings

logger = logging.getLogger(__name__)

# Identifier draws per reading before a collision counts as a store failure.
_ID_ATTEMPTS = 5


class IngestionState(str, Enum):
    """Lifecycle of the ingestion loop."""

    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    subscribed = "subscribed"
    stopped = "stopped"
    failed = "failed"


@dataclass
class IngestionStats:
    topic: str
    state: IngestionState = IngestionState.disconnected
    messages_received: int = 0
    readings_persisted: int = 0
    messages_dropped: int = 0
    store_failures: int = 0
    last_message_at: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


_CONNECTION_STATES = {
    EventKind.connected: IngestionState.connected,
    EventKind.subscribed: IngestionState.subscribed,
    EventKind.disconnected: IngestionState.disconnected,
}


class IngestionService:
    """Drives every published message through decode and persist.

    Messages are handled one at a time in delivery order on a single worker
    thread. Bad payloads and store failures are logged and skipped; only a
    failed subscription or a fatal transport closure ends the loop.
    """

    def __init__(
        self,
        source: EventSource,
        store: ReadingStore,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], int] = new_reading_id,
        poll_interval: float = 1.0,
    ) -> None:
        self.source = source
        self.store = store
        self.poll_interval = poll_interval
        self._clock = clock
        self._id_factory = id_factory
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tds-ingest")
        self._future: Optional[Future[None]] = None
        self._stop = Event()
        self._stats = IngestionStats(topic=source.topic)
        self._stats_lock = Lock()

    @property
    def stats(self) -> IngestionStats:
        with self._stats_lock:
            return replace(self._stats)

    @property
    def is_running(self) -> bool:
        return self._future is not None and not self._future.done()

    def start(self) -> None:
        """Run the loop on the background worker."""
        if self.is_running:
            return
        self._future = self.executor.submit(self.run)

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """Signal the loop to stop, unblock it, and release the worker."""
        self._stop.set()
        self.source.close()
        if self._future is not None:
            try:
                self._future.result(timeout=timeout)
            except FutureTimeoutError:
                logger.warning(
                    "Ingestion loop did not stop in time",
                    extra={"topic": self.source.topic},
                )
        self.executor.shutdown(wait=False, cancel_futures=True)

    def run(self) -> None:
        """Open the subscription and process events until stopped or closed."""
        self._set_state(IngestionState.connecting)
        try:
            self.source.open()
        except BrokerError as exc:
            self._set_state(IngestionState.failed)
            logger.error(
                "Failed to subscribe; ingestion loop exiting",
                extra={"topic": self.source.topic, "reason": str(exc)},
            )
            return

        self._set_state(IngestionState.subscribed)
        logger.info("Ingestion loop started", extra={"topic": self.source.topic})

        while not self._stop.is_set():
            event = self.source.next_event(timeout=self.poll_interval)
            if event is None:
                continue
            if event.kind is EventKind.closed:
                if event.fatal and not self._stop.is_set():
                    self._set_state(IngestionState.failed)
                    logger.error(
                        "Broker connection lost for good; ingestion loop exiting",
                        extra={"topic": self.source.topic, "reason": event.detail},
                    )
                    return
                break
            try:
                self.handle_event(event)
            except Exception:  # pragma: no cover
                with self._stats_lock:
                    self._stats.messages_dropped += 1
                logger.exception(
                    "Unexpected error while handling broker event",
                    extra={"topic": event.topic},
                )

        self._set_state(IngestionState.stopped)
        stats = self.stats
        logger.info(
            "Ingestion loop stopped (received=%d persisted=%d dropped=%d store_failures=%d)",
            stats.messages_received,
            stats.readings_persisted,
            stats.messages_dropped,
            stats.store_failures,
            extra={"topic": self.source.topic},
        )

    def handle_event(self, event: BrokerEvent) -> Optional[Reading]:
        if event.kind is not EventKind.publish:
            self._track_connection(event)
            return None

        with self._stats_lock:
            self._stats.messages_received += 1
            self._stats.last_message_at = self._clock()
        return self.ingest_payload(event.payload, topic=event.topic)

    def ingest_payload(self, payload: bytes | str, topic: Optional[str] = None) -> Optional[Reading]:
        """Decode one payload and persist it; ``None`` when it was dropped."""
        try:
            message = decode_message(payload)
            value = parse_value(message.tds_value)
        except DecodeError as exc:
            with self._stats_lock:
                self._stats.messages_dropped += 1
            logger.warning(
                "Dropping message that could not be decoded",
                extra={
                    "topic": topic,
                    "error_kind": exc.kind.value,
                    "reason": exc.detail,
                    "payload_preview": preview_payload(payload),
                },
            )
            return None

        observed_at = int(self._clock())
        try:
            reading = self._insert_with_fresh_id(value, observed_at)
        except StoreError as exc:
            with self._stats_lock:
                self._stats.store_failures += 1
            logger.error(
                "Failed to persist reading",
                extra={
                    "topic": topic,
                    "value_ppm": value,
                    "reason": str(exc),
                },
            )
            return None

        with self._stats_lock:
            self._stats.readings_persisted += 1
        logger.debug(
            "Persisted reading",
            extra={"topic": topic, "reading_id": reading.id, "value_ppm": reading.value_ppm},
        )
        return reading

    def _insert_with_fresh_id(self, value: float, observed_at: int) -> Reading:
        """Insert under a new identifier, drawing another one on a collision."""
        for _ in range(_ID_ATTEMPTS - 1):
            reading = Reading(id=self._id_factory(), value_ppm=value, observed_at=observed_at)
            try:
                self.store.insert(reading)
            except DuplicateReadingError:
                logger.info(
                    "Reading identifier already taken; retrying with a new one",
                    extra={"reading_id": reading.id},
                )
                continue
            return reading

        reading = Reading(id=self._id_factory(), value_ppm=value, observed_at=observed_at)
        self.store.insert(reading)
        return reading

    def _track_connection(self, event: BrokerEvent) -> None:
        state = _CONNECTION_STATES.get(event.kind)
        if state is None:
            return
        self._set_state(state)
        if state is IngestionState.disconnected:
            logger.warning(
                "Broker connection interrupted; waiting for reconnect",
                extra={"topic": self.source.topic, "reason": event.detail},
            )
        else:
            logger.info("Broker event", extra={"topic": self.source.topic, "state": state.value})

    def _set_state(self, state: IngestionState) -> None:
        with self._stats_lock:
            self._stats.state = state


@lru_cache
def build_default_ingestor() -> IngestionService:
    """Factory that wires the MQTT subscription to the default store."""
    settings = get_settings()
    source = MqttSubscription(
        host=settings.broker_host,
        port=settings.broker_port,
        topic=settings.topic,
        qos=settings.qos,
        client_id=settings.client_id,
        username=settings.broker_username,
        password=settings.broker_password,
        keepalive=settings.keepalive_seconds,
        connect_timeout=settings.connect_timeout,
    )
    return IngestionService(source=source, store=build_default_store())
