"""Fakes for driving the ingestion loop and HTTP layer without a broker."""

from __future__ import annotations

import json
import queue
from collections import deque
from typing import Iterable, List, Optional

from broker.events import BrokerError, BrokerEvent
from datastore.base import StoreUnavailableError
from models.records import Reading

TOPIC = "tds/topic"


def publish(payload: bytes | str) -> BrokerEvent:
    body = payload.encode("utf-8") if isinstance(payload, str) else payload
    return BrokerEvent.publish(TOPIC, body)


def tds_message(value: str) -> BrokerEvent:
    return publish(json.dumps({"tds_value": value}))


class ScriptedSource:
    """Replays a fixed list of events, then reports the stream as closed."""

    def __init__(
        self,
        events: Iterable[BrokerEvent] = (),
        open_error: Optional[BrokerError] = None,
    ) -> None:
        self.topic = TOPIC
        self.open_error = open_error
        self.opened = False
        self.closed = False
        self.polls = 0
        self._events = deque(events)

    def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    def next_event(self, timeout: Optional[float] = None) -> Optional[BrokerEvent]:
        self.polls += 1
        if self._events:
            return self._events.popleft()
        return BrokerEvent.closed("script exhausted")

    def close(self) -> None:
        self.closed = True


class QueueSource:
    """Blocks like a live subscription until events are pushed or it is closed."""

    def __init__(self) -> None:
        self.topic = TOPIC
        self.opened = False
        self.closed = False
        self._queue: "queue.Queue[BrokerEvent]" = queue.Queue()

    def push(self, event: BrokerEvent) -> None:
        self._queue.put(event)

    def open(self) -> None:
        self.opened = True

    def next_event(self, timeout: Optional[float] = None) -> Optional[BrokerEvent]:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put(BrokerEvent.closed("closed by test"))


class UnavailableStore:
    """Store whose backend is unreachable for every operation."""

    max_limit = 60

    def insert(self, reading: Reading) -> None:
        raise StoreUnavailableError("connection refused")

    def latest(self) -> Optional[Reading]:
        raise StoreUnavailableError("connection refused")

    def recent(self, limit: int) -> List[Reading]:
        raise StoreUnavailableError("connection refused")
