"""Broker events as seen by the ingestion loop."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol


class EventKind(str, Enum):
    connected = "connected"
    subscribed = "subscribed"
    disconnected = "disconnected"
    publish = "publish"
    closed = "closed"


@dataclass(frozen=True, slots=True)
class BrokerEvent:
    """One item of the subscription's event stream.

    Only ``publish`` events carry a payload. A ``closed`` event ends the
    stream; ``fatal`` marks closures the transport could not recover from.
    """

    kind: EventKind
    topic: Optional[str] = None
    payload: bytes = b""
    detail: Optional[str] = None
    fatal: bool = False

    @classmethod
    def publish(cls, topic: str, payload: bytes) -> "BrokerEvent":
        return cls(kind=EventKind.publish, topic=topic, payload=payload)

    @classmethod
    def closed(cls, detail: str, fatal: bool = False) -> "BrokerEvent":
        return cls(kind=EventKind.closed, detail=detail, fatal=fatal)


class BrokerError(RuntimeError):
    """Base class for transport failures."""


class BrokerConnectionError(BrokerError):
    """The broker could not be reached or refused the connection."""


class SubscriptionError(BrokerError):
    """The broker rejected the topic subscription."""


class EventSource(Protocol):
    topic: str

    def open(self) -> None:
        """Connect and subscribe; raises ``BrokerError`` on failure."""

    def next_event(self, timeout: Optional[float] = None) -> Optional[BrokerEvent]:
        """Block for the next event; ``None`` when ``timeout`` elapses first."""

    def close(self) -> None: ...
