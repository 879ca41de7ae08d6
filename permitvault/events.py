"""
PermitVault Events

Informational events for the external indexing collaborator. The core
emits them and never reads them back.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class EventType(str, Enum):
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    AUTHORIZATION_CONSUMED = "AuthorizationConsumed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Event:
    """Base event; subclasses set event_type."""
    emitted_at: datetime = field(default_factory=_now, compare=False)

    event_type = None

    def payload(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event_type.value,
            "emitted_at": self.emitted_at.isoformat().replace("+00:00", "Z"),
            **self.payload(),
        }


@dataclass(frozen=True)
class Deposit(Event):
    account: bytes = b""
    amount: int = 0

    event_type = EventType.DEPOSIT

    def payload(self) -> Dict[str, Any]:
        return {"account": "0x" + self.account.hex(), "amount": str(self.amount)}


@dataclass(frozen=True)
class Withdrawal(Event):
    recipient: bytes = b""
    amount: int = 0

    event_type = EventType.WITHDRAWAL

    def payload(self) -> Dict[str, Any]:
        return {"recipient": "0x" + self.recipient.hex(), "amount": str(self.amount)}


@dataclass(frozen=True)
class AuthorizationConsumed(Event):
    digest: bytes = b""
    recipient: bytes = b""
    consumer: bytes = b""

    event_type = EventType.AUTHORIZATION_CONSUMED

    def payload(self) -> Dict[str, Any]:
        return {
            "digest": "0x" + self.digest.hex(),
            "recipient": "0x" + self.recipient.hex(),
            "consumer": "0x" + self.consumer.hex(),
        }


class EventSink(ABC):
    """Where components publish events."""

    @abstractmethod
    def emit(self, event: Event) -> None:
        pass


class InMemoryEventLog(EventSink):
    """
    In-memory event log for development/testing.

    Bounded; the oldest events are dropped once max_records is exceeded.
    """

    def __init__(self, max_records: int = 10000):
        self._events: List[Event] = []
        self._lock = threading.Lock()
        self._max_records = max_records

    def emit(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)
            if len(self._events) > self._max_records:
                self._events = self._events[-self._max_records:]

    def query(self, event_type: Optional[EventType] = None) -> List[Event]:
        with self._lock:
            events = self._events[:]
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


class LoggingEventSink(EventSink):
    """
    Publishes events as structured log records for an external indexer.

    Pair with StructuredFormatter; the event payload lands in the JSON
    line under extra_fields.
    """

    def __init__(self, name: str = "permitvault.events", level: int = logging.INFO):
        self._logger = logging.getLogger(name)
        self._level = level

    def emit(self, event: Event) -> None:
        self._logger.log(
            self._level,
            "event %s",
            event.event_type.value,
            extra={"extra_fields": event.to_dict()},
        )


class FanoutEventSink(EventSink):
    """Forward each event to several sinks in order."""

    def __init__(self, *sinks: EventSink):
        self._sinks = list(sinks)

    def emit(self, event: Event) -> None:
        for sink in self._sinks:
            sink.emit(event)
