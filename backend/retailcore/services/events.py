# Overview: Outbound domain event publishers.

from __future__ import annotations

import logging
import threading

from ..ports import DomainEvent

logger = logging.getLogger(__name__)

STOCK_CHANGED = "stock.changed"
STOCK_LOW = "stock.low"
TRANSACTION_CREATED = "transaction.created"
TRANSACTION_CANCELLED = "transaction.cancelled"
TRANSFER_REQUESTED = "transfer.requested"
TRANSFER_DECIDED = "transfer.decided"
RETURN_REQUESTED = "return.requested"
RETURN_DECIDED = "return.decided"


class LoggingEventPublisher:
    """Default sink: writes each event to the application log."""

    def publish(self, event: DomainEvent) -> None:
        logger.info(
            "event %s tenant=%s payload=%s",
            event.event_type,
            event.tenant_id,
            event.payload,
        )


class InMemoryEventPublisher:
    """Keeps published events in a list. Used by tests and local tooling."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: str) -> list[DomainEvent]:
        with self._lock:
            return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()


def publish_events(publisher, events) -> None:
    """
    Best-effort delivery of committed events.

    A failing sink never fails the operation that produced the event.
    """
    if publisher is None:
        return
    for event in events:
        try:
            publisher.publish(event)
        except Exception:
            logger.exception("Failed to publish event %s", event.event_type)
