"""
Domain events emitted after a successful commit.

Publishing is fire-and-forget relative to the database transaction:
the transaction is already committed when publish() is called, and
a publisher failure is logged, never raised.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    name: str
    tenant_id: str
    payload: dict[str, Any]
    occurred_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class EventPublisher:
    """Transport-agnostic publisher. Subclasses deliver the event."""

    def publish(self, event: DomainEvent) -> None:
        raise NotImplementedError


class LoggingEventPublisher(EventPublisher):
    """Default publisher: writes events to the application log."""

    def publish(self, event: DomainEvent) -> None:
        logger.info(
            "event %s tenant=%s payload=%s",
            event.name, event.tenant_id, event.payload,
        )


class RecordingEventPublisher(EventPublisher):
    """Keeps published events in memory, in order."""

    def __init__(self):
        self.events: list[DomainEvent] = []

    def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [e.name for e in self.events]


_default_publisher: EventPublisher = LoggingEventPublisher()


def get_event_publisher() -> EventPublisher:
    return _default_publisher


def publish_after_commit(
    publisher: EventPublisher,
    name: str,
    tenant_id: str,
    **payload: Any,
) -> None:
    """Publish an event for an already-committed change."""
    event = DomainEvent(name=name, tenant_id=tenant_id, payload=payload)
    try:
        publisher.publish(event)
    except Exception:
        logger.warning("Failed to publish event %s", name, exc_info=True)
