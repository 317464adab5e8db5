"""
Booking event sinks.

The ledger publishes an event after each committed mutation. Delivery
(email, SMS, webhooks) belongs to an external notifier that drains these
sinks; a sink failure is logged and never fails the booking operation.
"""

import logging
import threading
from typing import Protocol

from salonbook.schemas.booking_schema import BookingEvent

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def publish(self, event: BookingEvent) -> None: ...


class EventOutbox:
    """Thread-safe in-memory outbox drained by the notifier."""

    def __init__(self) -> None:
        self._events: list[BookingEvent] = []
        self._lock = threading.Lock()

    def publish(self, event: BookingEvent) -> None:
        with self._lock:
            self._events.append(event)

    def drain(self) -> list[BookingEvent]:
        """Return and clear all pending events in publish order."""
        with self._lock:
            events, self._events = self._events, []
        return events

    def peek(self) -> list[BookingEvent]:
        with self._lock:
            return list(self._events)


class LoggingEventSink:
    """Writes each event to the log; useful in the console demo."""

    def publish(self, event: BookingEvent) -> None:
        logger.info(
            "Event %s: booking=%s staff=%s customer=%s",
            event.kind.value, event.booking_id, event.staff_id, event.customer_id,
        )


class CompositeEventSink:
    """Fans an event out to several sinks, isolating their failures."""

    def __init__(self, *sinks: EventSink) -> None:
        self.sinks = list(sinks)

    def publish(self, event: BookingEvent) -> None:
        for sink in self.sinks:
            try:
                sink.publish(event)
            except Exception:
                logger.exception("Event sink %s failed for %s", type(sink).__name__, event.kind.value)


def publish_safely(sink: EventSink, event: BookingEvent) -> None:
    """Publish without letting a notifier problem unwind a committed write."""
    try:
        sink.publish(event)
    except Exception:
        logger.exception("Failed to publish %s for booking %s", event.kind.value, event.booking_id)
