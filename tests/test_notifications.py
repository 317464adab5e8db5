"""Tests for booking event sinks."""

import logging

from salonbook.schemas.booking_schema import BookingEvent, EventKind
from salonbook.services.ledger import BookingLedger
from salonbook.services.notifications import (
    CompositeEventSink,
    EventOutbox,
    LoggingEventSink,
    publish_safely,
)

from conftest import BUSINESS_ID, at, booking_request


def make_event(kind=EventKind.CREATED, booking_id="b-1"):
    return BookingEvent(
        kind=kind, business_id=BUSINESS_ID, booking_id=booking_id, customer_id="c-1", staff_id="s-1"
    )


class ExplodingSink:
    def publish(self, event):
        raise RuntimeError("smtp down")


class TestEventOutbox:
    def test_drain_returns_in_order_and_clears(self):
        outbox = EventOutbox()
        outbox.publish(make_event(booking_id="b-1"))
        outbox.publish(make_event(booking_id="b-2"))
        assert [e.booking_id for e in outbox.peek()] == ["b-1", "b-2"]
        assert [e.booking_id for e in outbox.drain()] == ["b-1", "b-2"]
        assert outbox.drain() == []


class TestSinks:
    def test_logging_sink(self, caplog):
        with caplog.at_level(logging.INFO, logger="salonbook.services.notifications"):
            LoggingEventSink().publish(make_event(EventKind.CANCELLED))
        assert "booking_cancelled" in caplog.text

    def test_composite_isolates_failures(self):
        outbox = EventOutbox()
        CompositeEventSink(ExplodingSink(), outbox).publish(make_event())
        assert len(outbox.drain()) == 1

    def test_publish_safely_swallows_sink_errors(self, caplog):
        with caplog.at_level(logging.ERROR):
            publish_safely(ExplodingSink(), make_event())
        assert "Failed to publish" in caplog.text


class TestLedgerWithBrokenNotifier:
    def test_booking_still_committed(self, store, clock):
        ledger = BookingLedger(store, events=ExplodingSink(), clock=clock)
        result = ledger.create(BUSINESS_ID, booking_request(at(10)))
        assert result.is_success
        assert store.get_booking(BUSINESS_ID, result.data.id) is not None
