"""Tests for the booking ledger: admission, rescheduling and status changes."""

import threading
from datetime import datetime
from decimal import Decimal

import pytest

from salonbook.schemas.booking_schema import BookingStatus, EventKind
from salonbook.schemas.customer_schema import Customer
from salonbook.schemas.result_schema import ErrorCode
from salonbook.scheduling.state_machine import BookingStateMachine
from salonbook.services.ledger import BookingLedger
from salonbook.store.base import customer_lock

from conftest import (
    ANNA,
    BUSINESS_ID,
    COLOUR,
    CUT,
    DAY,
    ERIK,
    RETIRED,
    at,
    booking_request,
)


@pytest.fixture
def booked(ledger):
    """A confirmed 10:00-10:30 haircut with Anna."""
    result = ledger.create(BUSINESS_ID, booking_request(at(10)))
    assert result.is_success
    return result.data


class TestCreate:
    def test_creates_confirmed_booking(self, ledger, outbox):
        result = ledger.create(BUSINESS_ID, booking_request(at(10)))
        assert result.is_success
        assert result.status_code == 201
        booking = result.data
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.start_time == at(10)
        assert booking.end_time == at(10, 30)
        assert [e.kind for e in outbox.drain()] == [EventKind.CREATED]

    def test_snapshots_price_and_buffers(self, ledger):
        booking = ledger.create(BUSINESS_ID, booking_request(at(10), service_id=COLOUR)).data
        assert booking.price == Decimal("900.00")
        assert booking.currency == "SEK"
        assert booking.buffer_after_minutes == 15

    def test_accepts_iso_strings(self, ledger):
        result = ledger.create(BUSINESS_ID, booking_request("2025-03-17T10:00:00+00:00"))
        assert result.is_success
        assert result.data.start_time == at(10)

    def test_overlapping_booking_rejected(self, ledger, booked):
        result = ledger.create(
            BUSINESS_ID, booking_request(at(10, 15), email="other@example.com")
        )
        assert not result.is_success
        assert result.error.code == ErrorCode.SLOT_NOT_AVAILABLE
        assert result.status_code == 409
        assert booked.id in result.error.details

    def test_back_to_back_allowed(self, ledger, booked):
        assert ledger.create(BUSINESS_ID, booking_request(at(10, 30))).is_success
        assert ledger.create(BUSINESS_ID, booking_request(at(9, 30))).is_success

    def test_other_staff_same_time_allowed(self, ledger, booked):
        assert ledger.create(BUSINESS_ID, booking_request(at(10), staff_id=ERIK)).is_success

    def test_cancelled_booking_frees_slot(self, ledger, booked):
        ledger.cancel(BUSINESS_ID, booked.id)
        assert ledger.create(BUSINESS_ID, booking_request(at(10))).is_success

    def test_past_start_rejected(self, ledger, clock):
        clock.now = at(12)
        result = ledger.create(BUSINESS_ID, booking_request(at(11)))
        assert result.error.code == ErrorCode.SLOT_NOT_AVAILABLE
        assert "past" in result.error.details

    def test_outside_working_hours_rejected(self, ledger):
        result = ledger.create(BUSINESS_ID, booking_request(at(8, 30)))
        assert result.error.code == ErrorCode.SLOT_NOT_AVAILABLE

    def test_day_off_rejected(self, ledger):
        sunday = datetime(2025, 3, 16, 10, 0, tzinfo=at(10).tzinfo)
        result = ledger.create(BUSINESS_ID, booking_request(sunday))
        assert result.error.code == ErrorCode.SLOT_NOT_AVAILABLE


class TestCreateValidation:
    def test_naive_start_rejected(self, ledger):
        result = ledger.create(BUSINESS_ID, booking_request(datetime(2025, 3, 17, 10, 0)))
        assert result.error.code == ErrorCode.VALIDATION_FAILED
        assert result.validation_errors[0].field == "start_time"

    def test_missing_customer_rejected(self, ledger):
        result = ledger.create(BUSINESS_ID, booking_request(at(10), email=None))
        assert result.error.code == ErrorCode.VALIDATION_FAILED
        assert result.validation_errors[0].field == "customer_email"

    def test_unknown_field_rejected(self, ledger):
        result = ledger.create(BUSINESS_ID, booking_request(at(10), price="1"))
        assert result.error.code == ErrorCode.VALIDATION_FAILED

    def test_unknown_service(self, ledger):
        result = ledger.create(BUSINESS_ID, booking_request(at(10), service_id="nope"))
        assert result.error.code == ErrorCode.SERVICE_NOT_FOUND

    def test_inactive_service(self, ledger):
        result = ledger.create(BUSINESS_ID, booking_request(at(10), service_id=RETIRED))
        assert result.error.code == ErrorCode.SERVICE_NOT_FOUND

    def test_unknown_staff(self, ledger):
        result = ledger.create(BUSINESS_ID, booking_request(at(10), staff_id="nope"))
        assert result.error.code == ErrorCode.STAFF_NOT_FOUND
        assert result.status_code == 404

    def test_unqualified_staff(self, ledger):
        result = ledger.create(BUSINESS_ID, booking_request(at(10), staff_id=ERIK, service_id=COLOUR))
        assert result.error.code == ErrorCode.BAD_REQUEST

    def test_unknown_customer_id(self, ledger):
        result = ledger.create(BUSINESS_ID, booking_request(at(10), customer_id="nope"))
        assert result.error.code == ErrorCode.CUSTOMER_NOT_FOUND
        assert result.status_code == 404

    def test_unknown_business(self, ledger):
        result = ledger.create("nope", booking_request(at(10)))
        assert result.error.code == ErrorCode.BUSINESS_NOT_FOUND


class TestCustomerResolution:
    def test_guest_email_reused(self, ledger, store):
        first = ledger.create(BUSINESS_ID, booking_request(at(10), email="lisa@example.com")).data
        second = ledger.create(BUSINESS_ID, booking_request(at(11), email="Lisa@Example.com ")).data
        assert first.customer_id == second.customer_id
        customers = store.list_customers(BUSINESS_ID)
        assert len(customers) == 1
        assert customers[0].total_bookings == 2

    def test_guest_details_stored(self, ledger, store):
        booking = ledger.create(
            BUSINESS_ID,
            booking_request(
                at(10),
                email="lisa@example.com",
                customer_first_name="Lisa",
                customer_last_name="Berg",
                customer_phone_number="070 123 45 67",
            ),
        ).data
        customer = store.get_customer(BUSINESS_ID, booking.customer_id)
        assert customer.full_name == "Lisa Berg"
        assert customer.phone_number == "0701234567"

    def test_known_customer_by_id(self, ledger, store):
        store.save_customer(Customer(id="cust-1", business_id=BUSINESS_ID, email="k@example.com"))
        booking = ledger.create(BUSINESS_ID, booking_request(at(10), customer_id="cust-1")).data
        assert booking.customer_id == "cust-1"
        assert store.get_customer(BUSINESS_ID, "cust-1").total_bookings == 1

    def test_customer_of_other_business_not_found(self, ledger, store):
        store.save_customer(Customer(id="cust-x", business_id="biz-2", email="x@example.com"))
        result = ledger.create(BUSINESS_ID, booking_request(at(10), customer_id="cust-x"))
        assert result.error.code == ErrorCode.CUSTOMER_NOT_FOUND

    def test_rejected_booking_creates_no_guest(self, ledger, store, booked):
        ledger.create(BUSINESS_ID, booking_request(at(10), email="new@example.com"))
        assert store.find_customer_by_email(BUSINESS_ID, "new@example.com") is None


class TestGuestConfirmationPolicy:
    @pytest.fixture
    def strict_ledger(self, store, aggregation, outbox, clock):
        return BookingLedger(
            store, aggregation, outbox, clock,
            state_machine=BookingStateMachine(allow_complete_from_pending=False),
            guest_bookings_require_confirmation=True,
        )

    def test_guest_booking_pending(self, strict_ledger):
        booking = strict_ledger.create(BUSINESS_ID, booking_request(at(10))).data
        assert booking.status == BookingStatus.PENDING

    def test_known_customer_confirmed(self, strict_ledger, store):
        store.save_customer(Customer(id="cust-1", business_id=BUSINESS_ID, email="k@example.com"))
        booking = strict_ledger.create(BUSINESS_ID, booking_request(at(10), customer_id="cust-1")).data
        assert booking.status == BookingStatus.CONFIRMED

    def test_pending_blocks_slot(self, strict_ledger):
        strict_ledger.create(BUSINESS_ID, booking_request(at(10)))
        result = strict_ledger.create(BUSINESS_ID, booking_request(at(10), email="b@example.com"))
        assert result.error.code == ErrorCode.SLOT_NOT_AVAILABLE

    def test_confirm_then_complete(self, strict_ledger):
        booking = strict_ledger.create(BUSINESS_ID, booking_request(at(10))).data
        assert strict_ledger.complete(BUSINESS_ID, booking.id).error.code == ErrorCode.BAD_REQUEST
        assert strict_ledger.confirm(BUSINESS_ID, booking.id).data.status == BookingStatus.CONFIRMED
        assert strict_ledger.complete(BUSINESS_ID, booking.id).data.status == BookingStatus.COMPLETED

    def test_no_show_from_pending_rejected(self, strict_ledger):
        booking = strict_ledger.create(BUSINESS_ID, booking_request(at(10))).data
        assert strict_ledger.mark_no_show(BUSINESS_ID, booking.id).error.code == ErrorCode.BAD_REQUEST


class TestAutoAssignment:
    def test_assigns_least_loaded_staff(self, ledger):
        ledger.create(BUSINESS_ID, booking_request(at(9), staff_id=ANNA))
        booking = ledger.create(BUSINESS_ID, booking_request(at(14), staff_id=None)).data
        assert booking.staff_id == ERIK

    def test_falls_back_when_first_choice_busy(self, ledger):
        ledger.create(BUSINESS_ID, booking_request(at(10), staff_id=ERIK))
        ledger.create(BUSINESS_ID, booking_request(at(11), staff_id=ERIK))
        ledger.create(BUSINESS_ID, booking_request(at(10), staff_id=ANNA))
        # Anna is less loaded but busy at 10:00, Erik too: nobody left
        result = ledger.create(BUSINESS_ID, booking_request(at(10), staff_id=None))
        assert result.error.code == ErrorCode.SLOT_NOT_AVAILABLE
        # at 11:00 the less loaded Anna is free
        assert ledger.create(BUSINESS_ID, booking_request(at(11), staff_id=None)).data.staff_id == ANNA

    def test_only_qualified_staff_assigned(self, ledger):
        booking = ledger.create(BUSINESS_ID, booking_request(at(10), staff_id=None, service_id=COLOUR)).data
        assert booking.staff_id == ANNA


class TestUpdate:
    def test_notes_only(self, ledger, booked, outbox):
        outbox.drain()
        result = ledger.update(BUSINESS_ID, booked.id, {"notes": "bring photos"})
        assert result.data.notes == "bring photos"
        assert result.data.start_time == booked.start_time
        assert outbox.drain() == []

    def test_reschedule_keeps_duration(self, ledger, booked, outbox):
        outbox.drain()
        result = ledger.update(BUSINESS_ID, booked.id, {"start_time": at(14)})
        assert result.data.start_time == at(14)
        assert result.data.end_time == at(14, 30)
        assert [e.kind for e in outbox.drain()] == [EventKind.RESCHEDULED]

    def test_reschedule_uses_snapshotted_duration(self, ledger, booked, store):
        service = store.get_service(BUSINESS_ID, CUT)
        store.save_service(service.model_copy(update={"duration_minutes": 90}))
        result = ledger.update(BUSINESS_ID, booked.id, {"start_time": at(14)})
        assert result.data.end_time == at(14, 30)

    def test_overlap_with_own_interval_allowed(self, ledger, booked):
        result = ledger.update(BUSINESS_ID, booked.id, {"start_time": at(10, 15)})
        assert result.is_success

    def test_reschedule_onto_other_booking_rejected(self, ledger, booked):
        other = ledger.create(BUSINESS_ID, booking_request(at(11))).data
        result = ledger.update(BUSINESS_ID, other.id, {"start_time": at(10)})
        assert result.error.code == ErrorCode.SLOT_NOT_AVAILABLE
        assert ledger.get(BUSINESS_ID, other.id).data.start_time == at(11)

    def test_move_to_other_staff(self, ledger, booked):
        result = ledger.update(BUSINESS_ID, booked.id, {"staff_id": ERIK})
        assert result.data.staff_id == ERIK
        assert ledger.create(BUSINESS_ID, booking_request(at(10), staff_id=ANNA)).is_success

    def test_move_to_unqualified_staff_rejected(self, ledger):
        booking = ledger.create(BUSINESS_ID, booking_request(at(10), service_id=COLOUR)).data
        result = ledger.update(BUSINESS_ID, booking.id, {"staff_id": ERIK})
        assert result.error.code == ErrorCode.BAD_REQUEST

    def test_reschedule_outside_hours_rejected(self, ledger, booked):
        result = ledger.update(BUSINESS_ID, booked.id, {"start_time": at(20)})
        assert result.error.code == ErrorCode.SLOT_NOT_AVAILABLE

    @pytest.mark.parametrize("finish", ["cancel", "complete", "mark_no_show"])
    def test_terminal_booking_cannot_be_updated(self, ledger, booked, finish):
        getattr(ledger, finish)(BUSINESS_ID, booked.id)
        result = ledger.update(BUSINESS_ID, booked.id, {"notes": "late"})
        assert result.error.code == ErrorCode.BAD_REQUEST

    def test_unknown_booking(self, ledger):
        result = ledger.update(BUSINESS_ID, "nope", {"notes": "x"})
        assert result.error.code == ErrorCode.BOOKING_NOT_FOUND


class TestStatusChanges:
    def test_cancel_records_reason_and_actor(self, ledger, booked, clock):
        result = ledger.cancel(BUSINESS_ID, booked.id, reason="ill", actor_id="customer")
        booking = result.data
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancellation_reason == "ill"
        assert booking.cancelled_by == "customer"
        assert booking.cancelled_at == clock.now

    def test_cancel_actor_defaults_to_staff(self, ledger, booked):
        assert ledger.cancel(BUSINESS_ID, booked.id).data.cancelled_by == "staff"

    def test_cancel_twice(self, ledger, booked):
        ledger.cancel(BUSINESS_ID, booked.id)
        result = ledger.cancel(BUSINESS_ID, booked.id)
        assert result.error.code == ErrorCode.BOOKING_ALREADY_CANCELLED
        assert result.status_code == 400

    @pytest.mark.parametrize("finish", ["complete", "mark_no_show"])
    def test_cancel_after_visit_rejected(self, ledger, booked, finish):
        getattr(ledger, finish)(BUSINESS_ID, booked.id)
        assert ledger.cancel(BUSINESS_ID, booked.id).error.code == ErrorCode.BAD_REQUEST

    def test_confirm_already_confirmed_rejected(self, ledger, booked):
        assert ledger.confirm(BUSINESS_ID, booked.id).error.code == ErrorCode.BAD_REQUEST

    def test_complete_cancelled_rejected(self, ledger, booked):
        ledger.cancel(BUSINESS_ID, booked.id)
        assert ledger.complete(BUSINESS_ID, booked.id).error.code == ErrorCode.BAD_REQUEST

    def test_no_show_keeps_occupying(self, ledger, booked):
        ledger.mark_no_show(BUSINESS_ID, booked.id)
        result = ledger.create(BUSINESS_ID, booking_request(at(10), email="b@example.com"))
        assert result.error.code == ErrorCode.SLOT_NOT_AVAILABLE

    def test_events_in_order(self, ledger, booked, outbox):
        ledger.complete(BUSINESS_ID, booked.id)
        kinds = [e.kind for e in outbox.drain()]
        assert kinds == [EventKind.CREATED, EventKind.COMPLETED]

    def test_missing_booking(self, ledger):
        assert ledger.cancel(BUSINESS_ID, "nope").error.code == ErrorCode.BOOKING_NOT_FOUND

    def test_booking_of_other_business_not_visible(self, ledger, booked):
        assert ledger.get("biz-2", booked.id).error.code == ErrorCode.BOOKING_NOT_FOUND


class TestDelete:
    def test_delete_removes_and_refreshes(self, ledger, booked, store, outbox):
        result = ledger.delete(BUSINESS_ID, booked.id)
        assert result.is_success
        assert ledger.get(BUSINESS_ID, booked.id).error.code == ErrorCode.BOOKING_NOT_FOUND
        assert store.get_customer(BUSINESS_ID, booked.customer_id).total_bookings == 0
        assert outbox.drain()[-1].kind == EventKind.DELETED

    def test_delete_missing(self, ledger):
        assert ledger.delete(BUSINESS_ID, "nope").error.code == ErrorCode.BOOKING_NOT_FOUND


class TestAfterCommit:
    @pytest.fixture
    def busy_customer(self, store, booked):
        """Hold the customer's lock on another thread with a short lock timeout."""
        store.locks.timeout_seconds = 0.1
        held = threading.Event()
        release = threading.Event()

        def holder():
            with store.locked([customer_lock(booked.customer_id)]):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(5)
        yield booked.customer_id
        release.set()
        thread.join()

    def test_committed_booking_reported_when_totals_refresh_times_out(
        self, ledger, store, outbox, busy_customer
    ):
        outbox.drain()
        result = ledger.create(BUSINESS_ID, booking_request(at(11)))
        assert result.is_success
        assert result.status_code == 201
        assert result.data.customer_id == busy_customer
        assert store.get_booking(BUSINESS_ID, result.data.id) is not None
        assert [e.kind for e in outbox.drain()] == [EventKind.CREATED]

    def test_stale_totals_are_repairable(self, ledger, store, aggregation, busy_customer):
        ledger.create(BUSINESS_ID, booking_request(at(11)))
        assert aggregation.find_drift(BUSINESS_ID) == [busy_customer]

    def test_cancel_still_succeeds(self, ledger, booked, outbox, busy_customer):
        outbox.drain()
        result = ledger.cancel(BUSINESS_ID, booked.id)
        assert result.data.status == BookingStatus.CANCELLED
        assert [e.kind for e in outbox.drain()] == [EventKind.CANCELLED]


class TestListing:
    @pytest.fixture
    def several(self, ledger):
        bookings = [
            ledger.create(BUSINESS_ID, booking_request(at(hour), staff_id=staff)).data
            for hour, staff in [(13, ANNA), (9, ERIK), (11, ANNA), (15, ERIK)]
        ]
        ledger.cancel(BUSINESS_ID, bookings[0].id)
        return bookings

    def test_sorted_by_start(self, ledger, several):
        page = ledger.list(BUSINESS_ID).data
        assert [b.start_time for b in page.items] == [at(9), at(11), at(13), at(15)]
        assert page.total_count == 4

    def test_filter_by_status_and_staff(self, ledger, several):
        cancelled = ledger.list(BUSINESS_ID, status=BookingStatus.CANCELLED).data
        assert [b.id for b in cancelled.items] == [several[0].id]
        erik = ledger.list(BUSINESS_ID, staff_id=ERIK).data
        assert {b.staff_id for b in erik.items} == {ERIK}

    def test_filter_by_start_range(self, ledger, several):
        page = ledger.list(BUSINESS_ID, start=at(10), end=at(13)).data
        assert [b.start_time for b in page.items] == [at(11), at(13)]

    def test_pagination(self, ledger, several):
        page = ledger.list(BUSINESS_ID, page=2, page_size=3).data
        assert len(page.items) == 1
        assert page.total_pages == 2
        assert page.has_previous_page
        assert not page.has_next_page

    def test_upcoming_excludes_cancelled_and_past(self, ledger, several, clock):
        clock.now = at(10)
        upcoming = ledger.upcoming(BUSINESS_ID).data
        assert [b.start_time for b in upcoming] == [at(11), at(15)]

    def test_upcoming_limit(self, ledger, several):
        assert len(ledger.upcoming(BUSINESS_ID, limit=1).data) == 1

    def test_get(self, ledger, several):
        assert ledger.get(BUSINESS_ID, several[1].id).data.start_time == at(9)


class TestBookingScenarios:
    """End-to-end: book, collide, cancel, see the slot free again."""

    def test_book_conflict_cancel_rebook(self, ledger, availability):
        grid = availability.get_availability(BUSINESS_ID, CUT, DAY, ANNA).data
        assert all(s.is_available for s in grid.slots)

        booking = ledger.create(BUSINESS_ID, booking_request(at(10))).data
        overlapping = ledger.create(
            BUSINESS_ID, booking_request(at(10, 15), email="late@example.com")
        )
        assert overlapping.error.code == ErrorCode.SLOT_NOT_AVAILABLE

        ledger.cancel(BUSINESS_ID, booking.id)
        slots = {s.start_time: s for s in availability.get_availability(BUSINESS_ID, CUT, DAY, ANNA).data.slots}
        assert slots[at(10)].is_available
