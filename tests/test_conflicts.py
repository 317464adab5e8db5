"""Tests for buffer-aware conflict detection."""

from decimal import Decimal

from salonbook.schemas.booking_schema import Booking, BookingStatus
from salonbook.scheduling.calendar import Interval
from salonbook.scheduling.conflicts import Candidate, find_conflicts, footprint, has_conflict

from conftest import ANNA, BUSINESS_ID, CUT, at


def make_booking(start, end, status=BookingStatus.CONFIRMED, before=0, after=0, booking_id="b-1"):
    return Booking(
        id=booking_id,
        business_id=BUSINESS_ID,
        customer_id="c-1",
        staff_id=ANNA,
        service_id=CUT,
        start_time=start,
        end_time=end,
        status=status,
        price=Decimal("300"),
        currency="SEK",
        buffer_before_minutes=before,
        buffer_after_minutes=after,
    )


def candidate(start, end, before=0, after=0):
    return Candidate(Interval(start, end), before, after)


class TestFootprint:
    def test_includes_buffers(self):
        booking = make_booking(at(10), at(10, 30), before=5, after=10)
        assert footprint(booking) == Interval(at(9, 55), at(10, 40))


class TestFindConflicts:
    def test_overlap_is_a_conflict(self):
        existing = make_booking(at(10), at(10, 30))
        assert find_conflicts(candidate(at(10, 15), at(10, 45)), [existing]) == [existing]

    def test_back_to_back_is_free(self):
        existing = make_booking(at(10), at(10, 30))
        assert not has_conflict(candidate(at(10, 30), at(11)), [existing])
        assert not has_conflict(candidate(at(9, 30), at(10)), [existing])

    def test_existing_buffer_blocks_following_slot(self):
        existing = make_booking(at(10), at(10, 30), after=15)
        assert has_conflict(candidate(at(10, 30), at(11)), [existing])
        assert not has_conflict(candidate(at(10, 45), at(11, 15)), [existing])

    def test_candidate_buffer_blocks_preceding_booking(self):
        existing = make_booking(at(10), at(10, 30))
        assert has_conflict(candidate(at(10, 30), at(11), before=10), [existing])

    def test_cancelled_bookings_never_block(self):
        existing = make_booking(at(10), at(10, 30), status=BookingStatus.CANCELLED)
        assert not has_conflict(candidate(at(10), at(10, 30)), [existing])

    def test_completed_and_no_show_still_block(self):
        for status in (BookingStatus.COMPLETED, BookingStatus.NO_SHOW, BookingStatus.PENDING):
            existing = make_booking(at(10), at(10, 30), status=status)
            assert has_conflict(candidate(at(10), at(10, 30)), [existing]), status

    def test_excluded_booking_is_ignored(self):
        existing = make_booking(at(10), at(10, 30), booking_id="self")
        assert not has_conflict(candidate(at(10, 15), at(10, 45)), [existing], "self")

    def test_returns_every_overlapping_booking(self):
        first = make_booking(at(10), at(10, 30), booking_id="b-1")
        second = make_booking(at(10, 30), at(11), booking_id="b-2")
        third = make_booking(at(12), at(12, 30), booking_id="b-3")
        found = find_conflicts(candidate(at(10, 15), at(10, 45)), [first, second, third])
        assert [b.id for b in found] == ["b-1", "b-2"]
