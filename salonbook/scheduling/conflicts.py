"""
Conflict detection between a candidate interval and existing bookings.

A booking occupies its buffer-padded footprint unless it is cancelled.
Completed and no-show bookings still occupy: that time was genuinely used.
The candidate is padded with its own service buffers as well, so no two
occupying footprints of the same staff member ever overlap.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from salonbook.schemas.booking_schema import Booking
from salonbook.scheduling.calendar import Interval


@dataclass(frozen=True)
class Candidate:
    """A proposed booking interval with the buffers of its service."""
    interval: Interval
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0

    @property
    def footprint(self) -> Interval:
        return self.interval.padded(self.buffer_before_minutes, self.buffer_after_minutes)


def footprint(booking: Booking) -> Interval:
    """The interval a booking blocks, including its snapshotted buffers."""
    return Interval(booking.start_time, booking.end_time).padded(
        booking.buffer_before_minutes, booking.buffer_after_minutes
    )


def find_conflicts(
    candidate: Candidate,
    bookings: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> list[Booking]:
    """Return the occupying bookings whose footprint overlaps the candidate's."""
    wanted = candidate.footprint
    return [
        booking
        for booking in bookings
        if booking.is_occupying
        and booking.id != exclude_booking_id
        and footprint(booking).overlaps(wanted)
    ]


def has_conflict(
    candidate: Candidate,
    bookings: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> bool:
    return bool(find_conflicts(candidate, bookings, exclude_booking_id))
