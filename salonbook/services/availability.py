"""
Availability engine: slot grids with free/busy flags.

Reads only. Each query takes a fresh snapshot of the relevant bookings, so
a slot reported free is a hint, never a reservation: the ledger re-checks
the same rules under the staff lock when the booking is written.

Usage:
    engine = AvailabilityEngine(store)
    result = engine.get_availability("business-1", "service-1", date(2025, 3, 17))
    free = result.data.available_slots
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from salonbook.config import settings
from salonbook.errors import returns_result
from salonbook.schemas.booking_schema import AvailabilityResponse, TimeSlot
from salonbook.schemas.catalog_schema import Business, Service, Staff
from salonbook.schemas.result_schema import OperationResult, success_result
from salonbook.scheduling.calendar import Interval, generate_candidates, weekday_index
from salonbook.scheduling.conflicts import Candidate, has_conflict
from salonbook.services.lookups import (
    eligible_staff,
    ensure_can_perform,
    horizon_violation,
    require_business,
    require_service,
    require_staff,
)
from salonbook.store.base import Store
from salonbook.utils import utc_now

logger = logging.getLogger(__name__)

# wide enough to catch any neighbour whose buffers reach into the day
BOOKING_LOOKAROUND = timedelta(days=1)


class AvailabilityEngine:
    """Computes availability for a (business, service, optional staff, date) query."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.clock = clock

    @returns_result
    def get_availability(
        self,
        business_id: str,
        service_id: str,
        day: date,
        staff_id: Optional[str] = None,
    ) -> OperationResult[AvailabilityResponse]:
        """
        Return the slot grid for ``day``.

        With ``staff_id`` the grid is that staff member's. Without it the
        grids of every eligible staff member are merged: a slot is available
        when at least one of them is free, and ``available_staff_ids`` names
        who.
        """
        business = require_business(self.store, business_id)
        service = require_service(self.store, business_id, service_id)
        if staff_id is not None:
            staff = require_staff(self.store, business_id, staff_id)
            ensure_can_perform(staff, service)
            team = [staff]
        else:
            team = eligible_staff(self.store, business_id, service)

        now = self.clock()
        slots = self._merge([self._staff_grid(business, service, s, day, now) for s in team])
        logger.debug(
            "Availability %s/%s on %s (staff=%s): %d slot(s), %d free",
            business_id, service_id, day, staff_id or "any",
            len(slots), sum(1 for s in slots if s.is_available),
        )
        return success_result(
            AvailabilityResponse(
                date=day,
                service_id=service_id,
                staff_id=staff_id,
                timezone=business.timezone,
                slots=slots,
            )
        )

    @returns_result
    def next_available(
        self,
        business_id: str,
        service_id: str,
        from_day: date,
        staff_id: Optional[str] = None,
        days: Optional[int] = None,
    ) -> OperationResult[Optional[TimeSlot]]:
        """First available slot on or after ``from_day``, or None within the horizon."""
        horizon = days or settings.scheduling.next_available_days
        for offset in range(horizon):
            day = from_day + timedelta(days=offset)
            result = self.get_availability(business_id, service_id, day, staff_id)
            if not result.is_success:
                return result
            free = result.data.available_slots
            if free:
                return success_result(free[0])
        return success_result(None)

    def _staff_grid(
        self,
        business: Business,
        service: Service,
        staff: Staff,
        day: date,
        now: datetime,
    ) -> list[tuple[Interval, str, bool]]:
        tz = ZoneInfo(business.timezone)
        candidates = generate_candidates(
            day,
            staff.hours_for(weekday_index(day)),
            service.duration_minutes,
            tz,
            settings.scheduling.slot_step_minutes or None,
        )
        if not candidates:
            return []

        bookings = self.store.list_bookings(
            business.id,
            staff_id=staff.id,
            start=candidates[0].start - BOOKING_LOOKAROUND,
            end=candidates[-1].end + BOOKING_LOOKAROUND,
        )
        grid = []
        for interval in candidates:
            candidate = Candidate(
                interval, service.buffer_before_minutes, service.buffer_after_minutes
            )
            free = (
                horizon_violation(service, interval.start, now) is None
                and not has_conflict(candidate, bookings)
            )
            grid.append((interval, staff.id, free))
        return grid

    @staticmethod
    def _merge(grids: list[list[tuple[Interval, str, bool]]]) -> list[TimeSlot]:
        by_start: dict[datetime, tuple[Interval, list[str]]] = {}
        for grid in grids:
            for interval, staff_id, free in grid:
                _, free_staff = by_start.setdefault(interval.start, (interval, []))
                if free:
                    free_staff.append(staff_id)
        return [
            TimeSlot(
                start_time=interval.start,
                end_time=interval.end,
                is_available=bool(free_staff),
                available_staff_ids=free_staff,
            )
            for interval, free_staff in (by_start[start] for start in sorted(by_start))
        ]
