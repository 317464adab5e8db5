"""
Booking ledger: the authoritative record of bookings per business.

Every mutation runs inside a store transaction that holds the lock of each
staff member it touches, from before the conflict check through the write.
Availability results are never trusted as reservations; the conflict rules
are re-applied here against the committed ledger.

After a commit the ledger refreshes the affected customer's totals and
publishes a booking event. Both happen outside the staff locks.

Usage:
    ledger = BookingLedger(store, events=outbox)
    result = ledger.create("business-1", {
        "service_id": "service-1",
        "staff_id": "staff-1",
        "start_time": "2025-03-17T10:00:00+00:00",
        "customer_email": "anna@example.com",
    })
    if not result.is_success and result.error.code == ErrorCode.SLOT_NOT_AVAILABLE:
        ...  # re-fetch availability
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union
from zoneinfo import ZoneInfo

from salonbook.config import settings
from salonbook.errors import (
    BookingEngineError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    RequestValidationError,
    returns_result,
)
from salonbook.logging_context import get_request_logger
from salonbook.schemas.booking_schema import (
    Booking,
    BookingEvent,
    BookingStatus,
    CreateBookingRequest,
    EventKind,
    UpdateBookingRequest,
)
from salonbook.schemas.catalog_schema import Business, Service, Staff
from salonbook.schemas.customer_schema import Customer
from salonbook.schemas.result_schema import (
    ErrorCode,
    OperationResult,
    PaginatedResult,
    ValidationErrorDetail,
    paginate,
    success_result,
)
from salonbook.scheduling.calendar import Interval, local_date, weekday_index, working_window
from salonbook.scheduling.conflicts import Candidate, find_conflicts
from salonbook.scheduling.state_machine import BookingStateMachine, BookingTrigger
from salonbook.services.aggregation import AggregationEngine
from salonbook.services.lookups import (
    eligible_staff,
    ensure_can_perform,
    horizon_violation,
    require_business,
    require_service,
    require_staff,
)
from salonbook.services.notifications import EventOutbox, EventSink, publish_safely
from salonbook.store.base import (
    BookingUnitOfWork,
    Store,
    customer_directory_lock,
    customer_lock,
    staff_lock,
)
from salonbook.utils import new_id, normalize_phone, utc_now

logger = get_request_logger(__name__)

BOOKING_LOOKAROUND = timedelta(days=1)
UPCOMING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


def _slot_taken(details: str) -> ConflictError:
    return ConflictError(
        "The selected time slot is not available",
        code=ErrorCode.SLOT_NOT_AVAILABLE,
        details=details,
    )


def _booking_not_found() -> NotFoundError:
    return NotFoundError("Booking not found.", code=ErrorCode.BOOKING_NOT_FOUND)


class BookingLedger:
    """Creates bookings and drives them through the status state machine."""

    def __init__(
        self,
        store: Store,
        aggregation: Optional[AggregationEngine] = None,
        events: Optional[EventSink] = None,
        clock: Callable[[], datetime] = utc_now,
        state_machine: Optional[BookingStateMachine] = None,
        guest_bookings_require_confirmation: Optional[bool] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.aggregation = aggregation or AggregationEngine(store, clock)
        self.events = events if events is not None else EventOutbox()
        self.state_machine = state_machine or BookingStateMachine()
        if guest_bookings_require_confirmation is None:
            guest_bookings_require_confirmation = (
                settings.ledger.guest_bookings_require_confirmation
            )
        self.guest_bookings_require_confirmation = guest_bookings_require_confirmation

    # --- Creation ---

    @returns_result
    def create(
        self,
        business_id: str,
        request: Union[CreateBookingRequest, dict[str, Any]],
        actor_id: Optional[str] = None,
    ) -> OperationResult[Booking]:
        """
        Admit a booking request or reject it.

        Fails with SERVICE_NOT_FOUND / STAFF_NOT_FOUND for unknown references,
        SLOT_NOT_AVAILABLE when the padded interval collides with an occupying
        booking or falls outside working hours or the booking horizon,
        CUSTOMER_NOT_FOUND for an unknown customer_id and VALIDATION_FAILED
        when neither a customer_id nor a guest email is supplied.
        """
        req = CreateBookingRequest.model_validate(request)
        if req.customer_id is None and not req.customer_email:
            raise RequestValidationError([
                ValidationErrorDetail(
                    field="customer_email",
                    message="Either customer_id or customer_email is required",
                    code="missing",
                )
            ])

        business = require_business(self.store, business_id)
        service = require_service(self.store, business_id, req.service_id)
        if req.staff_id is not None:
            staff = require_staff(self.store, business_id, req.staff_id)
            ensure_can_perform(staff, service)
            team = [staff]
        else:
            team = self._assignment_order(business, service, req.start_time)
            if not team:
                raise _slot_taken("no staff member performs this service")

        interval = Interval(
            req.start_time, req.start_time + timedelta(minutes=service.duration_minutes)
        )
        reason = horizon_violation(service, interval.start, self.clock())
        if reason:
            raise _slot_taken(reason)

        booking: Optional[Booking] = None
        last_error: Optional[ConflictError] = None
        for staff in team:
            try:
                self._check_working_hours(business, staff, interval)
                booking = self._write_new_booking(business, service, staff, interval, req)
                break
            except ConflictError as exc:
                if req.staff_id is not None or exc.code != ErrorCode.SLOT_NOT_AVAILABLE:
                    raise
                last_error = exc
        if booking is None:
            raise last_error or _slot_taken("no staff member is free at this time")

        logger.info(
            "Booking created: %s staff=%s start=%s status=%s actor=%s",
            booking.id, booking.staff_id,
            booking.start_time.isoformat(), booking.status.value, actor_id or "anonymous",
        )
        self._after_commit(booking, EventKind.CREATED)
        return success_result(booking, status_code=201)

    def _assignment_order(
        self, business: Business, service: Service, start: datetime
    ) -> list[Staff]:
        """Eligible staff, least loaded on the requested civil day first."""
        tz = ZoneInfo(business.timezone)
        day = local_date(start, tz)

        def load(staff: Staff) -> int:
            return sum(
                1
                for b in self.store.list_bookings(business.id, staff_id=staff.id)
                if b.is_occupying and local_date(b.start_time, tz) == day
            )

        return sorted(
            eligible_staff(self.store, business.id, service),
            key=lambda s: (load(s), s.id),
        )

    def _check_working_hours(self, business: Business, staff: Staff, interval: Interval) -> None:
        tz = ZoneInfo(business.timezone)
        day = local_date(interval.start, tz)
        window = working_window(day, staff.hours_for(weekday_index(day)), tz)
        if window is None or not window.contains(interval):
            raise _slot_taken(f"outside working hours of staff member {staff.id}")

    def _write_new_booking(
        self,
        business: Business,
        service: Service,
        staff: Staff,
        interval: Interval,
        req: CreateBookingRequest,
    ) -> Booking:
        keys = [staff_lock(staff.id)]
        if req.customer_id is None:
            keys.append(customer_directory_lock(business.id))
        else:
            # keeps the customer from being deleted under the new booking
            keys.append(customer_lock(req.customer_id))

        with self.store.transaction(keys) as uow:
            # the staff lock also serializes against delete_staff
            require_staff(self.store, business.id, staff.id)
            candidate = Candidate(
                interval, service.buffer_before_minutes, service.buffer_after_minutes
            )
            self._assert_free(uow, business.id, staff.id, candidate)
            customer, is_guest = self._resolve_customer(uow, business.id, req)

            status = BookingStatus.CONFIRMED
            if is_guest and self.guest_bookings_require_confirmation:
                status = BookingStatus.PENDING
            now = self.clock()
            booking = Booking(
                id=new_id("booking"),
                business_id=business.id,
                customer_id=customer.id,
                staff_id=staff.id,
                service_id=service.id,
                start_time=interval.start,
                end_time=interval.end,
                status=status,
                notes=req.notes,
                price=service.price,
                currency=service.currency,
                buffer_before_minutes=service.buffer_before_minutes,
                buffer_after_minutes=service.buffer_after_minutes,
                created_at=now,
                updated_at=now,
            )
            uow.put_booking(booking)
        return booking

    def _assert_free(
        self,
        uow: BookingUnitOfWork,
        business_id: str,
        staff_id: str,
        candidate: Candidate,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        existing = uow.list_bookings(
            business_id,
            staff_id=staff_id,
            start=candidate.interval.start - BOOKING_LOOKAROUND,
            end=candidate.interval.end + BOOKING_LOOKAROUND,
        )
        conflicts = find_conflicts(candidate, existing, exclude_booking_id)
        if conflicts:
            raise _slot_taken(f"overlaps booking {conflicts[0].id}")

    def _resolve_customer(
        self, uow: BookingUnitOfWork, business_id: str, req: CreateBookingRequest
    ) -> tuple[Customer, bool]:
        """Return the booking's customer and whether it is a guest booking."""
        if req.customer_id is not None:
            customer = uow.get_customer(business_id, req.customer_id)
            if customer is None:
                raise NotFoundError("Customer not found.", code=ErrorCode.CUSTOMER_NOT_FOUND)
            return customer, False

        existing = uow.find_customer_by_email(business_id, req.customer_email)
        if existing is not None:
            logger.debug("Guest email matched customer %s", existing.id)
            return existing, True

        now = self.clock()
        customer = Customer(
            id=new_id("customer"),
            business_id=business_id,
            email=req.customer_email.strip(),
            first_name=req.customer_first_name or "",
            last_name=req.customer_last_name or "",
            phone_number=(
                normalize_phone(req.customer_phone_number) if req.customer_phone_number else None
            ),
            created_at=now,
            updated_at=now,
        )
        uow.put_customer(customer)
        logger.info("Guest customer created: %s", customer.id)
        return customer, True

    # --- Rescheduling ---

    @returns_result
    def update(
        self,
        business_id: str,
        booking_id: str,
        request: Union[UpdateBookingRequest, dict[str, Any]],
    ) -> OperationResult[Booking]:
        """
        Change a booking's staff, start time or notes.

        A new start or staff re-validates the booking against the conflict
        rules with its own prior interval excluded. The end is recomputed
        from the booking's snapshotted duration.
        """
        req = UpdateBookingRequest.model_validate(request)
        current = self.store.get_booking(business_id, booking_id)
        if current is None:
            raise _booking_not_found()
        self._ensure_reschedulable(current)

        new_start = req.start_time or current.start_time
        new_staff_id = req.staff_id or current.staff_id
        moving = new_start != current.start_time or new_staff_id != current.staff_id

        if not moving:
            with self._locked_booking(business_id, booking_id) as (uow, fresh):
                self._ensure_reschedulable(fresh)
                updated = fresh.model_copy(
                    update={"notes": req.notes if req.notes is not None else fresh.notes,
                            "updated_at": self.clock()}
                )
                uow.put_booking(updated)
            return success_result(updated)

        business = require_business(self.store, business_id)
        service = self.store.get_service(business_id, current.service_id)
        if service is None:
            raise NotFoundError("Service not found.", code=ErrorCode.SERVICE_NOT_FOUND)
        staff = require_staff(self.store, business_id, new_staff_id)
        if new_staff_id != current.staff_id:
            ensure_can_perform(staff, service)

        interval = Interval(new_start, new_start + current.duration)
        reason = horizon_violation(service, interval.start, self.clock())
        if reason:
            raise _slot_taken(reason)
        self._check_working_hours(business, staff, interval)

        keys = [staff_lock(current.staff_id), staff_lock(new_staff_id)]
        with self.store.transaction(keys) as uow:
            fresh = uow.get_booking(business_id, booking_id)
            if fresh is None:
                raise _booking_not_found()
            if fresh.staff_id != current.staff_id:
                raise ConflictError("The booking was changed concurrently, please retry")
            self._ensure_reschedulable(fresh)
            require_staff(self.store, business_id, new_staff_id)
            candidate = Candidate(
                interval, fresh.buffer_before_minutes, fresh.buffer_after_minutes
            )
            self._assert_free(uow, business_id, new_staff_id, candidate, fresh.id)
            updated = fresh.model_copy(
                update={
                    "staff_id": new_staff_id,
                    "start_time": interval.start,
                    "end_time": interval.end,
                    "notes": req.notes if req.notes is not None else fresh.notes,
                    "updated_at": self.clock(),
                }
            )
            uow.put_booking(updated)

        logger.info(
            "Booking rescheduled: %s staff=%s start=%s",
            updated.id, updated.staff_id, updated.start_time.isoformat(),
        )
        self._after_commit(updated, EventKind.RESCHEDULED)
        return success_result(updated)

    def _ensure_reschedulable(self, booking: Booking) -> None:
        if self.state_machine.is_terminal(booking.status):
            raise InvalidTransitionError(f"Cannot update a {booking.status.value} booking")

    # --- Status transitions ---

    @returns_result
    def cancel(
        self,
        business_id: str,
        booking_id: str,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> OperationResult[Booking]:
        """Cancel a booking. Cancelling twice reports BOOKING_ALREADY_CANCELLED."""
        now = self.clock()
        booking = self._apply_transition(
            business_id,
            booking_id,
            BookingTrigger.CANCEL,
            {
                "cancellation_reason": reason,
                "cancelled_at": now,
                "cancelled_by": actor_id or "staff",
            },
        )
        self._after_commit(booking, EventKind.CANCELLED)
        return success_result(booking)

    @returns_result
    def confirm(self, business_id: str, booking_id: str) -> OperationResult[Booking]:
        booking = self._apply_transition(business_id, booking_id, BookingTrigger.CONFIRM)
        self._after_commit(booking, EventKind.CONFIRMED)
        return success_result(booking)

    @returns_result
    def complete(self, business_id: str, booking_id: str) -> OperationResult[Booking]:
        booking = self._apply_transition(business_id, booking_id, BookingTrigger.COMPLETE)
        self._after_commit(booking, EventKind.COMPLETED)
        return success_result(booking)

    @returns_result
    def mark_no_show(self, business_id: str, booking_id: str) -> OperationResult[Booking]:
        booking = self._apply_transition(business_id, booking_id, BookingTrigger.MARK_NO_SHOW)
        self._after_commit(booking, EventKind.NO_SHOW)
        return success_result(booking)

    def _apply_transition(
        self,
        business_id: str,
        booking_id: str,
        trigger: BookingTrigger,
        extra: Optional[dict[str, Any]] = None,
    ) -> Booking:
        with self._locked_booking(business_id, booking_id) as (uow, fresh):
            new_status = self.state_machine.transition(fresh.status, trigger)
            updated = fresh.model_copy(
                update={**(extra or {}), "status": new_status, "updated_at": self.clock()}
            )
            uow.put_booking(updated)
        logger.info(
            "Booking %s: %s -> %s",
            booking_id, fresh.status.value, new_status.value,
        )
        return updated

    @contextmanager
    def _locked_booking(
        self, business_id: str, booking_id: str
    ) -> Iterator[tuple[BookingUnitOfWork, Booking]]:
        """Open a transaction holding the booking's staff lock, yielding a fresh read."""
        snapshot = self.store.get_booking(business_id, booking_id)
        if snapshot is None:
            raise _booking_not_found()
        with self.store.transaction([staff_lock(snapshot.staff_id)]) as uow:
            fresh = uow.get_booking(business_id, booking_id)
            if fresh is None:
                raise _booking_not_found()
            if fresh.staff_id != snapshot.staff_id:
                raise ConflictError("The booking was changed concurrently, please retry")
            yield uow, fresh

    # --- Administration and reads ---

    @returns_result
    def delete(self, business_id: str, booking_id: str) -> OperationResult[Booking]:
        """Physically remove a booking. Administrative use only."""
        snapshot = self.store.get_booking(business_id, booking_id)
        if snapshot is None:
            raise _booking_not_found()
        with self.store.locked([staff_lock(snapshot.staff_id)]):
            if not self.store.delete_booking(business_id, booking_id):
                raise _booking_not_found()
        logger.warning("Booking deleted: %s", booking_id)
        self._after_commit(snapshot, EventKind.DELETED)
        return success_result(snapshot)

    @returns_result
    def get(self, business_id: str, booking_id: str) -> OperationResult[Booking]:
        booking = self.store.get_booking(business_id, booking_id)
        if booking is None:
            raise _booking_not_found()
        return success_result(booking)

    @returns_result
    def upcoming(self, business_id: str, limit: Optional[int] = None) -> OperationResult[list[Booking]]:
        """Future pending or confirmed bookings, soonest first."""
        limit = limit if limit is not None else settings.scheduling.upcoming_bookings_limit
        now = self.clock()
        bookings = [
            b
            for b in self.store.list_bookings(business_id, start=now)
            if b.status in UPCOMING_STATUSES and b.start_time >= now
        ]
        return success_result(bookings[:limit])

    @returns_result
    def list(
        self,
        business_id: str,
        status: Optional[BookingStatus] = None,
        staff_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> OperationResult[PaginatedResult[Booking]]:
        """Bookings sorted by start time, filtered by status, people and start range."""
        page_size = min(
            page_size or settings.ledger.default_page_size, settings.ledger.max_page_size
        )
        bookings = [
            b
            for b in self.store.list_bookings(business_id, staff_id, customer_id)
            if (status is None or b.status == status)
            and (start is None or b.start_time >= start)
            and (end is None or b.start_time <= end)
        ]
        return success_result(paginate(bookings, page, page_size))

    def _after_commit(self, booking: Booking, kind: EventKind) -> None:
        """Refresh the customer's totals and publish the event for a committed change.

        The booking is already committed here, so a failed refresh is logged
        and left for ``find_drift`` / ``rebuild_business`` to repair.
        """
        try:
            self.aggregation.refresh_customer(booking.business_id, booking.customer_id)
        except BookingEngineError as exc:
            logger.warning(
                "Totals refresh for customer %s skipped after %s: %s",
                booking.customer_id, kind.value, exc.message,
            )
        publish_safely(
            self.events,
            BookingEvent(
                kind=kind,
                business_id=booking.business_id,
                booking_id=booking.id,
                customer_id=booking.customer_id,
                staff_id=booking.staff_id,
                occurred_at=self.clock(),
            ),
        )
