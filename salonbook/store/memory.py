"""
In-memory store with per-key locks and a staged unit of work.

In production this would sit on a relational database where the
transaction and the row locks come from the engine; the contract is the
same: a mutating ledger operation holds the lock of every staff member it
touches from before its conflict check until its write is committed.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Optional

from salonbook.config import settings
from salonbook.errors import ConflictError
from salonbook.schemas.booking_schema import Booking
from salonbook.schemas.catalog_schema import Business, Service, Staff
from salonbook.schemas.customer_schema import Customer, CustomerTotals
from salonbook.store.base import LockKey
from salonbook.utils import normalize_email, utc_now

logger = logging.getLogger(__name__)


def _in_range(booking: Booking, start: Optional[datetime], end: Optional[datetime]) -> bool:
    """Half-open overlap of the booking's own interval with [start, end)."""
    if start is not None and booking.end_time <= start:
        return False
    if end is not None and booking.start_time >= end:
        return False
    return True


def _matches(
    booking: Booking,
    business_id: str,
    staff_id: Optional[str],
    customer_id: Optional[str],
    start: Optional[datetime],
    end: Optional[datetime],
) -> bool:
    return (
        booking.business_id == business_id
        and (staff_id is None or booking.staff_id == staff_id)
        and (customer_id is None or booking.customer_id == customer_id)
        and _in_range(booking, start, end)
    )


class LockManager:
    """Hands out one lock per key and acquires key sets in sorted order."""

    def __init__(self, timeout_seconds: Optional[float] = None) -> None:
        self._locks: dict[LockKey, threading.Lock] = {}
        self._guard = threading.Lock()
        self.timeout_seconds = timeout_seconds or settings.ledger.lock_timeout_seconds

    def _lock_for(self, key: LockKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def acquire(self, keys: Iterable[LockKey]) -> Iterator[None]:
        """
        Hold every lock in ``keys`` for the duration of the block.

        Raises:
            ConflictError: if a lock is not free within the timeout.
        """
        held: list[threading.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                if not lock.acquire(timeout=self.timeout_seconds):
                    logger.warning("Lock timeout on %s after %.1fs", key, self.timeout_seconds)
                    raise ConflictError(
                        "The booking ledger is busy, please retry",
                        details=f"lock {key[0]}:{key[1]} not acquired",
                    )
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()


class InMemoryUnitOfWork:
    """Reads see committed state overlaid with this transaction's staged writes."""

    def __init__(self, store: "InMemoryStore") -> None:
        self._store = store
        self._bookings: dict[str, Booking] = {}
        self._customers: dict[str, Customer] = {}

    def get_booking(self, business_id: str, booking_id: str) -> Optional[Booking]:
        staged = self._bookings.get(booking_id)
        if staged is not None:
            return staged if staged.business_id == business_id else None
        return self._store.get_booking(business_id, booking_id)

    def list_bookings(
        self,
        business_id: str,
        staff_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        committed = {
            b.id: b
            for b in self._store.list_bookings(business_id, staff_id, customer_id, start, end)
        }
        for booking_id, staged in self._bookings.items():
            committed.pop(booking_id, None)
            if _matches(staged, business_id, staff_id, customer_id, start, end):
                committed[booking_id] = staged
        return sorted(committed.values(), key=lambda b: b.start_time)

    def put_booking(self, booking: Booking) -> None:
        self._bookings[booking.id] = booking

    def get_customer(self, business_id: str, customer_id: str) -> Optional[Customer]:
        staged = self._customers.get(customer_id)
        if staged is not None:
            return staged if staged.business_id == business_id else None
        return self._store.get_customer(business_id, customer_id)

    def find_customer_by_email(self, business_id: str, email: str) -> Optional[Customer]:
        wanted = normalize_email(email)
        for staged in self._customers.values():
            if staged.business_id == business_id and normalize_email(staged.email) == wanted:
                return staged
        return self._store.find_customer_by_email(business_id, email)

    def put_customer(self, customer: Customer) -> None:
        self._customers[customer.id] = customer

    def commit(self) -> None:
        self._store._apply(self._bookings.values(), self._customers.values())
        logger.debug(
            "Committed %d booking(s), %d customer(s)", len(self._bookings), len(self._customers)
        )


class InMemoryStore:
    """
    Process-local store. All reads return deep copies so callers always
    work on a consistent snapshot and never mutate committed state.
    """

    def __init__(self, lock_timeout_seconds: Optional[float] = None) -> None:
        self._businesses: dict[str, Business] = {}
        self._services: dict[str, Service] = {}
        self._staff: dict[str, Staff] = {}
        self._customers: dict[str, Customer] = {}
        self._bookings: dict[str, Booking] = {}
        self._mutex = threading.RLock()
        self.locks = LockManager(lock_timeout_seconds)

    # --- Businesses ---

    def get_business(self, business_id: str) -> Optional[Business]:
        with self._mutex:
            business = self._businesses.get(business_id)
            return business.model_copy(deep=True) if business else None

    def save_business(self, business: Business) -> None:
        with self._mutex:
            self._businesses[business.id] = business.model_copy(deep=True)

    # --- Services ---

    def get_service(self, business_id: str, service_id: str) -> Optional[Service]:
        with self._mutex:
            service = self._services.get(service_id)
            if service is None or service.business_id != business_id:
                return None
            return service.model_copy(deep=True)

    def list_services(self, business_id: str) -> list[Service]:
        with self._mutex:
            return [
                s.model_copy(deep=True)
                for s in self._services.values()
                if s.business_id == business_id
            ]

    def save_service(self, service: Service) -> None:
        with self._mutex:
            self._services[service.id] = service.model_copy(deep=True)

    # --- Staff ---

    def get_staff(self, business_id: str, staff_id: str) -> Optional[Staff]:
        with self._mutex:
            staff = self._staff.get(staff_id)
            if staff is None or staff.business_id != business_id:
                return None
            return staff.model_copy(deep=True)

    def list_staff(self, business_id: str) -> list[Staff]:
        with self._mutex:
            return [
                s.model_copy(deep=True)
                for s in self._staff.values()
                if s.business_id == business_id
            ]

    def save_staff(self, staff: Staff) -> None:
        with self._mutex:
            self._staff[staff.id] = staff.model_copy(deep=True)

    def delete_staff(self, business_id: str, staff_id: str) -> bool:
        with self._mutex:
            staff = self._staff.get(staff_id)
            if staff is None or staff.business_id != business_id:
                return False
            del self._staff[staff_id]
            return True

    # --- Customers ---

    def get_customer(self, business_id: str, customer_id: str) -> Optional[Customer]:
        with self._mutex:
            customer = self._customers.get(customer_id)
            if customer is None or customer.business_id != business_id:
                return None
            return customer.model_copy(deep=True)

    def find_customer_by_email(self, business_id: str, email: str) -> Optional[Customer]:
        wanted = normalize_email(email)
        with self._mutex:
            for customer in self._customers.values():
                if customer.business_id == business_id and normalize_email(customer.email) == wanted:
                    return customer.model_copy(deep=True)
        return None

    def list_customers(self, business_id: str) -> list[Customer]:
        with self._mutex:
            return [
                c.model_copy(deep=True)
                for c in self._customers.values()
                if c.business_id == business_id
            ]

    def save_customer(self, customer: Customer) -> None:
        with self._mutex:
            self._customers[customer.id] = customer.model_copy(deep=True)

    def delete_customer(self, business_id: str, customer_id: str) -> bool:
        with self._mutex:
            customer = self._customers.get(customer_id)
            if customer is None or customer.business_id != business_id:
                return False
            del self._customers[customer_id]
            return True

    def apply_customer_totals(
        self, business_id: str, customer_id: str, totals: CustomerTotals
    ) -> Optional[Customer]:
        """Overwrite only the derived fields, leaving contact fields untouched."""
        with self._mutex:
            customer = self._customers.get(customer_id)
            if customer is None or customer.business_id != business_id:
                return None
            updated = customer.model_copy(
                update={**totals.model_dump(), "updated_at": utc_now()}
            )
            self._customers[customer_id] = updated
            return updated.model_copy(deep=True)

    # --- Bookings ---

    def get_booking(self, business_id: str, booking_id: str) -> Optional[Booking]:
        with self._mutex:
            booking = self._bookings.get(booking_id)
            if booking is None or booking.business_id != business_id:
                return None
            return booking.model_copy(deep=True)

    def list_bookings(
        self,
        business_id: str,
        staff_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        with self._mutex:
            found = [
                b.model_copy(deep=True)
                for b in self._bookings.values()
                if _matches(b, business_id, staff_id, customer_id, start, end)
            ]
        return sorted(found, key=lambda b: b.start_time)

    def delete_booking(self, business_id: str, booking_id: str) -> bool:
        with self._mutex:
            booking = self._bookings.get(booking_id)
            if booking is None or booking.business_id != business_id:
                return False
            del self._bookings[booking_id]
            return True

    # --- Locking and transactions ---

    @contextmanager
    def locked(self, keys: Iterable[LockKey]) -> Iterator[None]:
        with self.locks.acquire(keys):
            yield

    @contextmanager
    def transaction(self, keys: Iterable[LockKey]) -> Iterator[InMemoryUnitOfWork]:
        """
        Run a unit of work while holding ``keys``.

        Staged writes are applied on a clean exit and discarded when the
        block raises; the locks are released either way.
        """
        with self.locks.acquire(keys):
            uow = InMemoryUnitOfWork(self)
            yield uow
            uow.commit()

    def _apply(self, bookings: Iterable[Booking], customers: Iterable[Customer]) -> None:
        with self._mutex:
            for customer in customers:
                self._customers[customer.id] = customer.model_copy(deep=True)
            for booking in bookings:
                self._bookings[booking.id] = booking.model_copy(deep=True)

    def reset(self) -> None:
        """Clear all data. Used by test fixtures for isolation."""
        with self._mutex:
            self._businesses.clear()
            self._services.clear()
            self._staff.clear()
            self._customers.clear()
            self._bookings.clear()
