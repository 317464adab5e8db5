"""Persistence contract the engine depends on. Everything is business-scoped."""

from datetime import datetime
from typing import ContextManager, Iterable, Optional, Protocol

from salonbook.schemas.booking_schema import Booking
from salonbook.schemas.catalog_schema import Business, Service, Staff
from salonbook.schemas.customer_schema import Customer, CustomerTotals

LockKey = tuple[str, str]


def staff_lock(staff_id: str) -> LockKey:
    return ("staff", staff_id)


def customer_lock(customer_id: str) -> LockKey:
    return ("customer", customer_id)


def customer_directory_lock(business_id: str) -> LockKey:
    """Serializes email-uniqueness decisions within one business."""
    return ("customers", business_id)


class BookingUnitOfWork(Protocol):
    """Staged reads and writes applied atomically on commit."""

    def get_booking(self, business_id: str, booking_id: str) -> Optional[Booking]: ...

    def list_bookings(
        self,
        business_id: str,
        staff_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]: ...

    def put_booking(self, booking: Booking) -> None: ...

    def get_customer(self, business_id: str, customer_id: str) -> Optional[Customer]: ...

    def find_customer_by_email(self, business_id: str, email: str) -> Optional[Customer]: ...

    def put_customer(self, customer: Customer) -> None: ...


class Store(Protocol):
    """Repository per entity plus a locked transaction boundary."""

    def get_business(self, business_id: str) -> Optional[Business]: ...

    def save_business(self, business: Business) -> None: ...

    def get_service(self, business_id: str, service_id: str) -> Optional[Service]: ...

    def list_services(self, business_id: str) -> list[Service]: ...

    def save_service(self, service: Service) -> None: ...

    def get_staff(self, business_id: str, staff_id: str) -> Optional[Staff]: ...

    def list_staff(self, business_id: str) -> list[Staff]: ...

    def save_staff(self, staff: Staff) -> None: ...

    def delete_staff(self, business_id: str, staff_id: str) -> bool: ...

    def get_customer(self, business_id: str, customer_id: str) -> Optional[Customer]: ...

    def find_customer_by_email(self, business_id: str, email: str) -> Optional[Customer]: ...

    def list_customers(self, business_id: str) -> list[Customer]: ...

    def save_customer(self, customer: Customer) -> None: ...

    def delete_customer(self, business_id: str, customer_id: str) -> bool: ...

    def apply_customer_totals(
        self, business_id: str, customer_id: str, totals: CustomerTotals
    ) -> Optional[Customer]: ...

    def get_booking(self, business_id: str, booking_id: str) -> Optional[Booking]: ...

    def list_bookings(
        self,
        business_id: str,
        staff_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]: ...

    def delete_booking(self, business_id: str, booking_id: str) -> bool: ...

    def locked(self, keys: Iterable[LockKey]) -> ContextManager[None]: ...

    def transaction(self, keys: Iterable[LockKey]) -> ContextManager[BookingUnitOfWork]: ...
