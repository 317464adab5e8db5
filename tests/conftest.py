"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest

from salonbook.schemas.catalog_schema import Business, Service, Staff, WorkingHours
from salonbook.scheduling.state_machine import BookingStateMachine
from salonbook.services.aggregation import AggregationEngine
from salonbook.services.availability import AvailabilityEngine
from salonbook.services.catalog import Catalog
from salonbook.services.customers import CustomerDirectory
from salonbook.services.ledger import BookingLedger
from salonbook.services.notifications import EventOutbox
from salonbook.store.memory import InMemoryStore

BUSINESS_ID = "biz-1"
CUT = "svc-cut"
COLOUR = "svc-colour"
RETIRED = "svc-retired"
ANNA = "staff-anna"
ERIK = "staff-erik"

# Monday 10 March 2025, 08:00 UTC
NOW = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)
# the following Monday
DAY = date(2025, 3, 17)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    """Aware UTC instant on ``day``."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def weekday_hours(start: str = "09:00", end: str = "18:00") -> list[WorkingHours]:
    """Monday to Friday (1..5 with 0=Sunday)."""
    return [WorkingHours(day_of_week=d, start_time=start, end_time=end) for d in range(1, 6)]


def make_service(service_id: str, duration: int, price: str, **kwargs) -> Service:
    return Service(
        id=service_id,
        business_id=kwargs.pop("business_id", BUSINESS_ID),
        name=kwargs.pop("name", service_id),
        duration_minutes=duration,
        price=Decimal(price),
        currency="SEK",
        **kwargs,
    )


def make_staff(staff_id: str, service_ids: Optional[set[str]] = None, **kwargs) -> Staff:
    return Staff(
        id=staff_id,
        business_id=kwargs.pop("business_id", BUSINESS_ID),
        display_name=staff_id.split("-")[-1].title(),
        working_hours=kwargs.pop("working_hours", weekday_hours()),
        service_ids=service_ids or set(),
        **kwargs,
    )


def booking_request(
    start: datetime,
    staff_id: Optional[str] = ANNA,
    service_id: str = CUT,
    email: Optional[str] = "guest@example.com",
    **kwargs,
) -> dict:
    request = {"service_id": service_id, "start_time": start, **kwargs}
    if staff_id is not None:
        request["staff_id"] = staff_id
    if email is not None and "customer_id" not in kwargs:
        request["customer_email"] = email
    return request


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    store = InMemoryStore(lock_timeout_seconds=2.0)
    store.save_business(
        Business(id=BUSINESS_ID, name="Test Salon", slug="test-salon", timezone="UTC")
    )
    store.save_service(make_service(CUT, 30, "300.00", name="Haircut"))
    store.save_service(
        make_service(COLOUR, 60, "900.00", name="Colour", buffer_after_minutes=15)
    )
    store.save_service(make_service(RETIRED, 30, "100.00", name="Perm", is_active=False))
    store.save_staff(make_staff(ANNA))
    store.save_staff(make_staff(ERIK, service_ids={CUT}))
    yield store
    store.reset()


@pytest.fixture
def outbox():
    return EventOutbox()


@pytest.fixture
def aggregation(store, clock):
    return AggregationEngine(store, clock)


@pytest.fixture
def ledger(store, aggregation, outbox, clock):
    return BookingLedger(
        store,
        aggregation=aggregation,
        events=outbox,
        clock=clock,
        state_machine=BookingStateMachine(allow_complete_from_pending=True),
        guest_bookings_require_confirmation=False,
    )


@pytest.fixture
def availability(store, clock):
    return AvailabilityEngine(store, clock)


@pytest.fixture
def customers(store, clock):
    return CustomerDirectory(store, clock)


@pytest.fixture
def catalog(store, clock):
    return Catalog(store, clock)
