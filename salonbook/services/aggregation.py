"""
Aggregation engine: customer totals and dashboard statistics.

Every figure here is a fold over the booking ledger. The customer totals
are stored on the customer record as a cache that is rewritten after each
ledger mutation; if the cache and the fold ever disagree, the fold wins.
"""

import logging
from collections import defaultdict
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from salonbook.config import settings
from salonbook.errors import NotFoundError, returns_result
from salonbook.schemas.booking_schema import Booking, BookingStatus
from salonbook.schemas.customer_schema import (
    Customer,
    CustomerTotals,
    DashboardStats,
    ServiceStats,
)
from salonbook.schemas.result_schema import ErrorCode, OperationResult, success_result
from salonbook.scheduling.calendar import Interval, day_bounds, local_date, month_bounds, rolling_bounds
from salonbook.store.base import Store, customer_lock
from salonbook.utils import utc_now

logger = logging.getLogger(__name__)

SPENT_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.COMPLETED})
UPCOMING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})
CENT = Decimal("0.01")


def compute_customer_totals(bookings: Iterable[Booking]) -> CustomerTotals:
    """Fold one customer's bookings into their derived totals."""
    total_bookings = 0
    total_spent = Decimal("0")
    last_visit_at: Optional[datetime] = None
    for booking in bookings:
        if booking.status == BookingStatus.CANCELLED:
            continue
        total_bookings += 1
        if booking.status in SPENT_STATUSES:
            total_spent += booking.price
        if last_visit_at is None or booking.start_time > last_visit_at:
            last_visit_at = booking.start_time
    return CustomerTotals(
        total_bookings=total_bookings,
        total_spent=total_spent,
        last_visit_at=last_visit_at,
    )


def _count_starting_in(bookings: list[Booking], window: Interval) -> int:
    return sum(1 for b in bookings if window.start <= b.start_time < window.end)


class AggregationEngine:
    """Maintains customer caches and computes dashboard stats on demand."""

    def __init__(self, store: Store, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.clock = clock

    def refresh_customer(self, business_id: str, customer_id: str) -> Optional[Customer]:
        """
        Recompute and store one customer's totals from the committed ledger.

        Runs after the mutating transaction has committed, under the
        customer's lock, so the last refresh always observes every commit.
        """
        with self.store.locked([customer_lock(customer_id)]):
            bookings = self.store.list_bookings(business_id, customer_id=customer_id)
            totals = compute_customer_totals(bookings)
            customer = self.store.apply_customer_totals(business_id, customer_id, totals)
        if customer is None:
            logger.debug("Skipped totals for missing customer %s", customer_id)
            return None
        logger.debug(
            "Customer %s totals: bookings=%d spent=%s",
            customer_id, totals.total_bookings, totals.total_spent,
        )
        return customer

    def find_drift(self, business_id: str) -> list[str]:
        """Customer ids whose stored totals differ from a fresh fold."""
        drifted = []
        for customer in self.store.list_customers(business_id):
            bookings = self.store.list_bookings(business_id, customer_id=customer.id)
            expected = compute_customer_totals(bookings)
            stored = CustomerTotals(
                total_bookings=customer.total_bookings,
                total_spent=customer.total_spent,
                last_visit_at=customer.last_visit_at,
            )
            if stored != expected:
                drifted.append(customer.id)
        return drifted

    @returns_result
    def rebuild_business(self, business_id: str) -> OperationResult[int]:
        """Refresh every customer of a business; returns how many were rewritten."""
        self._require_business(business_id)
        customers = self.store.list_customers(business_id)
        for customer in customers:
            self.refresh_customer(business_id, customer.id)
        logger.info("Rebuilt totals for %d customer(s) of %s", len(customers), business_id)
        return success_result(len(customers))

    @returns_result
    def dashboard(
        self, business_id: str, now: Optional[datetime] = None
    ) -> OperationResult[DashboardStats]:
        """Compute the business dashboard. Windows use the business's civil time."""
        business = self._require_business(business_id)
        tz = ZoneInfo(business.timezone)
        now = now or self.clock()
        today = local_date(now, tz)

        bookings = self.store.list_bookings(business_id)
        occupying = [b for b in bookings if b.status != BookingStatus.CANCELLED]
        completed = [b for b in bookings if b.status == BookingStatus.COMPLETED]

        total_revenue = sum((b.price for b in completed), Decimal("0"))
        average = (
            (total_revenue / len(completed)).quantize(CENT, rounding=ROUND_HALF_UP)
            if completed
            else Decimal("0")
        )

        upcoming = [
            b for b in bookings if b.status in UPCOMING_STATUSES and b.start_time >= now
        ][: settings.scheduling.upcoming_bookings_limit]

        stats = DashboardStats(
            today_bookings=_count_starting_in(occupying, day_bounds(today, tz)),
            week_bookings=_count_starting_in(
                occupying, rolling_bounds(today, tz, settings.scheduling.week_window_days)
            ),
            month_bookings=_count_starting_in(occupying, month_bounds(today, tz)),
            total_customers=len(self.store.list_customers(business_id)),
            total_revenue=total_revenue,
            average_booking_value=average,
            popular_services=self._popular_services(business_id, occupying),
            upcoming_bookings=upcoming,
        )
        return success_result(stats)

    def _popular_services(self, business_id: str, occupying: list[Booking]) -> list[ServiceStats]:
        counts: dict[str, int] = defaultdict(int)
        revenue: dict[str, Decimal] = defaultdict(Decimal)
        for booking in occupying:
            counts[booking.service_id] += 1
            revenue[booking.service_id] += booking.price

        ranked = sorted(counts, key=lambda sid: (-counts[sid], -revenue[sid], sid))
        stats = []
        for service_id in ranked[: settings.scheduling.popular_services_limit]:
            service = self.store.get_service(business_id, service_id)
            stats.append(
                ServiceStats(
                    service_id=service_id,
                    service_name=service.name if service else "Unknown Service",
                    booking_count=counts[service_id],
                    revenue=revenue[service_id],
                )
            )
        return stats

    def _require_business(self, business_id: str):
        business = self.store.get_business(business_id)
        if business is None:
            raise NotFoundError("Business not found.", code=ErrorCode.BUSINESS_NOT_FOUND)
        return business
