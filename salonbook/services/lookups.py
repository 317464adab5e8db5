"""Entity resolution and booking-horizon rules shared by availability and the ledger."""

from datetime import datetime, timedelta
from typing import Optional

from salonbook.errors import InvalidTransitionError, NotFoundError
from salonbook.schemas.catalog_schema import Business, Service, Staff
from salonbook.schemas.result_schema import ErrorCode
from salonbook.store.base import Store


def require_business(store: Store, business_id: str) -> Business:
    business = store.get_business(business_id)
    if business is None:
        raise NotFoundError("Business not found.", code=ErrorCode.BUSINESS_NOT_FOUND)
    return business


def require_service(store: Store, business_id: str, service_id: str) -> Service:
    service = store.get_service(business_id, service_id)
    if service is None or not service.is_active:
        raise NotFoundError("Service not found.", code=ErrorCode.SERVICE_NOT_FOUND)
    return service


def require_staff(store: Store, business_id: str, staff_id: str) -> Staff:
    staff = store.get_staff(business_id, staff_id)
    if staff is None:
        raise NotFoundError("Staff member not found.", code=ErrorCode.STAFF_NOT_FOUND)
    return staff


def ensure_can_perform(staff: Staff, service: Service) -> None:
    if not staff.is_active:
        raise InvalidTransitionError(f"Staff member {staff.id} is not accepting bookings")
    if not staff.performs(service.id):
        raise InvalidTransitionError(
            f"Staff member {staff.id} does not perform service {service.id}"
        )


def eligible_staff(store: Store, business_id: str, service: Service) -> list[Staff]:
    """Active staff qualified for the service, in a stable order."""
    return sorted(
        (s for s in store.list_staff(business_id) if s.is_active and s.performs(service.id)),
        key=lambda s: s.id,
    )


def horizon_violation(service: Service, start: datetime, now: datetime) -> Optional[str]:
    """Describe why ``start`` is outside the service's booking horizon, or None."""
    earliest = now + timedelta(hours=service.min_advance_hours or 0)
    if start < earliest:
        if service.min_advance_hours:
            return f"must be booked at least {service.min_advance_hours} hour(s) in advance"
        return "start time is in the past"
    if service.max_advance_days is not None:
        latest = now + timedelta(days=service.max_advance_days)
        if start > latest:
            return f"cannot be booked more than {service.max_advance_days} day(s) ahead"
    return None
