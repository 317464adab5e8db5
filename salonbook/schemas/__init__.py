from salonbook.schemas.booking_schema import (
    AvailabilityResponse,
    Booking,
    BookingEvent,
    BookingStatus,
    CreateBookingRequest,
    EventKind,
    TimeSlot,
    UpdateBookingRequest,
)
from salonbook.schemas.catalog_schema import Business, Service, Staff, WorkingHours
from salonbook.schemas.customer_schema import Customer, DashboardStats, ServiceStats
from salonbook.schemas.result_schema import ErrorCode, OperationResult, PaginatedResult

__all__ = [
    "AvailabilityResponse", "Booking", "BookingEvent", "BookingStatus",
    "CreateBookingRequest", "EventKind", "TimeSlot", "UpdateBookingRequest",
    "Business", "Service", "Staff", "WorkingHours",
    "Customer", "DashboardStats", "ServiceStats",
    "ErrorCode", "OperationResult", "PaginatedResult",
]
