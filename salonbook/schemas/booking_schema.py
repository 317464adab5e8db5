"""Booking ledger and availability data models."""

from datetime import date as date_type, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from salonbook.utils import utc_now


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


def _require_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        raise ValueError("timestamp must include a UTC offset")
    return value


class Booking(BaseModel):
    """A booking record. Price, currency, duration and buffers are snapshots."""
    id: str
    business_id: str
    customer_id: str
    staff_id: str
    service_id: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus = BookingStatus.CONFIRMED
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    price: Decimal
    currency: str
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def is_occupying(self) -> bool:
        return self.status != BookingStatus.CANCELLED


class CreateBookingRequest(BaseModel):
    """Booking request. Omit customer_id and pass guest fields for a guest booking."""
    model_config = ConfigDict(extra="forbid")

    service_id: str = Field(min_length=1)
    start_time: datetime
    # omitted: the ledger assigns an eligible, free staff member
    staff_id: Optional[str] = None
    customer_id: Optional[str] = None
    notes: Optional[str] = None
    customer_email: Optional[str] = None
    customer_first_name: Optional[str] = None
    customer_last_name: Optional[str] = None
    customer_phone_number: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, value: datetime) -> datetime:
        return _require_aware(value)

    @field_validator("customer_email")
    @classmethod
    def validate_customer_email(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and "@" not in value:
            raise ValueError("must be a valid email address")
        return value


class UpdateBookingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    staff_id: Optional[str] = None
    start_time: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _require_aware(value)


class TimeSlot(BaseModel):
    """A candidate slot; produced fresh on every availability query."""
    start_time: datetime
    end_time: datetime
    is_available: bool
    available_staff_ids: list[str] = Field(default_factory=list)


class AvailabilityResponse(BaseModel):
    date: date_type
    service_id: str
    staff_id: Optional[str] = None
    timezone: str
    slots: list[TimeSlot] = Field(default_factory=list)

    @property
    def available_slots(self) -> list[TimeSlot]:
        return [slot for slot in self.slots if slot.is_available]


class EventKind(str, Enum):
    CREATED = "booking_created"
    CONFIRMED = "booking_confirmed"
    RESCHEDULED = "booking_rescheduled"
    CANCELLED = "booking_cancelled"
    COMPLETED = "booking_completed"
    NO_SHOW = "booking_no_show"
    DELETED = "booking_deleted"


class BookingEvent(BaseModel):
    """Notification event consumed by an external notifier."""
    kind: EventKind
    business_id: str
    booking_id: str
    customer_id: str
    staff_id: str
    occurred_at: datetime = Field(default_factory=utc_now)
