"""Customer data models and dashboard aggregates."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from salonbook.schemas.booking_schema import Booking
from salonbook.utils import utc_now


def _check_email(value: str) -> str:
    value = value.strip()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise ValueError("must be a valid email address")
    return value


class Customer(BaseModel):
    """
    Customer record scoped to one business.

    total_bookings, total_spent and last_visit_at are a cache of a fold
    over the booking ledger, rewritten by the aggregation engine after
    every ledger mutation. No request model can set them.
    """
    id: str
    business_id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    phone_number: Optional[str] = None
    notes: Optional[str] = None
    tags: set[str] = Field(default_factory=set)
    total_bookings: int = 0
    total_spent: Decimal = Decimal("0")
    last_visit_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class CreateCustomerRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str
    first_name: str = ""
    last_name: str = ""
    phone_number: Optional[str] = None
    notes: Optional[str] = None
    tags: set[str] = Field(default_factory=set)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return _check_email(value)


class UpdateCustomerRequest(BaseModel):
    """Contact-field update. Derived aggregates are rejected as extra fields."""
    model_config = ConfigDict(extra="forbid")

    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[set[str]] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _check_email(value)


class CustomerTotals(BaseModel):
    """Result of folding a customer's bookings."""
    total_bookings: int = 0
    total_spent: Decimal = Decimal("0")
    last_visit_at: Optional[datetime] = None


class ServiceStats(BaseModel):
    service_id: str
    service_name: str
    booking_count: int
    revenue: Decimal


class DashboardStats(BaseModel):
    today_bookings: int = 0
    week_bookings: int = 0
    month_bookings: int = 0
    total_customers: int = 0
    total_revenue: Decimal = Decimal("0")
    average_booking_value: Decimal = Decimal("0")
    popular_services: list[ServiceStats] = Field(default_factory=list)
    upcoming_bookings: list[Booking] = Field(default_factory=list)
