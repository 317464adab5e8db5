"""Business, service and staff models with their administrative requests."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from salonbook.utils import utc_now

DAYS_PER_WEEK = 7
END_OF_DAY = "24:00"
MAX_BUFFER_MINUTES = 24 * 60


def _check_wall_clock(value: str) -> str:
    """Validate a local wall-clock time in HH:MM format ("24:00" allowed)."""
    value = value.strip()
    if value == END_OF_DAY:
        return value
    try:
        datetime.strptime(value, "%H:%M")
    except ValueError:
        raise ValueError(f"'{value}' is not a valid HH:MM time") from None
    return value


def _check_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"'{value}' is not a known IANA timezone") from None
    return value


class Business(BaseModel):
    """A business whose civil time drives slot generation."""
    id: str
    name: str
    slug: str
    timezone: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        return _check_timezone(value)


class Service(BaseModel):
    """A bookable service. Bookings snapshot price, duration and buffers."""
    id: str
    business_id: str
    name: str
    description: Optional[str] = None
    duration_minutes: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    buffer_before_minutes: int = Field(default=0, ge=0, le=MAX_BUFFER_MINUTES)
    buffer_after_minutes: int = Field(default=0, ge=0, le=MAX_BUFFER_MINUTES)
    min_advance_hours: Optional[int] = Field(default=None, ge=0)
    max_advance_days: Optional[int] = Field(default=None, gt=0)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class WorkingHours(BaseModel):
    """Working window for one weekday (0=Sunday..6=Saturday)."""
    day_of_week: int = Field(ge=0, le=6)
    start_time: str = "00:00"
    end_time: str = "00:00"
    is_enabled: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_wall_clock(cls, value: str) -> str:
        return _check_wall_clock(value)


def _fill_week(hours: list[WorkingHours]) -> list[WorkingHours]:
    """Return exactly seven entries ordered by weekday; missing days are disabled."""
    by_day: dict[int, WorkingHours] = {}
    for entry in hours:
        if entry.day_of_week in by_day:
            raise ValueError(f"Duplicate working hours for day {entry.day_of_week}")
        by_day[entry.day_of_week] = entry
    return [
        by_day.get(day, WorkingHours(day_of_week=day, is_enabled=False))
        for day in range(DAYS_PER_WEEK)
    ]


class Staff(BaseModel):
    """A staff member with a weekly schedule and the services they perform."""
    id: str
    business_id: str
    display_name: str
    email: Optional[str] = None
    role: str = "staff"
    is_active: bool = True
    working_hours: list[WorkingHours] = Field(default_factory=list)
    # empty means qualified for every service of the business
    service_ids: set[str] = Field(default_factory=set)
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def normalize_week(self) -> "Staff":
        self.working_hours = _fill_week(self.working_hours)
        return self

    def hours_for(self, day_of_week: int) -> WorkingHours:
        return self.working_hours[day_of_week]

    def performs(self, service_id: str) -> bool:
        return not self.service_ids or service_id in self.service_ids


class CreateBusinessRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    timezone: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _check_timezone(value)


class CreateServiceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    description: Optional[str] = None
    duration_minutes: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    buffer_before_minutes: int = Field(default=0, ge=0, le=MAX_BUFFER_MINUTES)
    buffer_after_minutes: int = Field(default=0, ge=0, le=MAX_BUFFER_MINUTES)
    min_advance_hours: Optional[int] = Field(default=None, ge=0)
    max_advance_days: Optional[int] = Field(default=None, gt=0)


class UpdateServiceRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    buffer_before_minutes: Optional[int] = Field(default=None, ge=0, le=MAX_BUFFER_MINUTES)
    buffer_after_minutes: Optional[int] = Field(default=None, ge=0, le=MAX_BUFFER_MINUTES)
    min_advance_hours: Optional[int] = Field(default=None, ge=0)
    max_advance_days: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None


class CreateStaffRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    display_name: str = Field(min_length=1)
    email: Optional[str] = None
    role: str = "staff"
    working_hours: list[WorkingHours] = Field(default_factory=list)
    service_ids: set[str] = Field(default_factory=set)


class UpdateBusinessRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1)
    timezone: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _check_timezone(value)


class UpdateStaffRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    display_name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    role: Optional[str] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None
