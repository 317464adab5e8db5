"""Uniform result envelope returned by every engine operation."""

from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ErrorCode(str, Enum):
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    BAD_REQUEST = "BAD_REQUEST"

    BUSINESS_NOT_FOUND = "BUSINESS_NOT_FOUND"
    STAFF_NOT_FOUND = "STAFF_NOT_FOUND"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"

    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    SLOT_NOT_AVAILABLE = "SLOT_NOT_AVAILABLE"
    BOOKING_ALREADY_CANCELLED = "BOOKING_ALREADY_CANCELLED"

    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    CUSTOMER_EMAIL_EXISTS = "CUSTOMER_EMAIL_EXISTS"


class ApiError(BaseModel):
    """Structured error carried by a failed result."""
    code: ErrorCode
    message: str
    details: Optional[str] = None


class ValidationErrorDetail(BaseModel):
    """Field-level validation error."""
    field: str
    message: str
    code: Optional[str] = None


class OperationResult(BaseModel, Generic[T]):
    """Success flag, payload-or-null, error-or-null, field errors and status."""
    is_success: bool
    data: Optional[T] = None
    error: Optional[ApiError] = None
    validation_errors: list[ValidationErrorDetail] = Field(default_factory=list)
    status_code: int = 200


class PaginatedResult(BaseModel, Generic[T]):
    """One page of a sorted, filtered listing."""
    items: list[T] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 10
    total_pages: int = 0
    has_next_page: bool = False
    has_previous_page: bool = False


def success_result(data: T, status_code: int = 200) -> OperationResult[T]:
    return OperationResult(is_success=True, data=data, status_code=status_code)


def error_result(
    code: ErrorCode,
    message: str,
    status_code: int = 400,
    details: Optional[str] = None,
) -> OperationResult:
    return OperationResult(
        is_success=False,
        error=ApiError(code=code, message=message, details=details),
        status_code=status_code,
    )


def validation_error_result(errors: list[ValidationErrorDetail]) -> OperationResult:
    return OperationResult(
        is_success=False,
        error=ApiError(
            code=ErrorCode.VALIDATION_FAILED,
            message="One or more validation errors occurred.",
        ),
        validation_errors=errors,
        status_code=400,
    )


def paginate(items: list[T], page: int, page_size: int) -> PaginatedResult[T]:
    """Slice an already sorted list into a PaginatedResult."""
    page = max(page, 1)
    start = (page - 1) * page_size
    end = start + page_size
    total = len(items)
    return PaginatedResult(
        items=items[start:end],
        total_count=total,
        page=page,
        page_size=page_size,
        total_pages=(total + page_size - 1) // page_size,
        has_next_page=end < total,
        has_previous_page=page > 1,
    )
