"""
Engine exception hierarchy and the boundary that turns it into results.

Engine internals raise these exceptions; every public service method is
wrapped with ``returns_result`` so callers only ever see an
``OperationResult``. Exceptions outside this hierarchy propagate.
"""

import functools
import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from salonbook.schemas.result_schema import (
    ErrorCode,
    OperationResult,
    ValidationErrorDetail,
    error_result,
    validation_error_result,
)

logger = logging.getLogger(__name__)


class BookingEngineError(Exception):
    """Base class for failures that are reported as results."""

    code: ErrorCode = ErrorCode.BAD_REQUEST
    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_result(self) -> OperationResult:
        return error_result(self.code, self.message, self.status_code, self.details)


class NotFoundError(BookingEngineError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class ConflictError(BookingEngineError):
    """Slot taken, duplicate email, or a lock that could not be acquired in time."""
    code = ErrorCode.CONFLICT
    status_code = 409


class InvalidTransitionError(BookingEngineError):
    """Raised when an operation is illegal for the booking's current status."""
    code = ErrorCode.BAD_REQUEST
    status_code = 400


class RequestValidationError(BookingEngineError):
    code = ErrorCode.VALIDATION_FAILED
    status_code = 400

    def __init__(self, errors: list[ValidationErrorDetail]) -> None:
        super().__init__("One or more validation errors occurred.")
        self.errors = errors

    def to_result(self) -> OperationResult:
        return validation_error_result(self.errors)


def validation_details(exc: ValidationError) -> list[ValidationErrorDetail]:
    """Flatten a pydantic ValidationError into field-level details."""
    details = []
    for err in exc.errors():
        field_path = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
        details.append(
            ValidationErrorDetail(field=field_path, message=err["msg"], code=err["type"])
        )
    return details


def returns_result(func: Callable[..., Any]) -> Callable[..., OperationResult]:
    """Convert engine exceptions raised by ``func`` into failed results."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> OperationResult:
        try:
            return func(*args, **kwargs)
        except ValidationError as exc:
            logger.info("%s rejected: validation failed", func.__qualname__)
            return validation_error_result(validation_details(exc))
        except BookingEngineError as exc:
            log = logger.warning if exc.status_code == 409 else logger.info
            log("%s rejected: %s (%s)", func.__qualname__, exc.code.value, exc.message)
            return exc.to_result()

    return wrapper
