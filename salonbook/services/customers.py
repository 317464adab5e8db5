"""
Customer directory for a business.

Customers are created explicitly here or implicitly by a guest booking.
Email addresses are unique per business (compared case-insensitively);
every write that could change that takes the business's directory lock.
The booking totals on each record are owned by the aggregation engine and
cannot be written through this module.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional, Union

from salonbook.config import settings
from salonbook.errors import ConflictError, InvalidTransitionError, NotFoundError, returns_result
from salonbook.schemas.customer_schema import (
    CreateCustomerRequest,
    Customer,
    UpdateCustomerRequest,
)
from salonbook.schemas.result_schema import (
    ErrorCode,
    OperationResult,
    PaginatedResult,
    paginate,
    success_result,
)
from salonbook.services.lookups import require_business
from salonbook.store.base import Store, customer_directory_lock, customer_lock
from salonbook.utils import new_id, normalize_email, normalize_phone, utc_now

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10
NULLABLE_FIELDS = frozenset({"phone_number", "notes"})


def _email_taken() -> ConflictError:
    return ConflictError(
        "A customer with this email already exists.", code=ErrorCode.CUSTOMER_EMAIL_EXISTS
    )


def _customer_not_found() -> NotFoundError:
    return NotFoundError("Customer not found.", code=ErrorCode.CUSTOMER_NOT_FOUND)


def _matches_query(customer: Customer, query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return False
    if needle in customer.full_name.lower() or needle in customer.email.lower():
        return True
    digits = normalize_phone(query)
    return bool(digits) and bool(customer.phone_number) and digits in customer.phone_number


def _recent_first(customer: Customer) -> tuple[bool, datetime]:
    # customers who never visited sort after everyone who has
    return (customer.last_visit_at is not None, customer.last_visit_at or customer.created_at)


class CustomerDirectory:
    def __init__(self, store: Store, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.clock = clock

    @returns_result
    def create(
        self, business_id: str, request: Union[CreateCustomerRequest, dict[str, Any]]
    ) -> OperationResult[Customer]:
        req = CreateCustomerRequest.model_validate(request)
        require_business(self.store, business_id)
        with self.store.locked([customer_directory_lock(business_id)]):
            if self.store.find_customer_by_email(business_id, req.email) is not None:
                raise _email_taken()
            now = self.clock()
            customer = Customer(
                id=new_id("customer"),
                business_id=business_id,
                email=req.email,
                first_name=req.first_name,
                last_name=req.last_name,
                phone_number=normalize_phone(req.phone_number) if req.phone_number else None,
                notes=req.notes,
                tags=req.tags,
                created_at=now,
                updated_at=now,
            )
            self.store.save_customer(customer)
        logger.info("New customer created: %s (%s)", customer.id, normalize_email(customer.email))
        return success_result(customer, status_code=201)

    @returns_result
    def update(
        self,
        business_id: str,
        customer_id: str,
        request: Union[UpdateCustomerRequest, dict[str, Any]],
    ) -> OperationResult[Customer]:
        """Update contact fields; a new email must still be unique in the business."""
        req = UpdateCustomerRequest.model_validate(request)
        changes = {
            field: value
            for field, value in req.model_dump(exclude_unset=True).items()
            if value is not None or field in NULLABLE_FIELDS
        }
        keys = [customer_directory_lock(business_id), customer_lock(customer_id)]
        with self.store.locked(keys):
            customer = self.store.get_customer(business_id, customer_id)
            if customer is None:
                raise _customer_not_found()
            new_email = changes.get("email")
            if new_email and normalize_email(new_email) != normalize_email(customer.email):
                if self.store.find_customer_by_email(business_id, new_email) is not None:
                    raise _email_taken()
            if changes.get("phone_number"):
                changes["phone_number"] = normalize_phone(changes["phone_number"])
            updated = customer.model_copy(update={**changes, "updated_at": self.clock()})
            self.store.save_customer(updated)
        logger.info("Customer %s updated: %s", customer_id, ", ".join(sorted(changes)) or "no changes")
        return success_result(updated)

    @returns_result
    def get(self, business_id: str, customer_id: str) -> OperationResult[Customer]:
        customer = self.store.get_customer(business_id, customer_id)
        if customer is None:
            raise _customer_not_found()
        return success_result(customer)

    @returns_result
    def search(
        self, business_id: str, query: str, limit: int = SEARCH_LIMIT
    ) -> OperationResult[list[Customer]]:
        """Substring match on name, email or phone digits."""
        found = [c for c in self.store.list_customers(business_id) if _matches_query(c, query)]
        found.sort(key=lambda c: (c.full_name.lower(), c.id))
        return success_result(found[: min(limit, SEARCH_LIMIT)])

    @returns_result
    def list(
        self,
        business_id: str,
        search: Optional[str] = None,
        tags: Optional[set[str]] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> OperationResult[PaginatedResult[Customer]]:
        """Customers with any of ``tags``, most recent visit first."""
        page_size = min(
            page_size or settings.ledger.default_page_size, settings.ledger.max_page_size
        )
        customers = self.store.list_customers(business_id)
        if search:
            customers = [c for c in customers if _matches_query(c, search)]
        if tags:
            customers = [c for c in customers if c.tags & tags]
        customers.sort(key=_recent_first, reverse=True)
        return success_result(paginate(customers, page, page_size))

    @returns_result
    def delete(self, business_id: str, customer_id: str) -> OperationResult[Customer]:
        """Remove a customer who has no live bookings left."""
        keys = [customer_directory_lock(business_id), customer_lock(customer_id)]
        with self.store.locked(keys):
            customer = self.store.get_customer(business_id, customer_id)
            if customer is None:
                raise _customer_not_found()
            live = [
                b
                for b in self.store.list_bookings(business_id, customer_id=customer_id)
                if b.is_occupying
            ]
            if live:
                raise InvalidTransitionError(
                    f"Customer {customer_id} still has {len(live)} active booking(s)"
                )
            self.store.delete_customer(business_id, customer_id)
        logger.info("Customer deleted: %s", customer_id)
        return success_result(customer)
