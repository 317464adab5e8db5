"""
Catalog administration: businesses, services and staff.

Edits here never rewrite existing bookings. A booking keeps the price,
duration and buffers it was created with.
"""

import logging
import re
from datetime import datetime
from typing import Any, Callable, Iterable, Union

from pydantic import BaseModel

from salonbook.config import settings
from salonbook.errors import InvalidTransitionError, NotFoundError, returns_result
from salonbook.schemas.catalog_schema import (
    Business,
    CreateBusinessRequest,
    CreateServiceRequest,
    CreateStaffRequest,
    Service,
    Staff,
    UpdateBusinessRequest,
    UpdateServiceRequest,
    UpdateStaffRequest,
    WorkingHours,
)
from salonbook.schemas.result_schema import ErrorCode, OperationResult, success_result
from salonbook.services.lookups import require_business, require_staff
from salonbook.store.base import Store, staff_lock
from salonbook.utils import new_id, utc_now

logger = logging.getLogger(__name__)

_NON_SLUG = re.compile(r"[^a-z0-9]+")

# an explicit null clears these; for every other field it means "unchanged"
NULLABLE_SERVICE_FIELDS = frozenset({"description", "min_advance_hours", "max_advance_days"})
NULLABLE_STAFF_FIELDS = frozenset({"email"})
OWNER_ROLE = "owner"


def slugify(name: str) -> str:
    """'Anna's Hair & Beauty' -> 'anna-s-hair-beauty'."""
    return _NON_SLUG.sub("-", name.lower()).strip("-") or "business"


def _changes(request: BaseModel, nullable: frozenset[str] = frozenset()) -> dict[str, Any]:
    """Fields the caller set. None is dropped unless the field may be cleared."""
    return {
        field: value
        for field, value in request.model_dump(exclude_unset=True).items()
        if value is not None or field in nullable
    }


class Catalog:
    def __init__(self, store: Store, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.clock = clock

    # --- Businesses ---

    @returns_result
    def create_business(
        self, request: Union[CreateBusinessRequest, dict[str, Any]]
    ) -> OperationResult[Business]:
        req = CreateBusinessRequest.model_validate(request)
        business = Business(
            id=new_id("business"),
            name=req.name,
            slug=slugify(req.name),
            timezone=req.timezone or settings.scheduling.default_timezone,
            created_at=self.clock(),
        )
        self.store.save_business(business)
        logger.info("Business created: %s (%s, %s)", business.id, business.slug, business.timezone)
        return success_result(business, status_code=201)

    @returns_result
    def get_business(self, business_id: str) -> OperationResult[Business]:
        return success_result(require_business(self.store, business_id))

    @returns_result
    def update_business(
        self, business_id: str, request: Union[UpdateBusinessRequest, dict[str, Any]]
    ) -> OperationResult[Business]:
        """
        Rename a business, move it to another timezone or (de)activate it.

        The slug stays stable across renames. A new timezone moves every slot
        grid from the next availability lookup on; existing bookings are
        absolute instants and keep their times.
        """
        req = UpdateBusinessRequest.model_validate(request)
        business = require_business(self.store, business_id)
        changes = _changes(req)
        updated = business.model_copy(update=changes)
        self.store.save_business(updated)
        logger.info("Business %s updated: %s", business_id, ", ".join(sorted(changes)) or "no changes")
        return success_result(updated)

    # --- Services ---

    @returns_result
    def create_service(
        self, business_id: str, request: Union[CreateServiceRequest, dict[str, Any]]
    ) -> OperationResult[Service]:
        req = CreateServiceRequest.model_validate(request)
        require_business(self.store, business_id)
        now = self.clock()
        service = Service(
            id=new_id("service"),
            business_id=business_id,
            created_at=now,
            updated_at=now,
            **req.model_dump(),
        )
        self.store.save_service(service)
        logger.info(
            "Service created: %s '%s' %d min %s %s",
            service.id, service.name, service.duration_minutes, service.price, service.currency,
        )
        return success_result(service, status_code=201)

    @returns_result
    def update_service(
        self,
        business_id: str,
        service_id: str,
        request: Union[UpdateServiceRequest, dict[str, Any]],
    ) -> OperationResult[Service]:
        """Apply a partial update. Existing bookings keep their snapshots."""
        req = UpdateServiceRequest.model_validate(request)
        service = self._service(business_id, service_id)
        changes = _changes(req, NULLABLE_SERVICE_FIELDS)
        updated = Service.model_validate(
            {**service.model_dump(), **changes, "updated_at": self.clock()}
        )
        self.store.save_service(updated)
        logger.info("Service %s updated: %s", service_id, ", ".join(sorted(changes)) or "no changes")
        return success_result(updated)

    @returns_result
    def get_service(self, business_id: str, service_id: str) -> OperationResult[Service]:
        return success_result(self._service(business_id, service_id))

    @returns_result
    def list_services(
        self, business_id: str, include_inactive: bool = False
    ) -> OperationResult[list[Service]]:
        require_business(self.store, business_id)
        services = [
            s for s in self.store.list_services(business_id) if include_inactive or s.is_active
        ]
        return success_result(sorted(services, key=lambda s: (s.name.lower(), s.id)))

    def _service(self, business_id: str, service_id: str) -> Service:
        service = self.store.get_service(business_id, service_id)
        if service is None:
            raise NotFoundError("Service not found.", code=ErrorCode.SERVICE_NOT_FOUND)
        return service

    # --- Staff ---

    @returns_result
    def create_staff(
        self, business_id: str, request: Union[CreateStaffRequest, dict[str, Any]]
    ) -> OperationResult[Staff]:
        req = CreateStaffRequest.model_validate(request)
        require_business(self.store, business_id)
        self._check_services(business_id, req.service_ids)
        staff = Staff(
            id=new_id("staff"),
            business_id=business_id,
            created_at=self.clock(),
            **req.model_dump(),
        )
        self.store.save_staff(staff)
        logger.info(
            "Staff created: %s '%s' working %d day(s)",
            staff.id, staff.display_name, sum(1 for h in staff.working_hours if h.is_enabled),
        )
        return success_result(staff, status_code=201)

    @returns_result
    def get_staff(self, business_id: str, staff_id: str) -> OperationResult[Staff]:
        return success_result(require_staff(self.store, business_id, staff_id))

    @returns_result
    def list_staff(
        self, business_id: str, include_inactive: bool = True
    ) -> OperationResult[list[Staff]]:
        require_business(self.store, business_id)
        staff = [s for s in self.store.list_staff(business_id) if include_inactive or s.is_active]
        return success_result(sorted(staff, key=lambda s: (s.display_name.lower(), s.id)))

    @returns_result
    def update_staff(
        self,
        business_id: str,
        staff_id: str,
        request: Union[UpdateStaffRequest, dict[str, Any]],
    ) -> OperationResult[Staff]:
        """Edit profile fields. Inactive staff get no new bookings but keep existing ones."""
        req = UpdateStaffRequest.model_validate(request)
        with self.store.locked([staff_lock(staff_id)]):
            staff = require_staff(self.store, business_id, staff_id)
            changes = _changes(req, NULLABLE_STAFF_FIELDS)
            updated = staff.model_copy(update=changes)
            self.store.save_staff(updated)
        logger.info("Staff %s updated: %s", staff_id, ", ".join(sorted(changes)) or "no changes")
        return success_result(updated)

    @returns_result
    def delete_staff(self, business_id: str, staff_id: str) -> OperationResult[Staff]:
        """
        Remove a staff member.

        The owner cannot be removed, nor can anyone with bookings that have
        not ended yet; deactivate them with ``update_staff`` instead. Past
        bookings keep the removed staff id.
        """
        with self.store.locked([staff_lock(staff_id)]):
            staff = require_staff(self.store, business_id, staff_id)
            if staff.role == OWNER_ROLE:
                raise InvalidTransitionError("Cannot remove the business owner")
            now = self.clock()
            pending = [
                b
                for b in self.store.list_bookings(business_id, staff_id=staff_id, start=now)
                if b.is_occupying
            ]
            if pending:
                raise InvalidTransitionError(
                    f"Staff member {staff_id} still has {len(pending)} upcoming booking(s)"
                )
            self.store.delete_staff(business_id, staff_id)
        logger.info("Staff deleted: %s", staff_id)
        return success_result(staff)

    @returns_result
    def set_working_hours(
        self,
        business_id: str,
        staff_id: str,
        hours: Iterable[Union[WorkingHours, dict[str, Any]]],
    ) -> OperationResult[Staff]:
        """
        Replace a staff member's weekly schedule.

        Days left out become non-working days; a weekday listed twice is a
        validation error. Existing bookings outside the new hours are kept.
        """
        staff = require_staff(self.store, business_id, staff_id)
        entries = [
            h.model_dump() if isinstance(h, WorkingHours) else h for h in hours
        ]
        # rebuilt through validation so the week is normalized again
        updated = Staff.model_validate({**staff.model_dump(), "working_hours": entries})
        self.store.save_staff(updated)
        logger.info("Working hours updated for %s", staff_id)
        return success_result(updated)

    @returns_result
    def assign_services(
        self, business_id: str, staff_id: str, service_ids: Iterable[str]
    ) -> OperationResult[Staff]:
        """Set which services a staff member performs; an empty set means all."""
        staff = require_staff(self.store, business_id, staff_id)
        wanted = set(service_ids)
        self._check_services(business_id, wanted)
        updated = staff.model_copy(update={"service_ids": wanted})
        self.store.save_staff(updated)
        logger.info("Staff %s now performs %d service(s)", staff_id, len(wanted))
        return success_result(updated)

    def _check_services(self, business_id: str, service_ids: Iterable[str]) -> None:
        for service_id in sorted(service_ids):
            self._service(business_id, service_id)
