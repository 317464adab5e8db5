"""
Finite state machine for booking status transitions.

Every status change the ledger performs goes through an explicit
transition table. Anything not listed is rejected with a clear error
naming the triggers that are allowed from the current status.

Usage:
    machine = BookingStateMachine()
    new_status = machine.transition(BookingStatus.PENDING, BookingTrigger.CONFIRM)
    assert new_status == BookingStatus.CONFIRMED
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from salonbook.config import settings
from salonbook.errors import InvalidTransitionError
from salonbook.schemas.booking_schema import BookingStatus
from salonbook.schemas.result_schema import ErrorCode

logger = logging.getLogger(__name__)


class BookingTrigger(str, Enum):
    """Operations that move a booking between statuses."""
    CONFIRM = "confirm"
    COMPLETE = "complete"
    CANCEL = "cancel"
    MARK_NO_SHOW = "mark_no_show"


TERMINAL_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_status: BookingStatus
    to_status: BookingStatus
    trigger: BookingTrigger
    guard: Optional[Callable[["BookingStateMachine"], bool]] = None


class BookingStateMachine:
    """
    Stateless transition table shared by all bookings.

    ``allow_complete_from_pending`` keeps the permissive pending -> completed
    path available; turn it off to require an explicit confirmation first.
    """

    TRANSITIONS: list[Transition] = [
        # --- Pending ---
        Transition(BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingTrigger.CONFIRM),
        Transition(BookingStatus.PENDING, BookingStatus.CANCELLED, BookingTrigger.CANCEL),
        Transition(BookingStatus.PENDING, BookingStatus.COMPLETED, BookingTrigger.COMPLETE,
                   guard=lambda machine: machine.allow_complete_from_pending),

        # --- Confirmed ---
        Transition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED, BookingTrigger.COMPLETE),
        Transition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingTrigger.CANCEL),
        Transition(BookingStatus.CONFIRMED, BookingStatus.NO_SHOW, BookingTrigger.MARK_NO_SHOW),
    ]

    def __init__(self, allow_complete_from_pending: Optional[bool] = None) -> None:
        if allow_complete_from_pending is None:
            allow_complete_from_pending = settings.ledger.allow_complete_from_pending
        self.allow_complete_from_pending = allow_complete_from_pending

    def transition(self, status: BookingStatus, trigger: BookingTrigger) -> BookingStatus:
        """
        Resolve the status reached by applying ``trigger`` to ``status``.

        Raises:
            InvalidTransitionError: BOOKING_ALREADY_CANCELLED when cancelling a
                cancelled booking, BAD_REQUEST for every other illegal move.
        """
        for t in self.TRANSITIONS:
            if t.from_status == status and t.trigger == trigger:
                if t.guard is not None and not t.guard(self):
                    continue
                logger.debug(
                    "Booking transition: %s -> %s (trigger: %s)",
                    status.value, t.to_status.value, trigger.value,
                )
                return t.to_status

        if status == BookingStatus.CANCELLED and trigger == BookingTrigger.CANCEL:
            raise InvalidTransitionError(
                "This booking has already been cancelled",
                code=ErrorCode.BOOKING_ALREADY_CANCELLED,
            )
        valid = [t.value for t in self.get_valid_triggers(status)]
        raise InvalidTransitionError(
            f"Cannot {trigger.value.replace('_', ' ')} a {status.value} booking",
            details=f"Valid triggers from '{status.value}': {valid}",
        )

    def can_transition(self, status: BookingStatus, trigger: BookingTrigger) -> bool:
        return trigger in self.get_valid_triggers(status)

    def get_valid_triggers(self, status: BookingStatus) -> list[BookingTrigger]:
        """Return all triggers valid from ``status`` given the active guards."""
        return [
            t.trigger
            for t in self.TRANSITIONS
            if t.from_status == status and (t.guard is None or t.guard(self))
        ]

    @staticmethod
    def is_terminal(status: BookingStatus) -> bool:
        return status in TERMINAL_STATUSES
