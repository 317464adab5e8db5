from salonbook.scheduling.calendar import Interval, generate_candidates, working_window
from salonbook.scheduling.conflicts import Candidate, find_conflicts, has_conflict
from salonbook.scheduling.state_machine import (
    BookingStateMachine,
    BookingTrigger,
    TERMINAL_STATUSES,
)

__all__ = [
    "Interval",
    "generate_candidates",
    "working_window",
    "Candidate",
    "find_conflicts",
    "has_conflict",
    "BookingStateMachine",
    "BookingTrigger",
    "TERMINAL_STATUSES",
]
