"""
Calendar math: civil working hours to absolute slot intervals.

Working hours are wall-clock values in the business timezone. Every
function here resolves them to aware UTC instants so interval comparisons
elsewhere never depend on the caller's local time. All functions are pure.

Usage:
    tz = ZoneInfo("Europe/Stockholm")
    hours = staff.hours_for(weekday_index(day))
    grid = generate_candidates(day, hours, duration_minutes=30, tz=tz)
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from salonbook.schemas.catalog_schema import END_OF_DAY, WorkingHours

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class Interval:
    """Half-open time interval [start, end) between aware instants."""
    start: datetime
    end: datetime

    def overlaps(self, other: "Interval") -> bool:
        # touching endpoints do not overlap
        return other.start < self.end and other.end > self.start

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def padded(self, before_minutes: int = 0, after_minutes: int = 0) -> "Interval":
        return Interval(
            self.start - timedelta(minutes=before_minutes),
            self.end + timedelta(minutes=after_minutes),
        )

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def parse_wall_clock(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight. "24:00" is end of day."""
    value = value.strip()
    if value == END_OF_DAY:
        return MINUTES_PER_DAY
    parsed = datetime.strptime(value, "%H:%M")
    return parsed.hour * 60 + parsed.minute


def weekday_index(day: date) -> int:
    """Day of week with 0=Sunday..6=Saturday."""
    return (day.weekday() + 1) % 7


def to_utc(day: date, minutes: int, tz: tzinfo) -> datetime:
    """Resolve a civil wall-clock time on ``day`` to an aware UTC instant."""
    wall = datetime.combine(day, time.min) + timedelta(minutes=minutes)
    return wall.replace(tzinfo=tz).astimezone(timezone.utc)


def local_date(instant: datetime, tz: tzinfo) -> date:
    """The civil date of an instant in the given timezone."""
    return instant.astimezone(tz).date()


def working_window(day: date, hours: WorkingHours, tz: tzinfo) -> Optional[Interval]:
    """The staff member's working window for ``day`` as UTC instants, if any."""
    if not hours.is_enabled:
        return None
    start = parse_wall_clock(hours.start_time)
    end = parse_wall_clock(hours.end_time)
    if end <= start:
        return None
    return Interval(to_utc(day, start, tz), to_utc(day, end, tz))


def generate_candidates(
    day: date,
    hours: WorkingHours,
    duration_minutes: int,
    tz: tzinfo,
    step_minutes: Optional[int] = None,
) -> list[Interval]:
    """
    Produce the ordered candidate grid for one staff member on one day.

    Candidates start at the working-hours start, are exactly
    ``duration_minutes`` long and advance by ``step_minutes`` (the service
    duration when not given). The last candidate is the one that still ends
    at or before the working-hours end.
    """
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be > 0, got {duration_minutes}")
    step = step_minutes or duration_minutes
    window = working_window(day, hours, tz)
    if window is None:
        return []

    duration = timedelta(minutes=duration_minutes)
    stride = timedelta(minutes=step)
    slots: list[Interval] = []
    current = window.start
    while current + duration <= window.end:
        slots.append(Interval(current, current + duration))
        current += stride
    return slots


def day_bounds(day: date, tz: tzinfo) -> Interval:
    """The civil day in ``tz`` as a UTC interval."""
    return Interval(to_utc(day, 0, tz), to_utc(day + timedelta(days=1), 0, tz))


def rolling_bounds(day: date, tz: tzinfo, days: int) -> Interval:
    """``days`` civil days starting at ``day`` as a UTC interval."""
    return Interval(to_utc(day, 0, tz), to_utc(day + timedelta(days=days), 0, tz))


def month_bounds(day: date, tz: tzinfo) -> Interval:
    """The civil calendar month containing ``day`` as a UTC interval."""
    first = day.replace(day=1)
    if first.month == 12:
        following = first.replace(year=first.year + 1, month=1)
    else:
        following = first.replace(month=first.month + 1)
    return Interval(to_utc(first, 0, tz), to_utc(following, 0, tz))
