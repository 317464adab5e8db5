"""
Offline console demo: walks through the booking engine with scripted scenarios.

Seeds an in-memory salon, then plays customers and front-desk staff against
the real availability engine, ledger and dashboard. No database, no network
calls. Designed for live demo walkthroughs.

Usage:
    python console_demo.py
    python console_demo.py --scenario conflict
    python console_demo.py --scenario lifecycle
"""

import argparse
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from salonbook.config import settings
from salonbook.logging_context import new_request_id
from salonbook.schemas.booking_schema import Booking, TimeSlot
from salonbook.schemas.catalog_schema import Business, Service, Staff
from salonbook.schemas.result_schema import OperationResult
from salonbook.services import (
    AggregationEngine,
    AvailabilityEngine,
    BookingLedger,
    Catalog,
    CompositeEventSink,
    CustomerDirectory,
    EventOutbox,
    LoggingEventSink,
)
from salonbook.store import InMemoryStore

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_TIMEZONE = "Europe/Stockholm"
WEEKDAY_HOURS = [
    {"day_of_week": day, "start_time": "09:00", "end_time": "17:00"} for day in range(1, 6)
]


def next_weekday(today: date, weekday: int = 0) -> date:
    """First date after ``today`` falling on ``weekday`` (0=Monday, datetime style)."""
    days_ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


class ConsoleSession:
    """Runs scripted front-desk scenarios against an in-memory salon."""

    SCENARIOS = ("booking", "conflict", "lifecycle", "dashboard")

    def __init__(self) -> None:
        self.store = InMemoryStore()
        self.outbox = EventOutbox()
        self.catalog = Catalog(self.store)
        self.customers = CustomerDirectory(self.store)
        self.aggregation = AggregationEngine(self.store)
        self.availability = AvailabilityEngine(self.store)
        self.ledger = BookingLedger(
            self.store,
            aggregation=self.aggregation,
            events=CompositeEventSink(self.outbox, LoggingEventSink()),
        )
        self.business: Optional[Business] = None
        self.cut: Optional[Service] = None
        self.colour: Optional[Service] = None
        self.team: list[Staff] = []

    def say(self, who: str, text: str) -> None:
        print(f"{GREEN}{BOLD}[{who}]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def report_failure(self, result: OperationResult) -> None:
        if result.validation_errors:
            for err in result.validation_errors:
                print(f"{RED}  !! {err.field}: {err.message}{RESET}")
            return
        detail = f" ({result.error.details})" if result.error.details else ""
        print(f"{RED}  !! {result.error.code.value}: {result.error.message}{detail}{RESET}")

    # --- Setup ---

    def seed(self) -> None:
        """Create the demo business, its services and two stylists."""
        self.business = self.catalog.create_business(
            {"name": "Anna's Hair Studio", "timezone": DEMO_TIMEZONE}
        ).data
        bid = self.business.id
        self.cut = self.catalog.create_service(bid, {
            "name": "Haircut", "duration_minutes": 45, "price": "450.00",
            "currency": "SEK", "buffer_after_minutes": 15,
        }).data
        self.colour = self.catalog.create_service(bid, {
            "name": "Colour", "duration_minutes": 90, "price": "1200.00",
            "currency": "SEK", "buffer_before_minutes": 10, "buffer_after_minutes": 20,
            "min_advance_hours": 24,
        }).data
        self.team = [
            self.catalog.create_staff(bid, {
                "display_name": "Anna", "working_hours": WEEKDAY_HOURS,
            }).data,
            self.catalog.create_staff(bid, {
                "display_name": "Erik", "working_hours": WEEKDAY_HOURS,
                "service_ids": [self.cut.id],
            }).data,
        ]
        self.system_log(
            f"Seeded {self.business.name} ({self.business.timezone}) with "
            f"{len(self.team)} staff and 2 services"
        )

    def demo_day(self) -> date:
        tz = ZoneInfo(self.business.timezone)
        return next_weekday(datetime.now(tz).date())

    def show_slots(self, slots: list[TimeSlot], limit: int = 6) -> None:
        tz = ZoneInfo(self.business.timezone)
        for slot in slots[:limit]:
            local = slot.start_time.astimezone(tz).strftime("%H:%M")
            who = ", ".join(self.staff_name(s) for s in slot.available_staff_ids) or "-"
            marker = GREEN if slot.is_available else RED
            print(f"    {marker}{local}{RESET}  {DIM}{who}{RESET}")
        if len(slots) > limit:
            print(f"    {DIM}... {len(slots) - limit} more{RESET}")

    def staff_name(self, staff_id: str) -> str:
        return next((s.display_name for s in self.team if s.id == staff_id), staff_id)

    def book(self, email: str, slot: TimeSlot, service: Service,
             staff_id: Optional[str] = None) -> Optional[Booking]:
        new_request_id()
        result = self.ledger.create(self.business.id, {
            "service_id": service.id,
            "staff_id": staff_id,
            "start_time": slot.start_time,
            "customer_email": email,
        })
        if not result.is_success:
            self.report_failure(result)
            return None
        booking = result.data
        self.system_log(
            f"{booking.id} {booking.status.value} with {self.staff_name(booking.staff_id)}"
        )
        return booking

    # --- Scenarios ---

    def scenario_booking(self) -> None:
        day = self.demo_day()
        self.say("Customer", f"Any haircut times on {day.isoformat()}?")
        result = self.availability.get_availability(self.business.id, self.cut.id, day)
        self.show_slots(result.data.available_slots)
        slot = result.data.available_slots[0]
        self.say("Front desk", "Booking the first free time for you.")
        self.book("lisa@example.com", slot, self.cut)

    def scenario_conflict(self) -> None:
        day = self.demo_day()
        anna = self.team[0]
        grid = self.availability.get_availability(self.business.id, self.cut.id, day, anna.id)
        slot = grid.data.available_slots[0]
        self.say("Customer 1", f"I want Anna at {slot.start_time.isoformat()}.")
        self.book("maja@example.com", slot, self.cut, anna.id)
        self.say("Customer 2", "Same time with Anna, please.")
        if self.book("oskar@example.com", slot, self.cut, anna.id) is None:
            retry = self.availability.next_available(self.business.id, self.cut.id, day, anna.id)
            if retry.data is None:
                self.say("Front desk", "Anna is fully booked for the next two weeks.")
                return
            self.say("Front desk", "That one just went. Next free time with Anna:")
            self.show_slots([retry.data])

    def scenario_lifecycle(self) -> None:
        day = self.demo_day() + timedelta(days=1)
        grid = self.availability.get_availability(self.business.id, self.colour.id, day)
        first, later = grid.data.available_slots[0], grid.data.available_slots[2]
        booking = self.book("nora@example.com", first, self.colour)
        if booking is None:
            return
        self.say("Customer", "Can we move it a little later?")
        moved = self.ledger.update(self.business.id, booking.id, {"start_time": later.start_time})
        if moved.is_success:
            self.system_log(f"Rescheduled to {moved.data.start_time.isoformat()}")
        self.say("Customer", "Actually, I have to cancel.")
        cancelled = self.ledger.cancel(self.business.id, booking.id, reason="sick", actor_id="customer")
        self.system_log(f"Status: {cancelled.data.status.value}")
        self.say("Customer", "Just making sure it's cancelled.")
        again = self.ledger.cancel(self.business.id, booking.id)
        self.report_failure(again)

    def scenario_dashboard(self) -> None:
        stats = self.aggregation.dashboard(self.business.id).data
        self.say("Owner", "How is the week looking?")
        self.system_log(f"Today: {stats.today_bookings}  Week: {stats.week_bookings}  "
                        f"Month: {stats.month_bookings}")
        self.system_log(f"Customers: {stats.total_customers}  Revenue: {stats.total_revenue}")
        for entry in stats.popular_services:
            self.system_log(f"{entry.service_name}: {entry.booking_count} booking(s)")
        self.system_log(f"Events published: {[e.kind.value for e in self.outbox.drain()]}")

    def run_scenario(self, scenario: str) -> None:
        if scenario not in self.SCENARIOS:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return
        self.banner(f"Scenario: {scenario}")
        self.seed()
        if scenario != "dashboard":
            getattr(self, f"scenario_{scenario}")()
        else:
            self.scenario_booking()
        self.scenario_dashboard()
        self.banner(f"Scenario '{scenario}' complete.")

    def run(self) -> None:
        """Play every scenario against one shared salon."""
        self.banner("Console Demo")
        self.seed()
        for scenario in ("booking", "conflict", "lifecycle"):
            print(f"\n{YELLOW}{BOLD}--- {scenario} ---{RESET}")
            getattr(self, f"scenario_{scenario}")()
        print(f"\n{YELLOW}{BOLD}--- dashboard ---{RESET}")
        self.scenario_dashboard()
        self.banner("Demo complete.")

    def banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {settings.app_name.upper()} - {title}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline booking engine demo")
    parser.add_argument(
        "--scenario",
        choices=list(ConsoleSession.SCENARIOS),
        default=None,
        help="Play a single scripted scenario instead of the full walkthrough",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        session.run_scenario(args.scenario)
    else:
        session.run()


if __name__ == "__main__":
    main()
