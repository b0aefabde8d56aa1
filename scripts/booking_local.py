#!/usr/bin/env python3
"""
Interactive local booking harness (no HTTP, no Google).

Usage:
  python3 scripts/booking_local.py

What it does:
- Seeds an in-memory store with one advisor, one session and one company
- Uses the mock calendar so /connect mirrors bookings into fake events
- Runs availability and booking through the same use cases as the API
"""

from __future__ import annotations

import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

load_dotenv()

from app.application.exceptions import NotFoundError, SlotConflictError
from app.application.use_cases.availability import AvailabilityUseCase
from app.application.use_cases.booking import BookingUseCase
from app.core.config import settings
from app.domain.entities.advisor import Advisor
from app.domain.entities.booking import AdvisorySession, Company
from app.infrastructure.calendar.mock_calendar import MockCalendarGateway
from app.infrastructure.store.memory_store import MemoryAdvisoryStore

ADVISOR_ID = "advisor_local"


def _build() -> dict:
    store = MemoryAdvisoryStore()
    store.add_advisor(Advisor(id=ADVISOR_ID, name="Local Advisor", email="advisor@example.com", specialty="Finance"))
    store.add_session(AdvisorySession(id="session_local", title="Quarterly review", session_type="review"))
    store.add_company(Company(id="company_local", name="Local Co", email="team@example.com"))

    calendar = MockCalendarGateway(advisors=store)
    availability = AvailabilityUseCase(
        advisors=store,
        bookings=store,
        calendar=calendar,
        timezone=ZoneInfo(settings.BUSINESS_TIMEZONE),
        start_hour=settings.AVAILABILITY_START_HOUR,
        end_hour=settings.AVAILABILITY_END_HOUR,
        slot_minutes=settings.SLOT_DURATION_MINUTES,
    )
    booking = BookingUseCase(
        advisors=store,
        bookings=store,
        catalog=store,
        calendar=calendar,
        availability=availability,
    )
    return {"store": store, "calendar": calendar, "availability": availability, "booking": booking}


def _print_slots(availability: AvailabilityUseCase, day: date) -> None:
    print(f"\n--- {day.isoformat()} ---")
    for slot in availability.compute_availability(ADVISOR_ID, day):
        mark = "free" if slot.available else "busy"
        print(f"  {slot.start:%H:%M}-{slot.end:%H:%M}  {mark}")


def main() -> None:
    container = _build()
    availability = container["availability"]
    booking = container["booking"]
    calendar = container["calendar"]
    day = date.today()

    print("Local booking harness. /help for commands.")
    while True:
        try:
            line = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nBye!")
            return
        if not line:
            continue

        cmd, *args = line.split()
        cmd = cmd.lower()
        if cmd in ("/quit", "/exit"):
            print("Bye!")
            return
        if cmd == "/help":
            print("Commands:")
            print("  /day YYYY-MM-DD  -> switch the working date")
            print("  /slots           -> show availability for the working date")
            print("  /book HH         -> book the hour starting at HH")
            print("  /cancel ID       -> cancel a booking")
            print("  /list            -> list advisor bookings")
            print("  /connect         -> connect the mock calendar")
            print("  /quit            -> exit")
            continue
        if cmd == "/day" and args:
            day = date.fromisoformat(args[0])
            _print_slots(availability, day)
            continue
        if cmd == "/slots":
            _print_slots(availability, day)
            continue
        if cmd == "/connect":
            tokens = calendar.exchange_code_for_tokens("local")
            print("connected" if calendar.persist_credentials(ADVISOR_ID, tokens) else "connect failed")
            continue
        if cmd == "/list":
            for b in booking.list_advisor_bookings(ADVISOR_ID):
                print(f"  {b.id}  {b.start_time:%Y-%m-%d %H:%M}  {b.status.value}  event={b.google_event_id}")
            continue
        if cmd == "/book" and args:
            start = datetime.combine(day, datetime.min.time()).replace(hour=int(args[0]))
            try:
                created = booking.create_booking(
                    company_id="company_local",
                    advisor_id=ADVISOR_ID,
                    session_id="session_local",
                    start=start,
                    end=start + timedelta(minutes=settings.SLOT_DURATION_MINUTES),
                    created_by="local",
                )
            except SlotConflictError as e:
                print(f"Conflict: {e}")
                print("Free: " + ", ".join(f"{s.start:%H:%M}" for s in e.free_slots))
                continue
            except ValueError as e:
                print(str(e))
                continue
            print(f"Booked {created.id} (event={created.google_event_id})")
            continue
        if cmd == "/cancel" and args:
            try:
                cancelled = booking.cancel_booking(args[0])
            except NotFoundError as e:
                print(str(e))
                continue
            print(f"{cancelled.id} -> {cancelled.status.value}")
            continue

        print("Unknown command. /help for commands.")


if __name__ == "__main__":
    main()
