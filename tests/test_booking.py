"""
Booking lifecycle: creation with calendar mirroring, cancellation and rescheduling.
"""

from __future__ import annotations

import json

import httpx
import pytest

from app.application.exceptions import NotFoundError, SlotConflictError
from app.application.use_cases.availability import AvailabilityUseCase
from app.application.use_cases.booking import BookingUseCase
from app.domain.entities.booking import BookingStatus
from app.infrastructure.calendar.mock_calendar import MockCalendarGateway
from app.infrastructure.store.memory_store import MemoryAdvisoryStore
from helpers import EVENTS_URL, TZ, local


def _use_case(store, calendar=None) -> BookingUseCase:
    calendar = calendar or MockCalendarGateway(advisors=store)
    availability = AvailabilityUseCase(advisors=store, bookings=store, calendar=calendar, timezone=TZ)
    return BookingUseCase(
        advisors=store,
        bookings=store,
        catalog=store,
        calendar=calendar,
        availability=availability,
    )


def _create(use_case: BookingUseCase, start_hour: int = 14, end_hour: int = 15):
    return use_case.create_booking(
        company_id="co-1",
        advisor_id="adv-1",
        session_id="ses-1",
        start=local(10, start_hour),
        end=local(10, end_hour),
        created_by="user-1",
    )


def test_create_without_calendar_stores_booking_only(store):
    booking = _create(_use_case(store))

    assert booking.status == BookingStatus.scheduled
    assert booking.google_event_id is None
    assert booking.start_time == local(10, 14)
    assert store.get_booking(booking.id) == booking


def test_create_mirrors_booking_to_calendar(connected_store):
    calendar = MockCalendarGateway(advisors=connected_store)
    booking = _create(_use_case(connected_store, calendar))

    assert booking.google_event_id == "mock_event_1"
    events = calendar.list_events("adv-1", local(10, 0), local(11, 0)).value
    assert [e.summary for e in events] == ["Advisory: Growth strategy"]


def test_create_sends_event_details_to_google(connected_store, make_gateway):
    captured = {}

    def route(request):
        if request.method == "GET":
            return httpx.Response(200, json={"items": []})
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "evt-42"})

    gateway, _ = make_gateway(connected_store, route)
    booking = _create(_use_case(connected_store, gateway))

    assert booking.google_event_id == "evt-42"
    body = captured["body"]
    assert body["summary"] == "Advisory: Growth strategy"
    assert "Company: Acme" in body["description"]
    assert "Preparation instructions: Bring last quarter numbers" in body["description"]
    assert [a["email"] for a in body["attendees"]] == ["ana@example.com", "team@acme.example"]


def test_create_survives_calendar_failure(connected_store, make_gateway):
    """A calendar outage does not block the booking; it is stored without an event id."""

    def route(request):
        if request.method == "GET":
            return httpx.Response(200, json={"items": []})
        return httpx.Response(500, json={"error": {"message": "backend error"}})

    gateway, _ = make_gateway(connected_store, route)
    booking = _create(_use_case(connected_store, gateway))

    assert booking.google_event_id is None
    assert connected_store.get_booking(booking.id) is not None


def test_create_rejects_overlap_with_free_slots(store):
    use_case = _use_case(store)
    _create(use_case)

    with pytest.raises(SlotConflictError) as exc:
        use_case.create_booking(
            company_id="co-1",
            advisor_id="adv-1",
            session_id="ses-1",
            start=local(10, 14, 30),
            end=local(10, 15, 30),
            created_by="user-2",
        )

    free_hours = [slot.start.hour for slot in exc.value.free_slots]
    assert free_hours == [9, 10, 11, 12, 13, 15, 16]
    assert len(store.list_advisor_bookings("adv-1")) == 1


def test_lost_race_discards_mirrored_event(connected_store):
    """If the store refuses the insert after the event was created, the event is removed."""

    class RacingStore(MemoryAdvisoryStore):
        def create_booking(self, *args, **kwargs):
            raise SlotConflictError("taken by a concurrent request")

    racing = RacingStore()
    racing.add_advisor(connected_store.get_advisor("adv-1"))
    racing.add_session(connected_store.get_session("ses-1"))
    racing.add_company(connected_store.get_company("co-1"))
    calendar = MockCalendarGateway(advisors=racing)

    with pytest.raises(SlotConflictError) as exc:
        _create(_use_case(racing, calendar))

    assert len(exc.value.free_slots) == 8
    assert calendar.list_events("adv-1", local(10, 0), local(11, 0)).value == []


def test_create_validates_input(store):
    use_case = _use_case(store)

    with pytest.raises(ValueError):
        _create(use_case, start_hour=15, end_hour=14)
    with pytest.raises(NotFoundError):
        use_case.create_booking("co-1", "nobody", "ses-1", local(10, 9), local(10, 10), "user-1")
    with pytest.raises(NotFoundError):
        use_case.create_booking("co-1", "adv-1", "missing", local(10, 9), local(10, 10), "user-1")


def test_cancel_succeeds_when_calendar_delete_fails(connected_store, make_gateway):
    def route(request):
        if request.method == "GET":
            return httpx.Response(200, json={"items": []})
        if request.method == "POST":
            return httpx.Response(200, json={"id": "evt-1"})
        return httpx.Response(503, json={"error": {"message": "unavailable"}})

    gateway, recorder = make_gateway(connected_store, route)
    use_case = _use_case(connected_store, gateway)
    booking = _create(use_case)

    cancelled = use_case.cancel_booking(booking.id)

    assert cancelled.status == BookingStatus.cancelled
    assert len(recorder.calls_to(f"{EVENTS_URL}/evt-1", "DELETE")) == 1
    assert connected_store.list_active_bookings("adv-1", local(10, 0), local(11, 0)) == []


def test_cancel_removes_calendar_event_and_frees_slot(connected_store):
    calendar = MockCalendarGateway(advisors=connected_store)
    use_case = _use_case(connected_store, calendar)
    booking = _create(use_case)

    use_case.cancel_booking(booking.id)

    assert calendar.list_events("adv-1", local(10, 0), local(11, 0)).value == []
    assert _create(use_case).status == BookingStatus.scheduled


def test_cancel_twice_is_a_no_op(store):
    use_case = _use_case(store)
    booking = _create(use_case)

    first = use_case.cancel_booking(booking.id)
    second = use_case.cancel_booking(booking.id)

    assert first == second


def test_cancel_unknown_booking(store):
    with pytest.raises(NotFoundError):
        _use_case(store).cancel_booking("missing")


def test_reschedule_moves_booking_and_event(connected_store):
    calendar = MockCalendarGateway(advisors=connected_store)
    use_case = _use_case(connected_store, calendar)
    booking = _create(use_case)

    moved = use_case.reschedule_booking(booking.id, local(10, 14, 30), local(10, 15, 30))

    assert moved.start_time == local(10, 14, 30)
    event = calendar.list_events("adv-1", local(10, 0), local(11, 0)).value[0]
    assert event.start == local(10, 14, 30)
    assert event.end == local(10, 15, 30)


def test_reschedule_into_taken_slot_conflicts(store):
    use_case = _use_case(store)
    first = _create(use_case, 9, 10)
    _create(use_case, 11, 12)

    with pytest.raises(SlotConflictError):
        use_case.reschedule_booking(first.id, local(10, 11), local(10, 12))
    assert store.get_booking(first.id).start_time == local(10, 9)


def test_reschedule_cancelled_booking_is_rejected(store):
    use_case = _use_case(store)
    booking = _create(use_case)
    use_case.cancel_booking(booking.id)

    with pytest.raises(ValueError):
        use_case.reschedule_booking(booking.id, local(10, 9), local(10, 10))


def test_listings_are_sorted_by_start(store):
    use_case = _use_case(store)
    later = _create(use_case, 16, 17)
    earlier = _create(use_case, 9, 10)

    assert [b.id for b in use_case.list_advisor_bookings("adv-1")] == [earlier.id, later.id]
    assert [b.id for b in use_case.list_company_bookings("co-1")] == [earlier.id, later.id]
    assert use_case.list_company_bookings("other") == []


def test_create_with_unreadable_event_response_stores_booking(connected_store, make_gateway):
    def route(request):
        if request.method == "GET":
            return httpx.Response(200, json={"items": []})
        return httpx.Response(200, json=["x"])

    gateway, _ = make_gateway(connected_store, route)
    booking = _create(_use_case(connected_store, gateway))

    assert booking.google_event_id is None
    assert connected_store.get_booking(booking.id) is not None


def test_bookings_outside_working_hours_are_rejected(store):
    """Creation and rescheduling apply the same working-hours rule as availability."""
    use_case = _use_case(store)

    with pytest.raises(ValueError):
        _create(use_case, start_hour=3, end_hour=4)
    assert store.list_advisor_bookings("adv-1") == []

    booking = _create(use_case)
    with pytest.raises(ValueError):
        use_case.reschedule_booking(booking.id, local(10, 3), local(10, 4))
    assert store.get_booking(booking.id).start_time == local(10, 14)
