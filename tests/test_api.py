"""
HTTP API tests through FastAPI's TestClient with in-memory dependencies.
"""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from app.application.use_cases.availability import AvailabilityUseCase
from app.application.use_cases.booking import BookingUseCase
from app.infrastructure.calendar.mock_calendar import MockCalendarGateway
from app.main import app
from app.wiring.dependencies import (
    get_availability_use_case,
    get_booking_use_case,
    get_calendar,
    reset_dependencies,
)
from helpers import TZ


@pytest.fixture
def client_for():
    def _client(store, calendar=None) -> TestClient:
        calendar = calendar or MockCalendarGateway(advisors=store)
        availability = AvailabilityUseCase(advisors=store, bookings=store, calendar=calendar, timezone=TZ)
        booking = BookingUseCase(
            advisors=store, bookings=store, catalog=store, calendar=calendar, availability=availability
        )
        app.dependency_overrides[get_calendar] = lambda: calendar
        app.dependency_overrides[get_availability_use_case] = lambda: availability
        app.dependency_overrides[get_booking_use_case] = lambda: booking
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()
    reset_dependencies()


def _booking_payload(start: str = "2024-06-10T14:00:00-06:00", end: str = "2024-06-10T15:00:00-06:00") -> dict:
    return {
        "company_id": "co-1",
        "advisor_id": "adv-1",
        "session_id": "ses-1",
        "start_time": start,
        "end_time": end,
        "created_by": "user-1",
    }


def test_health(client_for, store):
    assert client_for(store).get("/health").json() == {"status": "ok"}


def test_availability_endpoint_lists_slots(client_for, store):
    client = client_for(store)
    client.post("/api/v1/bookings", json=_booking_payload())

    response = client.get("/api/v1/advisors/adv-1/availability", params={"date": "2024-06-10"})

    assert response.status_code == 200
    slots = response.json()
    assert len(slots) == 8
    assert [s["available"] for s in slots].count(False) == 1
    assert slots[5]["start"].startswith("2024-06-10T14:00:00")
    assert slots[5]["available"] is False


def test_availability_days_endpoint(client_for, store):
    response = client_for(store).get(
        "/api/v1/advisors/adv-1/availability/days", params={"start": "2024-06-10", "days": 2}
    )

    assert response.status_code == 200
    assert [d["date"] for d in response.json()] == ["2024-06-10", "2024-06-11"]


def test_availability_days_bounds_are_validated(client_for, store):
    response = client_for(store).get(
        "/api/v1/advisors/adv-1/availability/days", params={"start": "2024-06-10", "days": 0}
    )
    assert response.status_code == 422


def test_create_booking_and_conflict(client_for, store):
    """A second booking on an occupied slot gets 409 with the remaining free slots."""
    client = client_for(store)

    created = client.post("/api/v1/bookings", json=_booking_payload())
    assert created.status_code == 201
    assert created.json()["status"] == "scheduled"
    assert created.json()["calendar_synced"] is False

    conflict = client.post(
        "/api/v1/bookings",
        json=_booking_payload("2024-06-10T14:30:00-06:00", "2024-06-10T15:30:00-06:00"),
    )
    assert conflict.status_code == 409
    detail = conflict.json()["detail"]
    assert len(detail["free_slots"]) == 7
    assert "not available" in detail["message"]


def test_create_booking_errors(client_for, store):
    client = client_for(store)

    backwards = client.post(
        "/api/v1/bookings",
        json=_booking_payload("2024-06-10T15:00:00-06:00", "2024-06-10T14:00:00-06:00"),
    )
    unknown = client.post("/api/v1/bookings", json={**_booking_payload(), "session_id": "missing"})

    assert backwards.status_code == 400
    assert unknown.status_code == 404


def test_cancel_reschedule_and_listings(client_for, connected_store):
    client = client_for(connected_store)
    booking = client.post("/api/v1/bookings", json=_booking_payload()).json()
    assert booking["calendar_synced"] is True

    moved = client.patch(
        f"/api/v1/bookings/{booking['id']}",
        json={"start_time": "2024-06-10T16:00:00-06:00", "end_time": "2024-06-10T17:00:00-06:00"},
    )
    assert moved.status_code == 200
    assert moved.json()["start_time"].startswith("2024-06-10T16:00:00")

    cancelled = client.post(f"/api/v1/bookings/{booking['id']}/cancel")
    assert cancelled.json()["status"] == "cancelled"

    assert [b["id"] for b in client.get("/api/v1/advisors/adv-1/bookings").json()] == [booking["id"]]
    assert len(client.get("/api/v1/companies/co-1/bookings").json()) == 1
    assert client.post("/api/v1/bookings/missing/cancel").status_code == 404


def test_connect_calendar_with_used_code_is_rejected(client_for, store, make_gateway):
    gateway, _ = make_gateway(
        store, lambda request: httpx.Response(400, json={"error": "invalid_grant", "error_description": "Bad Request"})
    )
    response = client_for(store, gateway).post("/api/v1/advisors/adv-1/calendar/connect", json={"code": "used"})

    assert response.status_code == 400
    assert "invalid_grant" in response.json()["detail"]
    assert store.get_advisor("adv-1").credentials is None


def test_connect_status_and_disconnect(client_for, store):
    client = client_for(store)

    connected = client.post("/api/v1/advisors/adv-1/calendar/connect", json={"code": "abc"})
    assert connected.status_code == 200
    assert connected.json()["connected"] is True
    assert store.get_advisor("adv-1").credentials.access_token == "mock_access_abc"

    assert client.get("/api/v1/advisors/adv-1/calendar/status").json()["connected"] is True
    assert client.delete("/api/v1/advisors/adv-1/calendar").json() == {"disconnected": True}
    assert client.get("/api/v1/advisors/adv-1/calendar/status").json()["connected"] is False


def test_connect_for_unknown_advisor_fails_to_persist(client_for, store):
    response = client_for(store).post("/api/v1/advisors/nobody/calendar/connect", json={"code": "abc"})
    assert response.status_code == 500


def test_authorization_url(client_for, store, make_gateway):
    gateway, _ = make_gateway(store, lambda request: httpx.Response(500))
    response = client_for(store, gateway).get("/api/v1/calendar/authorization-url")

    assert response.status_code == 200
    assert response.json()["url"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")


def test_booking_outside_working_hours_is_a_bad_request(client_for, store):
    response = client_for(store).post(
        "/api/v1/bookings",
        json=_booking_payload("2024-06-10T03:00:00-06:00", "2024-06-10T04:00:00-06:00"),
    )

    assert response.status_code == 400
    assert "outside working hours" in response.json()["detail"]
