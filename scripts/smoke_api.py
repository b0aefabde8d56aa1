#!/usr/bin/env python3
"""Smoke test for a running booking API (memory store, mock calendar)."""

import sys
from datetime import date, timedelta

import httpx

BASE_URL = "http://127.0.0.1:8000/api/v1"


def check_availability(advisor_id: str, day: date) -> list[dict]:
    print("=" * 60)
    print(f"GET /advisors/{advisor_id}/availability?date={day}")
    print("=" * 60)
    response = httpx.get(f"{BASE_URL}/advisors/{advisor_id}/availability", params={"date": day.isoformat()})
    response.raise_for_status()
    slots = response.json()
    for slot in slots:
        print(f"  {slot['start']}  {'free' if slot['available'] else 'busy'}")
    return slots


def check_calendar(advisor_id: str) -> None:
    print("\n" + "=" * 60)
    print(f"GET /advisors/{advisor_id}/calendar/status")
    print("=" * 60)
    response = httpx.get(f"{BASE_URL}/advisors/{advisor_id}/calendar/status")
    response.raise_for_status()
    print(f"  {response.json()}")


def check_booking(advisor_id: str, company_id: str, session_id: str, slot: dict) -> None:
    print("\n" + "=" * 60)
    print("POST /bookings")
    print("=" * 60)
    payload = {
        "company_id": company_id,
        "advisor_id": advisor_id,
        "session_id": session_id,
        "start_time": slot["start"],
        "end_time": slot["end"],
        "created_by": "smoke",
    }
    response = httpx.post(f"{BASE_URL}/bookings", json=payload)
    print(f"  {response.status_code} {response.text}")
    if response.status_code != 201:
        return

    booking_id = response.json()["id"]
    again = httpx.post(f"{BASE_URL}/bookings", json=payload)
    print(f"  repeat -> {again.status_code} (expected 409)")
    cancelled = httpx.post(f"{BASE_URL}/bookings/{booking_id}/cancel")
    print(f"  cancel -> {cancelled.status_code} {cancelled.json().get('status')}")


def main() -> None:
    if len(sys.argv) < 4:
        print("Usage: smoke_api.py ADVISOR_ID COMPANY_ID SESSION_ID")
        sys.exit(1)
    advisor_id, company_id, session_id = sys.argv[1:4]
    day = date.today() + timedelta(days=1)

    try:
        slots = check_availability(advisor_id, day)
        check_calendar(advisor_id)
        free = [s for s in slots if s["available"]]
        if free:
            check_booking(advisor_id, company_id, session_id, free[0])
        else:
            print("No free slots to book")
    except httpx.HTTPError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
