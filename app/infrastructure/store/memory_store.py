from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from app.application.exceptions import NotFoundError, SlotConflictError
from app.application.ports.advisor_store import AdvisorStorePort
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.catalog import CatalogPort
from app.domain.entities.advisor import Advisor, CredentialBundle
from app.domain.entities.booking import AdvisorySession, Booking, BookingStatus, Company


class MemoryAdvisoryStore(AdvisorStorePort, BookingStorePort, CatalogPort):
    """
    Process-local storage. Credential bundles are kept serialized, as the
    hosted backend keeps them, and decoded when an advisor is read.
    """

    def __init__(self) -> None:
        self._advisors: dict[str, dict[str, Any]] = {}
        self._bookings: dict[str, Booking] = {}
        self._sessions: dict[str, AdvisorySession] = {}
        self._companies: dict[str, Company] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._lock_lock = threading.Lock()
        # Guards every read and write of _bookings; per-advisor locks only serialize check-and-insert.
        self._bookings_lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def _get_lock(self, advisor_id: str) -> threading.Lock:
        """Get or create the insert lock for an advisor."""
        with self._lock_lock:
            if advisor_id not in self._locks:
                self._locks[advisor_id] = threading.Lock()
            return self._locks[advisor_id]

    def _all_bookings(self) -> list[Booking]:
        with self._bookings_lock:
            return list(self._bookings.values())

    # Seeding, used by local development and tests.

    def add_advisor(self, advisor: Advisor) -> None:
        self._advisors[advisor.id] = {
            "id": advisor.id,
            "name": advisor.name,
            "email": advisor.email,
            "specialty": advisor.specialty,
            "available": advisor.available,
            "calendar_sync_token": advisor.credentials.to_json() if advisor.credentials else None,
            "google_account_email": advisor.google_account_email,
            "updated_at": advisor.updated_at,
        }

    def add_session(self, session: AdvisorySession) -> None:
        self._sessions[session.id] = session

    def add_company(self, company: Company) -> None:
        self._companies[company.id] = company

    def raw_credentials(self, advisor_id: str) -> str | None:
        row = self._advisors.get(advisor_id)
        return row["calendar_sync_token"] if row else None

    # AdvisorStorePort

    def get_advisor(self, advisor_id: str) -> Advisor | None:
        row = self._advisors.get(advisor_id)
        if row is None:
            return None
        credentials = None
        if row["calendar_sync_token"]:
            try:
                credentials = CredentialBundle.from_json(row["calendar_sync_token"])
            except ValueError as e:
                self._logger.warning("Discarding unreadable credentials", extra={"advisor_id": advisor_id, "error": str(e)})
        return Advisor(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            specialty=row["specialty"],
            available=row["available"],
            credentials=credentials,
            google_account_email=row["google_account_email"],
            updated_at=row["updated_at"],
        )

    def save_credentials(self, advisor_id: str, bundle: CredentialBundle, account_email: str | None = None) -> None:
        row = self._advisors.get(advisor_id)
        if row is None:
            raise NotFoundError(f"Advisor {advisor_id} not found")
        row["calendar_sync_token"] = bundle.to_json()
        if account_email:
            row["google_account_email"] = account_email
        row["updated_at"] = datetime.now(timezone.utc)

    def clear_credentials(self, advisor_id: str) -> None:
        row = self._advisors.get(advisor_id)
        if row is None:
            raise NotFoundError(f"Advisor {advisor_id} not found")
        row["calendar_sync_token"] = None
        row["google_account_email"] = None
        row["updated_at"] = datetime.now(timezone.utc)

    # CatalogPort

    def get_session(self, session_id: str) -> AdvisorySession | None:
        return self._sessions.get(session_id)

    def get_company(self, company_id: str) -> Company | None:
        return self._companies.get(company_id)

    # BookingStorePort

    def get_booking(self, booking_id: str) -> Booking | None:
        with self._bookings_lock:
            return self._bookings.get(booking_id)

    def list_active_bookings(
        self,
        advisor_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: str | None = None,
    ) -> list[Booking]:
        bookings = [
            b
            for b in self._all_bookings()
            if b.advisor_id == advisor_id and b.is_active and b.overlaps(start, end) and b.id != exclude_booking_id
        ]
        return sorted(bookings, key=lambda b: b.start_time)

    def list_advisor_bookings(self, advisor_id: str) -> list[Booking]:
        return sorted((b for b in self._all_bookings() if b.advisor_id == advisor_id), key=lambda b: b.start_time)

    def list_company_bookings(self, company_id: str) -> list[Booking]:
        return sorted((b for b in self._all_bookings() if b.company_id == company_id), key=lambda b: b.start_time)

    def create_booking(
        self,
        company_id: str,
        advisor_id: str,
        session_id: str,
        start: datetime,
        end: datetime,
        google_event_id: str | None,
        created_by: str,
    ) -> str:
        with self._get_lock(advisor_id):
            if self.list_active_bookings(advisor_id, start, end):
                raise SlotConflictError(f"Advisor {advisor_id} already has a booking between {start} and {end}")
            now = datetime.now(timezone.utc)
            booking = Booking(
                id=str(uuid.uuid4()),
                company_id=company_id,
                advisor_id=advisor_id,
                session_id=session_id,
                start_time=start,
                end_time=end,
                created_by=created_by,
                status=BookingStatus.scheduled,
                google_event_id=google_event_id,
                created_at=now,
                updated_at=now,
            )
            with self._bookings_lock:
                self._bookings[booking.id] = booking
            return booking.id

    def update_booking_status(self, booking_id: str, status: BookingStatus) -> Booking:
        with self._bookings_lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                raise NotFoundError(f"Booking {booking_id} not found")
            updated = replace(booking, status=status, updated_at=datetime.now(timezone.utc))
            self._bookings[booking_id] = updated
            return updated

    def update_booking_times(self, booking_id: str, start: datetime, end: datetime) -> Booking:
        booking = self.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        with self._get_lock(booking.advisor_id):
            if self.list_active_bookings(booking.advisor_id, start, end, exclude_booking_id=booking_id):
                raise SlotConflictError(f"Advisor {booking.advisor_id} already has a booking between {start} and {end}")
            updated = replace(booking, start_time=start, end_time=end, updated_at=datetime.now(timezone.utc))
            with self._bookings_lock:
                self._bookings[booking_id] = updated
            return updated
