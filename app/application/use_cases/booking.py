from __future__ import annotations

import logging
from datetime import datetime

from app.application.exceptions import NotFoundError, SlotConflictError, StorageError
from app.application.ports.advisor_store import AdvisorStorePort
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.calendar import CalendarGatewayPort
from app.application.ports.catalog import CatalogPort
from app.application.use_cases.availability import AvailabilityUseCase
from app.domain.entities.advisor import Advisor
from app.domain.entities.booking import AdvisorySession, Booking, BookingStatus, Company
from app.domain.entities.calendar import EventAttendee, GatewayErrorKind

ADVISORY_EVENT_COLOR = "1"


class BookingUseCase:
    def __init__(
        self,
        advisors: AdvisorStorePort,
        bookings: BookingStorePort,
        catalog: CatalogPort,
        calendar: CalendarGatewayPort,
        availability: AvailabilityUseCase,
    ) -> None:
        self._advisors = advisors
        self._bookings = bookings
        self._catalog = catalog
        self._calendar = calendar
        self._availability = availability
        self._logger = logging.getLogger(__name__)

    def create_booking(
        self,
        company_id: str,
        advisor_id: str,
        session_id: str,
        start: datetime,
        end: datetime,
        created_by: str,
    ) -> Booking:
        """
        Book an advisory session. The slot is re-checked against fresh
        availability, the calendar event is created best-effort, and the
        booking is stored with whatever event id resulted (possibly none).
        """
        start = self._availability.localize(start)
        end = self._availability.localize(end)
        if start >= end:
            raise ValueError("Booking end must be after its start")

        advisor = self._advisors.get_advisor(advisor_id)
        if advisor is None:
            raise NotFoundError(f"Advisor {advisor_id} not found")
        session = self._catalog.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Advisory session {session_id} not found")
        company = self._catalog.get_company(company_id)

        if not self._availability.is_slot_free(advisor_id, start, end):
            raise self._conflict(advisor_id, start)

        event_id = self._mirror_booking(advisor, session, company, start, end)

        try:
            booking_id = self._bookings.create_booking(
                company_id=company_id,
                advisor_id=advisor_id,
                session_id=session_id,
                start=start,
                end=end,
                google_event_id=event_id,
                created_by=created_by,
            )
        except SlotConflictError:
            # Lost a race with a concurrent booking for the same slot.
            if event_id:
                self._discard_event(advisor_id, event_id)
            raise self._conflict(advisor_id, start)
        except Exception:
            if event_id:
                self._discard_event(advisor_id, event_id)
            raise

        booking = self._bookings.get_booking(booking_id)
        if booking is None:
            raise StorageError(f"Booking {booking_id} was created but could not be read back")
        self._logger.info(
            "Booking created",
            extra={"booking_id": booking_id, "advisor_id": advisor_id, "event_id": event_id, "operation": "create_booking"},
        )
        return booking

    def cancel_booking(self, booking_id: str) -> Booking:
        booking = self._bookings.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking.status == BookingStatus.cancelled:
            return booking

        if booking.google_event_id and self._has_calendar(booking.advisor_id):
            try:
                result = self._calendar.delete_event(booking.advisor_id, booking.google_event_id)
                if not result and result.error != GatewayErrorKind.NOT_FOUND:
                    self._logger.warning(
                        "Calendar event not deleted; cancelling booking anyway",
                        extra={
                            "booking_id": booking_id,
                            "advisor_id": booking.advisor_id,
                            "event_id": booking.google_event_id,
                            "reason": result.error.value,
                        },
                    )
            except Exception as e:
                self._logger.error(
                    "Error deleting calendar event",
                    extra={"booking_id": booking_id, "event_id": booking.google_event_id, "error": str(e)},
                )

        cancelled = self._bookings.update_booking_status(booking_id, BookingStatus.cancelled)
        self._logger.info(
            "Booking cancelled",
            extra={"booking_id": booking_id, "advisor_id": booking.advisor_id, "operation": "cancel_booking"},
        )
        return cancelled

    def reschedule_booking(self, booking_id: str, start: datetime, end: datetime) -> Booking:
        booking = self._bookings.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        if booking.status != BookingStatus.scheduled:
            raise ValueError(f"Only scheduled bookings can be rescheduled (status is {booking.status.value})")

        start = self._availability.localize(start)
        end = self._availability.localize(end)
        if start >= end:
            raise ValueError("Booking end must be after its start")
        if not self._availability.is_slot_free(
            booking.advisor_id,
            start,
            end,
            exclude_booking_id=booking_id,
            exclude_event_id=booking.google_event_id,
        ):
            raise self._conflict(booking.advisor_id, start)

        try:
            updated = self._bookings.update_booking_times(booking_id, start, end)
        except SlotConflictError:
            raise self._conflict(booking.advisor_id, start)

        if updated.google_event_id and self._has_calendar(updated.advisor_id):
            result = self._calendar.update_event(updated.advisor_id, updated.google_event_id, start=start, end=end)
            if not result:
                self._logger.warning(
                    "Calendar event not moved with booking",
                    extra={
                        "booking_id": booking_id,
                        "advisor_id": updated.advisor_id,
                        "event_id": updated.google_event_id,
                        "reason": result.error.value,
                    },
                )
        self._logger.info("Booking rescheduled", extra={"booking_id": booking_id, "operation": "reschedule_booking"})
        return updated

    def list_advisor_bookings(self, advisor_id: str) -> list[Booking]:
        return self._bookings.list_advisor_bookings(advisor_id)

    def list_company_bookings(self, company_id: str) -> list[Booking]:
        return self._bookings.list_company_bookings(company_id)

    def _mirror_booking(
        self,
        advisor: Advisor,
        session: AdvisorySession,
        company: Company | None,
        start: datetime,
        end: datetime,
    ) -> str | None:
        if not advisor.has_credentials:
            return None

        attendees = []
        if advisor.email:
            attendees.append(EventAttendee(email=advisor.email, display_name=advisor.name))
        if company and company.email:
            attendees.append(EventAttendee(email=company.email, display_name=company.name))

        result = self._calendar.create_event(
            advisor.id,
            summary=f"Advisory: {session.title}",
            start=start,
            end=end,
            description=_event_description(session, company),
            attendees=attendees,
            color_id=ADVISORY_EVENT_COLOR,
            send_notifications=True,
        )
        if not result:
            self._logger.warning(
                "Booking will be stored without calendar event",
                extra={"advisor_id": advisor.id, "operation": "create_event", "reason": result.error.value},
            )
            return None
        return result.value

    def _has_calendar(self, advisor_id: str) -> bool:
        try:
            advisor = self._advisors.get_advisor(advisor_id)
        except Exception as e:
            self._logger.error("Could not load advisor", extra={"advisor_id": advisor_id, "error": str(e)})
            return False
        return advisor is not None and advisor.has_credentials

    def _discard_event(self, advisor_id: str, event_id: str) -> None:
        result = self._calendar.delete_event(advisor_id, event_id)
        if not result:
            self._logger.warning(
                "Orphaned calendar event left behind",
                extra={"advisor_id": advisor_id, "event_id": event_id, "reason": result.error.value},
            )

    def _conflict(self, advisor_id: str, start: datetime) -> SlotConflictError:
        free = self._availability.free_slots(advisor_id, self._availability.local_date(start))
        return SlotConflictError(
            f"Advisor {advisor_id} is not available at {start.isoformat()}",
            free_slots=free,
        )


def _event_description(session: AdvisorySession, company: Company | None) -> str:
    parts = [
        session.description or "",
        f"Company: {company.name if company else 'Not specified'}",
        f"Session type: {session.session_type or 'Not specified'}",
        f"Preparation instructions: {session.preparation_instructions or 'Not specified'}",
    ]
    return "\n\n".join(p for p in parts if p)
