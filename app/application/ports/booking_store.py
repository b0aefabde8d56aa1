from abc import ABC, abstractmethod
from datetime import datetime

from app.domain.entities.booking import Booking, BookingStatus


class BookingStorePort(ABC):
    @abstractmethod
    def get_booking(self, booking_id: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def list_active_bookings(
        self,
        advisor_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: str | None = None,
    ) -> list[Booking]:
        """Non-cancelled bookings of the advisor intersecting [start, end), ordered by start."""
        raise NotImplementedError

    @abstractmethod
    def list_advisor_bookings(self, advisor_id: str) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    def list_company_bookings(self, company_id: str) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
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
        """
        Check-and-insert a scheduled booking. Returns the new booking id.
        Raises SlotConflictError if the interval overlaps an active booking of the advisor.
        """
        raise NotImplementedError

    @abstractmethod
    def update_booking_status(self, booking_id: str, status: BookingStatus) -> Booking:
        raise NotImplementedError

    @abstractmethod
    def update_booking_times(self, booking_id: str, start: datetime, end: datetime) -> Booking:
        """Move a booking. Raises SlotConflictError like create_booking."""
        raise NotImplementedError
