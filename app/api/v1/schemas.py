from datetime import date, datetime

from pydantic import BaseModel, Field

from app.domain.entities.availability import TimeSlot
from app.domain.entities.booking import Booking, BookingStatus


class TimeSlotSchema(BaseModel):
    start: datetime
    end: datetime
    available: bool

    @classmethod
    def from_entity(cls, slot: TimeSlot) -> "TimeSlotSchema":
        return cls(start=slot.start, end=slot.end, available=slot.available)


class AvailabilityDaySchema(BaseModel):
    date: date
    slots: list[TimeSlotSchema]


class AuthorizationUrlSchema(BaseModel):
    url: str


class ConnectCalendarRequestSchema(BaseModel):
    code: str = Field(min_length=1)


class CalendarStatusSchema(BaseModel):
    connected: bool
    email: str | None = None
    last_synced: datetime | None = None
    error: str | None = None


class DisconnectCalendarResponseSchema(BaseModel):
    disconnected: bool


class CreateBookingRequestSchema(BaseModel):
    company_id: str
    advisor_id: str
    session_id: str
    start_time: datetime
    end_time: datetime
    created_by: str


class RescheduleBookingRequestSchema(BaseModel):
    start_time: datetime
    end_time: datetime


class BookingSchema(BaseModel):
    id: str
    company_id: str
    advisor_id: str
    session_id: str
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    google_event_id: str | None = None
    calendar_synced: bool = False
    created_by: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, booking: Booking) -> "BookingSchema":
        return cls(
            id=booking.id,
            company_id=booking.company_id,
            advisor_id=booking.advisor_id,
            session_id=booking.session_id,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=booking.status,
            google_event_id=booking.google_event_id,
            calendar_synced=booking.google_event_id is not None,
            created_by=booking.created_by,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )
