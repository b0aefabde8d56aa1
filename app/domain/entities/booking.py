from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class BookingStatus(str, Enum):
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"


@dataclass(frozen=True)
class Booking:
    id: str
    company_id: str
    advisor_id: str
    session_id: str
    start_time: datetime
    end_time: datetime
    created_by: str
    status: BookingStatus = BookingStatus.scheduled
    google_event_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status != BookingStatus.cancelled

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start_time < end and start < self.end_time


@dataclass(frozen=True)
class AdvisorySession:
    id: str
    title: str
    duration: int = 60  # minutes
    description: str | None = None
    session_type: str | None = None
    preparation_instructions: str | None = None


@dataclass(frozen=True)
class Company:
    id: str
    name: str
    email: str | None = None
