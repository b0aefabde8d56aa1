from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime
    source: str = "booking"  # "booking" | "calendar"

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # Half-open: [start, end) touching at an edge is not an overlap.
        return self.start < end and start < self.end


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime
    available: bool


@dataclass(frozen=True)
class AvailabilityDay:
    date: date
    slots: list[TimeSlot] = field(default_factory=list)
