from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from app.application.ports.advisor_store import AdvisorStorePort
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.calendar import CalendarGatewayPort
from app.domain.entities.advisor import Advisor
from app.domain.entities.availability import AvailabilityDay, BusyInterval, TimeSlot
from app.domain.entities.calendar import CalendarEvent


class AvailabilityUseCase:
    """
    Splits an advisor's working day into fixed slots and marks each one busy
    if it overlaps a stored booking or an event on the advisor's calendar.
    """

    def __init__(
        self,
        advisors: AdvisorStorePort,
        bookings: BookingStorePort,
        calendar: CalendarGatewayPort,
        timezone: ZoneInfo,
        start_hour: int = 9,
        end_hour: int = 17,
        slot_minutes: int = 60,
    ) -> None:
        if not 0 <= start_hour < end_hour <= 24:
            raise ValueError(f"Invalid working hours {start_hour}-{end_hour}")
        if slot_minutes <= 0 or ((end_hour - start_hour) * 60) % slot_minutes:
            raise ValueError(f"Slot duration {slot_minutes} does not divide the working window")
        self._advisors = advisors
        self._bookings = bookings
        self._calendar = calendar
        self._timezone = timezone
        self._start_hour = start_hour
        self._end_hour = end_hour
        self._slot = timedelta(minutes=slot_minutes)
        self._logger = logging.getLogger(__name__)

    def working_window(self, day: date) -> tuple[datetime, datetime]:
        start = datetime.combine(day, time(self._start_hour), tzinfo=self._timezone)
        if self._end_hour == 24:
            end = datetime.combine(day + timedelta(days=1), time(0), tzinfo=self._timezone)
        else:
            end = datetime.combine(day, time(self._end_hour), tzinfo=self._timezone)
        return start, end

    def compute_availability(self, advisor_id: str, day: date | datetime) -> list[TimeSlot]:
        if isinstance(day, datetime):
            day = self.local_date(day)

        advisor = self._load_advisor(advisor_id)
        if advisor is None:
            return []

        window_start, window_end = self.working_window(day)
        try:
            busy = self._busy_intervals(advisor, window_start, window_end)
        except Exception as e:
            self._logger.error(
                "Could not load bookings for availability",
                extra={"advisor_id": advisor_id, "operation": "compute_availability", "error": str(e)},
            )
            return []

        slots: list[TimeSlot] = []
        current = window_start
        while current < window_end:
            slot_end = current + self._slot
            available = not any(interval.overlaps(current, slot_end) for interval in busy)
            slots.append(TimeSlot(start=current, end=slot_end, available=available))
            current = slot_end
        return slots

    def compute_availability_days(self, advisor_id: str, start_day: date, days: int) -> list[AvailabilityDay]:
        return [
            AvailabilityDay(date=d, slots=self.compute_availability(advisor_id, d))
            for d in (start_day + timedelta(days=i) for i in range(days))
        ]

    def free_slots(self, advisor_id: str, day: date | datetime) -> list[TimeSlot]:
        return [slot for slot in self.compute_availability(advisor_id, day) if slot.available]

    def is_slot_free(
        self,
        advisor_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: str | None = None,
        exclude_event_id: str | None = None,
    ) -> bool:
        """
        Re-check one interval against current bookings and calendar events.
        Raises ValueError when the interval does not fit inside one working window.
        A booking being moved passes its own id and event id so it does not block itself.
        """
        advisor = self._load_advisor(advisor_id)
        if advisor is None:
            return False
        start, end = self.localize(start), self.localize(end)
        window_start, window_end = self.working_window(self.local_date(start))
        if start < window_start or end > window_end:
            raise ValueError(
                f"Interval {start.isoformat()} - {end.isoformat()} is outside working hours "
                f"{self._start_hour:02d}:00-{self._end_hour:02d}:00"
            )
        busy = self._busy_intervals(
            advisor,
            window_start,
            window_end,
            exclude_booking_id=exclude_booking_id,
            exclude_event_id=exclude_event_id,
        )
        return not any(interval.overlaps(start, end) for interval in busy)

    def localize(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self._timezone)
        return value

    def local_date(self, value: datetime) -> date:
        return self.localize(value).astimezone(self._timezone).date()

    def _load_advisor(self, advisor_id: str) -> Advisor | None:
        try:
            advisor = self._advisors.get_advisor(advisor_id)
        except Exception as e:
            self._logger.error(
                "Could not load advisor for availability",
                extra={"advisor_id": advisor_id, "operation": "compute_availability", "error": str(e)},
            )
            return None
        if advisor is None:
            self._logger.warning("Unknown advisor", extra={"advisor_id": advisor_id, "operation": "compute_availability"})
        return advisor

    def _busy_intervals(
        self,
        advisor: Advisor,
        range_start: datetime,
        range_end: datetime,
        exclude_booking_id: str | None = None,
        exclude_event_id: str | None = None,
    ) -> list[BusyInterval]:
        busy = [
            BusyInterval(start=b.start_time, end=b.end_time, source="booking")
            for b in self._bookings.list_active_bookings(
                advisor.id, range_start, range_end, exclude_booking_id=exclude_booking_id
            )
        ]
        if not advisor.has_credentials:
            return busy

        try:
            events = self._calendar_intervals(advisor.id, range_start, range_end, exclude_event_id)
        except Exception as e:
            self._logger.warning(
                "Calendar events unreadable, using stored bookings only",
                extra={"advisor_id": advisor.id, "operation": "list_events", "error": str(e)},
            )
            return busy
        return busy + events

    def _calendar_intervals(
        self, advisor_id: str, range_start: datetime, range_end: datetime, exclude_event_id: str | None
    ) -> list[BusyInterval]:
        result = self._calendar.list_events(advisor_id, range_start, range_end)
        if not result:
            self._logger.warning(
                "Calendar events unavailable, using stored bookings only",
                extra={"advisor_id": advisor_id, "operation": "list_events", "reason": result.error.value},
            )
            return []

        intervals: list[BusyInterval] = []
        for event in result.value or []:
            if exclude_event_id and event.id == exclude_event_id:
                continue
            intervals.extend(self._event_intervals(event, range_start, range_end))
        return intervals

    def _event_intervals(self, event: CalendarEvent, range_start: datetime, range_end: datetime) -> list[BusyInterval]:
        if event.is_free:
            return []
        if event.all_day:
            # An all-day event blocks the whole working window of every date it covers.
            last_day = event.end_date - timedelta(days=1) if event.end_date > event.start_date else event.start_date
            intervals = []
            day = max(event.start_date, self.local_date(range_start))
            until = min(last_day, self.local_date(range_end))
            while day <= until:
                start, end = self.working_window(day)
                intervals.append(BusyInterval(start=start, end=end, source="calendar"))
                day += timedelta(days=1)
            return intervals
        if event.start is None or event.end is None:
            return []
        return [BusyInterval(start=self.localize(event.start), end=self.localize(event.end), source="calendar")]
