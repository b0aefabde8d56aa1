from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from app.domain.entities.advisor import TokenResponse
from app.domain.entities.calendar import (
    CalendarConnectionStatus,
    CalendarEvent,
    EventAttendee,
    GatewayResult,
)


class CalendarGatewayPort(ABC):
    @abstractmethod
    def build_authorization_url(self) -> str:
        """URL the advisor is redirected to in order to grant calendar access."""
        raise NotImplementedError

    @abstractmethod
    def exchange_code_for_tokens(self, code: str) -> TokenResponse:
        """Exchange a one-time authorization code. Raises AuthExchangeError."""
        raise NotImplementedError

    @abstractmethod
    def persist_credentials(self, advisor_id: str, tokens: TokenResponse) -> bool:
        """Store tokens on the advisor. Returns False on failure, never raises."""
        raise NotImplementedError

    @abstractmethod
    def resolve_access_token(self, advisor_id: str) -> GatewayResult[str]:
        raise NotImplementedError

    @abstractmethod
    def get_valid_access_token(self, advisor_id: str) -> str | None:
        """Access token, refreshed if needed. None means the advisor is not connected."""
        raise NotImplementedError

    @abstractmethod
    def create_event(
        self,
        advisor_id: str,
        summary: str,
        start: datetime,
        end: datetime,
        description: str | None = None,
        attendees: list[EventAttendee] | None = None,
        color_id: str | None = None,
        send_notifications: bool = False,
        location: str | None = None,
    ) -> GatewayResult[str]:
        """Create an event. The result value is the external event id."""
        raise NotImplementedError

    @abstractmethod
    def update_event(
        self,
        advisor_id: str,
        event_id: str,
        summary: str | None = None,
        description: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        attendees: list[EventAttendee] | None = None,
        color_id: str | None = None,
        location: str | None = None,
    ) -> GatewayResult[bool]:
        """Patch an event; only supplied fields are sent."""
        raise NotImplementedError

    @abstractmethod
    def delete_event(self, advisor_id: str, event_id: str) -> GatewayResult[bool]:
        raise NotImplementedError

    @abstractmethod
    def list_events(self, advisor_id: str, time_min: datetime, time_max: datetime) -> GatewayResult[list[CalendarEvent]]:
        """Single (expanded) events in [time_min, time_max) ordered by start time."""
        raise NotImplementedError

    @abstractmethod
    def is_calendar_connected(self, advisor_id: str) -> CalendarConnectionStatus:
        raise NotImplementedError

    @abstractmethod
    def revoke_access(self, advisor_id: str) -> bool:
        """Revoke remotely (best effort) and always clear local credentials."""
        raise NotImplementedError
