from __future__ import annotations

import logging
from datetime import datetime, timezone
from urllib.parse import urlencode

from app.application.exceptions import AuthExchangeError
from app.application.ports.advisor_store import AdvisorStorePort
from app.application.ports.calendar import CalendarGatewayPort
from app.domain.entities.advisor import CredentialBundle, TokenResponse
from app.domain.entities.calendar import (
    CalendarConnectionStatus,
    CalendarEvent,
    EventAttendee,
    GatewayErrorKind,
    GatewayResult,
)


class MockCalendarGateway(CalendarGatewayPort):
    """In-memory calendar for local development. Advisors count as connected once they hold credentials."""

    def __init__(self, advisors: AdvisorStorePort) -> None:
        self._advisors = advisors
        self._events: dict[str, dict[str, CalendarEvent]] = {}
        self._counter = 0
        self._logger = logging.getLogger(__name__)

    def build_authorization_url(self) -> str:
        return "http://localhost:5173/auth/google/callback?" + urlencode({"code": "mock_code"})

    def exchange_code_for_tokens(self, code: str) -> TokenResponse:
        if not code:
            raise AuthExchangeError("Authorization code is required", error_code="missing_code")
        return TokenResponse(
            access_token=f"mock_access_{code}",
            refresh_token=f"mock_refresh_{code}",
            expires_in=3600,
            scope="https://www.googleapis.com/auth/calendar",
        )

    def persist_credentials(self, advisor_id: str, tokens: TokenResponse) -> bool:
        try:
            advisor = self._advisors.get_advisor(advisor_id)
            if advisor is None:
                return False
            bundle = CredentialBundle.from_token_response(tokens, datetime.now(timezone.utc), advisor.credentials)
            self._advisors.save_credentials(advisor_id, bundle, account_email=tokens.email)
            return True
        except Exception as e:
            self._logger.error("Mock credential save failed", extra={"advisor_id": advisor_id, "error": str(e)})
            return False

    def resolve_access_token(self, advisor_id: str) -> GatewayResult[str]:
        advisor = self._advisors.get_advisor(advisor_id)
        if advisor is None or advisor.credentials is None:
            return GatewayResult.failure(GatewayErrorKind.NOT_CONNECTED, "no calendar credentials stored")
        return GatewayResult.success(advisor.credentials.access_token)

    def get_valid_access_token(self, advisor_id: str) -> str | None:
        return self.resolve_access_token(advisor_id).value

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
        token = self.resolve_access_token(advisor_id)
        if not token:
            return GatewayResult.failure(token.error, token.detail)
        self._counter += 1
        event_id = f"mock_event_{self._counter}"
        self._events.setdefault(advisor_id, {})[event_id] = CalendarEvent(
            id=event_id,
            summary=summary,
            start=start,
            end=end,
            status="confirmed",
        )
        self._logger.info(
            "Mock calendar event created",
            extra={"advisor_id": advisor_id, "event_id": event_id, "operation": "create_event"},
        )
        return GatewayResult.success(event_id)

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
        existing = self._events.get(advisor_id, {}).get(event_id)
        if existing is None:
            return GatewayResult.failure(GatewayErrorKind.NOT_FOUND, f"event {event_id} not found")
        self._events[advisor_id][event_id] = CalendarEvent(
            id=event_id,
            summary=summary or existing.summary,
            start=start or existing.start,
            end=end or existing.end,
            status=existing.status,
        )
        return GatewayResult.success(True)

    def delete_event(self, advisor_id: str, event_id: str) -> GatewayResult[bool]:
        if self._events.get(advisor_id, {}).pop(event_id, None) is None:
            return GatewayResult.failure(GatewayErrorKind.NOT_FOUND, f"event {event_id} not found")
        self._logger.info("Mock calendar event deleted", extra={"advisor_id": advisor_id, "event_id": event_id})
        return GatewayResult.success(True)

    def list_events(self, advisor_id: str, time_min: datetime, time_max: datetime) -> GatewayResult[list[CalendarEvent]]:
        token = self.resolve_access_token(advisor_id)
        if not token:
            return GatewayResult.failure(token.error, token.detail)
        events = [
            e
            for e in self._events.get(advisor_id, {}).values()
            if e.start is not None and e.end is not None and e.start < time_max and time_min < e.end
        ]
        return GatewayResult.success(sorted(events, key=lambda e: e.start))

    def is_calendar_connected(self, advisor_id: str) -> CalendarConnectionStatus:
        advisor = self._advisors.get_advisor(advisor_id)
        if advisor is None:
            return CalendarConnectionStatus(connected=False, error="Advisor profile not found.")
        return CalendarConnectionStatus(
            connected=advisor.credentials is not None,
            email=advisor.google_account_email,
            last_synced=advisor.updated_at,
        )

    def revoke_access(self, advisor_id: str) -> bool:
        try:
            self._advisors.clear_credentials(advisor_id)
        except Exception as e:
            self._logger.error("Mock credential clear failed", extra={"advisor_id": advisor_id, "error": str(e)})
            return False
        self._events.pop(advisor_id, None)
        return True

