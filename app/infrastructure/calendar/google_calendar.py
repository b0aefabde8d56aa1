from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

import httpx

from app.application.exceptions import AuthExchangeError, ConfigurationError
from app.application.ports.advisor_store import AdvisorStorePort
from app.application.ports.calendar import CalendarGatewayPort
from app.core.config import settings
from app.domain.entities.advisor import CredentialBundle, TokenResponse
from app.domain.entities.calendar import (
    CalendarConnectionStatus,
    CalendarEvent,
    EventAttendee,
    GatewayErrorKind,
    GatewayResult,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GoogleCalendarGateway(CalendarGatewayPort):
    def __init__(
        self,
        advisors: AdvisorStorePort,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        timezone_name: str | None = None,
        http_client: httpx.Client | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._advisors = advisors
        self._client_id = client_id or settings.GOOGLE_CLIENT_ID
        self._client_secret = client_secret or settings.GOOGLE_CLIENT_SECRET
        self._redirect_uri = redirect_uri or settings.GOOGLE_REDIRECT_URI
        self._timezone_name = timezone_name or settings.BUSINESS_TIMEZONE
        self._timezone = ZoneInfo(self._timezone_name)
        self._scopes = list(settings.GOOGLE_CALENDAR_SCOPES)
        self._auth_url = settings.GOOGLE_AUTH_URL
        self._token_url = settings.GOOGLE_TOKEN_URL
        self._revoke_url = settings.GOOGLE_REVOKE_URL
        self._api_base = settings.GOOGLE_CALENDAR_API.rstrip("/")
        self._margin = timedelta(minutes=settings.TOKEN_EXPIRY_MARGIN_MINUTES)
        self._client = http_client or httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS)
        self._clock = clock or _utcnow
        self._locks: dict[str, threading.Lock] = {}
        self._lock_lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

        if not self._client_id:
            raise ConfigurationError("GOOGLE_CLIENT_ID is required for Google Calendar")
        if not self._client_secret:
            raise ConfigurationError("GOOGLE_CLIENT_SECRET is required for Google Calendar")
        if not self._redirect_uri:
            raise ConfigurationError("GOOGLE_REDIRECT_URI is required for Google Calendar")

    def _get_lock(self, advisor_id: str) -> threading.Lock:
        with self._lock_lock:
            if advisor_id not in self._locks:
                self._locks[advisor_id] = threading.Lock()
            return self._locks[advisor_id]

    # --- authorization -------------------------------------------------

    def build_authorization_url(self) -> str:
        params = {
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._scopes),
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{self._auth_url}?{urlencode(params)}"

    def exchange_code_for_tokens(self, code: str) -> TokenResponse:
        if not code:
            raise AuthExchangeError("Authorization code is required", error_code="missing_code")

        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self._redirect_uri,
        }
        try:
            response = self._client.post(self._token_url, data=data)
        except httpx.HTTPError as e:
            self._logger.error("Token endpoint unreachable", extra={"operation": "exchange_code", "error": str(e)})
            raise AuthExchangeError(f"Could not reach the authorization service: {e}") from e

        if response.status_code >= 400:
            error_code, description = _oauth_error(response)
            self._logger.error(
                "Authorization code exchange rejected",
                extra={"operation": "exchange_code", "status": response.status_code, "error": error_code},
            )
            raise AuthExchangeError(
                self._exchange_error_message(error_code, description),
                error_code=error_code,
                status_code=response.status_code,
            )

        try:
            tokens = TokenResponse.from_payload(response.json())
        except ValueError as e:
            raise AuthExchangeError(f"Invalid token response from authorization service: {e}") from e
        if not tokens.access_token:
            raise AuthExchangeError("Authorization service did not return an access token")
        if not tokens.refresh_token:
            self._logger.warning("Token response without refresh_token", extra={"operation": "exchange_code"})
        return tokens

    def _exchange_error_message(self, error_code: str | None, description: str | None) -> str:
        detail = f"{error_code}: {description}" if description else (error_code or "unknown error")
        if error_code == "invalid_grant":
            return f"Authorization code expired or already used ({detail}). Authorize the calendar again."
        if error_code == "redirect_uri_mismatch":
            return (
                f"Redirect URI mismatch ({detail}). "
                f"The OAuth client must list {self._redirect_uri} as an authorized redirect URI."
            )
        return f"Could not exchange authorization code ({detail})"

    # --- credentials ---------------------------------------------------

    def persist_credentials(self, advisor_id: str, tokens: TokenResponse) -> bool:
        if not tokens.access_token:
            self._logger.error("Refusing to persist tokens without access_token", extra={"advisor_id": advisor_id})
            return False
        try:
            advisor = self._advisors.get_advisor(advisor_id)
            if advisor is None:
                self._logger.error("Advisor not found", extra={"advisor_id": advisor_id, "operation": "persist_credentials"})
                return False
            bundle = CredentialBundle.from_token_response(tokens, self._clock(), previous=advisor.credentials)
            if not bundle.refresh_token:
                self._logger.warning(
                    "Persisting credentials without refresh token; access will lapse at expiry",
                    extra={"advisor_id": advisor_id},
                )
            self._advisors.save_credentials(advisor_id, bundle, account_email=tokens.email)
        except Exception as e:
            self._logger.error(
                "Error persisting calendar credentials",
                extra={"advisor_id": advisor_id, "operation": "persist_credentials", "error": str(e)},
            )
            return False

        self._logger.info("Calendar credentials saved", extra={"advisor_id": advisor_id, "operation": "persist_credentials"})
        return True

    def resolve_access_token(self, advisor_id: str) -> GatewayResult[str]:
        bundle_result = self._load_bundle(advisor_id)
        if not bundle_result:
            return GatewayResult.failure(bundle_result.error, bundle_result.detail)
        bundle = bundle_result.value
        if not bundle.is_expiring(self._clock(), self._margin):
            return GatewayResult.success(bundle.access_token)
        return self._refresh(advisor_id)

    def get_valid_access_token(self, advisor_id: str) -> str | None:
        return self.resolve_access_token(advisor_id).value

    def _load_bundle(self, advisor_id: str) -> GatewayResult[CredentialBundle]:
        try:
            advisor = self._advisors.get_advisor(advisor_id)
        except Exception as e:
            self._logger.error(
                "Error reading advisor credentials",
                extra={"advisor_id": advisor_id, "operation": "load_credentials", "error": str(e)},
            )
            return GatewayResult.failure(GatewayErrorKind.TRANSIENT, str(e))
        if advisor is None:
            return GatewayResult.failure(GatewayErrorKind.NOT_CONNECTED, "advisor not found")
        if advisor.credentials is None:
            return GatewayResult.failure(GatewayErrorKind.NOT_CONNECTED, "no calendar credentials stored")
        return GatewayResult.success(advisor.credentials)

    def _refresh(self, advisor_id: str) -> GatewayResult[str]:
        with self._get_lock(advisor_id):
            # Another request may have refreshed while this one waited for the lock.
            bundle_result = self._load_bundle(advisor_id)
            if not bundle_result:
                return GatewayResult.failure(bundle_result.error, bundle_result.detail)
            bundle = bundle_result.value
            if not bundle.is_expiring(self._clock(), self._margin):
                return GatewayResult.success(bundle.access_token)
            if not bundle.refresh_token:
                self._logger.warning(
                    "Access token expired and no refresh token stored",
                    extra={"advisor_id": advisor_id, "operation": "refresh_token"},
                )
                return GatewayResult.failure(GatewayErrorKind.NOT_CONNECTED, "access token expired, no refresh token")

            token_result = self._request_refresh(advisor_id, bundle.refresh_token)
            if not token_result:
                return GatewayResult.failure(token_result.error, token_result.detail)

            refreshed = bundle.with_refreshed_access(token_result.value, self._clock())
            try:
                self._advisors.save_credentials(advisor_id, refreshed)
            except Exception as e:
                # The new token is still usable for this request.
                self._logger.error(
                    "Refreshed credentials could not be saved",
                    extra={"advisor_id": advisor_id, "operation": "refresh_token", "error": str(e)},
                )
            self._logger.info("Calendar access token refreshed", extra={"advisor_id": advisor_id, "operation": "refresh_token"})
            return GatewayResult.success(refreshed.access_token)

    def _request_refresh(self, advisor_id: str, refresh_token: str) -> GatewayResult[TokenResponse]:
        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            response = self._client.post(self._token_url, data=data)
        except httpx.HTTPError as e:
            self._logger.error(
                "Token refresh failed",
                extra={"advisor_id": advisor_id, "operation": "refresh_token", "error": str(e)},
            )
            return GatewayResult.failure(GatewayErrorKind.TRANSIENT, str(e))

        if response.status_code >= 400:
            error_code, description = _oauth_error(response)
            kind = GatewayErrorKind.REVOKED if error_code == "invalid_grant" else GatewayErrorKind.TRANSIENT
            self._logger.error(
                "Token refresh rejected",
                extra={
                    "advisor_id": advisor_id,
                    "operation": "refresh_token",
                    "status": response.status_code,
                    "error": error_code,
                },
            )
            return GatewayResult.failure(kind, description or error_code)

        try:
            tokens = TokenResponse.from_payload(response.json())
        except ValueError as e:
            return GatewayResult.failure(GatewayErrorKind.TRANSIENT, f"invalid refresh response: {e}")
        if not tokens.access_token:
            return GatewayResult.failure(GatewayErrorKind.TRANSIENT, "refresh response without access_token")
        return GatewayResult.success(tokens)

    # --- events --------------------------------------------------------

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
        body: dict[str, Any] = {
            "summary": summary,
            "start": self._event_time(start),
            "end": self._event_time(end),
            "attendees": [a.to_payload() for a in attendees or []],
            "reminders": {"useDefault": True},
        }
        if description:
            body["description"] = description
        if location:
            body["location"] = location
        if color_id:
            body["colorId"] = color_id
        params = {"sendUpdates": "all"} if send_notifications else None

        result = self._call_api(advisor_id, "create_event", "POST", "/calendars/primary/events", params=params, json=body)
        if not result:
            return GatewayResult.failure(result.error, result.detail)

        try:
            data = result.value.json()
        except ValueError:
            data = None
        event_id = data.get("id") if isinstance(data, dict) else None
        if not event_id:
            self._logger.error("No event id returned from Google Calendar", extra={"advisor_id": advisor_id})
            return GatewayResult.failure(GatewayErrorKind.TRANSIENT, "no event id in response")

        self._logger.info(
            "Calendar event created",
            extra={"advisor_id": advisor_id, "event_id": event_id, "operation": "create_event"},
        )
        return GatewayResult.success(str(event_id))

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
        body: dict[str, Any] = {}
        if summary:
            body["summary"] = summary
        if description:
            body["description"] = description
        if location:
            body["location"] = location
        if start:
            body["start"] = self._event_time(start)
        if end:
            body["end"] = self._event_time(end)
        if attendees is not None:
            body["attendees"] = [a.to_payload() for a in attendees]
        if color_id:
            body["colorId"] = color_id
        if not body:
            return GatewayResult.success(True)

        result = self._call_api(
            advisor_id,
            "update_event",
            "PATCH",
            f"/calendars/primary/events/{event_id}",
            json=body,
            event_id=event_id,
        )
        if not result:
            return GatewayResult.failure(result.error, result.detail)
        self._logger.info(
            "Calendar event updated",
            extra={"advisor_id": advisor_id, "event_id": event_id, "operation": "update_event"},
        )
        return GatewayResult.success(True)

    def delete_event(self, advisor_id: str, event_id: str) -> GatewayResult[bool]:
        result = self._call_api(
            advisor_id,
            "delete_event",
            "DELETE",
            f"/calendars/primary/events/{event_id}",
            event_id=event_id,
        )
        if not result:
            return GatewayResult.failure(result.error, result.detail)
        self._logger.info(
            "Calendar event deleted",
            extra={"advisor_id": advisor_id, "event_id": event_id, "operation": "delete_event"},
        )
        return GatewayResult.success(True)

    def list_events(self, advisor_id: str, time_min: datetime, time_max: datetime) -> GatewayResult[list[CalendarEvent]]:
        params: dict[str, str] = {
            "timeMin": self._as_aware(time_min).isoformat(),
            "timeMax": self._as_aware(time_max).isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": "250",
        }
        events: list[CalendarEvent] = []
        while True:
            result = self._call_api(advisor_id, "list_events", "GET", "/calendars/primary/events", params=params)
            if not result:
                return GatewayResult.failure(result.error, result.detail)
            try:
                data = result.value.json()
            except ValueError as e:
                return GatewayResult.failure(GatewayErrorKind.TRANSIENT, f"invalid events response: {e}")
            if not isinstance(data, dict):
                return GatewayResult.failure(GatewayErrorKind.TRANSIENT, "invalid events response: expected an object")

            items = data.get("items") or []
            if not isinstance(items, list):
                return GatewayResult.failure(GatewayErrorKind.TRANSIENT, "invalid events response: items is not a list")
            events.extend(CalendarEvent.from_payload(item) for item in items if isinstance(item, dict))
            page_token = data.get("nextPageToken")
            if not page_token:
                return GatewayResult.success(events)
            params = {**params, "pageToken": page_token}

    def _call_api(
        self,
        advisor_id: str,
        operation: str,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        event_id: str | None = None,
    ) -> GatewayResult[httpx.Response]:
        token = self.resolve_access_token(advisor_id)
        if not token:
            self._logger.info(
                "Calendar not available for advisor",
                extra={"advisor_id": advisor_id, "operation": operation, "reason": token.error.value},
            )
            return GatewayResult.failure(token.error, token.detail)

        try:
            response = self._client.request(
                method,
                f"{self._api_base}{path}",
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token.value}"},
            )
        except httpx.HTTPError as e:
            self._logger.error(
                "Google Calendar request failed",
                extra={"advisor_id": advisor_id, "operation": operation, "event_id": event_id, "error": str(e)},
            )
            return GatewayResult.failure(GatewayErrorKind.TRANSIENT, str(e))

        if response.status_code >= 400:
            kind = _api_error_kind(response.status_code)
            message = _api_error_message(response)
            self._logger.error(
                "Google Calendar request rejected",
                extra={
                    "advisor_id": advisor_id,
                    "operation": operation,
                    "event_id": event_id,
                    "status": response.status_code,
                    "error": message,
                },
            )
            return GatewayResult.failure(kind, message)

        return GatewayResult.success(response)

    def _as_aware(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=self._timezone)
        return value

    def _event_time(self, value: datetime) -> dict[str, str]:
        local = self._as_aware(value).astimezone(self._timezone)
        return {"dateTime": local.isoformat(), "timeZone": self._timezone_name}

    # --- status / disconnect -------------------------------------------

    def is_calendar_connected(self, advisor_id: str) -> CalendarConnectionStatus:
        try:
            advisor = self._advisors.get_advisor(advisor_id)
        except Exception as e:
            self._logger.error(
                "Error checking calendar connection",
                extra={"advisor_id": advisor_id, "operation": "connection_status", "error": str(e)},
            )
            return CalendarConnectionStatus(connected=False, error="Could not check the calendar connection.")
        if advisor is None:
            return CalendarConnectionStatus(connected=False, error="Advisor profile not found.")
        if advisor.credentials is None:
            return CalendarConnectionStatus(connected=False)

        token = self.resolve_access_token(advisor_id)
        email = advisor.google_account_email
        if token:
            return CalendarConnectionStatus(connected=True, email=email, last_synced=advisor.updated_at)
        if token.error == GatewayErrorKind.REVOKED:
            error = "Calendar access was revoked. Connect the calendar again."
        elif token.error == GatewayErrorKind.NOT_CONNECTED:
            error = "Calendar authorization expired. Connect the calendar again."
        else:
            error = f"Calendar service unavailable: {token.detail}"
        return CalendarConnectionStatus(connected=False, email=email, last_synced=advisor.updated_at, error=error)

    def revoke_access(self, advisor_id: str) -> bool:
        bundle: CredentialBundle | None = None
        try:
            advisor = self._advisors.get_advisor(advisor_id)
            bundle = advisor.credentials if advisor else None
        except Exception as e:
            self._logger.warning(
                "Could not read credentials before revoking",
                extra={"advisor_id": advisor_id, "operation": "revoke_access", "error": str(e)},
            )

        if bundle is not None:
            # Revoking the refresh token also invalidates access tokens issued from it.
            token = bundle.refresh_token or bundle.access_token
            try:
                response = self._client.post(
                    self._revoke_url,
                    params={"token": token},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
                if response.status_code >= 400:
                    self._logger.warning(
                        "Remote token revocation rejected",
                        extra={"advisor_id": advisor_id, "operation": "revoke_access", "status": response.status_code},
                    )
            except httpx.HTTPError as e:
                self._logger.warning(
                    "Remote token revocation failed",
                    extra={"advisor_id": advisor_id, "operation": "revoke_access", "error": str(e)},
                )

        try:
            self._advisors.clear_credentials(advisor_id)
        except Exception as e:
            self._logger.error(
                "Error clearing calendar credentials",
                extra={"advisor_id": advisor_id, "operation": "revoke_access", "error": str(e)},
            )
            return False

        self._logger.info("Calendar disconnected", extra={"advisor_id": advisor_id, "operation": "revoke_access"})
        return True


def _oauth_error(response: httpx.Response) -> tuple[str | None, str | None]:
    try:
        data = response.json()
    except ValueError:
        return None, response.text or None
    if not isinstance(data, dict):
        return None, str(data)
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("status"), error.get("message")
    return error, data.get("error_description")


def _api_error_kind(status_code: int) -> GatewayErrorKind:
    if status_code in (401, 403):
        return GatewayErrorKind.REVOKED
    if status_code in (404, 410):
        return GatewayErrorKind.NOT_FOUND
    return GatewayErrorKind.TRANSIENT


def _api_error_message(response: httpx.Response) -> str:
    try:
        error = (response.json() or {}).get("error")
    except (ValueError, AttributeError):
        return response.text or f"HTTP {response.status_code}"
    if isinstance(error, dict):
        return str(error.get("message") or f"HTTP {response.status_code}")
    return str(error or f"HTTP {response.status_code}")
