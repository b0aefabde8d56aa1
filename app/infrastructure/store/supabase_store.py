from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

import httpx

from app.application.exceptions import ConfigurationError, NotFoundError, SlotConflictError, StorageError
from app.application.ports.advisor_store import AdvisorStorePort
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.catalog import CatalogPort
from app.core.config import settings
from app.domain.entities.advisor import Advisor, CredentialBundle
from app.domain.entities.booking import AdvisorySession, Booking, BookingStatus, Company

# Postgres exclusion_violation, raised by an exclusion constraint on (advisor_id, tstzrange).
_EXCLUSION_VIOLATION = "23P01"


class SupabaseAdvisoryStore(AdvisorStorePort, BookingStorePort, CatalogPort):
    """Storage over the Supabase PostgREST interface."""

    def __init__(
        self,
        url: str | None = None,
        service_key: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        base_url = url or settings.SUPABASE_URL
        key = service_key or settings.SUPABASE_SERVICE_KEY
        if not base_url or not key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required for the Supabase store")
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Accept": "application/json",
        }
        self._client = http_client or httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        prefer: str | None = None,
    ) -> Any:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            resp = self._client.request(method, f"{self._rest_url}/{path}", params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            self._logger.error("Storage request failed", extra={"operation": f"{method} {path}", "error": str(e)})
            raise StorageError(f"Storage request failed: {e}") from e

        if resp.status_code >= 400:
            code, message = _postgrest_error(resp)
            self._logger.error(
                "Storage request rejected",
                extra={"operation": f"{method} {path}", "status": resp.status_code, "error": code},
            )
            if resp.status_code == 409 or code == _EXCLUSION_VIOLATION:
                raise SlotConflictError(message or "Booking overlaps an existing booking")
            raise StorageError(f"Storage request rejected ({resp.status_code}): {message}")

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StorageError(f"Invalid storage response: {e}") from e

    def _select_one(self, table: str, row_id: str) -> dict[str, Any] | None:
        rows = self._request("GET", table, params={"id": f"eq.{row_id}", "select": "*"}) or []
        return rows[0] if rows else None

    def _update(self, table: str, row_id: str, values: dict[str, Any]) -> dict[str, Any]:
        rows = self._request(
            "PATCH",
            table,
            params={"id": f"eq.{row_id}"},
            json=values,
            prefer="return=representation",
        ) or []
        if not rows:
            raise NotFoundError(f"{table} row {row_id} not found")
        return rows[0]

    # AdvisorStorePort

    def get_advisor(self, advisor_id: str) -> Advisor | None:
        row = self._select_one("advisors", advisor_id)
        if row is None:
            return None
        credentials = None
        if row.get("calendar_sync_token"):
            try:
                credentials = CredentialBundle.from_json(row["calendar_sync_token"])
            except ValueError as e:
                self._logger.warning("Discarding unreadable credentials", extra={"advisor_id": advisor_id, "error": str(e)})
        if credentials is not None and not credentials.refresh_token and row.get("calendar_refresh_token"):
            # Bundles written without a refresh token fall back to the dedicated column.
            credentials = replace(credentials, refresh_token=row["calendar_refresh_token"])
        return Advisor(
            id=str(row["id"]),
            name=row.get("name") or "",
            email=row.get("email"),
            specialty=row.get("specialty"),
            available=bool(row.get("available", True)),
            credentials=credentials,
            google_account_email=row.get("google_account_email"),
            updated_at=_parse_ts(row.get("updated_at")),
        )

    def save_credentials(self, advisor_id: str, bundle: CredentialBundle, account_email: str | None = None) -> None:
        values: dict[str, Any] = {
            "calendar_sync_token": bundle.to_json(),
            "calendar_refresh_token": bundle.refresh_token,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if account_email:
            values["google_account_email"] = account_email
        self._update("advisors", advisor_id, values)

    def clear_credentials(self, advisor_id: str) -> None:
        self._update(
            "advisors",
            advisor_id,
            {
                "calendar_sync_token": None,
                "calendar_refresh_token": None,
                "google_account_email": None,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )

    # CatalogPort

    def get_session(self, session_id: str) -> AdvisorySession | None:
        row = self._select_one("advisory_sessions", session_id)
        if row is None:
            return None
        return AdvisorySession(
            id=str(row["id"]),
            title=row.get("title") or "",
            duration=int(row.get("duration") or 60),
            description=row.get("description"),
            session_type=row.get("session_type"),
            preparation_instructions=row.get("preparation_instructions"),
        )

    def get_company(self, company_id: str) -> Company | None:
        row = self._select_one("companies", company_id)
        if row is None:
            return None
        return Company(id=str(row["id"]), name=row.get("name") or "", email=row.get("email"))

    # BookingStorePort

    def get_booking(self, booking_id: str) -> Booking | None:
        row = self._select_one("advisory_bookings", booking_id)
        return _booking_from_row(row) if row else None

    def list_active_bookings(
        self,
        advisor_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: str | None = None,
    ) -> list[Booking]:
        params = {
            "advisor_id": f"eq.{advisor_id}",
            "status": "neq.cancelled",
            "start_time": f"lt.{end.isoformat()}",
            "end_time": f"gt.{start.isoformat()}",
            "order": "start_time.asc",
        }
        if exclude_booking_id:
            params["id"] = f"neq.{exclude_booking_id}"
        rows = self._request("GET", "advisory_bookings", params=params) or []
        return [_booking_from_row(r) for r in rows]

    def list_advisor_bookings(self, advisor_id: str) -> list[Booking]:
        rows = self._request(
            "GET", "advisory_bookings", params={"advisor_id": f"eq.{advisor_id}", "order": "start_time.asc"}
        ) or []
        return [_booking_from_row(r) for r in rows]

    def list_company_bookings(self, company_id: str) -> list[Booking]:
        rows = self._request(
            "GET", "advisory_bookings", params={"company_id": f"eq.{company_id}", "order": "start_time.asc"}
        ) or []
        return [_booking_from_row(r) for r in rows]

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
        booking_id = self._request(
            "POST",
            "rpc/create_advisory_booking",
            json={
                "p_company_id": company_id,
                "p_advisor_id": advisor_id,
                "p_session_id": session_id,
                "p_start_time": start.isoformat(),
                "p_end_time": end.isoformat(),
                "p_google_event_id": google_event_id,
                "p_created_by": created_by,
            },
        )
        if not booking_id:
            raise StorageError("create_advisory_booking returned no booking id")
        return str(booking_id)

    def update_booking_status(self, booking_id: str, status: BookingStatus) -> Booking:
        row = self._update(
            "advisory_bookings",
            booking_id,
            {"status": status.value, "updated_at": datetime.now(timezone.utc).isoformat()},
        )
        return _booking_from_row(row)

    def update_booking_times(self, booking_id: str, start: datetime, end: datetime) -> Booking:
        row = self._update(
            "advisory_bookings",
            booking_id,
            {
                "start_time": start.isoformat(),
                "end_time": end.isoformat(),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
        )
        return _booking_from_row(row)


def _postgrest_error(resp: httpx.Response) -> tuple[str | None, str]:
    try:
        data = resp.json()
    except ValueError:
        return None, resp.text
    if not isinstance(data, dict):
        return None, str(data)
    return data.get("code"), str(data.get("message") or data.get("details") or resp.text)


def _parse_ts(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _booking_from_row(row: dict[str, Any]) -> Booking:
    return Booking(
        id=str(row["id"]),
        company_id=str(row["company_id"]),
        advisor_id=str(row["advisor_id"]),
        session_id=str(row["session_id"]),
        start_time=_parse_ts(row["start_time"]),
        end_time=_parse_ts(row["end_time"]),
        created_by=str(row.get("created_by") or ""),
        status=BookingStatus(row.get("status") or "scheduled"),
        google_event_id=row.get("google_event_id"),
        created_at=_parse_ts(row.get("created_at")),
        updated_at=_parse_ts(row.get("updated_at")),
    )
