from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class GatewayErrorKind(str, Enum):
    NOT_CONNECTED = "not_connected"
    REVOKED = "revoked"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class GatewayResult(Generic[T]):
    """Outcome of a calendar gateway call. Falsy when the call failed."""

    value: T | None = None
    error: GatewayErrorKind | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: T) -> "GatewayResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: GatewayErrorKind, detail: str | None = None) -> "GatewayResult[T]":
        return cls(error=error, detail=detail)


@dataclass(frozen=True)
class EventAttendee:
    email: str
    display_name: str | None = None

    def to_payload(self) -> dict[str, str]:
        payload = {"email": self.email}
        if self.display_name:
            payload["displayName"] = self.display_name
        return payload


@dataclass(frozen=True)
class CalendarEvent:
    id: str | None
    summary: str | None
    start: datetime | None = None
    end: datetime | None = None
    # All-day events carry dates instead of instants; end_date is exclusive.
    start_date: date | None = None
    end_date: date | None = None
    status: str | None = None
    transparency: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def all_day(self) -> bool:
        return self.start_date is not None

    @property
    def is_free(self) -> bool:
        return self.transparency == "transparent" or self.status == "cancelled"

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CalendarEvent":
        start = payload.get("start")
        end = payload.get("end")
        if not isinstance(start, dict):
            start = {}
        if not isinstance(end, dict):
            end = {}
        start_date = _parse_date(start.get("date"))
        end_date = _parse_date(end.get("date"))
        if start_date is not None and end_date is None:
            end_date = start_date
        return cls(
            id=payload.get("id"),
            summary=payload.get("summary"),
            start=_parse_datetime(start.get("dateTime")),
            end=_parse_datetime(end.get("dateTime")),
            start_date=start_date,
            end_date=end_date,
            status=payload.get("status"),
            transparency=payload.get("transparency"),
            raw=dict(payload),
        )


@dataclass(frozen=True)
class CalendarConnectionStatus:
    connected: bool
    email: str | None = None
    last_synced: datetime | None = None
    error: str | None = None


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (ValueError, TypeError):
        return None
