from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable
from urllib.parse import parse_qs
from zoneinfo import ZoneInfo

import httpx

from app.domain.entities.advisor import CredentialBundle

TZ = ZoneInfo("America/Mexico_City")
NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)
TOKEN_URL = "https://oauth2.googleapis.com/token"
EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"


class Recorder:
    """httpx transport handler that records requests and answers from a routing function."""

    def __init__(self, route: Callable[[httpx.Request], httpx.Response]) -> None:
        self.route = route
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.route(request)

    def calls_to(self, url: str, method: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if str(r.url).split("?")[0] == url and (method is None or r.method == method)
        ]


def form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def bundle(expires_in_minutes: float, access_token: str = "access-old", refresh_token: str | None = "refresh-1") -> CredentialBundle:
    return CredentialBundle(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=NOW + timedelta(minutes=expires_in_minutes),
        scope="https://www.googleapis.com/auth/calendar",
    )


def local(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 6, day, hour, minute, tzinfo=TZ)
