from __future__ import annotations

from datetime import datetime
from typing import Callable

import httpx
import pytest

from app.domain.entities.advisor import Advisor
from app.domain.entities.booking import AdvisorySession, Company
from app.infrastructure.calendar.google_calendar import GoogleCalendarGateway
from app.infrastructure.store.memory_store import MemoryAdvisoryStore
from helpers import NOW, Recorder, bundle


@pytest.fixture
def store() -> MemoryAdvisoryStore:
    store = MemoryAdvisoryStore()
    store.add_advisor(Advisor(id="adv-1", name="Ana Ruiz", email="ana@example.com", specialty="Strategy"))
    store.add_session(
        AdvisorySession(
            id="ses-1",
            title="Growth strategy",
            duration=60,
            description="Review of the growth plan",
            session_type="strategy",
            preparation_instructions="Bring last quarter numbers",
        )
    )
    store.add_company(Company(id="co-1", name="Acme", email="team@acme.example"))
    return store


@pytest.fixture
def connected_store(store: MemoryAdvisoryStore) -> MemoryAdvisoryStore:
    store.save_credentials("adv-1", bundle(expires_in_minutes=60), account_email="ana@gmail.example")
    return store


@pytest.fixture
def make_gateway():
    def _make(
        advisors,
        route: Callable[[httpx.Request], httpx.Response],
        clock: Callable[[], datetime] = lambda: NOW,
    ) -> tuple[GoogleCalendarGateway, Recorder]:
        recorder = Recorder(route)
        gateway = GoogleCalendarGateway(
            advisors=advisors,
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="http://localhost:5173/auth/google/callback",
            timezone_name="America/Mexico_City",
            http_client=httpx.Client(transport=httpx.MockTransport(recorder)),
            clock=clock,
        )
        return gateway, recorder

    return _make
