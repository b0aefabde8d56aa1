"""
Tests for the typed credential bundle stored on advisors.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from app.domain.entities.advisor import CredentialBundle, TokenResponse

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


def test_expiry_margin_is_five_minutes():
    """A token with less than five minutes left counts as expiring."""
    fresh = CredentialBundle(access_token="a", expires_at=NOW + timedelta(minutes=6))
    edge = CredentialBundle(access_token="a", expires_at=NOW + timedelta(minutes=5))
    stale = CredentialBundle(access_token="a", expires_at=NOW - timedelta(seconds=1))

    assert not fresh.is_expiring(NOW)
    assert edge.is_expiring(NOW)
    assert stale.is_expiring(NOW)


def test_from_token_response_computes_absolute_expiry():
    tokens = TokenResponse(access_token="a", refresh_token="r", expires_in=3600, scope="calendar")
    result = CredentialBundle.from_token_response(tokens, NOW)

    assert result.expires_at == NOW + timedelta(hours=1)
    assert result.refresh_token == "r"
    assert result.version == 1


def test_from_token_response_keeps_previous_refresh_token():
    """Google omits refresh_token on re-consent; the stored one must survive."""
    previous = CredentialBundle(access_token="old", expires_at=NOW, refresh_token="r-old", scope="calendar")
    tokens = TokenResponse(access_token="new", expires_in=1800)

    result = CredentialBundle.from_token_response(tokens, NOW, previous=previous)

    assert result.access_token == "new"
    assert result.refresh_token == "r-old"
    assert result.scope == "calendar"


def test_json_round_trip_preserves_fields():
    original = CredentialBundle(
        access_token="a",
        refresh_token="r",
        expires_at=NOW,
        token_type="Bearer",
        scope="calendar calendar.events",
    )
    assert CredentialBundle.from_json(original.to_json()) == original


def test_legacy_payload_with_epoch_millis_is_upgraded():
    """Bundles written before versioning stored expires_at as epoch milliseconds."""
    raw = json.dumps(
        {
            "access_token": "a",
            "refresh_token": "r",
            "expires_at": int(NOW.timestamp() * 1000),
            "token_type": "Bearer",
            "scope": "calendar",
        }
    )
    decoded = CredentialBundle.from_json(raw)

    assert decoded.expires_at == NOW
    assert decoded.version == 1


def test_missing_expiry_is_treated_as_expired():
    decoded = CredentialBundle.from_json(json.dumps({"access_token": "a", "refresh_token": "r"}))
    assert decoded.is_expiring(NOW)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps({"refresh_token": "r"}),
        json.dumps({"access_token": "a", "version": 99}),
        json.dumps(["a"]),
    ],
)
def test_unreadable_payloads_are_rejected(raw):
    with pytest.raises(ValueError):
        CredentialBundle.from_json(raw)


def test_refreshed_bundle_carries_refresh_token_and_scope():
    original = CredentialBundle(access_token="a", expires_at=NOW, refresh_token="r", scope="calendar")
    refreshed = original.with_refreshed_access(TokenResponse(access_token="b", expires_in=600), NOW)

    assert refreshed.access_token == "b"
    assert refreshed.expires_at == NOW + timedelta(minutes=10)
    assert refreshed.refresh_token == "r"
    assert refreshed.scope == "calendar"
