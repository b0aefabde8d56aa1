from __future__ import annotations

import json
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any

CREDENTIAL_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    expires_in: int = 3600
    token_type: str = "Bearer"
    scope: str = ""
    refresh_token: str | None = None
    email: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TokenResponse":
        return cls(
            access_token=str(payload.get("access_token") or ""),
            expires_in=int(payload.get("expires_in") or 3600),
            token_type=str(payload.get("token_type") or "Bearer"),
            scope=str(payload.get("scope") or ""),
            refresh_token=payload.get("refresh_token") or None,
            email=payload.get("email") or None,
        )


@dataclass(frozen=True)
class CredentialBundle:
    access_token: str
    expires_at: datetime  # timezone-aware UTC
    refresh_token: str | None = None
    token_type: str = "Bearer"
    scope: str = ""
    version: int = CREDENTIAL_SCHEMA_VERSION

    @classmethod
    def from_token_response(
        cls,
        tokens: TokenResponse,
        now: datetime,
        previous: "CredentialBundle | None" = None,
    ) -> "CredentialBundle":
        """
        Build a bundle from a token endpoint response.
        Google omits refresh_token on refresh and sometimes on re-consent;
        the previous one is kept in that case, as is the previous scope.
        """
        refresh_token = tokens.refresh_token or (previous.refresh_token if previous else None)
        scope = tokens.scope or (previous.scope if previous else "")
        return cls(
            access_token=tokens.access_token,
            expires_at=now + timedelta(seconds=tokens.expires_in),
            refresh_token=refresh_token,
            token_type=tokens.token_type or "Bearer",
            scope=scope,
        )

    def is_expiring(self, now: datetime, margin: timedelta = timedelta(minutes=5)) -> bool:
        return self.expires_at - margin <= now

    def with_refreshed_access(self, tokens: TokenResponse, now: datetime) -> "CredentialBundle":
        return replace(
            self,
            access_token=tokens.access_token,
            expires_at=now + timedelta(seconds=tokens.expires_in),
            refresh_token=tokens.refresh_token or self.refresh_token,
        )

    def to_json(self) -> str:
        return json.dumps(
            {
                "version": self.version,
                "access_token": self.access_token,
                "refresh_token": self.refresh_token,
                "expires_at": self.expires_at.isoformat(),
                "token_type": self.token_type,
                "scope": self.scope,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "CredentialBundle":
        """
        Decode a stored bundle. Accepts the legacy unversioned payload whose
        expires_at is epoch milliseconds. Raises ValueError on anything else.
        """
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Credential payload is not valid JSON: {e}") from e
        if not isinstance(data, dict) or not data.get("access_token"):
            raise ValueError("Credential payload has no access_token")

        version = int(data.get("version") or 0)
        if version > CREDENTIAL_SCHEMA_VERSION:
            raise ValueError(f"Unsupported credential schema version {version}")

        return cls(
            access_token=str(data["access_token"]),
            expires_at=_parse_expires_at(data.get("expires_at")),
            refresh_token=data.get("refresh_token") or None,
            token_type=str(data.get("token_type") or "Bearer"),
            scope=str(data.get("scope") or ""),
        )


def _parse_expires_at(value: Any) -> datetime:
    # Missing expiry is treated as already expired so a refresh is attempted.
    if value in (None, ""):
        return datetime.fromtimestamp(0, timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid expires_at: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Advisor:
    id: str
    name: str
    email: str | None = None
    specialty: str | None = None
    available: bool = True
    credentials: CredentialBundle | None = None
    google_account_email: str | None = None
    updated_at: datetime | None = None

    @property
    def has_credentials(self) -> bool:
        return self.credentials is not None
