from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.domain.entities.availability import TimeSlot


class ConfigurationError(RuntimeError):
    """Raised when required credentials or environment settings are missing."""
    pass


class AuthExchangeError(RuntimeError):
    """Raised when the token endpoint rejects an authorization code or cannot be reached."""

    def __init__(self, message: str, error_code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class StorageError(RuntimeError):
    """Raised when the storage backend fails (network, unexpected response)."""
    pass


class SlotConflictError(RuntimeError):
    """Raised when a requested interval overlaps an active booking for the same advisor."""

    def __init__(self, message: str, free_slots: list[TimeSlot] | None = None) -> None:
        super().__init__(message)
        self.free_slots = list(free_slots or [])


class NotFoundError(LookupError):
    pass
