"""Exception types raised across the tracking pipeline."""

from __future__ import annotations

from typing import Optional


class AutotrackError(Exception):
    """Base class for all tracker errors."""


class ConfigurationError(AutotrackError):
    """Invalid or unreadable configuration; fatal at startup."""


class EmptyInput(AutotrackError):
    """Classification was requested without any samples."""


class RemoteClassifierError(AutotrackError):
    """The remote classifier failed; the cycle is skipped."""


class NoResponse(RemoteClassifierError):
    pass


class InvalidJson(RemoteClassifierError):
    pass


class MissingField(RemoteClassifierError):
    def __init__(self, field: str) -> None:
        super().__init__(f"Classifier response is missing '{field}'")
        self.field = field


class LedgerTransportError(AutotrackError):
    """A ledger request failed at the network level or returned non-2xx."""

    def __init__(
        self, message: str, *, status: Optional[int] = None, body: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is None:
            return base
        return f"{base} (HTTP {self.status}: {self.body or ''})"


class CalendarFetchError(AutotrackError):
    """Calendar token exchange or event listing failed."""
