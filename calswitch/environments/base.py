"""
Base classes and interfaces for calendar provider integrations.

This module defines the error taxonomy shared by the OAuth layer and the
provider adapters, plus the abstract contract every adapter implements.

Design Pattern: Strategy
========================
- ProviderAdapter: one implementation per provider (Google, Microsoft),
  selected by the Provider enum rather than string comparisons.
- FetchResult: adapters never raise past their boundary; failures are
  carried as a typed error on the result.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from calswitch.models import NormalizedEvent, Provider


# ---------------------------------------------------------------------------
# CUSTOM EXCEPTIONS
# ---------------------------------------------------------------------------


class CalendarBridgeError(Exception):
    """Base exception for all bridge errors."""
    pass


# --- Authentication ---------------------------------------------------------


class AuthError(CalendarBridgeError):
    """Raised when an OAuth operation fails. Never fatal to the process."""
    pass


class NotConfiguredError(AuthError):
    """Raised when client credentials for a provider are missing."""
    pass


class MissingCode(AuthError):
    """Raised when the authorization callback carries no code."""

    def __init__(self, message: str = "Missing authorization code"):
        super().__init__(message)


class ExchangeFailed(AuthError):
    """Raised when the token endpoint answers with a non-200 status."""

    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"Token exchange failed: HTTP {status_code} {detail}".strip())
        self.status_code = status_code
        self.detail = detail


class ProviderError(AuthError):
    """Raised when the token endpoint returns a structured OAuth error."""

    def __init__(self, code: str, description: str = ""):
        super().__init__(f"{code}: {description}" if description else code)
        self.code = code
        self.description = description


# --- Fetching ---------------------------------------------------------------


class FetchError(CalendarBridgeError):
    """Base for failures recorded per provider on a fetch result."""
    pass


class NotConnected(FetchError):
    """The connection has no refresh token and needs re-authorization."""
    pass


class TokenUnavailable(AuthError, FetchError):
    """No access token at all could be produced for the connection."""
    pass


class HttpError(FetchError):
    """The provider API call itself failed."""

    def __init__(self, status_code: int, detail: str = ""):
        super().__init__(f"HTTP {status_code}" + (f": {detail}" if detail else ""))
        self.status_code = status_code
        self.detail = detail


# --- Evaluation -------------------------------------------------------------


class EvaluationError(CalendarBridgeError):
    """An unexpected failure while evaluating a single switch."""
    pass


# ---------------------------------------------------------------------------
# DATA STRUCTURES
# ---------------------------------------------------------------------------


@dataclass
class FetchResult:
    """
    Outcome of one provider fetch.

    On failure `events` is empty and `error` is set; the scheduler decides
    whether previously known data should stay visible.
    """
    provider: Provider
    events: List[NormalizedEvent] = field(default_factory=list)
    error: Optional[FetchError] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    dropped: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# ABSTRACT BASE CLASSES
# ---------------------------------------------------------------------------


class ProviderAdapter(ABC):
    """
    Abstract base class for calendar provider adapters.

    Each adapter issues a single windowed query against the primary calendar
    and normalizes the raw items into NormalizedEvent instances.
    """

    provider: Provider

    @abstractmethod
    async def fetch_events(self, window_start: datetime, window_end: datetime) -> FetchResult:
        """
        Fetch and normalize events overlapping the window.

        Args:
            window_start: Inclusive start of the query window (aware)
            window_end: Exclusive end of the query window (aware)

        Returns:
            FetchResult carrying either the events or a FetchError
        """
        pass
