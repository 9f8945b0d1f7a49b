"""
Environments Module - calendar provider integrations.

Architecture Overview:
======================
environments/
├── __init__.py           # Module exports
├── base.py               # Error taxonomy + ProviderAdapter contract
├── calendar_api.py       # Shared windowed-fetch flow
├── timeparse.py          # Provider date/time parsing
├── oauth/                # Authorization code + PKCE, token lifecycle
├── google/               # Google Calendar adapter
└── microsoft/            # Microsoft Graph adapter

Design Principles:
==================
1. One adapter per provider, selected by the Provider enum
2. Adapters never raise: failures travel on FetchResult.error
3. Token handling lives only in the OAuth client
"""

from calswitch.environments.base import (
    AuthError,
    CalendarBridgeError,
    EvaluationError,
    ExchangeFailed,
    FetchError,
    FetchResult,
    HttpError,
    MissingCode,
    NotConfiguredError,
    NotConnected,
    ProviderAdapter,
    ProviderError,
    TokenUnavailable,
)

__all__ = [
    "AuthError",
    "CalendarBridgeError",
    "EvaluationError",
    "ExchangeFailed",
    "FetchError",
    "FetchResult",
    "HttpError",
    "MissingCode",
    "NotConfiguredError",
    "NotConnected",
    "ProviderAdapter",
    "ProviderError",
    "TokenUnavailable",
]
