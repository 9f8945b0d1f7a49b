"""
Test configuration and fixtures for pytest.

This module provides shared fixtures used across all tests:
- A controllable clock
- In-memory storage and token stores (with and without tokens)
- A recording httpx.MockTransport for provider endpoints
- Sample event and rule factories
- A FastAPI TestClient wired to the mock transport
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generator, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from calswitch.core.config import Settings
from calswitch.main import create_app
from calswitch.models import Connection, NormalizedEvent, Provider, SwitchRule
from calswitch.services.storage import KeyValueStore
from calswitch.services.token_store import TokenStore


NOW = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

API_TOKEN = "test-api-token"


# ---------------------------------------------------------------------------
# CLOCK
# ---------------------------------------------------------------------------

class FixedClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


# ---------------------------------------------------------------------------
# HTTP MOCKING
# ---------------------------------------------------------------------------

Handler = Callable[[httpx.Request], httpx.Response]


class RecordingTransport(httpx.MockTransport):
    """
    MockTransport that routes by host + path and records every request.

    Example:
        transport.route("oauth2.googleapis.com", "/token", json={...})
        transport.requests[0].url.params["grant_type"]
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._routes: Dict[tuple, Handler] = {}
        super().__init__(self._dispatch)

    def route(
        self,
        host: str,
        path: str,
        json: Optional[dict] = None,
        status_code: int = 200,
        handler: Optional[Handler] = None,
    ) -> None:
        if handler is None:
            body = json if json is not None else {}

            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status_code, json=body)

        self._routes[(host, path)] = handler

    def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self._routes.get((request.url.host, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "no route"})
        return handler(request)

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


def form_of(request: httpx.Request) -> Dict[str, str]:
    """Decode a form-encoded request body."""
    return dict(httpx.QueryParams(request.content.decode()))


def json_of(request: httpx.Request) -> dict:
    return json.loads(request.content.decode())


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


# ---------------------------------------------------------------------------
# STORAGE FIXTURES
# ---------------------------------------------------------------------------

@pytest.fixture
def store() -> KeyValueStore:
    """In-memory key-value store."""
    return KeyValueStore()


@pytest.fixture
def token_store(store: KeyValueStore) -> TokenStore:
    """Token store with client credentials but no tokens."""
    return TokenStore(
        store,
        credentials={
            Provider.GOOGLE: {"client_id": "google-client", "client_secret": "google-secret"},
            Provider.MICROSOFT: {
                "client_id": "ms-client",
                "client_secret": "ms-secret",
                "tenant": "contoso",
            },
        },
    )


def connect(token_store: TokenStore, provider: Provider, expires_at: datetime, **overrides) -> Connection:
    """Store tokens for a provider as if a callback had succeeded."""
    values = {
        "access_token": f"{provider.value}-access",
        "refresh_token": f"{provider.value}-refresh",
        "expires_at_ms": epoch_ms(expires_at),
    }
    values.update(overrides)
    return token_store.save(token_store.get(provider).model_copy(update=values))


@pytest.fixture
def connected_token_store(token_store: TokenStore) -> TokenStore:
    """Both providers connected with tokens valid for another hour."""
    connect(token_store, Provider.GOOGLE, NOW + timedelta(hours=1))
    connect(token_store, Provider.MICROSOFT, NOW + timedelta(hours=1))
    return token_store


# ---------------------------------------------------------------------------
# FACTORIES
# ---------------------------------------------------------------------------

def make_event(
    id: str = "evt-1",
    start: datetime = NOW,
    minutes: int = 30,
    provider: Provider = Provider.GOOGLE,
    **overrides,
) -> NormalizedEvent:
    values = {
        "provider": provider,
        "id": id,
        "title": "Team sync",
        "start_time": start,
        "end_time": start + timedelta(minutes=minutes),
    }
    values.update(overrides)
    return NormalizedEvent(**values)


def make_rule(switch_id: str = "sw-1", provider: Provider = Provider.GOOGLE, **overrides) -> SwitchRule:
    return SwitchRule(switch_id=switch_id, provider=provider, **overrides)


def google_item(
    id: str = "g1",
    summary: str = "Team sync",
    start: datetime = NOW,
    minutes: int = 30,
    **extra,
) -> dict:
    item = {
        "id": id,
        "summary": summary,
        "status": "confirmed",
        "start": {"dateTime": start.isoformat()},
        "end": {"dateTime": (start + timedelta(minutes=minutes)).isoformat()},
    }
    item.update(extra)
    return item


# ---------------------------------------------------------------------------
# APP FIXTURES
# ---------------------------------------------------------------------------

@pytest.fixture
def app_settings() -> Settings:
    return Settings(
        API_TOKEN=API_TOKEN,
        START_POLLER=False,
        STATE_FILE="",
        GOOGLE_CLIENT_ID="google-client",
        GOOGLE_CLIENT_SECRET="google-secret",
        MICROSOFT_CLIENT_ID="ms-client",
        MICROSOFT_CLIENT_SECRET="ms-secret",
        CALLBACK_BASE_URL="https://bridge.example.com",
        TIMEZONE="UTC",
    )


@pytest.fixture
def app(app_settings: Settings, transport: RecordingTransport, clock: FixedClock):
    return create_app(app_settings, transport=transport, clock=clock)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {API_TOKEN}"}
