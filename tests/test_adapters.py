"""
Tests for the Google and Microsoft calendar adapters.

These tests verify:
- The windowed query sent to each provider
- Normalization of busy/private/all-day/cancelled/declined signals
- Dropping of unparseable events
- Typed fetch errors instead of exceptions
"""

import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import httpx
import pytest

from calswitch.environments.base import HttpError, NotConnected, TokenUnavailable
from calswitch.environments.google import GoogleCalendarAdapter
from calswitch.environments.microsoft import MicrosoftCalendarAdapter
from calswitch.environments.oauth import OAuthClient
from calswitch.models import Provider

from conftest import NOW, connect, google_item


GOOGLE_HOST = "www.googleapis.com"
GOOGLE_EVENTS = "/calendar/v3/calendars/primary/events"
GRAPH_HOST = "graph.microsoft.com"
GRAPH_VIEW = "/v1.0/me/calendarView"

WINDOW = (NOW - timedelta(hours=24), NOW + timedelta(hours=168))


@pytest.fixture
def oauth(connected_token_store, transport, clock) -> OAuthClient:
    return OAuthClient(
        connected_token_store,
        redirect_uri="https://relay.example.com",
        callback_base_url="https://bridge.example.com",
        transport=transport,
        clock=clock,
    )


@pytest.fixture
def google(oauth, transport) -> GoogleCalendarAdapter:
    return GoogleCalendarAdapter(oauth, timezone="Europe/Madrid", transport=transport)


@pytest.fixture
def microsoft(oauth, transport) -> MicrosoftCalendarAdapter:
    return MicrosoftCalendarAdapter(oauth, timezone="Europe/Madrid", transport=transport)


def graph_item(id: str = "m1", subject: str = "Planning", **extra) -> dict:
    item = {
        "id": id,
        "subject": subject,
        "bodyPreview": "Quarterly planning",
        "start": {"dateTime": "2025-01-15T11:00:00.0000000", "timeZone": "Europe/Madrid"},
        "end": {"dateTime": "2025-01-15T12:00:00.0000000", "timeZone": "Europe/Madrid"},
        "isAllDay": False,
        "showAs": "busy",
        "sensitivity": "normal",
        "isCancelled": False,
        "responseStatus": {"response": "accepted"},
        "location": {"displayName": "Room 4"},
        "organizer": {"emailAddress": {"name": "Ana", "address": "ana@example.com"}},
        "categories": ["Blue category"],
    }
    item.update(extra)
    return item


# ---------------------------------------------------------------------------
# GOOGLE
# ---------------------------------------------------------------------------

class TestGoogleAdapter:
    """Tests for the Google Calendar adapter."""

    @pytest.mark.asyncio
    async def test_sends_windowed_query(self, google, transport):
        """Should query the primary calendar with the expected parameters."""
        transport.route(GOOGLE_HOST, GOOGLE_EVENTS, json={"items": []})

        await google.fetch_events(*WINDOW)

        request = transport.requests_to(GOOGLE_EVENTS)[0]
        assert request.headers["Authorization"] == "Bearer google-access"
        assert request.url.params["singleEvents"] == "true"
        assert request.url.params["orderBy"] == "startTime"
        assert request.url.params["maxResults"] == "250"
        assert request.url.params["timeMin"] == WINDOW[0].isoformat()
        assert request.url.params["timeMax"] == WINDOW[1].isoformat()

    @pytest.mark.asyncio
    async def test_normalizes_timed_event(self, google, transport):
        """Should map Google fields onto NormalizedEvent."""
        item = google_item(
            description="Daily",
            location="Room 1",
            organizer={"email": "boss@example.com"},
        )
        transport.route(GOOGLE_HOST, GOOGLE_EVENTS, json={"items": [item]})

        result = await google.fetch_events(*WINDOW)

        assert result.ok
        event = result.events[0]
        assert event.provider == Provider.GOOGLE
        assert event.id == "g1"
        assert event.title == "Team sync"
        assert event.organizer == "boss@example.com"
        assert event.start_time == NOW
        assert event.end_time == NOW + timedelta(minutes=30)
        assert event.is_busy and not event.is_private and not event.is_all_day

    @pytest.mark.asyncio
    async def test_all_day_event_starts_at_local_midnight(self, google, transport):
        """Should turn start.date into midnight in the configured zone."""
        item = {
            "id": "holiday",
            "summary": "Holiday",
            "start": {"date": "2025-01-15"},
            "end": {"date": "2025-01-16"},
        }
        transport.route(GOOGLE_HOST, GOOGLE_EVENTS, json={"items": [item]})

        result = await google.fetch_events(*WINDOW)

        event = result.events[0]
        assert event.is_all_day
        assert event.start_time == datetime(2025, 1, 15, tzinfo=ZoneInfo("Europe/Madrid"))
        assert event.end_time == datetime(2025, 1, 16, tzinfo=ZoneInfo("Europe/Madrid"))

    @pytest.mark.asyncio
    async def test_maps_busy_private_cancelled_declined(self, google, transport):
        items = [
            google_item("free", transparency="transparent"),
            google_item("secret", visibility="private"),
            google_item("gone", status="cancelled"),
            google_item("no", attendees=[
                {"email": "me@example.com", "self": True, "responseStatus": "declined"},
                {"email": "you@example.com", "responseStatus": "accepted"},
            ]),
        ]
        transport.route(GOOGLE_HOST, GOOGLE_EVENTS, json={"items": items})

        result = await google.fetch_events(*WINDOW)
        events = {e.id: e for e in result.events}

        assert events["free"].is_busy is False
        assert events["secret"].is_private is True
        assert events["gone"].is_cancelled is True
        assert events["no"].is_declined is True

    @pytest.mark.asyncio
    async def test_drops_unparseable_events(self, google, transport, caplog):
        """Should drop bad items, keep good ones and log the count."""
        items = [
            google_item("good"),
            {"id": "bad", "start": {"dateTime": "not a date"}, "end": {"dateTime": "nope"}},
            {"id": "inverted", "start": {"dateTime": "2025-01-15T11:00:00Z"}, "end": {"dateTime": "2025-01-15T10:00:00Z"}},
            {"summary": "no id", "start": {"date": "2025-01-15"}, "end": {"date": "2025-01-16"}},
        ]
        transport.route(GOOGLE_HOST, GOOGLE_EVENTS, json={"items": items})

        with caplog.at_level(logging.WARNING):
            result = await google.fetch_events(*WINDOW)

        assert [e.id for e in result.events] == ["good"]
        assert result.dropped == 3
        assert "Dropped 3 google event(s)" in caplog.text

    @pytest.mark.asyncio
    async def test_http_error_is_returned_not_raised(self, google, transport):
        transport.route(GOOGLE_HOST, GOOGLE_EVENTS, status_code=403, json={"error": "forbidden"})

        result = await google.fetch_events(*WINDOW)

        assert isinstance(result.error, HttpError)
        assert result.error.status_code == 403
        assert result.events == []

    @pytest.mark.asyncio
    async def test_network_error_is_http_error_zero(self, google, transport):
        def boom(request):
            raise httpx.ConnectError("unreachable", request=request)

        transport.route(GOOGLE_HOST, GOOGLE_EVENTS, handler=boom)

        result = await google.fetch_events(*WINDOW)

        assert isinstance(result.error, HttpError)
        assert result.error.status_code == 0

    @pytest.mark.asyncio
    async def test_invalid_json_is_http_error_zero(self, google, transport):
        transport.route(
            GOOGLE_HOST,
            GOOGLE_EVENTS,
            handler=lambda request: httpx.Response(200, content=b"<html>"),
        )

        result = await google.fetch_events(*WINDOW)

        assert result.error.status_code == 0

    @pytest.mark.asyncio
    async def test_not_connected_without_refresh_token(self, google, oauth, transport):
        """Should report NotConnected without any HTTP call."""
        store = oauth.token_store
        store.save(store.get(Provider.GOOGLE).cleared())

        result = await google.fetch_events(*WINDOW)

        assert isinstance(result.error, NotConnected)
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_token_unavailable(self, google, oauth, transport):
        """Should report TokenUnavailable when refresh fails with no cached token."""
        connect(oauth.token_store, Provider.GOOGLE, NOW, access_token=None)
        transport.route("oauth2.googleapis.com", "/token", status_code=401, json={"error": "invalid_client"})

        result = await google.fetch_events(*WINDOW)

        assert isinstance(result.error, TokenUnavailable)


# ---------------------------------------------------------------------------
# MICROSOFT
# ---------------------------------------------------------------------------

class TestMicrosoftAdapter:
    """Tests for the Microsoft Graph adapter."""

    @pytest.mark.asyncio
    async def test_sends_calendar_view_query(self, microsoft, transport):
        """Should call calendarView with window, paging size and timezone header."""
        transport.route(GRAPH_HOST, GRAPH_VIEW, json={"value": []})

        await microsoft.fetch_events(*WINDOW)

        request = transport.requests_to(GRAPH_VIEW)[0]
        assert request.headers["Authorization"] == "Bearer microsoft-access"
        assert request.headers["Prefer"] == 'outlook.timezone="Europe/Madrid"'
        assert request.url.params["startDateTime"] == "2025-01-14T10:00:00Z"
        assert request.url.params["endDateTime"] == "2025-01-22T10:00:00Z"
        assert request.url.params["$top"] == "250"
        assert "showAs" in request.url.params["$select"]

    @pytest.mark.asyncio
    async def test_normalizes_graph_event(self, microsoft, transport):
        """Should map Graph fields onto NormalizedEvent."""
        transport.route(GRAPH_HOST, GRAPH_VIEW, json={"value": [graph_item()]})

        result = await microsoft.fetch_events(*WINDOW)

        event = result.events[0]
        assert event.provider == Provider.MICROSOFT
        assert event.title == "Planning"
        assert event.description == "Quarterly planning"
        assert event.location == "Room 4"
        assert event.organizer == "ana@example.com"
        assert event.categories == ["Blue category"]
        assert event.start_time == datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert event.is_busy and not event.is_private

    @pytest.mark.asyncio
    async def test_maps_free_private_all_day_cancelled_declined(self, microsoft, transport):
        items = [
            graph_item("free", showAs="free"),
            graph_item("tentative", showAs="tentative"),
            graph_item("secret", sensitivity="private"),
            graph_item(
                "allday",
                isAllDay=True,
                start={"dateTime": "2025-01-15T00:00:00.0000000", "timeZone": "Europe/Madrid"},
                end={"dateTime": "2025-01-16T00:00:00.0000000", "timeZone": "Europe/Madrid"},
            ),
            graph_item("gone", isCancelled=True),
            graph_item("no", responseStatus={"response": "declined"}),
        ]
        transport.route(GRAPH_HOST, GRAPH_VIEW, json={"value": items})

        result = await microsoft.fetch_events(*WINDOW)
        events = {e.id: e for e in result.events}

        assert events["free"].is_busy is False
        assert events["tentative"].is_busy is True
        assert events["secret"].is_private is True
        assert events["allday"].is_all_day is True
        assert events["allday"].start_time == datetime(2025, 1, 15, tzinfo=ZoneInfo("Europe/Madrid"))
        assert events["gone"].is_cancelled is True
        assert events["no"].is_declined is True

    @pytest.mark.asyncio
    async def test_windows_zone_name_falls_back_to_configured(self, microsoft, transport):
        """Should read local times in the configured zone when timeZone is not IANA."""
        item = graph_item(
            start={"dateTime": "2025-01-15T11:00:00", "timeZone": "Romance Standard Time"},
            end={"dateTime": "2025-01-15T12:00:00", "timeZone": "Romance Standard Time"},
        )
        transport.route(GRAPH_HOST, GRAPH_VIEW, json={"value": [item]})

        result = await microsoft.fetch_events(*WINDOW)

        assert result.events[0].start_time == datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_utc_times_with_z_suffix(self, microsoft, transport):
        item = graph_item(
            start={"dateTime": "2025-01-15T10:00:00.1234567Z", "timeZone": "UTC"},
            end={"dateTime": "2025-01-15T10:30:00Z", "timeZone": "UTC"},
        )
        transport.route(GRAPH_HOST, GRAPH_VIEW, json={"value": [item]})

        result = await microsoft.fetch_events(*WINDOW)

        assert result.events[0].start_time == datetime(2025, 1, 15, 10, 0, 0, 123456, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_all_day_uses_configured_zone_when_prefer_ignored(self, microsoft, transport):
        """Should start all-day events at local midnight even when Graph answers in UTC."""
        item = graph_item(
            "holiday",
            isAllDay=True,
            start={"dateTime": "2025-01-15T00:00:00.0000000", "timeZone": "UTC"},
            end={"dateTime": "2025-01-16T00:00:00.0000000", "timeZone": "UTC"},
        )
        transport.route(GRAPH_HOST, GRAPH_VIEW, json={"value": [item]})

        result = await microsoft.fetch_events(*WINDOW)

        event = result.events[0]
        assert event.start_time == datetime(2025, 1, 15, tzinfo=ZoneInfo("Europe/Madrid"))
        assert event.end_time == datetime(2025, 1, 16, tzinfo=ZoneInfo("Europe/Madrid"))

    @pytest.mark.asyncio
    async def test_server_error(self, microsoft, transport):
        transport.route(GRAPH_HOST, GRAPH_VIEW, status_code=503, json={})

        result = await microsoft.fetch_events(*WINDOW)

        assert isinstance(result.error, HttpError)
        assert result.error.status_code == 503
