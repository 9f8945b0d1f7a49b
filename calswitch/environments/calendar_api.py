"""
Shared fetch flow for OAuth-protected calendar APIs.

Both adapters follow the same steps:

1. Make sure the provider is connected (has a refresh token)
2. Ask the OAuthClient for a bearer token
3. Issue a single windowed GET against the events endpoint
4. Normalize each raw item, dropping the ones that cannot be normalized

Subclasses only supply the request and the item translation.
"""

import logging
from abc import abstractmethod
from datetime import datetime, tzinfo
from typing import Any, Dict, Iterable, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from calswitch.environments.base import (
    FetchResult,
    HttpError,
    NotConnected,
    ProviderAdapter,
    TokenUnavailable,
)
from calswitch.environments.oauth.client import OAuthClient
from calswitch.models import NormalizedEvent


logger = logging.getLogger("calswitch.environments")


MAX_RESULTS = 250


def load_timezone(name: str) -> tzinfo:
    """Configured timezone, or UTC when the name is not a known IANA id."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown TIMEZONE {name!r}, falling back to UTC")
        return ZoneInfo("UTC")


class CalendarApiAdapter(ProviderAdapter):
    """
    Template for adapters backed by a JSON REST events endpoint.

    Args:
        oauth_client: Produces bearer tokens for this adapter's provider
        timezone: IANA id for all-day dates and zone-less local times
        timeout: Per-request timeout in seconds
        calendar_id: Calendar queried (always the primary one)
        transport: Optional httpx transport (tests use MockTransport)
    """

    def __init__(
        self,
        oauth_client: OAuthClient,
        timezone: str = "UTC",
        timeout: float = 15.0,
        calendar_id: str = "primary",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.oauth_client = oauth_client
        self.timezone_name = timezone or "UTC"
        self.tz = load_timezone(self.timezone_name)
        self.timeout = timeout
        self.calendar_id = calendar_id
        self._transport = transport
        self._logger = logging.getLogger(f"calswitch.environments.{self.provider.value}")

    # -------------------------------------------------------------------------
    # SUBCLASS HOOKS
    # -------------------------------------------------------------------------

    @abstractmethod
    def build_request(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> Tuple[str, Dict[str, Any], Dict[str, str]]:
        """Return (url, query params, extra headers) for the windowed query."""
        pass

    @abstractmethod
    def raw_items(self, body: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
        """Raw event items of a successful response body."""
        pass

    @abstractmethod
    def normalize(self, item: Dict[str, Any]) -> Optional[NormalizedEvent]:
        """Translate one raw item; None drops it."""
        pass

    # -------------------------------------------------------------------------
    # FETCH
    # -------------------------------------------------------------------------

    async def fetch_events(self, window_start: datetime, window_end: datetime) -> FetchResult:
        connection = self.oauth_client.token_store.get(self.provider)
        if not connection.is_connected:
            return FetchResult(
                provider=self.provider,
                error=NotConnected(f"{self.provider.value} not connected"),
            )

        try:
            token = await self.oauth_client.access_token(self.provider)
        except TokenUnavailable as e:
            self._logger.warning(f"{self.provider.value} token unavailable: {e}")
            return FetchResult(provider=self.provider, error=e)

        url, params, extra_headers = self.build_request(window_start, window_end)
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        headers.update(extra_headers)

        self._logger.info(
            f"Fetching {self.provider.value} events",
            extra={
                "calendar_id": self.calendar_id,
                "time_min": window_start.isoformat(),
                "time_max": window_end.isoformat(),
            },
        )

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.get(url, params=params, headers=headers)
        except httpx.RequestError as e:
            self._logger.error(f"Network error fetching {self.provider.value} events: {e}")
            return FetchResult(provider=self.provider, error=HttpError(0, str(e)))

        if response.status_code != 200:
            self._logger.error(f"{self.provider.value} fetch failed: HTTP {response.status_code}")
            return FetchResult(
                provider=self.provider,
                error=HttpError(response.status_code, response.text[:200]),
            )

        try:
            body = response.json()
        except ValueError:
            self._logger.error(f"{self.provider.value} returned a body that is not JSON")
            return FetchResult(provider=self.provider, error=HttpError(0, "invalid JSON"))
        if not isinstance(body, dict):
            return FetchResult(provider=self.provider, error=HttpError(0, "unexpected payload"))

        events = []
        dropped = 0
        for item in self.raw_items(body):
            event = self.normalize(item) if isinstance(item, dict) else None
            if event is None:
                dropped += 1
            else:
                events.append(event)

        if dropped:
            self._logger.warning(f"Dropped {dropped} {self.provider.value} event(s) with unusable data")
        self._logger.info(f"Fetched {len(events)} {self.provider.value} events")

        return FetchResult(provider=self.provider, events=events, dropped=dropped)
