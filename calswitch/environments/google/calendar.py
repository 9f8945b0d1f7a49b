"""
Google Calendar adapter - windowed events query on the primary calendar.

API Reference:
==============
- Events API: https://developers.google.com/calendar/api/v3/reference/events/list

Recurring events are expanded server-side (singleEvents=true) so every
instance arrives as its own item, already ordered by start time.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import quote

from pydantic import ValidationError

from calswitch.environments.calendar_api import MAX_RESULTS, CalendarApiAdapter
from calswitch.environments.google.schemas import EventTime, GoogleEvent
from calswitch.environments.timeparse import parse_event_time
from calswitch.models import NormalizedEvent, Provider


class GoogleCalendarAdapter(CalendarApiAdapter):
    """
    Google Calendar API adapter.

    Example:
        adapter = GoogleCalendarAdapter(oauth_client, timezone="Europe/Madrid")
        result = await adapter.fetch_events(start, end)
    """

    provider = Provider.GOOGLE

    BASE_URL = "https://www.googleapis.com/calendar/v3"

    def build_request(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> Tuple[str, Dict[str, Any], Dict[str, str]]:
        url = f"{self.BASE_URL}/calendars/{quote(self.calendar_id, safe='')}/events"
        params = {
            "timeMin": window_start.isoformat(),
            "timeMax": window_end.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": MAX_RESULTS,
        }
        return url, params, {}

    def raw_items(self, body: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
        return body.get("items") or []

    def _parse_time(self, value: Optional[EventTime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.date_time:
            return parse_event_time(value.date_time, self.tz, value.time_zone)
        return parse_event_time(value.date, self.tz)

    def normalize(self, item: Dict[str, Any]) -> Optional[NormalizedEvent]:
        try:
            raw = GoogleEvent.model_validate(item)
        except ValidationError:
            return None
        if not raw.id:
            return None

        start = self._parse_time(raw.start)
        end = self._parse_time(raw.end)
        if start is None or end is None or start > end:
            return None

        return NormalizedEvent(
            provider=self.provider,
            id=raw.id,
            title=raw.summary or "",
            description=raw.description or "",
            location=raw.location or "",
            organizer=raw.organizer_email(),
            start_time=start,
            end_time=end,
            is_all_day=bool(raw.start and raw.start.is_all_day()),
            is_busy=(raw.transparency or "").lower() != "transparent",
            is_private=(raw.visibility or "").lower() == "private",
            is_cancelled=(raw.status or "").lower() == "cancelled",
            is_declined=raw.declined_by_self(),
            calendar_id=self.calendar_id,
        )
