"""
Microsoft Graph calendar adapter - calendarView query on the signed-in user.

API Reference:
==============
- calendarView: https://learn.microsoft.com/graph/api/user-list-calendarview

calendarView expands recurring series into instances for the window. The
Prefer header asks Graph to return local times in the configured zone.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Tuple

from pydantic import ValidationError

from calswitch.environments.calendar_api import MAX_RESULTS, CalendarApiAdapter
from calswitch.environments.microsoft.schemas import DateTimeTimeZone, GraphEvent
from calswitch.environments.timeparse import parse_date, parse_event_time
from calswitch.models import NormalizedEvent, Provider


SELECT_FIELDS = ",".join([
    "id",
    "subject",
    "bodyPreview",
    "start",
    "end",
    "isAllDay",
    "showAs",
    "sensitivity",
    "location",
    "organizer",
    "categories",
    "isCancelled",
    "responseStatus",
])


def _graph_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class MicrosoftCalendarAdapter(CalendarApiAdapter):
    """Microsoft Graph calendar adapter."""

    provider = Provider.MICROSOFT

    BASE_URL = "https://graph.microsoft.com/v1.0"

    def build_request(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> Tuple[str, Dict[str, Any], Dict[str, str]]:
        params = {
            "startDateTime": _graph_datetime(window_start),
            "endDateTime": _graph_datetime(window_end),
            "$top": MAX_RESULTS,
            "$select": SELECT_FIELDS,
        }
        headers = {"Prefer": f'outlook.timezone="{self.timezone_name}"'}
        return f"{self.BASE_URL}/me/calendarView", params, headers

    def raw_items(self, body: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
        return body.get("value") or []

    def _parse_time(self, value: Optional[DateTimeTimeZone], all_day: bool = False) -> Optional[datetime]:
        if value is None:
            return None
        if all_day:
            # Day boundaries follow the configured zone, not start.timeZone
            return parse_date((value.date_time or "")[:10], self.tz)
        return parse_event_time(value.date_time, self.tz, value.time_zone)

    def normalize(self, item: Dict[str, Any]) -> Optional[NormalizedEvent]:
        try:
            raw = GraphEvent.model_validate(item)
        except ValidationError:
            return None
        if not raw.id:
            return None

        start = self._parse_time(raw.start, raw.is_all_day)
        end = self._parse_time(raw.end, raw.is_all_day)
        if start is None or end is None or start > end:
            return None

        response = raw.response_status.response if raw.response_status else None

        return NormalizedEvent(
            provider=self.provider,
            id=raw.id,
            title=raw.subject or "",
            description=raw.body_preview or "",
            location=(raw.location.display_name if raw.location else None) or "",
            organizer=raw.organizer_address(),
            categories=[c for c in (raw.categories or []) if c],
            start_time=start,
            end_time=end,
            is_all_day=raw.is_all_day,
            is_busy=(raw.show_as or "busy").lower() != "free",
            is_private=(raw.sensitivity or "").lower() == "private",
            is_cancelled=raw.is_cancelled,
            is_declined=(response or "").lower() == "declined",
            calendar_id=self.calendar_id,
        )
