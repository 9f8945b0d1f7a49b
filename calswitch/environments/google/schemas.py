"""
Google Calendar Schemas - raw event resources as returned by the API.

Only the fields the bridge reads are modeled; times stay as strings and
are parsed by calswitch.environments.timeparse.

Reference: https://developers.google.com/calendar/api/v3/reference/events
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventTime(BaseModel):
    """
    Event start or end time.

    Google Calendar API returns times in one of two formats:
    - dateTime: For timed events (e.g., "2024-01-15T10:00:00-05:00")
    - date: For all-day events (e.g., "2024-01-15")
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date_time: Optional[str] = Field(None, alias="dateTime")
    date: Optional[str] = None
    time_zone: Optional[str] = Field(None, alias="timeZone")

    def is_all_day(self) -> bool:
        return self.date is not None and self.date_time is None


class EventAttendee(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: Optional[str] = None
    self_: bool = Field(False, alias="self")
    response_status: Optional[str] = Field(None, alias="responseStatus")


class GoogleEvent(BaseModel):
    """A Google Calendar event resource."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = Field(None, description="confirmed, tentative, cancelled")
    transparency: Optional[str] = Field(None, description="opaque (default) or transparent")
    visibility: Optional[str] = Field(None, description="default, public, private, confidential")

    start: Optional[EventTime] = None
    end: Optional[EventTime] = None

    organizer: Optional[Dict[str, Any]] = None
    attendees: Optional[List[EventAttendee]] = None

    def organizer_email(self) -> str:
        return str((self.organizer or {}).get("email") or "")

    def declined_by_self(self) -> bool:
        """True when the attendee entry for the calendar owner declined."""
        return any(a.self_ and a.response_status == "declined" for a in (self.attendees or []))
