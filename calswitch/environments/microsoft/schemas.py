"""
Microsoft Graph Schemas - raw calendarView event resources.

Reference: https://learn.microsoft.com/graph/api/resources/event
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DateTimeTimeZone(BaseModel):
    """
    Graph dateTimeTimeZone: a local date-time plus the zone it is in.

    With `Prefer: outlook.timezone` honored the zone is the requested one;
    otherwise it is usually "UTC".
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date_time: Optional[str] = Field(None, alias="dateTime")
    time_zone: Optional[str] = Field(None, alias="timeZone")


class EmailAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    address: Optional[str] = None


class Recipient(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email_address: Optional[EmailAddress] = Field(None, alias="emailAddress")


class Location(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    display_name: Optional[str] = Field(None, alias="displayName")


class ResponseStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    response: Optional[str] = None


class GraphEvent(BaseModel):
    """A Microsoft Graph event as returned by /me/calendarView."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    subject: Optional[str] = None
    body_preview: Optional[str] = Field(None, alias="bodyPreview")

    start: Optional[DateTimeTimeZone] = None
    end: Optional[DateTimeTimeZone] = None
    is_all_day: bool = Field(False, alias="isAllDay")

    show_as: Optional[str] = Field(None, alias="showAs", description="free, tentative, busy, oof, ...")
    sensitivity: Optional[str] = Field(None, description="normal, personal, private, confidential")
    is_cancelled: bool = Field(False, alias="isCancelled")
    response_status: Optional[ResponseStatus] = Field(None, alias="responseStatus")

    location: Optional[Location] = None
    organizer: Optional[Recipient] = None
    categories: Optional[List[str]] = None

    def organizer_address(self) -> str:
        if self.organizer and self.organizer.email_address:
            return self.organizer.email_address.address or ""
        return ""
