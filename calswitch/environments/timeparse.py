"""
Date-time parsing for provider payloads.

Google and Microsoft return times in a handful of shapes:

    "2024-01-15"                          all-day date
    "2024-01-15T10:00:00Z"                UTC
    "2024-01-15T10:00:00.1234567"         local time, 7 fractional digits (Graph)
    "2024-01-15T10:00:00-05:00"           explicit offset
    "2024-01-15T10:00:00+0530"            offset without colon

Local times come with a separate timezone id. Everything returned from here
is timezone-aware; unparseable input gives None so the adapter can drop the
event instead of failing the whole fetch.
"""

import logging
import re
from datetime import date, datetime, time, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


logger = logging.getLogger("calswitch.timeparse")


_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_FRACTION = re.compile(r"\.(\d+)")
_OFFSET_NO_COLON = re.compile(r"([+-])(\d{2})(\d{2})$")


def resolve_timezone(tz_id: Optional[str], fallback: tzinfo) -> tzinfo:
    """
    Look up an IANA timezone id, falling back when it is unknown.

    Graph can return Windows zone names ("Pacific Standard Time") when the
    Prefer header is not honored; those fall back as well.
    """
    if not tz_id:
        return fallback
    try:
        return ZoneInfo(tz_id)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug(f"Unknown timezone id {tz_id!r}, using {fallback}")
        return fallback


def parse_date(value: str, tz: tzinfo) -> Optional[datetime]:
    """Parse YYYY-MM-DD into local midnight in `tz`."""
    try:
        day = date.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return None
    return datetime.combine(day, time.min, tzinfo=tz)


def parse_event_time(
    value: Optional[str],
    tz: tzinfo,
    tz_id: Optional[str] = None,
) -> Optional[datetime]:
    """
    Parse a provider date or date-time string into an aware datetime.

    Args:
        value: Raw string from the payload
        tz: Configured timezone, used for dates and zone-less local times
        tz_id: Optional timezone id that accompanies a local time

    Returns:
        Aware datetime, or None when the value cannot be parsed
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()

    if _DATE_ONLY.match(text):
        return parse_date(text, tz)

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _OFFSET_NO_COLON.sub(r"\1\2:\3", text)
    # fromisoformat only accepts 3 or 6 fractional digits on older interpreters
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=resolve_timezone(tz_id, tz))
    return parsed
