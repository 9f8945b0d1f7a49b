"""
Google Environment - Google Calendar adapter.

Usage:
    from calswitch.environments.google import GoogleCalendarAdapter
"""

from calswitch.environments.google.calendar import GoogleCalendarAdapter

__all__ = ["GoogleCalendarAdapter"]
