"""
Microsoft Environment - Microsoft Graph calendar adapter.

Usage:
    from calswitch.environments.microsoft import MicrosoftCalendarAdapter
"""

from calswitch.environments.microsoft.calendar import MicrosoftCalendarAdapter

__all__ = ["MicrosoftCalendarAdapter"]
