"""
Models package - typed records shared by every layer.

Usage:
    from calswitch.models import Connection, Provider, SwitchRule
"""

from calswitch.models.connection import Connection, Provider
from calswitch.models.event import NormalizedEvent
from calswitch.models.switch import (
    SwitchRule,
    SwitchState,
    SwitchStatus,
    UpcomingEntry,
    parse_words,
)

__all__ = [
    "Connection",
    "Provider",
    "NormalizedEvent",
    "SwitchRule",
    "SwitchState",
    "SwitchStatus",
    "UpcomingEntry",
    "parse_words",
]
