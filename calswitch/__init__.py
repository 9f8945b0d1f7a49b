"""Calendar Switch Bridge - drives on/off switches from calendar events."""

__version__ = "1.0.0"
