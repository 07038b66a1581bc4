"""Calendar providers."""

from .base import CalendarProvider
from .google_calendar import GoogleCalendarProvider
from .mapping import map_raw_event

__all__ = [
    "CalendarProvider",
    "GoogleCalendarProvider",
    "map_raw_event",
]
