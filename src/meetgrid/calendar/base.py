"""Abstract base for calendar providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from ..models import RawEvent, StoredCalendar


class CalendarProvider(ABC):
    """Read-only access to one user's external calendars."""

    @abstractmethod
    async def list_calendars(self) -> list[StoredCalendar]:
        """All calendars visible to the user."""
        ...

    @abstractmethod
    async def fetch_raw_events(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> list[RawEvent]:
        """Expanded event occurrences of one calendar within [start, end)."""
        ...
