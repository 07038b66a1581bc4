"""Google Calendar provider implementation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from googleapiclient.discovery import build

from ..config import CalendarConfig
from ..models import RawEvent, StoredCalendar
from ..retry import retry_async
from .base import CalendarProvider
from .google_auth import get_google_credentials
from .mapping import calendar_from_google, raw_event_from_google

logger = logging.getLogger(__name__)

MAX_RESULTS = 2500


def _rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class GoogleCalendarProvider(CalendarProvider):
    """Google Calendar API v3, read-only."""

    def __init__(self, config: CalendarConfig, service=None):
        self.config = config
        self._service = service

    @property
    def service(self):
        if not self._service:
            creds = get_google_credentials(
                credentials_path=self.config.credentials_path,
                token_path=self.config.token_path,
            )
            self._service = build("calendar", "v3", credentials=creds)
        return self._service

    async def list_calendars(self) -> list[StoredCalendar]:
        calendars = []
        page_token = None
        while True:
            request = self.service.calendarList().list(pageToken=page_token)
            result = await retry_async(request.execute, label="google.calendar_list")
            calendars.extend(calendar_from_google(item) for item in result.get("items", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        logger.info(f"Found {len(calendars)} calendar(s)")
        return calendars

    async def fetch_raw_events(
        self, calendar_id: str, start: datetime, end: datetime
    ) -> list[RawEvent]:
        """All event occurrences, with recurring events expanded."""
        events = []
        page_token = None
        while True:
            request = self.service.events().list(
                calendarId=calendar_id,
                timeMin=_rfc3339(start),
                timeMax=_rfc3339(end),
                singleEvents=True,
                orderBy="startTime",
                maxResults=MAX_RESULTS,
                pageToken=page_token,
            )
            result = await retry_async(request.execute, label="google.events")
            for item in result.get("items", []):
                raw = raw_event_from_google(item)
                if raw is not None:
                    events.append(raw)
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        logger.info(f"Fetched {len(events)} event(s) from {calendar_id}")
        return events
