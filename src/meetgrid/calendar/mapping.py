"""Normalise provider events into stored CalendarEvents."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..models import CalendarEvent, RawEvent, StoredCalendar

logger = logging.getLogger(__name__)

UNTITLED = "(untitled)"


def raw_event_from_google(item: dict[str, Any]) -> RawEvent | None:
    """Build a RawEvent from a Google Calendar v3 event resource."""
    start = item.get("start", {})
    end = item.get("end", {})
    start_value = start.get("dateTime") or start.get("date")
    end_value = end.get("dateTime") or end.get("date")
    if not item.get("id") or not start_value or not end_value:
        return None
    return RawEvent(
        id=item["id"],
        title=item.get("summary", ""),
        start=start_value,
        end=end_value,
        is_all_day=bool(start.get("date")) and not start.get("dateTime"),
        transparency=item.get("transparency", "opaque"),
        status=item.get("status", "confirmed"),
        description=item.get("description"),
        location=item.get("location"),
    )


def calendar_from_google(item: dict[str, Any]) -> StoredCalendar:
    return StoredCalendar(
        id=item["id"],
        title=item.get("summary", ""),
        description=item.get("description"),
        time_zone=item.get("timeZone"),
        access_role=item.get("accessRole"),
        is_primary=bool(item.get("primary", False)),
        color=item.get("backgroundColor"),
        foreground_color=item.get("foregroundColor"),
    )


def _zone(name: str | None, fallback: str) -> ZoneInfo:
    if name:
        try:
            return ZoneInfo(name)
        except ZoneInfoNotFoundError:
            logger.warning(f"Unknown calendar timezone {name!r}, using {fallback}")
    return ZoneInfo(fallback)


def _parse_timed(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        raise ValueError(f"Timed event without offset: {value}")
    return parsed


def _parse_all_day(value: str, tz: ZoneInfo) -> datetime:
    return datetime.combine(date.fromisoformat(value[:10]), time(0, 0), tzinfo=tz)


def map_raw_event(
    raw: RawEvent, calendar: StoredCalendar, default_timezone: str = "UTC"
) -> CalendarEvent | None:
    """Convert a provider event, or None if it should not be stored.

    All-day events become local midnights in the calendar's own zone, so
    they block exactly the days the owner sees them on.
    """
    if raw.status == "cancelled":
        return None
    try:
        if raw.is_all_day:
            tz = _zone(calendar.time_zone, default_timezone)
            start_time = _parse_all_day(raw.start, tz)
            end_time = _parse_all_day(raw.end, tz)
        else:
            start_time = _parse_timed(raw.start)
            end_time = _parse_timed(raw.end)
    except ValueError:
        logger.warning(f"Skipping event {raw.id} with unreadable times")
        return None

    return CalendarEvent(
        id=raw.id,
        calendar_id=calendar.id,
        title=raw.title or UNTITLED,
        description=raw.description,
        location=raw.location,
        start_time=start_time,
        end_time=end_time,
        is_all_day=raw.is_all_day,
        is_busy=raw.transparency != "transparent",
        calendar_label=calendar.title,
        calendar_color=calendar.color,
    )
