"""Core data models for meetgrid."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _parse_dt(value: str) -> datetime:
    """Parse an ISO-8601 string, accepting a trailing 'Z' for UTC."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _format_dt(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class RecommendationError(str, Enum):
    """Why a recommendation request produced no windows."""

    INVALID_DURATION = "invalid_duration"
    NO_PARTICIPANTS = "no_participants"
    NO_SLOTS = "no_slots"
    NO_CANDIDATES = "no_candidates"


class ToggleMode(str, Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class TimeBlock:
    """A half-open interval [start_time, end_time)."""

    start_time: datetime
    end_time: datetime

    @property
    def is_valid(self) -> bool:
        return self.end_time > self.start_time

    def to_dict(self) -> dict[str, str]:
        return {"startTime": _format_dt(self.start_time), "endTime": _format_dt(self.end_time)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimeBlock:
        return cls(
            start_time=_parse_dt(data["startTime"]),
            end_time=_parse_dt(data["endTime"]),
        )


@dataclass
class CalendarEvent:
    """One occurrence synced from an external calendar."""

    id: str
    calendar_id: str
    title: str
    start_time: datetime
    end_time: datetime
    is_all_day: bool = False
    is_busy: bool = True
    description: str | None = None
    location: str | None = None
    calendar_label: str | None = None
    calendar_color: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.calendar_id, self.id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "calendarId": self.calendar_id,
            "title": self.title,
            "startTime": _format_dt(self.start_time),
            "endTime": _format_dt(self.end_time),
            "isAllDay": self.is_all_day,
            "isBusy": self.is_busy,
            "description": self.description,
            "location": self.location,
            "calendarLabel": self.calendar_label,
            "calendarColor": self.calendar_color,
        }
        # Optional fields are omitted rather than stored as null
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CalendarEvent:
        return cls(
            id=data["id"],
            calendar_id=data["calendarId"],
            title=data.get("title", ""),
            start_time=_parse_dt(data["startTime"]),
            end_time=_parse_dt(data["endTime"]),
            is_all_day=bool(data.get("isAllDay", False)),
            is_busy=bool(data.get("isBusy", True)),
            description=data.get("description"),
            location=data.get("location"),
            calendar_label=data.get("calendarLabel"),
            calendar_color=data.get("calendarColor"),
        )


@dataclass
class TimeBucket:
    """All of one user's events intersecting one calendar month."""

    bucket_key: str  # "2024-03"
    events: list[CalendarEvent] = field(default_factory=list)


@dataclass
class AvailabilityDoc:
    """A participant's unavailability for one meeting."""

    uid: str
    busy_blocks: list[TimeBlock] = field(default_factory=list)
    manual_blocks: list[TimeBlock] = field(default_factory=list)
    range_start: datetime | None = None
    range_end: datetime | None = None
    updated_at: datetime | None = None

    def all_blocks(self) -> list[TimeBlock]:
        return [*self.busy_blocks, *self.manual_blocks]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "uid": self.uid,
            "busyBlocks": [b.to_dict() for b in self.busy_blocks],
            "manualBlocks": [b.to_dict() for b in self.manual_blocks],
        }
        if self.range_start and self.range_end:
            data["rangeStart"] = _format_dt(self.range_start)
            data["rangeEnd"] = _format_dt(self.range_end)
        if self.updated_at:
            data["updatedAt"] = _format_dt(self.updated_at)
        return data


@dataclass
class TimeSlot:
    """Aggregated availability for one grid slot."""

    start_time: datetime
    end_time: datetime
    available_count: int
    availability: float
    is_optimal: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "startTime": _format_dt(self.start_time),
            "endTime": _format_dt(self.end_time),
            "availableCount": self.available_count,
            "availability": self.availability,
            "isOptimal": self.is_optimal,
        }


@dataclass
class RecommendedWindow:
    start_time: datetime
    end_time: datetime
    available_count: int
    availability: float
    is_optimal: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "startTime": _format_dt(self.start_time),
            "endTime": _format_dt(self.end_time),
            "availableCount": self.available_count,
            "availability": self.availability,
            "isOptimal": self.is_optimal,
        }


@dataclass
class RecommendationResult:
    windows: list[RecommendedWindow] = field(default_factory=list)
    error: RecommendationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error.value}
        return {"windows": [w.to_dict() for w in self.windows]}


@dataclass
class SlotBreakdown:
    """Who can and cannot make a given slot."""

    available: list[str] = field(default_factory=list)
    unavailable: list[str] = field(default_factory=list)
    no_response: list[str] = field(default_factory=list)


@dataclass
class Meeting:
    id: str
    title: str
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"
    participants: list[str] = field(default_factory=list)


@dataclass
class StoredCalendar:
    """Calendar metadata as reported by the provider."""

    id: str
    title: str
    description: str | None = None
    time_zone: str | None = None
    access_role: str | None = None
    is_primary: bool = False
    color: str | None = None
    foreground_color: str | None = None


@dataclass
class RawEvent:
    """A provider event before normalisation.

    `start`/`end` are the provider's raw strings: a datetime with offset for
    timed events, or a bare date ("2024-03-15") for all-day events.
    """

    id: str
    title: str
    start: str
    end: str
    is_all_day: bool = False
    transparency: str = "opaque"
    status: str = "confirmed"
    description: str | None = None
    location: str | None = None


@dataclass
class SyncResult:
    calendars: list[StoredCalendar]
    event_count: int
    range_start: datetime
    range_end: datetime
    meetings_refreshed: int = 0
    refresh_error: str | None = None


@dataclass
class AvailabilityView:
    """Everything a heat-map needs for one meeting."""

    slots: list[TimeSlot]
    docs: list[AvailabilityDoc]
    participants: list[str]
    no_response: list[str]

    @property
    def has_data(self) -> bool:
        """False when no participant has responded at all."""
        return bool(self.docs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "slots": [s.to_dict() for s in self.slots],
            "docs": [d.to_dict() for d in self.docs],
            "participants": list(self.participants),
            "noResponse": list(self.no_response),
            "hasData": self.has_data,
        }
