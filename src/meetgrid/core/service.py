"""Scheduling service: the entry points used by the CLI and HTTP API."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..calendar.base import CalendarProvider
from ..calendar.mapping import map_raw_event
from ..config import Config
from ..database import Database
from ..errors import InvalidInputError, MeetingNotFoundError
from ..models import (
    AvailabilityDoc,
    AvailabilityView,
    CalendarEvent,
    Meeting,
    RecommendationResult,
    SyncResult,
    TimeBlock,
)
from .availability import AvailabilityAggregator, index_docs, no_response
from .buckets import BucketCache, EventBucketStore, add_months
from .busy import derive_busy_blocks, merge_busy_blocks
from .intervals import normalize_block, parse_instant
from .manual_blocks import ManualBlockEditor
from .recommend import ActiveHoursPolicy, Recommender

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str], CalendarProvider]


def _covers(doc: AvailabilityDoc, meeting: Meeting) -> bool:
    return (
        doc.range_start is not None
        and doc.range_end is not None
        and doc.range_start <= meeting.start_time
        and doc.range_end >= meeting.end_time
    )


def _shift_months(value: datetime, months: int) -> datetime:
    """Same day-of-month and time `months` away, clamped to the month's end."""
    first = add_months(date(value.year, value.month, 1), months)
    next_first = add_months(first, 1)
    last_day = (next_first - timedelta(days=1)).day
    return value.replace(year=first.year, month=first.month, day=min(value.day, last_day))


class SchedulingService:
    """Sync, aggregate, recommend, and edit manual blocks for meetings."""

    def __init__(
        self,
        config: Config,
        db: Database,
        provider_factory: ProviderFactory | None = None,
        cache: BucketCache | None = None,
    ):
        self.config = config
        self.db = db
        self.provider_factory = provider_factory
        self.buckets = EventBucketStore(db, cache, tz=config.storage.bucket_timezone)
        self.aggregator = AvailabilityAggregator(config.availability.slot_minutes)
        self.recommender = Recommender(
            policy=ActiveHoursPolicy.from_strings(
                config.availability.active_hours_start,
                config.availability.active_hours_end,
            ),
            timezone=config.availability.timezone,
            max_results=config.availability.max_recommendations,
            min_available=config.availability.min_available,
        )

    def _get_meeting(self, meeting_id: str) -> Meeting:
        meeting = self.db.get_meeting(meeting_id)
        if meeting is None:
            raise MeetingNotFoundError(meeting_id)
        return meeting

    # --- Calendar sync ---

    def default_sync_range(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        now = now or datetime.now(timezone.utc)
        months = self.config.calendar.sync_range_months
        return _shift_months(now, -months), _shift_months(now, months)

    async def sync_user_calendars(
        self,
        uid: str,
        range_start: datetime | str | None = None,
        range_end: datetime | str | None = None,
    ) -> SyncResult:
        """Pull a user's calendars for the range and replace their buckets.

        Provider and storage failures propagate; buckets already written stay
        written. Refreshing the user's meeting availability afterwards is
        best-effort and reported in the result.
        """
        if self.provider_factory is None:
            raise RuntimeError("No calendar provider configured")
        default_start, default_end = self.default_sync_range()
        start = parse_instant(range_start) if range_start else default_start
        end = parse_instant(range_end) if range_end else default_end
        if end <= start:
            raise InvalidInputError(InvalidInputError.INVALID_TIME, "Sync range end must be after start")

        provider = self.provider_factory(uid)
        calendars = await provider.list_calendars()

        events: list[CalendarEvent] = []
        for calendar in calendars:
            raw_events = await provider.fetch_raw_events(calendar.id, start, end)
            for raw in raw_events:
                event = map_raw_event(raw, calendar, self.config.calendar.default_timezone)
                if event is not None:
                    events.append(event)

        self.db.save_calendars(uid, calendars)
        await self.buckets.write_buckets(uid, events, start, end)
        self.db.record_sync(uid, start, end)
        logger.info(f"Synced {len(events)} event(s) from {len(calendars)} calendar(s) for {uid}")

        result = SyncResult(
            calendars=calendars,
            event_count=len(events),
            range_start=start,
            range_end=end,
        )
        try:
            result.meetings_refreshed = await self.refresh_user_availability(uid, start, end)
        except Exception as e:
            logger.exception(f"Meeting availability refresh failed for {uid}: {e}")
            result.refresh_error = str(e)
        return result

    async def refresh_user_availability(self, uid: str, start: datetime, end: datetime) -> int:
        """Rebuild the user's busy blocks in every meeting overlapping [start, end)."""
        refreshed = 0
        for meeting in self.db.get_meetings_overlapping(start, end):
            if uid not in meeting.participants:
                continue
            await self.refresh_meeting_busy_blocks(meeting, uid)
            refreshed += 1
        return refreshed

    async def refresh_meeting_busy_blocks(self, meeting: Meeting, uid: str) -> list[TimeBlock]:
        events = await self.buckets.read_buckets(uid, meeting.start_time, meeting.end_time)
        blocks = merge_busy_blocks(
            derive_busy_blocks(events, meeting.start_time, meeting.end_time)
        )
        self.db.save_busy_blocks(meeting.id, uid, blocks, meeting.start_time, meeting.end_time)
        return blocks

    async def ensure_busy_blocks(self, meeting: Meeting, uids: list[str] | None = None) -> int:
        """Fill in busy blocks the meeting has not derived yet.

        A meeting created after its participants synced gets no busy blocks
        from that sync, so they are derived here from the stored buckets.
        Participants whose last sync does not reach the meeting, or who never
        synced, are left alone.
        """
        refreshed = 0
        for uid in uids if uids is not None else meeting.participants:
            last = self.db.get_last_sync(uid)
            if last is None or not (last[0] < meeting.end_time and last[1] > meeting.start_time):
                continue
            doc = self.db.get_availability_doc(meeting.id, uid)
            if doc is not None and _covers(doc, meeting):
                continue
            await self.refresh_meeting_busy_blocks(meeting, uid)
            refreshed += 1
        if refreshed:
            logger.info(f"Derived busy blocks for {refreshed} participant(s) of {meeting.id}")
        return refreshed

    async def get_events(self, uid: str, start: datetime | str, end: datetime | str) -> list[CalendarEvent]:
        start, end = parse_instant(start), parse_instant(end)
        if end <= start:
            raise InvalidInputError(InvalidInputError.INVALID_TIME, "Range end must be after start")
        return await self.buckets.read_buckets(uid, start, end)

    async def get_month_events(self, uid: str, month: str) -> list[CalendarEvent]:
        """Everything stored in one "YYYY-MM" bucket, including events that
        only partly fall in that month."""
        try:
            first = datetime.strptime(month, "%Y-%m")
        except ValueError:
            raise InvalidInputError(
                InvalidInputError.INVALID_TIME, f"Expected YYYY-MM, got {month!r}"
            ) from None
        return await self.buckets.read_month(uid, first.replace(tzinfo=self.buckets.tz))

    # --- Availability ---

    async def get_availability(
        self,
        meeting_id: str,
        window_override: tuple[datetime | str, datetime | str] | None = None,
    ) -> AvailabilityView:
        meeting = self._get_meeting(meeting_id)
        start, end = meeting.start_time, meeting.end_time
        if window_override:
            start, end = parse_instant(window_override[0]), parse_instant(window_override[1])
            if end <= start:
                raise InvalidInputError(InvalidInputError.INVALID_TIME, "Window end must be after start")

        await self.ensure_busy_blocks(meeting)
        docs = [d for d in self.db.get_availability_docs(meeting_id) if d.uid in meeting.participants]
        by_uid = index_docs(docs)
        slots = self.aggregator.compute_slots(start, end, meeting.participants, by_uid)
        return AvailabilityView(
            slots=slots,
            docs=docs,
            participants=list(meeting.participants),
            no_response=no_response(meeting.participants, by_uid),
        )

    async def get_recommendations(
        self,
        meeting_id: str,
        duration_minutes: int,
        now: datetime | None = None,
        tz: str | None = None,
    ) -> RecommendationResult:
        """Best windows for the meeting. Active hours are read in `tz`
        (the viewer's) when given, otherwise in the meeting's own zone."""
        meeting = self._get_meeting(meeting_id)
        zone = tz or meeting.timezone
        try:
            ZoneInfo(zone)
        except (ZoneInfoNotFoundError, ValueError):
            raise InvalidInputError(InvalidInputError.INVALID_TIME, f"Unknown timezone: {zone}") from None
        await self.ensure_busy_blocks(meeting)
        docs = [d for d in self.db.get_availability_docs(meeting_id) if d.uid in meeting.participants]
        by_uid = index_docs(docs)
        slots = self.aggregator.compute_slots(
            meeting.start_time, meeting.end_time, meeting.participants, by_uid
        )
        return self.recommender.recommend(
            timedelta(minutes=duration_minutes),
            slots,
            meeting.participants,
            by_uid,
            now=now or datetime.now(timezone.utc),
            window_end=meeting.end_time,
            timezone=zone,
        )

    # --- Manual blocks ---

    async def save_manual_blocks(
        self, meeting_id: str, uid: str, blocks: list[TimeBlock | dict]
    ) -> list[TimeBlock]:
        """Replace a participant's manual blocks for a meeting."""
        meeting = self._get_meeting(meeting_id)
        if uid not in meeting.participants:
            raise InvalidInputError(
                InvalidInputError.NOT_A_PARTICIPANT, f"{uid} is not a participant of {meeting_id}"
            )
        cleaned = []
        for block in blocks:
            normalized = normalize_block(block)
            if normalized is None:
                raise InvalidInputError(InvalidInputError.INVALID_BLOCK, f"Malformed block: {block!r}")
            cleaned.append(normalized)
        await self.ensure_busy_blocks(meeting, [uid])
        self.db.save_manual_blocks(meeting_id, uid, cleaned)
        logger.info(f"Saved {len(cleaned)} manual block(s) for {uid} in {meeting_id}")
        return cleaned

    def manual_block_editor(self, meeting_id: str, uid: str) -> ManualBlockEditor:
        """An editor pre-filled with the participant's stored manual blocks."""
        meeting = self._get_meeting(meeting_id)
        return ManualBlockEditor.from_doc(
            self.db.get_availability_doc(meeting_id, uid),
            meeting.start_time,
            meeting.end_time,
            slot_minutes=self.config.availability.edit_slot_minutes,
        )
