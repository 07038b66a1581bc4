"""Month-partitioned event storage.

A user's events are kept in one bucket per calendar month ("YYYY-MM"), so
reading a window costs one lookup per month it spans rather than a scan of
the user's whole history. An event is stored in every bucket its interval
touches.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from ..database import Database
from ..models import CalendarEvent, TimeBucket
from .intervals import overlaps

logger = logging.getLogger(__name__)


def bucket_key_for_month(value: date | datetime) -> str:
    """'YYYY-MM' from the value's own calendar fields."""
    return f"{value.year:04d}-{value.month:02d}"


def add_months(value: date, months: int) -> date:
    """First day of the month `months` away from value's month."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def bucket_keys_for_range(start: date | datetime, end: date | datetime) -> list[str]:
    """Every month key from start's month through end's month, inclusive."""
    cursor = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)
    keys = []
    while cursor <= last:
        keys.append(bucket_key_for_month(cursor))
        cursor = add_months(cursor, 1)
    return keys


class BucketCache:
    """Process-local cache of bucket contents keyed by (uid, bucket_key)."""

    def __init__(self):
        self._entries: dict[tuple[str, str], list[CalendarEvent]] = {}

    def get(self, uid: str, bucket_key: str) -> list[CalendarEvent] | None:
        return self._entries.get((uid, bucket_key))

    def put(self, uid: str, bucket_key: str, events: list[CalendarEvent]) -> None:
        self._entries[(uid, bucket_key)] = events

    def invalidate(self, uid: str, bucket_key: str) -> None:
        self._entries.pop((uid, bucket_key), None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class EventBucketStore:
    """Reads and writes a user's events by month bucket.

    Bucket keys are computed in `tz` (the calendar the sync runs in). This
    only decides which rows an event lives in; readers always filter by the
    absolute instants, so the choice never changes query results.
    """

    def __init__(self, db: Database, cache: BucketCache | None = None, tz: str = "UTC"):
        self.db = db
        self.cache = cache if cache is not None else BucketCache()
        self.tz = ZoneInfo(tz)

    def keys_for_range(self, start: datetime, end: datetime) -> list[str]:
        """Keys for the half-open range [start, end).

        A range ending exactly at midnight on the 1st does not reach into
        that month.
        """
        last_instant = max(start, end - timedelta(microseconds=1))
        return bucket_keys_for_range(start.astimezone(self.tz), last_instant.astimezone(self.tz))

    def group_events(
        self, events: list[CalendarEvent], range_start: datetime, range_end: datetime
    ) -> list[TimeBucket]:
        """Partition events into buckets: every month of the range, empty ones
        included, plus every month an event runs into past the range edge."""
        grouped: dict[str, list[CalendarEvent]] = {
            key: [] for key in self.keys_for_range(range_start, range_end)
        }
        for event in events:
            for key in self.keys_for_range(event.start_time, event.end_time):
                grouped.setdefault(key, []).append(event)
        return [TimeBucket(bucket_key=key, events=grouped[key]) for key in sorted(grouped)]

    async def write_buckets(
        self,
        uid: str,
        events: list[CalendarEvent],
        range_start: datetime,
        range_end: datetime,
    ) -> list[str]:
        """Overwrite every bucket the range touches, even if it ends up empty.

        Months an event overflows into are written too, as are the stored
        months on either side of the range. Those months were only partly
        covered by this sync: their events lying wholly outside the range are
        carried over, and the ones this sync saw are replaced.

        Not transactional across buckets: a failure part-way leaves earlier
        months replaced and later ones stale. Returns the written keys.
        """
        range_keys = self.keys_for_range(range_start, range_end)
        buckets = {b.bucket_key: b for b in self.group_events(events, range_start, range_end)}
        for key in self._neighbour_keys(range_keys):
            if key not in buckets and self.db.get_bucket(uid, key) is not None:
                buckets[key] = TimeBucket(bucket_key=key)

        for key in sorted(buckets):
            contents = buckets[key].events
            if key not in range_keys:
                contents = self._carry_over(uid, buckets[key], range_start, range_end) + contents
            self.cache.invalidate(uid, key)
            self.db.put_bucket(uid, key, contents)
            self.cache.put(uid, key, contents)
        logger.info(f"Wrote {len(events)} event(s) into {len(buckets)} bucket(s) for {uid}")
        return sorted(buckets)

    @staticmethod
    def _neighbour_keys(range_keys: list[str]) -> list[str]:
        first = date.fromisoformat(f"{range_keys[0]}-01")
        last = date.fromisoformat(f"{range_keys[-1]}-01")
        return [bucket_key_for_month(add_months(first, -1)), bucket_key_for_month(add_months(last, 1))]

    def _carry_over(
        self, uid: str, bucket: TimeBucket, range_start: datetime, range_end: datetime
    ) -> list[CalendarEvent]:
        """Stored events of a partly-synced month that this sync cannot speak for."""
        fresh = {e.key for e in bucket.events}
        return [
            e for e in self.db.get_bucket(uid, bucket.bucket_key) or []
            if e.key not in fresh
            and not overlaps(e.start_time, e.end_time, range_start, range_end)
        ]

    async def _read_bucket(self, uid: str, bucket_key: str) -> list[CalendarEvent]:
        cached = self.cache.get(uid, bucket_key)
        if cached is not None:
            return cached
        events = self.db.get_bucket(uid, bucket_key)
        if events is None:
            # Never synced: no data, which is not the same as free
            events = []
        self.cache.put(uid, bucket_key, events)
        return events

    async def read_buckets(
        self, uid: str, range_start: datetime, range_end: datetime
    ) -> list[CalendarEvent]:
        """Events intersecting [range_start, range_end), each returned once."""
        seen: set[tuple[str, str]] = set()
        events: list[CalendarEvent] = []
        for key in self.keys_for_range(range_start, range_end):
            for event in await self._read_bucket(uid, key):
                if event.key in seen:
                    continue
                seen.add(event.key)
                events.append(event)
        return [
            e for e in events
            if overlaps(e.start_time, e.end_time, range_start, range_end)
        ]

    async def read_month(self, uid: str, value: datetime) -> list[CalendarEvent]:
        """All events in the bucket containing `value`, unfiltered."""
        return list(await self._read_bucket(uid, bucket_key_for_month(value.astimezone(self.tz))))
