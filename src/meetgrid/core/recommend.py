"""Recommendation engine: pick the best non-overlapping meeting windows."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from ..models import (
    AvailabilityDoc,
    RecommendationError,
    RecommendationResult,
    RecommendedWindow,
    TimeSlot,
)
from .availability import count_available, index_docs
from .intervals import overlaps

logger = logging.getLogger(__name__)


def parse_clock(value: str) -> time:
    """Parse 'HH:MM' into a time."""
    hour, minute = map(int, value.strip().split(":"))
    return time(hour, minute)


@dataclass
class ActiveHoursPolicy:
    """Meetings start no earlier than `earliest_start` local time and may run
    past midnight only until `latest_end` on the following day."""

    earliest_start: time = time(9, 0)
    latest_end: time = time(2, 0)

    @classmethod
    def from_strings(cls, earliest_start: str = "09:00", latest_end: str = "02:00") -> ActiveHoursPolicy:
        return cls(earliest_start=parse_clock(earliest_start), latest_end=parse_clock(latest_end))

    def allows(self, start: datetime, end: datetime, tz: ZoneInfo) -> bool:
        local_start = start.astimezone(tz)
        local_end = end.astimezone(tz)
        if local_start.time() < self.earliest_start:
            return False
        days_crossed = (local_end.date() - local_start.date()).days
        if days_crossed == 0:
            return True
        if days_crossed == 1:
            return local_end.time() <= self.latest_end
        return False


class Recommender:
    """Ranks candidate windows on the aggregator's slot grid."""

    def __init__(
        self,
        policy: ActiveHoursPolicy | None = None,
        timezone: str = "UTC",
        max_results: int = 3,
        min_available: int = 1,
    ):
        self.policy = policy or ActiveHoursPolicy()
        self.tz = ZoneInfo(timezone)
        self.max_results = max_results
        self.min_available = min_available

    def recommend(
        self,
        duration: timedelta,
        slots: list[TimeSlot],
        participants: list[str],
        docs: Iterable[AvailabilityDoc] | Mapping[str, AvailabilityDoc],
        now: datetime,
        window_end: datetime | None = None,
        timezone: str | None = None,
    ) -> RecommendationResult:
        """Up to `max_results` windows of length `duration`.

        Candidates start on slot boundaries and are ranked by participants
        free (desc), distance from `now` (asc), then start time (asc).
        Active hours are judged in `timezone` when given, otherwise in the
        recommender's default zone.
        """
        if duration <= timedelta(0):
            return RecommendationResult(error=RecommendationError.INVALID_DURATION)
        if not participants:
            return RecommendationResult(error=RecommendationError.NO_PARTICIPANTS)
        if not slots:
            return RecommendationResult(error=RecommendationError.NO_SLOTS)

        by_uid = docs if isinstance(docs, Mapping) else index_docs(docs)
        tz = ZoneInfo(timezone) if timezone else self.tz
        limit = window_end or slots[-1].end_time
        total = len(participants)

        candidates = []
        for slot in slots:
            start = slot.start_time
            end = start + duration
            if end > limit:
                continue
            if not self.policy.allows(start, end, tz):
                continue
            available = count_available(participants, by_uid, start, end)
            if available < self.min_available:
                continue
            candidates.append(RecommendedWindow(
                start_time=start,
                end_time=end,
                available_count=available,
                availability=available / total,
                is_optimal=available == total,
            ))

        if not candidates:
            logger.info(f"No candidate windows for a {duration} meeting")
            return RecommendationResult(error=RecommendationError.NO_CANDIDATES)

        candidates.sort(key=lambda w: (
            -w.available_count,
            abs((w.start_time - now).total_seconds()),
            w.start_time,
        ))

        winners: list[RecommendedWindow] = []
        for window in candidates:
            if len(winners) >= self.max_results:
                break
            if any(overlaps(window.start_time, window.end_time, w.start_time, w.end_time) for w in winners):
                continue
            winners.append(window)
        return RecommendationResult(windows=winners)
