"""Availability aggregator: per-slot counts of free participants."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta

from ..errors import InvalidInputError
from ..models import AvailabilityDoc, SlotBreakdown, TimeSlot
from .intervals import block_overlaps, iter_slot_starts

logger = logging.getLogger(__name__)


def index_docs(docs: Iterable[AvailabilityDoc]) -> dict[str, AvailabilityDoc]:
    return {doc.uid: doc for doc in docs}


def is_available(doc: AvailabilityDoc | None, start: datetime, end: datetime) -> bool:
    """Whether a participant is free for all of [start, end).

    A participant with no doc has not responded and counts as available.
    """
    if doc is None:
        return True
    return not any(block_overlaps(start, end, block) for block in doc.all_blocks())


def count_available(
    participants: list[str],
    docs: Mapping[str, AvailabilityDoc],
    start: datetime,
    end: datetime,
) -> int:
    return sum(1 for uid in participants if is_available(docs.get(uid), start, end))


def no_response(participants: list[str], docs: Mapping[str, AvailabilityDoc]) -> list[str]:
    """Participants with no availability on file."""
    return [uid for uid in participants if uid not in docs]


class AvailabilityAggregator:
    """Computes the dense availability grid for a meeting window."""

    def __init__(self, slot_minutes: int = 30):
        if slot_minutes <= 0:
            raise InvalidInputError(
                InvalidInputError.INVALID_GRANULARITY,
                f"Slot size must be positive, got {slot_minutes}",
            )
        self.slot_minutes = slot_minutes

    @property
    def slot_duration(self) -> timedelta:
        return timedelta(minutes=self.slot_minutes)

    def compute_slots(
        self,
        meeting_start: datetime,
        meeting_end: datetime,
        participants: list[str],
        docs: Iterable[AvailabilityDoc] | Mapping[str, AvailabilityDoc],
    ) -> list[TimeSlot]:
        """One TimeSlot per full grid slot in [meeting_start, meeting_end).

        A trailing partial slot is dropped. Slots where nobody is free are
        still returned.
        """
        by_uid = docs if isinstance(docs, Mapping) else index_docs(docs)
        total = len(participants)
        step = self.slot_duration

        slots = []
        for start in iter_slot_starts(meeting_start, meeting_end, step):
            end = start + step
            available = count_available(participants, by_uid, start, end)
            slots.append(TimeSlot(
                start_time=start,
                end_time=end,
                available_count=available,
                availability=available / max(1, total),
                is_optimal=total > 0 and available == total,
            ))

        logger.debug(
            f"Aggregated {len(slots)} slot(s) for {total} participant(s), "
            f"{len(no_response(participants, by_uid))} without data"
        )
        return slots

    def slot_breakdown(
        self,
        slot_start: datetime,
        slot_end: datetime,
        participants: list[str],
        docs: Iterable[AvailabilityDoc] | Mapping[str, AvailabilityDoc],
    ) -> SlotBreakdown:
        """Split participants into available / unavailable / no response."""
        by_uid = docs if isinstance(docs, Mapping) else index_docs(docs)
        breakdown = SlotBreakdown()
        for uid in participants:
            doc = by_uid.get(uid)
            if doc is None:
                breakdown.no_response.append(uid)
            elif is_available(doc, slot_start, slot_end):
                breakdown.available.append(uid)
            else:
                breakdown.unavailable.append(uid)
        return breakdown
