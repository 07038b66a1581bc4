"""Interval algebra over half-open [start, end) time ranges."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import datetime, timedelta, timezone
from typing import Any

from ..errors import InvalidInputError
from ..models import TimeBlock


def parse_instant(value: datetime | str) -> datetime:
    """Convert an ISO-8601 string or aware datetime to an aware UTC datetime.

    Naive values are rejected: a bare "2024-03-15T09:00" has no defined
    instant without a timezone.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise InvalidInputError(InvalidInputError.INVALID_TIME, f"Invalid timestamp: {value!r}")
    if not isinstance(value, datetime):
        raise InvalidInputError(InvalidInputError.INVALID_TIME, f"Invalid timestamp: {value!r}")
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidInputError(
            InvalidInputError.INVALID_TIME,
            f"Timestamp must carry an offset or 'Z': {value.isoformat()}",
        )
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Format as UTC ISO-8601 with a 'Z' suffix. Used as slot ids."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """True iff the half-open intervals share at least one instant."""
    return a_start < b_end and a_end > b_start


def normalize_block(block: TimeBlock | dict[str, Any]) -> TimeBlock | None:
    """Return a well-formed block, or None if it cannot be used."""
    if isinstance(block, dict):
        try:
            block = TimeBlock(
                start_time=parse_instant(block["startTime"]),
                end_time=parse_instant(block["endTime"]),
            )
        except (KeyError, TypeError, InvalidInputError):
            return None
    if block.start_time.tzinfo is None or block.end_time.tzinfo is None:
        return None
    if block.end_time <= block.start_time:
        return None
    return block


def block_overlaps(start: datetime, end: datetime, block: TimeBlock) -> bool:
    """Overlap test against a stored block; malformed blocks never overlap."""
    normalized = normalize_block(block)
    if normalized is None:
        return False
    return overlaps(start, end, normalized.start_time, normalized.end_time)


def clamp_to_range(
    block: TimeBlock, range_start: datetime, range_end: datetime
) -> TimeBlock | None:
    """Intersect a block with [range_start, range_end). None if disjoint."""
    if not overlaps(block.start_time, block.end_time, range_start, range_end):
        return None
    return TimeBlock(
        start_time=max(block.start_time, range_start),
        end_time=min(block.end_time, range_end),
    )


def iter_slot_starts(start: datetime, end: datetime, step: timedelta) -> Iterator[datetime]:
    """Yield slot starts t with [t, t + step) fully inside [start, end)."""
    if step <= timedelta(0):
        raise InvalidInputError(
            InvalidInputError.INVALID_GRANULARITY, "Slot duration must be positive"
        )
    cursor = start
    while cursor + step <= end:
        yield cursor
        cursor += step


def merge_adjacent_slots(
    sorted_slot_starts: Iterable[datetime | str], slot_duration: timedelta
) -> list[TimeBlock]:
    """Coalesce consecutive slot starts into the minimal list of blocks."""
    starts = sorted({parse_instant(s) for s in sorted_slot_starts})

    blocks: list[TimeBlock] = []
    current_start: datetime | None = None
    current_end: datetime | None = None
    for slot_start in starts:
        slot_end = slot_start + slot_duration
        if current_start is None:
            current_start, current_end = slot_start, slot_end
        elif slot_start == current_end:
            current_end = slot_end
        else:
            blocks.append(TimeBlock(start_time=current_start, end_time=current_end))
            current_start, current_end = slot_start, slot_end

    if current_start is not None and current_end is not None:
        blocks.append(TimeBlock(start_time=current_start, end_time=current_end))
    return blocks


def expand_block_to_slots(
    block: TimeBlock,
    slot_duration: timedelta,
    range_start: datetime,
    range_end: datetime,
) -> set[str]:
    """Enumerate slot ids covered by a block, restricted to the range.

    Slots step from the block's own start, so a block aligned to the grid
    expands back to exactly the slots it was merged from.
    """
    slots: set[str] = set()
    normalized = normalize_block(block)
    if normalized is None:
        return slots
    if slot_duration <= timedelta(0):
        raise InvalidInputError(
            InvalidInputError.INVALID_GRANULARITY, "Slot duration must be positive"
        )

    cursor = normalized.start_time
    while cursor < normalized.end_time:
        slot_end = cursor + slot_duration
        if cursor >= range_start and slot_end <= range_end:
            slots.add(to_iso(cursor))
        cursor = slot_end
    return slots
