"""Turn synced calendar events into busy intervals."""

from __future__ import annotations

from datetime import datetime, timedelta

from ..models import CalendarEvent, TimeBlock
from .intervals import clamp_to_range


def event_span(event: CalendarEvent) -> tuple[datetime, datetime]:
    """The interval an event blocks.

    All-day events were mapped to local midnights in their calendar's zone
    at sync time; one whose end is not after its start still covers its day.
    """
    if event.is_all_day and event.end_time <= event.start_time:
        return event.start_time, event.start_time + timedelta(days=1)
    return event.start_time, event.end_time


def derive_busy_blocks(
    events: list[CalendarEvent], range_start: datetime, range_end: datetime
) -> list[TimeBlock]:
    """Busy events clamped to the range, in input order and unmerged."""
    blocks = []
    for event in events:
        if not event.is_busy:
            continue
        start, end = event_span(event)
        clamped = clamp_to_range(TimeBlock(start_time=start, end_time=end), range_start, range_end)
        if clamped is not None:
            blocks.append(clamped)
    return blocks


def merge_busy_blocks(blocks: list[TimeBlock]) -> list[TimeBlock]:
    """Sort and coalesce overlapping or touching blocks."""
    merged: list[TimeBlock] = []
    for block in sorted(blocks, key=lambda b: (b.start_time, b.end_time)):
        if not block.is_valid:
            continue
        if merged and block.start_time <= merged[-1].end_time:
            last = merged[-1]
            if block.end_time > last.end_time:
                merged[-1] = TimeBlock(start_time=last.start_time, end_time=block.end_time)
        else:
            merged.append(block)
    return merged
