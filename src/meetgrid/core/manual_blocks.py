"""Slot-level editing of a participant's manual blocks."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from ..errors import InvalidInputError
from ..models import AvailabilityDoc, TimeBlock, ToggleMode
from .intervals import expand_block_to_slots, merge_adjacent_slots, parse_instant, to_iso

logger = logging.getLogger(__name__)

BlockSaver = Callable[[list[TimeBlock]], Awaitable[None]]


class ManualBlockEditor:
    """Holds a set of selected slot ids and compresses it back into blocks.

    Slot ids are UTC ISO strings of slot starts on the meeting's grid.
    Removing part of a block is done by toggling its slots off; there is no
    separate delete.
    """

    def __init__(
        self,
        range_start: datetime,
        range_end: datetime,
        slot_minutes: int = 15,
        blocks: list[TimeBlock] | None = None,
    ):
        if slot_minutes <= 0:
            raise InvalidInputError(
                InvalidInputError.INVALID_GRANULARITY,
                f"Slot size must be positive, got {slot_minutes}",
            )
        self.range_start = range_start
        self.range_end = range_end
        self.slot_duration = timedelta(minutes=slot_minutes)
        self.selection: set[str] = set()
        for block in blocks or []:
            self.selection |= expand_block_to_slots(
                block, self.slot_duration, range_start, range_end
            )

    @classmethod
    def from_doc(
        cls,
        doc: AvailabilityDoc | None,
        range_start: datetime,
        range_end: datetime,
        slot_minutes: int = 15,
    ) -> ManualBlockEditor:
        """An editor pre-filled with a stored doc's manual blocks.

        Busy blocks are left out: they come from the calendar and are not
        editable here. A missing doc starts an empty selection.
        """
        blocks = doc.manual_blocks if doc is not None else []
        return cls(range_start, range_end, slot_minutes=slot_minutes, blocks=blocks)

    def _on_grid(self, slot_start: datetime) -> bool:
        if slot_start < self.range_start or slot_start + self.slot_duration > self.range_end:
            return False
        return (slot_start - self.range_start) % self.slot_duration == timedelta(0)

    def toggle_slot(self, slot_id: str | datetime, mode: ToggleMode | str) -> bool:
        """Add or remove one slot. Returns False if the slot was ignored."""
        mode = ToggleMode(mode)
        slot_start = parse_instant(slot_id)
        if not self._on_grid(slot_start):
            logger.debug(f"Ignoring off-grid slot {slot_id}")
            return False
        key = to_iso(slot_start)
        if mode is ToggleMode.ADD:
            self.selection.add(key)
        else:
            self.selection.discard(key)
        return True

    def blocks(self) -> list[TimeBlock]:
        """Minimal block list for the current selection."""
        return merge_adjacent_slots(sorted(self.selection), self.slot_duration)

    def remove_block(self, index: int) -> None:
        """Drop one of the current blocks by deselecting its slots."""
        block = self.blocks()[index]
        self.selection -= expand_block_to_slots(
            block, self.slot_duration, self.range_start, self.range_end
        )

    async def commit(self, save: BlockSaver) -> list[TimeBlock]:
        """Persist the selection, replacing the stored list wholesale."""
        blocks = self.blocks()
        await save(blocks)
        return blocks
