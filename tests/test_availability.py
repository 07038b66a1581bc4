"""Tests for the availability aggregator."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from meetgrid.core.availability import (
    AvailabilityAggregator,
    count_available,
    index_docs,
    is_available,
    no_response,
)
from meetgrid.errors import InvalidInputError
from meetgrid.models import AvailabilityDoc, TimeBlock


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def block(start_hour, start_min, end_hour, end_min) -> TimeBlock:
    return TimeBlock(utc(2024, 3, 15, start_hour, start_min), utc(2024, 3, 15, end_hour, end_min))


@pytest.fixture
def aggregator():
    return AvailabilityAggregator(slot_minutes=30)


def test_single_free_participant_is_optimal_all_day(aggregator):
    docs = [AvailabilityDoc(uid="p1")]
    slots = aggregator.compute_slots(utc(2024, 3, 15), utc(2024, 3, 16), ["p1"], docs)
    assert len(slots) == 48
    assert all(s.available_count == 1 and s.is_optimal for s in slots)
    assert all(s.availability == 1.0 for s in slots)


def test_one_busy_participant_lowers_count(aggregator):
    docs = [
        AvailabilityDoc(uid="p1", busy_blocks=[block(9, 0, 10, 0)]),
        AvailabilityDoc(uid="p2"),
    ]
    slots = aggregator.compute_slots(utc(2024, 3, 15, 8), utc(2024, 3, 15, 11), ["p1", "p2"], docs)
    summary = [(s.start_time.strftime("%H:%M"), s.available_count, s.is_optimal) for s in slots]
    assert summary == [
        ("08:00", 2, True),
        ("08:30", 2, True),
        ("09:00", 1, False),
        ("09:30", 1, False),
        ("10:00", 2, True),
        ("10:30", 2, True),
    ]
    assert slots[2].availability == 0.5


def test_zero_participants(aggregator):
    slots = aggregator.compute_slots(utc(2024, 3, 15, 8), utc(2024, 3, 15, 9), [], [])
    assert len(slots) == 2
    assert all(s.available_count == 0 and s.availability == 0 for s in slots)
    assert not any(s.is_optimal for s in slots)


def test_trailing_partial_slot_is_dropped(aggregator):
    slots = aggregator.compute_slots(utc(2024, 3, 15, 8), utc(2024, 3, 15, 9, 45), ["p1"], [])
    assert [s.start_time for s in slots] == [
        utc(2024, 3, 15, 8), utc(2024, 3, 15, 8, 30), utc(2024, 3, 15, 9),
    ]
    assert slots[-1].end_time == utc(2024, 3, 15, 9, 30)


def test_missing_doc_counts_as_available(aggregator):
    docs = [AvailabilityDoc(uid="p1", busy_blocks=[block(8, 0, 9, 0)])]
    slots = aggregator.compute_slots(utc(2024, 3, 15, 8), utc(2024, 3, 15, 9), ["p1", "ghost"], docs)
    assert [s.available_count for s in slots] == [1, 1]


def test_manual_blocks_count_as_unavailable(aggregator):
    docs = [AvailabilityDoc(uid="p1", manual_blocks=[block(8, 30, 9, 0)])]
    slots = aggregator.compute_slots(utc(2024, 3, 15, 8), utc(2024, 3, 15, 9), ["p1"], docs)
    assert [s.available_count for s in slots] == [1, 0]


def test_malformed_block_is_ignored(aggregator):
    docs = [AvailabilityDoc(uid="p1", busy_blocks=[block(9, 0, 8, 0)])]
    slots = aggregator.compute_slots(utc(2024, 3, 15, 8), utc(2024, 3, 15, 9), ["p1"], docs)
    assert [s.available_count for s in slots] == [1, 1]


def test_block_touching_slot_edge_does_not_block(aggregator):
    docs = [AvailabilityDoc(uid="p1", busy_blocks=[block(7, 0, 8, 0), block(8, 30, 9, 0)])]
    slots = aggregator.compute_slots(utc(2024, 3, 15, 8), utc(2024, 3, 15, 8, 30), ["p1"], docs)
    assert slots[0].available_count == 1


def test_adding_a_block_never_raises_any_count(aggregator):
    participants = ["p1", "p2", "p3"]
    before_docs = [
        AvailabilityDoc(uid="p1", busy_blocks=[block(9, 0, 10, 0)]),
        AvailabilityDoc(uid="p2"),
    ]
    after_docs = [
        AvailabilityDoc(uid="p1", busy_blocks=[block(9, 0, 10, 0)]),
        AvailabilityDoc(uid="p2", manual_blocks=[block(9, 30, 11, 0)]),
    ]
    start, end = utc(2024, 3, 15, 8), utc(2024, 3, 15, 12)
    before = aggregator.compute_slots(start, end, participants, before_docs)
    after = aggregator.compute_slots(start, end, participants, after_docs)
    assert all(a.available_count <= b.available_count for a, b in zip(after, before))
    assert any(a.available_count < b.available_count for a, b in zip(after, before))


def test_docs_accept_mapping(aggregator):
    docs = index_docs([AvailabilityDoc(uid="p1", busy_blocks=[block(8, 0, 8, 30)])])
    slots = aggregator.compute_slots(utc(2024, 3, 15, 8), utc(2024, 3, 15, 9), ["p1"], docs)
    assert [s.available_count for s in slots] == [0, 1]


def test_slot_breakdown(aggregator):
    docs = [
        AvailabilityDoc(uid="p1", busy_blocks=[block(9, 0, 10, 0)]),
        AvailabilityDoc(uid="p2"),
    ]
    breakdown = aggregator.slot_breakdown(
        utc(2024, 3, 15, 9), utc(2024, 3, 15, 9, 30), ["p1", "p2", "p3"], docs
    )
    assert breakdown.available == ["p2"]
    assert breakdown.unavailable == ["p1"]
    assert breakdown.no_response == ["p3"]


def test_helpers():
    doc = AvailabilityDoc(uid="p1", busy_blocks=[block(9, 0, 10, 0)])
    assert is_available(None, utc(2024, 3, 15, 9), utc(2024, 3, 15, 10)) is True
    assert is_available(doc, utc(2024, 3, 15, 9), utc(2024, 3, 15, 10)) is False
    docs = index_docs([doc])
    assert count_available(["p1", "p2"], docs, utc(2024, 3, 15, 9), utc(2024, 3, 15, 10)) == 1
    assert no_response(["p1", "p2"], docs) == ["p2"]


@pytest.mark.parametrize("slot_minutes", [0, -15])
def test_non_positive_slot_size_rejected(slot_minutes):
    with pytest.raises(InvalidInputError) as exc:
        AvailabilityAggregator(slot_minutes=slot_minutes)
    assert exc.value.reason == "invalid_granularity"
