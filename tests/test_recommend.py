"""Tests for the recommendation engine and the active-hours policy."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from itertools import combinations
from zoneinfo import ZoneInfo

import pytest

from meetgrid.core.availability import AvailabilityAggregator
from meetgrid.core.intervals import overlaps
from meetgrid.core.recommend import ActiveHoursPolicy, Recommender, parse_clock
from meetgrid.models import AvailabilityDoc, RecommendationError, TimeBlock

UTC_ZONE = ZoneInfo("UTC")


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def busy(uid: str, *spans: tuple[datetime, datetime]) -> AvailabilityDoc:
    return AvailabilityDoc(uid=uid, busy_blocks=[TimeBlock(s, e) for s, e in spans])


def run(participants, docs, start, end, minutes, now, slot_minutes=30, **kwargs):
    slots = AvailabilityAggregator(slot_minutes).compute_slots(start, end, participants, docs)
    recommender = Recommender(**kwargs)
    return recommender.recommend(
        timedelta(minutes=minutes), slots, participants, docs, now=now, window_end=end
    )


def starts(result) -> list[str]:
    return [w.start_time.strftime("%H:%M") for w in result.windows]


# --- Error results ---

@pytest.mark.parametrize("minutes", [0, -30])
def test_invalid_duration(minutes):
    result = run(["p1"], [], utc(2024, 3, 15, 9), utc(2024, 3, 15, 12), minutes, utc(2024, 3, 15, 9))
    assert result.error is RecommendationError.INVALID_DURATION
    assert result.windows == []
    assert not result.ok


def test_no_participants():
    result = run([], [], utc(2024, 3, 15, 9), utc(2024, 3, 15, 12), 60, utc(2024, 3, 15, 9))
    assert result.error is RecommendationError.NO_PARTICIPANTS


def test_no_slots():
    result = Recommender().recommend(
        timedelta(minutes=60), [], ["p1"], [], now=utc(2024, 3, 15, 9)
    )
    assert result.error is RecommendationError.NO_SLOTS


def test_duration_checked_before_participants():
    result = Recommender().recommend(timedelta(0), [], [], [], now=utc(2024, 3, 15, 9))
    assert result.error is RecommendationError.INVALID_DURATION


def test_short_common_window_yields_no_candidates():
    """A 45-minute gap everyone shares cannot hold a 60-minute meeting."""
    spans = ((utc(2024, 3, 15, 9), utc(2024, 3, 15, 10)), (utc(2024, 3, 15, 10, 45), utc(2024, 3, 15, 12)))
    docs = [busy(uid, *spans) for uid in ("p1", "p2", "p3")]
    result = run(
        ["p1", "p2", "p3"], docs, utc(2024, 3, 15, 9), utc(2024, 3, 15, 12), 60,
        now=utc(2024, 3, 15, 9), slot_minutes=15,
    )
    assert result.error is RecommendationError.NO_CANDIDATES
    assert result.to_dict() == {"error": "no_candidates"}


def test_duration_longer_than_window():
    result = run(["p1"], [], utc(2024, 3, 15, 9), utc(2024, 3, 15, 10), 90, utc(2024, 3, 15, 9))
    assert result.error is RecommendationError.NO_CANDIDATES


# --- Ranking ---

def test_ranks_by_count_then_distance_from_now():
    docs = [busy("p1", (utc(2024, 3, 15, 10), utc(2024, 3, 15, 11)))]
    result = run(
        ["p1", "p2"], docs, utc(2024, 3, 15, 9), utc(2024, 3, 15, 13), 60,
        now=utc(2024, 3, 15, 12),
    )
    assert result.ok
    assert starts(result) == ["12:00", "11:00", "09:00"]
    assert all(w.is_optimal and w.available_count == 2 for w in result.windows)
    assert result.windows[0].end_time == utc(2024, 3, 15, 13)


def test_equal_distance_breaks_tie_by_earlier_start():
    result = run(
        ["p1"], [], utc(2024, 3, 15, 9), utc(2024, 3, 15, 11), 30,
        now=utc(2024, 3, 15, 10),
    )
    assert starts(result) == ["10:00", "09:30", "10:30"]


def test_higher_count_beats_closer_window():
    docs = [busy("p1", (utc(2024, 3, 15, 9), utc(2024, 3, 15, 11)))]
    result = run(
        ["p1", "p2"], docs, utc(2024, 3, 15, 9), utc(2024, 3, 15, 13), 60,
        now=utc(2024, 3, 15, 9), max_results=1,
    )
    assert starts(result) == ["11:00"]
    assert result.windows[0].available_count == 2


def test_partial_windows_fill_remaining_places():
    docs = [busy("p1", (utc(2024, 3, 15, 9), utc(2024, 3, 15, 10)))]
    result = run(
        ["p1", "p2"], docs, utc(2024, 3, 15, 9), utc(2024, 3, 15, 11), 60,
        now=utc(2024, 3, 15, 9),
    )
    assert starts(result) == ["10:00", "09:00"]
    assert [w.available_count for w in result.windows] == [2, 1]
    assert result.windows[1].availability == 0.5
    assert result.windows[1].is_optimal is False


def test_windows_never_overlap():
    docs = [
        busy("p1", (utc(2024, 3, 15, 10), utc(2024, 3, 15, 11, 30))),
        busy("p2", (utc(2024, 3, 15, 13), utc(2024, 3, 15, 14))),
        busy("p3", (utc(2024, 3, 15, 9), utc(2024, 3, 15, 9, 30)), (utc(2024, 3, 15, 16), utc(2024, 3, 15, 18))),
    ]
    result = run(
        ["p1", "p2", "p3", "p4"], docs, utc(2024, 3, 15, 9), utc(2024, 3, 15, 18), 90,
        now=utc(2024, 3, 15, 12), max_results=5,
    )
    assert result.ok
    assert 0 < len(result.windows) <= 5
    for a, b in combinations(result.windows, 2):
        assert not overlaps(a.start_time, a.end_time, b.start_time, b.end_time)
    counts = [w.available_count for w in result.windows]
    assert counts == sorted(counts, reverse=True)


def test_min_available_zero_allows_empty_windows():
    docs = [busy("p1", (utc(2024, 3, 15, 9), utc(2024, 3, 15, 12)))]
    result = run(
        ["p1"], docs, utc(2024, 3, 15, 9), utc(2024, 3, 15, 12), 60,
        now=utc(2024, 3, 15, 9), min_available=0,
    )
    assert starts(result) == ["09:00", "10:00", "11:00"]
    assert all(w.available_count == 0 for w in result.windows)


def test_windows_outside_active_hours_are_skipped():
    result = run(
        ["p1"], [], utc(2024, 3, 15, 7), utc(2024, 3, 15, 10), 60,
        now=utc(2024, 3, 15, 7),
    )
    assert starts(result) == ["09:00"]


def test_result_serialises_windows():
    result = run(["p1"], [], utc(2024, 3, 15, 9), utc(2024, 3, 15, 10), 60, utc(2024, 3, 15, 9))
    assert result.to_dict() == {
        "windows": [{
            "startTime": "2024-03-15T09:00:00Z",
            "endTime": "2024-03-15T10:00:00Z",
            "availableCount": 1,
            "availability": 1.0,
            "isOptimal": True,
        }],
    }


# --- Active hours ---

@pytest.fixture
def policy():
    return ActiveHoursPolicy()


def test_parse_clock():
    assert parse_clock("09:00") == time(9, 0)
    assert parse_clock(" 2:30 ") == time(2, 30)


def test_policy_from_strings():
    assert ActiveHoursPolicy.from_strings("08:30", "01:00") == ActiveHoursPolicy(time(8, 30), time(1, 0))


def test_policy_rejects_early_start(policy):
    assert not policy.allows(utc(2024, 3, 15, 8, 30), utc(2024, 3, 15, 9, 30), UTC_ZONE)


def test_policy_allows_daytime(policy):
    assert policy.allows(utc(2024, 3, 15, 9), utc(2024, 3, 15, 10), UTC_ZONE)


def test_policy_allows_late_night_until_cutoff(policy):
    assert policy.allows(utc(2024, 3, 15, 23, 30), utc(2024, 3, 16, 0, 30), UTC_ZONE)
    assert policy.allows(utc(2024, 3, 15, 23), utc(2024, 3, 16, 2), UTC_ZONE)


def test_policy_rejects_past_cutoff(policy):
    assert not policy.allows(utc(2024, 3, 15, 23, 30), utc(2024, 3, 16, 2, 30), UTC_ZONE)


def test_policy_rejects_multi_day(policy):
    assert not policy.allows(utc(2024, 3, 15, 22), utc(2024, 3, 17, 1), UTC_ZONE)


def test_policy_uses_local_clock(policy):
    seoul = ZoneInfo("Asia/Seoul")
    # 00:00 UTC is 09:00 in Seoul
    assert policy.allows(utc(2024, 3, 15, 0), utc(2024, 3, 15, 1), seoul)
    # 23:00 UTC is 08:00 the next morning in Seoul
    assert not policy.allows(utc(2024, 3, 15, 23), utc(2024, 3, 16, 0), seoul)


def test_recommender_timezone_shifts_active_hours():
    result = run(
        ["p1"], [], utc(2024, 3, 14, 22), utc(2024, 3, 15, 2), 60,
        now=utc(2024, 3, 14, 22), timezone="Asia/Seoul",
    )
    assert [w.start_time for w in result.windows] == [utc(2024, 3, 15, 0), utc(2024, 3, 15, 1)]


def test_per_call_timezone_overrides_default():
    participants = ["p1"]
    start, end = utc(2024, 3, 14, 22), utc(2024, 3, 15, 2)
    slots = AvailabilityAggregator(30).compute_slots(start, end, participants, [])
    recommender = Recommender()

    default = recommender.recommend(
        timedelta(minutes=60), slots, participants, [], now=start, window_end=end
    )
    in_seoul = recommender.recommend(
        timedelta(minutes=60), slots, participants, [], now=start, window_end=end,
        timezone="Asia/Seoul",
    )
    # Starts after midnight UTC are too early in UTC but 09:00 onwards in Seoul
    assert [w.start_time for w in default.windows] == [utc(2024, 3, 14, 22), utc(2024, 3, 14, 23)]
    assert [w.start_time for w in in_seoul.windows] == [utc(2024, 3, 15, 0), utc(2024, 3, 15, 1)]
