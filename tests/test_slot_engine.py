from __future__ import annotations
from datetime import date, datetime, time, timedelta, UTC
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from models import RuleKind
from blueprints.availability.intervals import overlaps, subtract_busy
from blueprints.availability.ranges import AvailabilityRange, BusyInterval, resolve_ranges
from blueprints.availability.slots import BookableSlot, drop_conflicting, partition_slots

TZ_UTC = ZoneInfo("UTC")
BERLIN = ZoneInfo("Europe/Berlin")
MONDAY = date(2030, 1, 7)


def _dt(d: date, h: int, m: int = 0) -> datetime:
    return datetime.combine(d, time(h, m), tzinfo=UTC)


def _weekly(rule_id, dow, start, end):
    return SimpleNamespace(id=rule_id, kind=RuleKind.WEEKLY, day_of_week=dow, specific_date=None,
                           start_time=start, end_time=end)


def _one_time(rule_id, d, start, end):
    return SimpleNamespace(id=rule_id, kind=RuleKind.ONE_TIME, day_of_week=None, specific_date=d,
                           start_time=start, end_time=end)


def _rng(start, end, rule_id=1, one_time=False):
    return AvailabilityRange(start=start, end=end, rule_id=rule_id, is_one_time=one_time)


# ---------- resolver ----------
def test_weekly_rule_expands_on_matching_weekdays():
    rules = [_weekly(1, 0, time(9), time(17))]
    out = resolve_ranges(rules, _dt(MONDAY, 0), _dt(MONDAY + timedelta(days=14), 0), TZ_UTC)
    assert [r.start for r in out] == [_dt(MONDAY, 9), _dt(MONDAY + timedelta(days=7), 9)]
    assert all(r.rule_id == 1 and not r.is_one_time for r in out)
    assert all(r.minutes == 480 for r in out)


def test_one_time_rule_only_on_its_date():
    d = MONDAY + timedelta(days=2)
    rules = [_one_time(5, d, time(10), time(12))]
    out = resolve_ranges(rules, _dt(MONDAY, 0), _dt(MONDAY + timedelta(days=7), 0), TZ_UTC)
    assert len(out) == 1
    assert out[0].start == _dt(d, 10) and out[0].end == _dt(d, 12)
    assert out[0].is_one_time is True


def test_ranges_outside_window_are_discarded():
    rules = [_weekly(1, 0, time(9), time(17))]
    # window ends before the rule opens
    assert resolve_ranges(rules, _dt(MONDAY, 0), _dt(MONDAY, 8), TZ_UTC) == []
    # empty window
    assert resolve_ranges(rules, _dt(MONDAY, 10), _dt(MONDAY, 10), TZ_UTC) == []


def test_rule_times_are_local_to_the_schedule_timezone():
    rules = [_weekly(1, 0, time(9), time(10))]
    out = resolve_ranges(rules, _dt(MONDAY, 0), _dt(MONDAY, 23), BERLIN)
    # January: Berlin is UTC+1
    assert out[0].start.astimezone(UTC) == _dt(MONDAY, 8)


def test_spring_forward_day_keeps_real_lengths():
    # 2030-03-31: Berlin jumps from 02:00 to 03:00, so 01:00-04:00 local is two real hours
    sunday = date(2030, 3, 31)
    rules = [_weekly(1, 6, time(1), time(4))]
    ranges = resolve_ranges(rules, datetime(2030, 3, 30, tzinfo=UTC), datetime(2030, 4, 1, tzinfo=UTC), BERLIN)
    assert len(ranges) == 1 and ranges[0].minutes == 120

    slots = partition_slots(ranges, 60)
    assert [(s.start, s.end) for s in slots] == [
        (_dt(sunday, 0), _dt(sunday, 1)),
        (_dt(sunday, 1), _dt(sunday, 2)),
    ]


def test_fall_back_day_keeps_real_lengths():
    # 2030-10-27: Berlin repeats 02:00-03:00, so 01:00-04:00 local is four real hours
    sunday = date(2030, 10, 27)
    rules = [_weekly(1, 6, time(1), time(4))]
    ranges = resolve_ranges(rules, datetime(2030, 10, 26, tzinfo=UTC), datetime(2030, 10, 28, tzinfo=UTC), BERLIN)
    assert ranges[0].minutes == 240

    slots = partition_slots(ranges, 60)
    assert len(slots) == 4
    assert all(s.end - s.start == timedelta(hours=1) for s in slots)
    assert slots[0].start == _dt(sunday - timedelta(days=1), 23)
    assert slots[-1].end == _dt(sunday, 3)


def test_result_is_sorted_by_start():
    rules = [_weekly(2, 0, time(13), time(15)), _weekly(1, 0, time(9), time(11))]
    out = resolve_ranges(rules, _dt(MONDAY, 0), _dt(MONDAY, 23), TZ_UTC)
    assert [r.rule_id for r in out] == [1, 2]


# ---------- subtractor ----------
def test_busy_strictly_inside_splits_in_two():
    r = _rng(_dt(MONDAY, 9), _dt(MONDAY, 17))
    b = BusyInterval(_dt(MONDAY, 10), _dt(MONDAY, 11))
    out = subtract_busy([r], [b])
    assert len(out) == 2
    total = sum(f.minutes for f in out)
    assert total == r.minutes - 60


def test_subtract_nothing_returns_input():
    ranges = [_rng(_dt(MONDAY, 9), _dt(MONDAY, 12)), _rng(_dt(MONDAY, 13), _dt(MONDAY, 17), rule_id=2)]
    assert subtract_busy(ranges, []) == ranges


def test_busy_covering_range_removes_it():
    r = _rng(_dt(MONDAY, 9), _dt(MONDAY, 10))
    assert subtract_busy([r], [BusyInterval(_dt(MONDAY, 8), _dt(MONDAY, 11))]) == []


def test_busy_touching_edge_leaves_range_alone():
    r = _rng(_dt(MONDAY, 9), _dt(MONDAY, 10))
    out = subtract_busy([r], [BusyInterval(_dt(MONDAY, 10), _dt(MONDAY, 11))])
    assert out == [r]


def test_fragments_of_different_rules_are_not_merged():
    a = _rng(_dt(MONDAY, 9), _dt(MONDAY, 12), rule_id=1)
    b = _rng(_dt(MONDAY, 12), _dt(MONDAY, 15), rule_id=2, one_time=True)
    out = subtract_busy([a, b], [BusyInterval(_dt(MONDAY, 16), _dt(MONDAY, 17))])
    assert [(f.rule_id, f.start, f.end) for f in out] == [
        (1, _dt(MONDAY, 9), _dt(MONDAY, 12)),
        (2, _dt(MONDAY, 12), _dt(MONDAY, 15)),
    ]


def test_zero_length_busy_split_is_merged_back():
    r = _rng(_dt(MONDAY, 9), _dt(MONDAY, 17))
    out = subtract_busy([r], [BusyInterval(_dt(MONDAY, 12), _dt(MONDAY, 12))])
    assert out == [r]


def test_contiguous_ranges_of_one_rule_are_merged():
    a = _rng(_dt(MONDAY, 9), _dt(MONDAY, 12), rule_id=4)
    b = _rng(_dt(MONDAY, 12), _dt(MONDAY, 15), rule_id=4)
    out = subtract_busy([a, b], [BusyInterval(_dt(MONDAY, 16), _dt(MONDAY, 17))])
    assert [(f.rule_id, f.start, f.end) for f in out] == [(4, _dt(MONDAY, 9), _dt(MONDAY, 15))]


def test_same_rule_but_different_kind_is_not_merged():
    a = _rng(_dt(MONDAY, 9), _dt(MONDAY, 12), rule_id=4)
    b = _rng(_dt(MONDAY, 12), _dt(MONDAY, 15), rule_id=4, one_time=True)
    out = subtract_busy([a, b], [BusyInterval(_dt(MONDAY, 16), _dt(MONDAY, 17))])
    assert len(out) == 2


def test_multiple_busy_intervals_cut_in_order():
    r = _rng(_dt(MONDAY, 9), _dt(MONDAY, 17))
    busy = [BusyInterval(_dt(MONDAY, 14), _dt(MONDAY, 15)), BusyInterval(_dt(MONDAY, 10), _dt(MONDAY, 11))]
    out = subtract_busy([r], busy)
    assert [(f.start.hour, f.end.hour) for f in out] == [(9, 10), (11, 14), (15, 17)]


# ---------- partitioner ----------
def test_partition_drops_remainder():
    out = partition_slots([_rng(_dt(MONDAY, 9), _dt(MONDAY, 11, 30))], 60)
    assert [s.start.hour for s in out] == [9, 10]


def test_partition_never_exceeds_free_time():
    frags = [_rng(_dt(MONDAY, 9), _dt(MONDAY, 10, 45)), _rng(_dt(MONDAY, 12), _dt(MONDAY, 16), rule_id=2)]
    for duration in (30, 45, 60, 90):
        slots = partition_slots(frags, duration)
        used = sum((s.end - s.start).total_seconds() for s in slots) / 60
        assert used <= sum(f.minutes for f in frags)
        assert all((s.end - s.start) == timedelta(minutes=duration) for s in slots)


def test_partition_with_buffer():
    out = partition_slots([_rng(_dt(MONDAY, 9), _dt(MONDAY, 12))], 60, buffer_minutes=15)
    assert [(s.start.hour, s.start.minute) for s in out] == [(9, 0), (10, 15)]


@pytest.mark.parametrize("duration,buffer", [(0, 0), (-30, 0), (60, -5)])
def test_partition_rejects_bad_arguments(duration, buffer):
    with pytest.raises(ValueError):
        partition_slots([], duration, buffer)


def test_drop_conflicting_removes_overlapping_slots():
    slots = [BookableSlot(_dt(MONDAY, 9), _dt(MONDAY, 10)), BookableSlot(_dt(MONDAY, 10), _dt(MONDAY, 11))]
    out = drop_conflicting(slots, [BusyInterval(_dt(MONDAY, 10, 30), _dt(MONDAY, 11, 30))])
    assert out == slots[:1]


def test_slot_contains_and_serializes_in_utc():
    s = BookableSlot(_dt(MONDAY, 9), _dt(MONDAY, 10))
    assert s.contains(_dt(MONDAY, 9, 30), _dt(MONDAY, 10))
    assert not s.contains(_dt(MONDAY, 9, 30), _dt(MONDAY, 10, 30))
    assert s.to_dict() == {"start_time": "2030-01-07T09:00:00+00:00", "end_time": "2030-01-07T10:00:00+00:00"}


# ---------- overlap ----------
@pytest.mark.parametrize("a,b,expected", [
    ((9, 10), (9, 10), True),
    ((9, 10), (10, 11), False),
    ((9, 11), (10, 12), True),
    ((9, 12), (10, 11), True),
    ((9, 10), (11, 12), False),
])
def test_overlaps_is_symmetric(a, b, expected):
    a_s, a_e = _dt(MONDAY, a[0]), _dt(MONDAY, a[1])
    b_s, b_e = _dt(MONDAY, b[0]), _dt(MONDAY, b[1])
    assert overlaps(a_s, a_e, b_s, b_e) is expected
    assert overlaps(b_s, b_e, a_s, a_e) is expected
