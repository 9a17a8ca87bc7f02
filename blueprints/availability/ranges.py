# blueprints/availability/ranges.py
"""
Expansion of declarative availability rules into concrete dated ranges.

A weekly rule applies on every local day whose weekday matches (0=Mon .. 6=Sun),
a one-time rule on exactly its date. Times-of-day are read in the schedule
timezone; the produced ranges are aware UTC datetimes, so arithmetic on them
stays correct across DST changes.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, UTC
from typing import Iterable, Iterator, List, Protocol
from zoneinfo import ZoneInfo

from models import RuleKind


class RuleLike(Protocol):
    id: int
    kind: RuleKind
    day_of_week: int | None
    specific_date: date | None
    start_time: time
    end_time: time


@dataclass(frozen=True)
class AvailabilityRange:
    start: datetime
    end: datetime
    rule_id: int
    is_one_time: bool

    def with_bounds(self, start: datetime, end: datetime) -> "AvailabilityRange":
        return replace(self, start=start, end=end)

    @property
    def minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime


def as_utc(dt: datetime) -> datetime:
    """Naive values are treated as UTC (that is how they are stored)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_storage(dt: datetime) -> datetime:
    return as_utc(dt).replace(tzinfo=None)


def daterange(d_from: date, d_to: date) -> Iterator[date]:
    d = d_from
    while d <= d_to:
        yield d
        d += timedelta(days=1)


def _combine(d: date, t: time, tz: ZoneInfo) -> datetime:
    return datetime.combine(d, t, tzinfo=tz)


def _applies_on(rule: RuleLike, day: date) -> bool:
    if rule.kind == RuleKind.WEEKLY:
        return rule.day_of_week is not None and rule.day_of_week == day.weekday()
    return rule.specific_date is not None and rule.specific_date == day


def resolve_ranges(rules: Iterable[RuleLike], window_start: datetime, window_end: datetime,
                   tz: ZoneInfo) -> List[AvailabilityRange]:
    window_start, window_end = as_utc(window_start), as_utc(window_end)
    if window_end <= window_start:
        return []

    rules = list(rules)
    first_day = window_start.astimezone(tz).date()
    last_day = window_end.astimezone(tz).date()

    ranges: List[AvailabilityRange] = []
    for day in daterange(first_day, last_day):
        for rule in rules:
            if not _applies_on(rule, day):
                continue
            start = _combine(day, rule.start_time, tz)
            end = _combine(day, rule.end_time, tz)
            if end <= window_start or start >= window_end:
                continue
            ranges.append(AvailabilityRange(
                start=start.astimezone(UTC), end=end.astimezone(UTC), rule_id=rule.id,
                is_one_time=(rule.kind == RuleKind.ONE_TIME),
            ))

    # sorted() is stable: equal starts keep rule order
    return sorted(ranges, key=lambda r: r.start)
