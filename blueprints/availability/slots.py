# blueprints/availability/slots.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List

from .intervals import overlaps
from .ranges import AvailabilityRange, BusyInterval, as_utc


@dataclass(frozen=True)
class BookableSlot:
    start: datetime
    end: datetime

    def contains(self, start: datetime, end: datetime) -> bool:
        return self.start <= start and end <= self.end

    def to_dict(self) -> dict:
        return {"start_time": as_utc(self.start).isoformat(), "end_time": as_utc(self.end).isoformat()}


def partition_slots(fragments: Iterable[AvailabilityRange], duration_minutes: int,
                    buffer_minutes: int = 0) -> List[BookableSlot]:
    """Greedy fixed-size slots from each fragment's start; remainders are dropped."""
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be > 0")
    if buffer_minutes < 0:
        raise ValueError("buffer_minutes must be >= 0")

    duration = timedelta(minutes=duration_minutes)
    step = duration + timedelta(minutes=buffer_minutes)

    slots: List[BookableSlot] = []
    for frag in fragments:
        # step in UTC; wall-clock arithmetic breaks on DST days
        start, end = as_utc(frag.start), as_utc(frag.end)
        while start + duration <= end:
            slots.append(BookableSlot(start=start, end=start + duration))
            start += step
    return slots


def drop_conflicting(slots: Iterable[BookableSlot], busy: Iterable[BusyInterval]) -> List[BookableSlot]:
    busy = list(busy)
    return [s for s in slots
            if not any(overlaps(s.start, s.end, b.start, b.end) for b in busy)]
