# blueprints/availability/intervals.py
from __future__ import annotations
from datetime import datetime
from typing import Iterable, List, Sequence

from .ranges import AvailabilityRange, BusyInterval


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open [start, end) intersection test."""
    return a_start < b_end and b_start < a_end


def _cut(frag: AvailabilityRange, busy: BusyInterval) -> List[AvailabilityRange]:
    if busy.end <= frag.start or busy.start >= frag.end:
        return [frag]
    if busy.start <= frag.start and busy.end >= frag.end:
        return []
    if busy.start <= frag.start:
        return [frag.with_bounds(busy.end, frag.end)]
    if busy.end >= frag.end:
        return [frag.with_bounds(frag.start, busy.start)]
    # strictly inside: split in two
    return [
        frag.with_bounds(frag.start, busy.start),
        frag.with_bounds(busy.end, frag.end),
    ]


def _merge_contiguous(fragments: Sequence[AvailabilityRange]) -> List[AvailabilityRange]:
    merged: List[AvailabilityRange] = []
    for cur in sorted(fragments, key=lambda f: f.start):
        last = merged[-1] if merged else None
        if (last is not None
                and last.rule_id == cur.rule_id
                and last.is_one_time == cur.is_one_time
                and last.end == cur.start):
            merged[-1] = last.with_bounds(last.start, cur.end)
        else:
            merged.append(cur)
    return merged


def subtract_busy(ranges: Sequence[AvailabilityRange],
                  busy: Iterable[BusyInterval]) -> List[AvailabilityRange]:
    """
    Remove busy time from availability ranges.
    Fragments keep their origin rule; contiguous fragments of one rule are merged back,
    fragments of different rules never are.
    """
    sorted_busy = sorted(busy, key=lambda b: b.start)
    if not sorted_busy or not ranges:
        return list(ranges)

    result: List[AvailabilityRange] = []
    for rng in ranges:
        fragments = [rng]
        for b in sorted_busy:
            fragments = [piece for frag in fragments for piece in _cut(frag, b)]
            if not fragments:
                break
        result.extend(fragments)

    return _merge_contiguous(result)
