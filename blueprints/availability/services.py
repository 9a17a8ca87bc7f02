# blueprints/availability/services.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, UTC
from typing import List, Optional
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy import select

from extensions import db
from models import (
    AvailabilityRule, Lesson, RuleKind, Teacher, TeacherSettings, ACTIVE_LESSON_STATUSES,
)
from blueprints.core.errors import NotFoundError, ValidationError
from .intervals import subtract_busy
from .ranges import BusyInterval, as_utc, resolve_ranges, to_storage
from .slots import BookableSlot, drop_conflicting, partition_slots

log = logging.getLogger(__name__)


def schedule_tz() -> ZoneInfo:
    return ZoneInfo(current_app.config.get("SCHEDULE_TIMEZONE", "Europe/Berlin"))


@dataclass
class BookingPolicy:
    min_advance_hours: int
    max_booking_days: int
    default_duration: int


def booking_policy(teacher_id: int) -> BookingPolicy:
    cfg = current_app.config
    st: TeacherSettings | None = TeacherSettings.query.filter_by(teacher_id=teacher_id).first()
    min_adv = st.min_advance_hours if st and st.min_advance_hours is not None else cfg["BOOKING_MIN_ADVANCE_HOURS"]
    max_days = st.max_booking_days if st and st.max_booking_days is not None else cfg["BOOKING_MAX_DAYS"]
    duration = (st.default_lesson_duration if st and st.default_lesson_duration
                else cfg["CANONICAL_SLOT_MINUTES"])
    return BookingPolicy(min_advance_hours=int(min_adv), max_booking_days=int(max_days),
                         default_duration=int(duration))


# ---------- collaborators: rule source / busy source ----------
def list_availability_rules(teacher_id: int) -> List[AvailabilityRule]:
    return list(db.session.scalars(
        select(AvailabilityRule)
        .where(AvailabilityRule.teacher_id == teacher_id)
        .order_by(AvailabilityRule.id)
    ))


def list_active_lessons(teacher_id: int, window_start: datetime, window_end: datetime) -> List[BusyInterval]:
    rows = (Lesson.query
            .filter(Lesson.teacher_id == teacher_id)
            .filter(Lesson.status.in_(ACTIVE_LESSON_STATUSES))
            .filter(Lesson.start_time < to_storage(window_end))
            .filter(Lesson.end_time > to_storage(window_start))
            .order_by(Lesson.start_time.asc())
            .all())
    return [BusyInterval(start=as_utc(l.start_time), end=as_utc(l.end_time)) for l in rows]


# ---------- query entry point ----------
def _local_day_start(dt: datetime, tz: ZoneInfo) -> datetime:
    return datetime.combine(dt.astimezone(tz).date(), time.min, tzinfo=tz)


def _local_day_end(dt: datetime, tz: ZoneInfo) -> datetime:
    return datetime.combine(dt.astimezone(tz).date() + timedelta(days=1), time.min, tzinfo=tz)


def get_bookable_slots(teacher_id: int, window_start: datetime, window_end: datetime,
                       duration_minutes: int | None = None,
                       min_advance_hours: int | None = None,
                       max_booking_days: int | None = None,
                       buffer_minutes: int | None = None,
                       now: Optional[datetime] = None) -> List[BookableSlot]:
    """
    Bookable slots of one teacher whose start lies in [window_start, window_end).
    Unset policy values fall back to the teacher's settings, then to config.
    """
    now = as_utc(now) if now else datetime.now(UTC)
    window_start, window_end = as_utc(window_start), as_utc(window_end)
    policy = booking_policy(teacher_id)
    duration = duration_minutes or policy.default_duration
    min_adv = policy.min_advance_hours if min_advance_hours is None else min_advance_hours
    max_days = policy.max_booking_days if max_booking_days is None else max_booking_days
    buffer = current_app.config.get("SLOT_BUFFER_MINUTES", 0) if buffer_minutes is None else buffer_minutes

    if duration <= 0:
        raise ValidationError("duration_minutes must be positive", duration_minutes=duration)

    min_start = now + timedelta(hours=min_adv)
    max_start = now + timedelta(days=max_days)

    tz = schedule_tz()
    query_start = _local_day_start(max(window_start, min_start), tz)
    query_end = _local_day_end(min(window_end, max_start), tz)
    if query_end <= query_start or window_end <= window_start:
        return []

    slots = _free_slots(teacher_id, query_start, query_end, tz, duration, buffer)
    return [s for s in slots
            if min_start <= s.start <= max_start
            and window_start <= s.start < window_end]


def _free_slots(teacher_id: int, query_start: datetime, query_end: datetime, tz: ZoneInfo,
                duration: int, buffer: int) -> List[BookableSlot]:
    rules = list_availability_rules(teacher_id)
    busy = list_active_lessons(teacher_id, query_start, query_end)

    ranges = resolve_ranges(rules, query_start, query_end, tz)
    free = subtract_busy(ranges, busy)
    slots = partition_slots(free, duration, buffer)
    # lessons were already subtracted; re-check anyway
    return drop_conflicting(slots, busy)


def day_slots(teacher_id: int, at: datetime, duration_minutes: int) -> List[BookableSlot]:
    """
    Canonical slots of the local day containing `at`.
    No booking-window clipping here: a proposal may start later than its containing
    slot, so callers check the window against the proposal itself.
    """
    tz = schedule_tz()
    at = as_utc(at)
    return _free_slots(teacher_id, _local_day_start(at, tz), _local_day_end(at, tz), tz,
                       duration_minutes, current_app.config.get("SLOT_BUFFER_MINUTES", 0))


# ---------- rule management ----------
def _rule_to_dict(r: AvailabilityRule) -> dict:
    return {
        "id": r.id,
        "teacher_id": r.teacher_id,
        "kind": r.kind.value,
        "day_of_week": r.day_of_week,
        "specific_date": (r.specific_date.isoformat() if r.specific_date else None),
        "start_time": r.start_time.strftime("%H:%M"),
        "end_time": r.end_time.strftime("%H:%M"),
    }


def rules_for_owner(teacher_id: int) -> list[dict]:
    rows = (AvailabilityRule.query
            .filter_by(teacher_id=teacher_id)
            .order_by(AvailabilityRule.kind.asc(),
                      AvailabilityRule.day_of_week.asc(),
                      AvailabilityRule.specific_date.asc(),
                      AvailabilityRule.start_time.asc())
            .all())
    return [_rule_to_dict(r) for r in rows]


def _owned_rule(teacher_id: int, rule_id: int) -> AvailabilityRule:
    rule = db.session.get(AvailabilityRule, rule_id)
    if rule is None or rule.teacher_id != teacher_id:
        raise NotFoundError("Availability rule not found", rule_id=rule_id)
    return rule


def _apply_rule_fields(rule: AvailabilityRule, kind: RuleKind, day_of_week: int | None,
                       specific_date: date | None, start_time: time, end_time: time) -> None:
    rule.kind = kind
    rule.day_of_week = day_of_week if kind == RuleKind.WEEKLY else None
    rule.specific_date = specific_date if kind == RuleKind.ONE_TIME else None
    rule.start_time = start_time
    rule.end_time = end_time


def create_rule(teacher_id: int, *, kind: RuleKind, day_of_week: int | None, specific_date: date | None,
                start_time: time, end_time: time) -> dict:
    if db.session.get(Teacher, teacher_id) is None:
        raise NotFoundError("Teacher not found", teacher_id=teacher_id)
    rule = AvailabilityRule(teacher_id=teacher_id)
    _apply_rule_fields(rule, kind, day_of_week, specific_date, start_time, end_time)
    db.session.add(rule)
    db.session.commit()
    log.info("availability rule created", extra={"event": "rule_created", "teacher_id": teacher_id})
    return _rule_to_dict(rule)


def update_rule(teacher_id: int, rule_id: int, *, kind: RuleKind, day_of_week: int | None,
                specific_date: date | None, start_time: time, end_time: time) -> dict:
    rule = _owned_rule(teacher_id, rule_id)
    _apply_rule_fields(rule, kind, day_of_week, specific_date, start_time, end_time)
    db.session.commit()
    return _rule_to_dict(rule)


def delete_rule(teacher_id: int, rule_id: int) -> None:
    # booked lessons are separate rows and stay untouched
    rule = _owned_rule(teacher_id, rule_id)
    db.session.delete(rule)
    db.session.commit()
    log.info("availability rule deleted", extra={"event": "rule_deleted", "teacher_id": teacher_id})


# ---------- teacher settings ----------
def settings_for(teacher_id: int) -> dict:
    policy = booking_policy(teacher_id)
    return {
        "teacher_id": teacher_id,
        "min_advance_hours": policy.min_advance_hours,
        "max_booking_days": policy.max_booking_days,
        "default_lesson_duration": policy.default_duration,
    }


def update_settings(teacher_id: int, **values) -> dict:
    supported = tuple(current_app.config["SUPPORTED_LESSON_DURATIONS"])
    duration = values.get("default_lesson_duration")
    if duration is not None and duration not in supported:
        raise ValidationError("Unsupported lesson duration", supported=list(supported))

    st: TeacherSettings | None = TeacherSettings.query.filter_by(teacher_id=teacher_id).first()
    if st is None:
        if db.session.get(Teacher, teacher_id) is None:
            raise NotFoundError("Teacher not found", teacher_id=teacher_id)
        st = TeacherSettings(teacher_id=teacher_id)
        db.session.add(st)
    for key in ("min_advance_hours", "max_booking_days", "default_lesson_duration"):
        if key in values:
            setattr(st, key, values[key])
    db.session.commit()
    return settings_for(teacher_id)
