# blueprints/bookings/services.py
"""
Student self-booking.

`create_booking` validates a proposed interval against the teacher's canonical
slots, the booking window, the student's credits and existing lessons, then
writes the confirmed lesson and the credit debit in one transaction. The
pre-checks only give early, friendly errors: two requests may pass them at the
same time, so the write re-checks overlaps under row locks on the teacher and the
student account, and the storage constraints (partial unique index on active lessons,
CHECK on credits, conditional debit) decide which one wins.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Optional

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import CreditLedger, Lesson, LessonStatus, Student, Teacher
from blueprints.availability.ranges import as_utc, to_storage
from blueprints.availability.services import booking_policy, day_slots
from blueprints.constraints.services import find_conflicting_lesson, has_conflict, sibling_student_ids
from blueprints.core.errors import (
    ConflictError, InsufficientCreditsError, InternalError, NotFoundError, ValidationError,
)
from blueprints.notifications import services as notifications

log = logging.getLogger(__name__)

CREDIT_CHECK_NAME = "ck_student_credits_nonnegative"
ACTIVE_LESSON_INDEX = "uq_lesson_teacher_start_active"


@dataclass
class BookingProposal:
    teacher_id: int
    student_id: int
    start: datetime
    end: datetime
    duration_minutes: int
    title: Optional[str] = None
    note: Optional[str] = None


# ---------- credit source ----------
def get_credit_balance(student_id: int) -> int:
    bal = db.session.scalar(select(Student.credits).where(Student.id == student_id))
    if bal is None:
        raise NotFoundError("Student not found", student_id=student_id)
    return int(bal)


def _map_integrity_error(ex: IntegrityError) -> Exception:
    msg = str(getattr(ex, "orig", ex)).lower()
    if CREDIT_CHECK_NAME in msg or "student.credits" in msg:
        return InsufficientCreditsError("You do not have enough credits to book a lesson.")
    if ACTIVE_LESSON_INDEX in msg or "unique" in msg or "exclusion" in msg:
        return ConflictError("Selected time is no longer available. Please pick another slot.",
                             reason=ConflictError.OVERLAP)
    log.error("unexpected integrity error: %s", msg, extra={"event": "booking_storage_error"})
    return InternalError("Failed to create lesson. Please try again.")


def _lock_participants(teacher_id: int, student_ids: list[int]) -> None:
    # row locks serialize bookings per teacher and per student account;
    # SQLite has no row locks, so take the database write lock up front instead
    conn = db.session.connection()
    if conn.dialect.name == "sqlite" and not conn.connection.driver_connection.in_transaction:
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    db.session.execute(select(Teacher.id).where(Teacher.id == teacher_id).with_for_update())
    db.session.execute(
        select(Student.id).where(Student.id.in_(sorted(student_ids))).order_by(Student.id).with_for_update()
    )


def create_confirmed_lesson_and_debit_credit(lesson: Lesson, amount: int) -> Lesson:
    """
    Insert the lesson, debit `amount` credits and book the ledger row atomically.

    Overlaps are re-checked under the participant locks, so a booking that passed
    the advisory checks concurrently with another one still cannot overlap it.
    """
    try:
        student_ids = sibling_student_ids(lesson.student_id)
        _lock_participants(lesson.teacher_id, student_ids)
        clash = find_conflicting_lesson(as_utc(lesson.start_time), as_utc(lesson.end_time),
                                        lesson.teacher_id, student_ids)
        if clash is not None:
            clash_id = clash.id
            db.session.rollback()
            log.info("booking lost overlap race", extra={"event": "booking_overlap",
                                                         "conflicting_lesson_id": clash_id})
            raise ConflictError("Selected time is no longer available. Please pick another slot.",
                                reason=ConflictError.OVERLAP)

        db.session.add(lesson)
        db.session.flush()

        res = db.session.execute(
            update(Student)
            .where(Student.id == lesson.student_id, Student.credits >= amount)
            .values(credits=Student.credits - amount)
        )
        if res.rowcount != 1:
            db.session.rollback()
            raise InsufficientCreditsError("You do not have enough credits to book a lesson.")

        balance_after = db.session.scalar(select(Student.credits).where(Student.id == lesson.student_id))
        db.session.add(CreditLedger(
            student_id=lesson.student_id,
            teacher_id=lesson.teacher_id,
            amount=-amount,
            balance_after=balance_after,
            description="Lesson booking",
            lesson_id=lesson.id,
        ))
        db.session.commit()
    except IntegrityError as ex:
        db.session.rollback()
        raise _map_integrity_error(ex) from ex
    except SQLAlchemyError as ex:
        db.session.rollback()
        log.exception("booking write failed", extra={"event": "booking_storage_error"})
        raise InternalError("Failed to create lesson. Please try again.") from ex
    return lesson


# ---------- coordinator ----------
def _validate_duration(start: datetime, end: datetime, duration_minutes: int) -> None:
    if end <= start:
        raise ValidationError("slot_end must be after slot_start")
    if end - start != timedelta(minutes=duration_minutes):
        raise ValidationError("Requested duration does not match the slot.",
                              duration_minutes=duration_minutes,
                              actual_minutes=(end - start).total_seconds() / 60)
    supported = tuple(current_app.config["SUPPORTED_LESSON_DURATIONS"])
    if duration_minutes not in supported:
        raise ValidationError("Unsupported duration.", supported=list(supported))


def create_booking(proposal: BookingProposal, now: Optional[datetime] = None) -> Lesson:
    now = as_utc(now) if now else datetime.now(UTC)
    start, end = as_utc(proposal.start), as_utc(proposal.end)

    teacher: Teacher | None = db.session.get(Teacher, proposal.teacher_id)
    student: Student | None = db.session.get(Student, proposal.student_id)
    if teacher is None or student is None or student.teacher_id != teacher.id:
        raise NotFoundError("Student or teacher relationship not found")

    # 1-2) duration
    _validate_duration(start, end, proposal.duration_minutes)

    # 3) booking window
    policy = booking_policy(teacher.id)
    earliest = now + timedelta(hours=policy.min_advance_hours)
    latest = now + timedelta(days=policy.max_booking_days)
    if not (earliest <= start <= latest):
        raise ConflictError("Start time is outside the booking window.",
                            reason=ConflictError.OUTSIDE_BOOKING_WINDOW,
                            earliest=earliest.isoformat(), latest=latest.isoformat())

    # 4) must sit inside one canonical slot of that day
    canonical = day_slots(teacher.id, start, current_app.config["CANONICAL_SLOT_MINUTES"])
    if not any(s.contains(start, end) for s in canonical):
        raise ConflictError("Selected time is no longer available. Please pick another slot.",
                            reason=ConflictError.SLOT_UNAVAILABLE)

    # 5) credits
    cost = int(current_app.config.get("BOOKING_CREDIT_COST", 1))
    if get_credit_balance(student.id) < cost:
        raise InsufficientCreditsError("You do not have enough credits to book a lesson.",
                                       required=cost)

    # 6) overlap across every row of the student's account
    if has_conflict(start, end, teacher.id, sibling_student_ids(student.id)):
        raise ConflictError("You already have a lesson at this time. Please pick another slot.",
                            reason=ConflictError.OVERLAP)

    lesson = Lesson(
        teacher_id=teacher.id,
        student_id=student.id,
        title=(proposal.title or f"Lesson with {student.full_name or 'your teacher'}"),
        description=proposal.note,
        start_time=to_storage(start),
        end_time=to_storage(end),
        status=LessonStatus.CONFIRMED,
        credits_used=cost,
        is_recurring=False,
    )
    lesson = create_confirmed_lesson_and_debit_credit(lesson, cost)
    log.info("lesson booked", extra={"event": "lesson_booked", "lesson_id": lesson.id,
                                     "teacher_id": teacher.id, "student_id": student.id})

    notifications.emit(
        "lesson_booked", notifications.TEACHER, teacher.id, source_id=lesson.id,
        payload={"student_id": student.id, "student_name": student.full_name,
                 "start_time": start.isoformat(), "end_time": end.isoformat()},
    )
    return lesson
