# blueprints/lessons/services.py
from __future__ import annotations
import logging
from datetime import datetime, UTC
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import Lesson, LessonStatus, LessonStudent, Student, Teacher
from blueprints.availability.ranges import as_utc, to_storage
from blueprints.constraints.services import expand_siblings, has_conflict
from blueprints.core.errors import (
    ConflictError, InternalError, NotFoundError, ValidationError,
)
from blueprints.notifications import services as notifications

log = logging.getLogger(__name__)

ACCEPT, DECLINE, CANCEL = "accept", "decline", "cancel"
STUDENT_ACTIONS = (ACCEPT, DECLINE, CANCEL)

# action -> (allowed source states, target state, event)
_TRANSITIONS = {
    ACCEPT: ((LessonStatus.PENDING,), LessonStatus.CONFIRMED, "lesson_confirmed"),
    DECLINE: ((LessonStatus.PENDING,), LessonStatus.CANCELLED, "lesson_declined"),
    CANCEL: ((LessonStatus.CONFIRMED,), LessonStatus.CANCELLED, "lesson_cancelled"),
}
_TEACHER_CANCEL_FROM = (LessonStatus.PENDING, LessonStatus.CONFIRMED)


def lesson_to_dict(l: Lesson) -> dict:
    return {
        "id": l.id,
        "teacher_id": l.teacher_id,
        "student_id": l.student_id,
        "additional_student_ids": [p.student_id for p in l.participants],
        "title": l.title,
        "description": l.description,
        "start_time": as_utc(l.start_time).isoformat(),
        "end_time": as_utc(l.end_time).isoformat(),
        "status": l.status.value,
        "credits_used": l.credits_used,
        "is_recurring": l.is_recurring,
    }


def _lesson_student_ids(l: Lesson) -> set[int]:
    return {l.student_id, *(p.student_id for p in l.participants)}


# ---------- status transitions ----------
def transition_lesson(lesson_id: int, action: str,
                      actor_student_ids: Optional[Iterable[int]] = None,
                      actor_teacher_id: Optional[int] = None,
                      now: Optional[datetime] = None) -> Lesson:
    """
    Apply accept / decline / cancel to a lesson on behalf of a student
    (`actor_student_ids`: every row of their account) or a teacher (cancel only).
    """
    now = as_utc(now) if now else datetime.now(UTC)
    action = (action or "").strip().lower()
    if action not in _TRANSITIONS:
        raise ValidationError("Invalid action", action=action, allowed=list(STUDENT_ACTIONS))
    if actor_teacher_id is not None and action != CANCEL:
        raise ValidationError("Teachers can only cancel lessons", action=action)

    lesson: Lesson | None = db.session.get(Lesson, lesson_id)
    if lesson is None:
        raise NotFoundError("Lesson not found", lesson_id=lesson_id)

    student_ids = list(actor_student_ids or [])
    if actor_teacher_id is not None:
        if lesson.teacher_id != actor_teacher_id:
            raise NotFoundError("Lesson not found", lesson_id=lesson_id)
        allowed_from = _TEACHER_CANCEL_FROM
    else:
        if not _lesson_student_ids(lesson) & set(student_ids):
            raise NotFoundError("Lesson not found", lesson_id=lesson_id)
        allowed_from = _TRANSITIONS[action][0]

    if as_utc(lesson.start_time) <= now:
        raise ConflictError("Lesson has already started", reason=ConflictError.LESSON_STARTED,
                            lesson_id=lesson.id)
    if lesson.status not in allowed_from:
        raise ConflictError(f"Cannot {action} a {lesson.status.value} lesson",
                            reason=ConflictError.INVALID_STATE, status=lesson.status.value)

    if action == ACCEPT and has_conflict(
        as_utc(lesson.start_time), as_utc(lesson.end_time), lesson.teacher_id,
        expand_siblings(student_ids), exclude_lesson_id=lesson.id,
    ):
        raise ConflictError("This lesson conflicts with another lesson.",
                            reason=ConflictError.OVERLAP, lesson_id=lesson.id)

    _, target, event = _TRANSITIONS[action]
    lesson.status = target
    try:
        db.session.commit()
    except IntegrityError as ex:
        db.session.rollback()
        raise ConflictError("This lesson conflicts with another lesson.",
                            reason=ConflictError.OVERLAP, lesson_id=lesson.id) from ex

    log.info("lesson status changed", extra={"event": "lesson_status", "lesson_id": lesson.id,
                                             "action": action, "teacher_id": lesson.teacher_id})
    payload = {"status": target.value, "start_time": as_utc(lesson.start_time).isoformat()}
    if actor_teacher_id is not None:
        notifications.emit(event, notifications.STUDENT, lesson.student_id,
                           source_id=lesson.id, payload=payload)
    else:
        notifications.emit(event, notifications.TEACHER, lesson.teacher_id,
                           source_id=lesson.id, payload=payload)
    return lesson


# ---------- teacher scheduling ----------
def schedule_lesson(teacher_id: int, student_id: int, start: datetime, end: datetime,
                    title: str, description: Optional[str] = None,
                    additional_student_ids: Iterable[int] = (),
                    credits_used: int = 1, is_recurring: bool = False,
                    status: Optional[LessonStatus] = None,
                    now: Optional[datetime] = None) -> Lesson:
    now = as_utc(now) if now else datetime.now(UTC)
    start, end = as_utc(start), as_utc(end)
    if end <= start:
        raise ValidationError("end_time must be after start_time")
    if credits_used < 1:
        raise ValidationError("credits_used must be at least 1")
    if start <= now:
        raise ConflictError("Lesson must start in the future", reason=ConflictError.LESSON_STARTED)

    if db.session.get(Teacher, teacher_id) is None:
        raise NotFoundError("Teacher not found", teacher_id=teacher_id)

    extra_ids = [sid for sid in dict.fromkeys(additional_student_ids) if sid != student_id]
    participants = [student_id, *extra_ids]
    rows = Student.query.filter(Student.id.in_(participants), Student.teacher_id == teacher_id).all()
    found = {s.id for s in rows}
    missing = [sid for sid in participants if sid not in found]
    if missing:
        raise NotFoundError("Student not found for this teacher", student_ids=missing)

    if has_conflict(start, end, teacher_id, expand_siblings(participants)):
        raise ConflictError("Lesson overlaps with an existing lesson.", reason=ConflictError.OVERLAP)

    lesson = Lesson(
        teacher_id=teacher_id,
        student_id=student_id,
        title=title,
        description=description,
        start_time=to_storage(start),
        end_time=to_storage(end),
        status=LessonStatus.CONFIRMED if status == LessonStatus.CONFIRMED else LessonStatus.PENDING,
        credits_used=credits_used,
        is_recurring=is_recurring,
    )
    lesson.participants = [LessonStudent(student_id=sid) for sid in extra_ids]
    try:
        db.session.add(lesson)
        db.session.commit()
    except IntegrityError as ex:
        db.session.rollback()
        raise ConflictError("Lesson overlaps with an existing lesson.",
                            reason=ConflictError.OVERLAP) from ex
    except SQLAlchemyError as ex:
        db.session.rollback()
        log.exception("lesson insert failed", extra={"event": "lesson_storage_error"})
        raise InternalError("Failed to create lesson") from ex

    log.info("lesson scheduled", extra={"event": "lesson_scheduled", "lesson_id": lesson.id,
                                        "teacher_id": teacher_id, "student_id": student_id})
    notifications.emit("lesson_scheduled", notifications.STUDENT, student_id, source_id=lesson.id,
                       payload={"title": lesson.title, "status": lesson.status.value,
                                "start_time": start.isoformat(), "end_time": end.isoformat()})
    return lesson
