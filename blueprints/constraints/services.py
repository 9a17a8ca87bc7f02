# blueprints/constraints/services.py
from __future__ import annotations
from datetime import datetime
from typing import Iterable

from sqlalchemy import or_, select

from extensions import db
from models import Lesson, LessonStudent, Student, ACTIVE_LESSON_STATUSES
from blueprints.availability.ranges import to_storage


def sibling_student_ids(student_id: int) -> list[int]:
    """All student rows that belong to the same account as `student_id` (itself included)."""
    st: Student | None = db.session.get(Student, student_id)
    if st is None:
        return []
    if st.user_id is None:
        return [st.id]
    ids = db.session.scalars(
        select(Student.id).where(Student.user_id == st.user_id).order_by(Student.id)
    ).all()
    return list(ids)


def expand_siblings(student_ids: Iterable[int]) -> list[int]:
    out: list[int] = []
    for sid in student_ids:
        for sib in sibling_student_ids(sid):
            if sib not in out:
                out.append(sib)
    return out


def find_conflicting_lesson(start: datetime, end: datetime, teacher_id: int | None,
                            student_ids: Iterable[int] = (),
                            exclude_lesson_id: int | None = None) -> Lesson | None:
    """
    First pending/confirmed lesson that overlaps [start, end) and involves the teacher
    or any of the students (primary student or an extra group participant).
    """
    student_ids = [sid for sid in student_ids if sid is not None]
    participant_conds = []
    if teacher_id is not None:
        participant_conds.append(Lesson.teacher_id == teacher_id)
    if student_ids:
        participant_conds.append(Lesson.student_id.in_(student_ids))
        participant_conds.append(Lesson.id.in_(
            select(LessonStudent.lesson_id).where(LessonStudent.student_id.in_(student_ids))
        ))
    if not participant_conds:
        return None

    q = (Lesson.query
         .filter(Lesson.status.in_(ACTIVE_LESSON_STATUSES))
         .filter(Lesson.start_time < to_storage(end))   # existing starts before new ends
         .filter(Lesson.end_time > to_storage(start))   # existing ends after new starts
         .filter(or_(*participant_conds)))
    if exclude_lesson_id is not None:
        q = q.filter(Lesson.id != exclude_lesson_id)
    return q.order_by(Lesson.start_time.asc()).first()


def has_conflict(start: datetime, end: datetime, teacher_id: int | None,
                 student_ids: Iterable[int] = (), exclude_lesson_id: int | None = None) -> bool:
    return find_conflicting_lesson(start, end, teacher_id, student_ids, exclude_lesson_id) is not None
