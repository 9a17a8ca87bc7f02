# blueprints/lessons/routes.py
from __future__ import annotations
from flask import Blueprint, jsonify, request

from blueprints.auth.routes import (
    student_required, teacher_required, current_student_ids, current_teacher_id,
)
from .schemas import LessonIn, StatusIn
from . import services as svc

api_bp = Blueprint("lessons_api", __name__)


# ---------- student ----------
@api_bp.post("/student/lessons/<int:lesson_id>/status")
@student_required
def api_student_lesson_status(lesson_id: int):
    data = StatusIn.model_validate(request.get_json(silent=True) or {})
    lesson = svc.transition_lesson(lesson_id, data.action, actor_student_ids=current_student_ids())
    return jsonify({"ok": True, "lesson": svc.lesson_to_dict(lesson)})


# ---------- teacher ----------
@api_bp.post("/teacher/lessons")
@teacher_required
def api_teacher_schedule_lesson():
    data = LessonIn.model_validate(request.get_json(silent=True) or {})
    lesson = svc.schedule_lesson(
        current_teacher_id(),
        data.student_id,
        data.start_time,
        data.end_time,
        title=data.title,
        description=data.description,
        additional_student_ids=data.additional_student_ids,
        credits_used=data.credits_used,
        is_recurring=data.is_recurring,
        status=data.lesson_status,
    )
    return jsonify({"ok": True, "lesson": svc.lesson_to_dict(lesson)}), 201


@api_bp.post("/teacher/lessons/<int:lesson_id>/cancel")
@teacher_required
def api_teacher_cancel_lesson(lesson_id: int):
    lesson = svc.transition_lesson(lesson_id, svc.CANCEL, actor_teacher_id=current_teacher_id())
    return jsonify({"ok": True, "lesson": svc.lesson_to_dict(lesson)})
