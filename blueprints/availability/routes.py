# blueprints/availability/routes.py
from __future__ import annotations
from flask import Blueprint, jsonify, request

from blueprints.auth.routes import (
    student_required, teacher_required, current_student, current_teacher_id,
)
from .schemas import RuleIn, SettingsIn, SlotQuery
from . import services as svc

api_bp = Blueprint("availability_api", __name__)


def _slots_response(teacher_id: int):
    q = SlotQuery.model_validate(request.args.to_dict())
    slots = svc.get_bookable_slots(teacher_id, q.start, q.end, duration_minutes=q.duration)
    return jsonify({
        "ok": True,
        "teacher_id": teacher_id,
        "slots": [s.to_dict() for s in slots],
    })


# ---------- slot queries ----------
@api_bp.get("/student/bookable-slots")
@student_required
def api_student_slots():
    student = current_student(request.args.get("teacher_id", type=int))
    return _slots_response(student.teacher_id)


@api_bp.get("/teacher/bookable-slots")
@teacher_required
def api_teacher_slots():
    return _slots_response(current_teacher_id())


# ---------- rules ----------
@api_bp.get("/teacher/availability")
@teacher_required
def api_rules_list():
    return jsonify({"ok": True, "items": svc.rules_for_owner(current_teacher_id())})


@api_bp.post("/teacher/availability")
@teacher_required
def api_rule_create():
    data = RuleIn.model_validate(request.get_json(silent=True) or {})
    out = svc.create_rule(current_teacher_id(), **data.model_dump())
    return jsonify({"ok": True, "rule": out}), 201


@api_bp.put("/teacher/availability/<int:rule_id>")
@teacher_required
def api_rule_update(rule_id: int):
    data = RuleIn.model_validate(request.get_json(silent=True) or {})
    out = svc.update_rule(current_teacher_id(), rule_id, **data.model_dump())
    return jsonify({"ok": True, "rule": out})


@api_bp.delete("/teacher/availability/<int:rule_id>")
@teacher_required
def api_rule_delete(rule_id: int):
    svc.delete_rule(current_teacher_id(), rule_id)
    return jsonify({"ok": True})


# ---------- settings ----------
@api_bp.get("/teacher/settings")
@teacher_required
def api_settings_get():
    return jsonify({"ok": True, "settings": svc.settings_for(current_teacher_id())})


@api_bp.put("/teacher/settings")
@teacher_required
def api_settings_put():
    data = SettingsIn.model_validate(request.get_json(silent=True) or {})
    out = svc.update_settings(current_teacher_id(), **data.model_dump(exclude_unset=True))
    return jsonify({"ok": True, "settings": out})
