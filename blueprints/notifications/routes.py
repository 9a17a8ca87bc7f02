# blueprints/notifications/routes.py
from __future__ import annotations
from flask import Blueprint, jsonify, request, abort
from flask_login import login_required, current_user

from models import UserRole
from blueprints.auth.routes import current_teacher_id, current_student_ids
from . import services as svc

api_bp = Blueprint("notifications_api", __name__)

@api_bp.get("/notifications")
@login_required
def api_inbox():
    limit = max(1, min(100, request.args.get("limit", 50, type=int)))
    role = getattr(current_user, "role", None)
    if role == UserRole.TEACHER.value:
        items = svc.inbox(svc.TEACHER, [current_teacher_id()], limit=limit)
    elif role == UserRole.STUDENT.value:
        items = svc.inbox(svc.STUDENT, current_student_ids(), limit=limit)
    else:
        abort(403)
    return jsonify({"ok": True, "items": items})
