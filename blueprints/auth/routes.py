# blueprints/auth/routes.py
from __future__ import annotations
import time
from functools import wraps
from typing import Callable, Optional

from flask import Blueprint, request, jsonify, current_app, abort
from flask_login import login_user, logout_user, login_required, current_user
from werkzeug.security import check_password_hash

from extensions import db, login_manager
from models import User, Student, UserRole
from blueprints.core.errors import NotAuthenticatedError, NotFoundError, ValidationError

api_bp = Blueprint("auth_api", __name__)

DEFAULT_RL_MAX = 5
DEFAULT_RL_WIN = 300  # 5 minutes
_login_attempts: dict[str, list[float]] = {}  # ip|email -> [timestamps]

@login_manager.user_loader
def load_user(uid: str) -> Optional[User]:
    try:
        return db.session.get(User, int(uid))
    except (TypeError, ValueError):
        return None

@login_manager.unauthorized_handler
def _unauth():
    raise NotAuthenticatedError("Not authenticated")

# ---------- rate limit ----------
def _rl_key(email: str) -> str:
    ip = request.headers.get("X-Forwarded-For", request.remote_addr or "0.0.0.0").split(",")[0].strip()
    return f"{ip}|{(email or '').lower()}"

def _rl_check_and_hit(email: str) -> bool:
    now = time.time()
    win = current_app.config.get("AUTH_RL_WINDOW", DEFAULT_RL_WIN)
    mx = current_app.config.get("AUTH_RL_MAX", DEFAULT_RL_MAX)
    key = _rl_key(email)
    bucket = _login_attempts.setdefault(key, [])
    cutoff = now - win
    while bucket and bucket[0] < cutoff:
        bucket.pop(0)
    if len(bucket) >= mx:
        return False
    bucket.append(now)
    return True

# ---------- role decorators ----------
def _role_required(*roles: str):
    def decorator(fn: Callable):
        @wraps(fn)
        @login_required
        def wrapper(*args, **kwargs):
            if getattr(current_user, "role", None) not in roles:
                abort(403)
            return fn(*args, **kwargs)
        return wrapper
    return decorator

teacher_required = _role_required(UserRole.TEACHER.value)
student_required = _role_required(UserRole.STUDENT.value)

# ---------- request-scoped identity ----------
def current_teacher_id() -> int:
    tid = getattr(current_user, "teacher_id", None)
    if tid is None:
        raise NotFoundError("Teacher profile not linked to this account")
    return tid

def current_student_rows() -> list[Student]:
    if not current_user.is_authenticated:
        raise NotAuthenticatedError("Not authenticated")
    return Student.query.filter_by(user_id=current_user.id).order_by(Student.id).all()

def current_student_ids() -> list[int]:
    return [s.id for s in current_student_rows()]

def current_student(teacher_id: int | None = None) -> Student:
    """The caller's student row for a teacher (the only one when teacher_id is omitted)."""
    rows = current_student_rows()
    if teacher_id is not None:
        rows = [s for s in rows if s.teacher_id == teacher_id]
    if not rows:
        raise NotFoundError("Student or teacher relationship not found")
    if len(rows) > 1:
        raise ValidationError("teacher_id is required: account is linked to several teachers",
                              teacher_ids=[s.teacher_id for s in rows])
    return rows[0]

# ---------- API ----------
@api_bp.post("/auth/login")
def api_login():
    payload = request.get_json(silent=True) or request.form or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"error": "missing_credentials"}), 400

    if not _rl_check_and_hit(email):
        return jsonify({"error": "too_many_attempts"}), 429

    user: Optional[User] = User.query.filter_by(email=email).first()
    if not user or not user.password_hash or not check_password_hash(user.password_hash, password):
        return jsonify({"error": "invalid_credentials"}), 401

    if not user.is_active:
        return jsonify({"error": "inactive"}), 403

    login_user(user, remember=True)
    return jsonify({"ok": True, "user": {"id": user.id, "email": user.email, "role": user.role}})

@api_bp.post("/auth/logout")
@login_required
def api_logout():
    logout_user()
    return jsonify({"ok": True})

@api_bp.get("/auth/me")
@login_required
def api_me():
    out = {"id": current_user.id, "email": current_user.email, "role": current_user.role}
    if current_user.role == UserRole.TEACHER.value:
        out["teacher_id"] = current_user.teacher_id
    elif current_user.role == UserRole.STUDENT.value:
        out["students"] = [{"id": s.id, "teacher_id": s.teacher_id, "credits": s.credits}
                           for s in current_student_rows()]
    return jsonify(out)
