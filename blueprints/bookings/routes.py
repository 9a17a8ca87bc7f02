# blueprints/bookings/routes.py
from __future__ import annotations
from flask import Blueprint, jsonify, request

from models import CreditLedger
from blueprints.auth.routes import student_required, current_student, current_student_rows
from blueprints.lessons.services import lesson_to_dict
from .schemas import BookingIn
from . import services as svc

api_bp = Blueprint("bookings_api", __name__)


@api_bp.post("/bookings")
@student_required
def api_create_booking():
    data = BookingIn.model_validate(request.get_json(silent=True) or {})
    student = current_student(data.teacher_id)
    lesson = svc.create_booking(svc.BookingProposal(
        teacher_id=student.teacher_id,
        student_id=student.id,
        start=data.slot_start,
        end=data.slot_end,
        duration_minutes=data.duration_minutes,
        title=data.title,
        note=data.note,
    ))
    return jsonify({"ok": True, "lesson": lesson_to_dict(lesson)}), 201


@api_bp.get("/student/credits")
@student_required
def api_student_credits():
    out = []
    for s in current_student_rows():
        ledger = (CreditLedger.query
                  .filter_by(student_id=s.id)
                  .order_by(CreditLedger.created_at.desc(), CreditLedger.id.desc())
                  .limit(20)
                  .all())
        out.append({
            "student_id": s.id,
            "teacher_id": s.teacher_id,
            "credits": svc.get_credit_balance(s.id),
            "ledger": [{
                "amount": e.amount,
                "balance_after": e.balance_after,
                "description": e.description,
                "lesson_id": e.lesson_id,
                "created_at": e.created_at.isoformat(),
            } for e in ledger],
        })
    return jsonify({"ok": True, "items": out})
