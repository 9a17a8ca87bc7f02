# blueprints/constraints/routes.py
from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from flask import Blueprint, request, jsonify
from pydantic import BaseModel, Field, model_validator

from models import Student
from blueprints.auth.routes import teacher_required, current_teacher_id
from blueprints.availability.ranges import as_utc
from blueprints.core.errors import NotFoundError
from .services import expand_siblings, find_conflicting_lesson

api_bp = Blueprint("constraints_api", __name__)


class ConflictCheckIn(BaseModel):
    start_time: datetime
    end_time: datetime
    student_ids: List[int] = Field(default_factory=list)
    exclude_lesson_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_range(self):
        self.start_time, self.end_time = as_utc(self.start_time), as_utc(self.end_time)
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


@api_bp.post("/teacher/conflicts/check")
@teacher_required
def api_conflicts_check():
    data = ConflictCheckIn.model_validate(request.get_json(silent=True) or {})
    tid = current_teacher_id()

    wanted = list(dict.fromkeys(data.student_ids))
    owned = {s.id for s in Student.query.filter(Student.id.in_(wanted), Student.teacher_id == tid).all()}
    missing = [sid for sid in wanted if sid not in owned]
    if missing:
        raise NotFoundError("Student not found for this teacher", student_ids=missing)

    hit = find_conflicting_lesson(
        data.start_time, data.end_time, tid,
        expand_siblings(wanted), exclude_lesson_id=data.exclude_lesson_id,
    )
    return jsonify({"ok": True, "conflict": hit is not None, "lesson_id": hit.id if hit else None})
