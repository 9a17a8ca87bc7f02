from __future__ import annotations
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from models import LessonStatus
from blueprints.availability.ranges import as_utc


class StatusIn(BaseModel):
    action: str

    @field_validator("action")
    @classmethod
    def _lower(cls, v: str):
        return (v or "").strip().lower()


class LessonIn(BaseModel):
    student_id: int
    start_time: datetime
    end_time: datetime
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    additional_student_ids: List[int] = Field(default_factory=list)
    credits_used: int = Field(1, ge=1)
    is_recurring: bool = False
    status: Literal["pending", "confirmed"] = "pending"

    @model_validator(mode="after")
    def _check_range(self):
        self.start_time, self.end_time = as_utc(self.start_time), as_utc(self.end_time)
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def lesson_status(self) -> LessonStatus:
        return LessonStatus(self.status)
