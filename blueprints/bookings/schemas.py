from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from blueprints.availability.ranges import as_utc


class BookingIn(BaseModel):
    slot_start: datetime
    slot_end: datetime
    duration_minutes: int = Field(gt=0, le=480)
    teacher_id: Optional[int] = None
    title: Optional[str] = Field(None, max_length=255)
    note: Optional[str] = Field(None, max_length=2000)

    @field_validator("title", "note")
    @classmethod
    def _strip(cls, v: Optional[str]):
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def _normalize(self):
        self.slot_start, self.slot_end = as_utc(self.slot_start), as_utc(self.slot_end)
        return self
