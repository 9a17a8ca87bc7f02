from __future__ import annotations
from datetime import date, datetime, time
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from models import RuleKind
from .ranges import as_utc
from .validators import ensure_time_range


# ---------- Availability rules ----------
class RuleIn(BaseModel):
    kind: RuleKind
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    specific_date: Optional[date] = None
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def _check_shape(self):
        ensure_time_range(self.start_time, self.end_time)
        if self.kind == RuleKind.WEEKLY:
            if self.day_of_week is None:
                raise ValueError("day_of_week is required for weekly rules")
            if self.specific_date is not None:
                raise ValueError("specific_date is not allowed for weekly rules")
        else:
            if self.specific_date is None:
                raise ValueError("specific_date is required for one-time rules")
            if self.day_of_week is not None:
                raise ValueError("day_of_week is not allowed for one-time rules")
        return self


# ---------- Settings ----------
class SettingsIn(BaseModel):
    min_advance_hours: Optional[int] = Field(None, ge=0, le=168)
    max_booking_days: Optional[int] = Field(None, ge=1, le=365)
    default_lesson_duration: Optional[int] = Field(None, gt=0)


# ---------- Slot query ----------
class SlotQuery(BaseModel):
    start: datetime
    end: datetime
    duration: Optional[int] = Field(None, gt=0, le=480)

    @model_validator(mode="after")
    def _check_window(self):
        self.start, self.end = as_utc(self.start), as_utc(self.end)
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self
