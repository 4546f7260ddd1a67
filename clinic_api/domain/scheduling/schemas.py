"""Scheduling domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ...config import DEFAULT_SLOT_DURATION, MAX_SLOT_DURATION, MIN_SLOT_DURATION
from ...models import DayOfWeek
from ...shared.validators import validate_time_of_day
from .time_calculator import to_minutes


class ScheduleItem(BaseModel):
    """One weekly working window"""

    dayOfWeek: DayOfWeek
    startTime: str
    endTime: str
    slotDuration: int = DEFAULT_SLOT_DURATION

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v: str) -> str:
        return validate_time_of_day(v)

    @field_validator("slotDuration")
    @classmethod
    def validate_slot_duration(cls, v: int) -> int:
        if not MIN_SLOT_DURATION <= v <= MAX_SLOT_DURATION:
            raise ValueError(
                f"slotDuration must be between {MIN_SLOT_DURATION} and {MAX_SLOT_DURATION} minutes"
            )
        return v

    @model_validator(mode="after")
    def validate_window(self):
        if to_minutes(self.startTime) >= to_minutes(self.endTime):
            raise ValueError("startTime must be before endTime")
        return self


class ScheduleUpsertRequest(ScheduleItem):
    """Schema for creating or updating a single weekday schedule"""

    doctorId: str


class ScheduleBulkRequest(BaseModel):
    """Schema for replacing a doctor's whole weekly schedule"""

    doctorId: str
    schedules: list[ScheduleItem]


class ScheduleResponse(BaseModel):
    id: str
    doctorId: str
    dayOfWeek: DayOfWeek
    startTime: str
    endTime: str
    slotDuration: int
    isActive: bool


class SlotResponse(BaseModel):
    time: str
    available: bool


class SlotsResponse(BaseModel):
    date: str
    doctorId: str
    slots: list[SlotResponse]
    message: Optional[str] = None
