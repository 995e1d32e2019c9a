from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional
import datetime as dt
from datetime import date, time, datetime
from meeting_scheduler.core.timezones import (
    ensure_consistent_offsets,
    is_aware,
    to_scheduling_datetime,
    to_scheduling_times,
)

# --- Windows ---
class AvailabilityWindowIn(BaseModel):
    day_of_week: int = Field(..., description="0 = Sunday ... 6 = Saturday")
    start_time: time
    end_time: time

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_wall_clock(cls, v: time) -> time:
        # A weekly window has no date to resolve an offset against
        if is_aware(v):
            raise ValueError("Weekly window times must not carry a UTC offset")
        return v

class AvailabilityUpdate(BaseModel):
    windows: List[AvailabilityWindowIn]

class AvailabilityExceptionCreate(BaseModel):
    specific_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    is_blocked: bool = False

    @model_validator(mode="after")
    def normalize_offsets(self):
        self.specific_date, self.start_time, self.end_time = to_scheduling_times(
            self.specific_date, self.start_time, self.end_time
        )
        return self

class AvailabilityWindowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    day_of_week: Optional[int] = None
    specific_date: Optional[date] = None
    start_time: time
    end_time: time
    is_blocked: bool

# --- Unavailability ---
class UnavailabilityCreate(BaseModel):
    start_at: datetime
    end_at: datetime
    reason: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def normalize_offsets(self):
        ensure_consistent_offsets(self.start_at, self.end_at)
        self.start_at = to_scheduling_datetime(self.start_at)
        self.end_at = to_scheduling_datetime(self.end_at)
        return self

class UnavailabilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    start_at: datetime
    end_at: datetime
    reason: Optional[str] = None

# --- Slots ---
class TimeSlot(BaseModel):
    start_time: time
    end_time: time

class AvailableSlotsResponse(BaseModel):
    user_id: int
    date: dt.date
    slot_minutes: int
    slots: List[TimeSlot]
