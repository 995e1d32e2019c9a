from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional
from datetime import date, time, datetime
from meeting_scheduler.core.timezones import to_scheduling_times
from meeting_scheduler.models.meeting import MeetingStatus, MeetingType

class MeetingCreate(BaseModel):
    recipient_id: int
    meeting_date: date
    start_time: time
    end_time: time
    title: str = Field(..., max_length=255)
    description: Optional[str] = None
    meeting_type: Optional[MeetingType] = None  # inferred from roles when omitted

    @model_validator(mode="after")
    def normalize_offsets(self):
        self.meeting_date, self.start_time, self.end_time = to_scheduling_times(
            self.meeting_date, self.start_time, self.end_time
        )
        return self

class MeetingDecline(BaseModel):
    decline_reason: Optional[str] = None

class MeetingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requestor_id: int
    recipient_id: int
    meeting_date: date
    start_time: time
    end_time: time
    title: str
    description: Optional[str] = None
    meeting_type: MeetingType
    status: MeetingStatus
    decline_reason: Optional[str] = None
    cancelled_by: Optional[int] = None
    reminder_sent: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class MeetingDetailResponse(MeetingResponse):
    requestor_name: Optional[str] = None
    recipient_name: Optional[str] = None

MeetingResponse.model_rebuild()
MeetingDetailResponse.model_rebuild()
