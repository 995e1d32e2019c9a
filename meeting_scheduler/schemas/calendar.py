from pydantic import BaseModel, ConfigDict
from typing import List
import datetime as dt
from datetime import date, time

class CalendarEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    meeting_id: int
    title: str
    meeting_date: date
    start_time: time
    end_time: time
    time_range: str
    requestor_id: int
    requestor_name: str
    recipient_id: int
    recipient_name: str
    status: str
    meeting_type: str
    type_label: str

class CalendarDay(BaseModel):
    date: dt.date
    events: List[CalendarEventResponse]
