from pydantic import BaseModel
from typing import Dict, List, Optional
import datetime as dt
from datetime import date

class TrendPoint(BaseModel):
    date: dt.date
    total: int
    completed: int
    average_rating: Optional[float] = None

class DayCount(BaseModel):
    day_of_week: str
    count: int

class HourCount(BaseModel):
    hour: int
    count: int

class UpcomingMeeting(BaseModel):
    meeting_id: int
    title: str
    meeting_date: date
    time_range: str
    requestor_id: int
    recipient_id: int
    meeting_type: str

class AnalyticsSummary(BaseModel):
    total_meetings: int
    meeting_counts_by_status: Dict[str, int]
    meeting_counts_by_type: Dict[str, int]
    average_rating: Optional[float] = None
    average_platform_rating: Optional[float] = None
    feedback_count: int
    trend_by_day: List[TrendPoint]
    busiest_days: List[DayCount]
    busiest_hours: List[HourCount]
    # Only present when the summary is scoped to one user
    average_rating_given: Optional[float] = None
    average_rating_received: Optional[float] = None
    upcoming_meetings: Optional[List[UpcomingMeeting]] = None
