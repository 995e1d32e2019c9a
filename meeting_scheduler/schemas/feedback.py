from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime

class FeedbackCreate(BaseModel):
    rating: int  # 1-5, range enforced by FeedbackService
    platform_rating: Optional[int] = None
    comments: Optional[str] = None

class FeedbackResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    meeting_id: int
    rater_id: int
    rating: int
    platform_rating: Optional[int] = None
    comments: Optional[str] = None
    created_at: Optional[datetime] = None
