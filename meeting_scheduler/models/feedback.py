from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from meeting_scheduler.database import Base

class Feedback(Base):
    __tablename__ = "meeting_feedback"

    id = Column(Integer, primary_key=True, index=True)
    meeting_id = Column(Integer, ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    rater_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)  # how successful the meeting was, 1-5
    platform_rating = Column(Integer, nullable=True)  # experience with the platform, 1-5
    comments = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    meeting = relationship("Meeting", back_populates="feedback")
    rater = relationship("User")

    __table_args__ = (
        UniqueConstraint("meeting_id", "rater_id", name="uq_feedback_meeting_rater"),
    )
