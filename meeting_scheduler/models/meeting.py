from sqlalchemy import Boolean, Column, Integer, String, Text, Date, Time, DateTime, ForeignKey, Index, false
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from meeting_scheduler.database import Base

class MeetingStatus(str, enum.Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

class MeetingType(str, enum.Enum):
    STUDENT_COMPANY = "student_company"
    STUDENT_COUNSELOR = "student_counselor"
    COMPANY_COUNSELOR = "company_counselor"
    STUDENT_STUDENT = "student_student"
    COMPANY_COMPANY = "company_company"
    COUNSELOR_COUNSELOR = "counselor_counselor"

class Meeting(Base):
    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True, index=True)
    requestor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    meeting_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    meeting_type = Column(String(30), nullable=False, index=True)
    # Stored as the enum value; every write goes through a conditional update on this column
    status = Column(String(20), default=MeetingStatus.REQUESTED.value, nullable=False, index=True)
    decline_reason = Column(Text, nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    # Set once by the reminder pass, guarded the same way as status changes
    reminder_sent = Column(Boolean, default=False, server_default=false(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    requestor = relationship("User", foreign_keys=[requestor_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
    feedback = relationship("Feedback", back_populates="meeting", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_meetings_date_status", "meeting_date", "status"),
    )

    def __repr__(self):
        return f"<Meeting {self.id} {self.meeting_date} {self.start_time}-{self.end_time} ({self.status})>"

    def involves(self, user_id: int) -> bool:
        return user_id in (self.requestor_id, self.recipient_id)

    def other_party(self, user_id: int) -> int:
        return self.recipient_id if user_id == self.requestor_id else self.requestor_id
