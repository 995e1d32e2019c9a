from sqlalchemy import Column, Integer, String, Date, Time, DateTime, Boolean, ForeignKey
from sqlalchemy.sql import func
from meeting_scheduler.database import Base

class AvailabilityWindow(Base):
    """
    A declared interval during which a user accepts meeting requests.

    Recurring windows carry `day_of_week` (0 = Sunday ... 6 = Saturday).
    One-off exceptions carry `specific_date` instead; an exception with
    `is_blocked` removes availability on that date rather than adding it.
    """
    __tablename__ = "availability_windows"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=True)
    specific_date = Column(Date, nullable=True, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_blocked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_recurring(self) -> bool:
        return self.specific_date is None

class UnavailabilityPeriod(Base):
    """Date-time range (possibly several days long) during which the user takes no meetings."""
    __tablename__ = "unavailability_periods"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
