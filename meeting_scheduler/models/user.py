"""
User Model.
A thin mirror of the identity provider's account record: the scheduling core
only needs the id, display name and role of each participant.
"""
from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from meeting_scheduler.database import Base


class UserRole(str, enum.Enum):
    """
    Platform roles.

    - STUDENT: Books meetings with counselors, companies and peers
    - COUNSELOR: Career counselor, usually the recipient of requests
    - COMPANY: Recruiting company account
    - ADMIN: Platform administrator (read-only over meeting lifecycle)
    """
    STUDENT = "STUDENT"
    COUNSELOR = "COUNSELOR"
    COMPANY = "COMPANY"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    role = Column(Enum(UserRole), default=UserRole.STUDENT, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
