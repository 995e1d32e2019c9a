# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import user, meeting, availability, feedback, notification

# Explicit class exports for cleaner imports
from .user import User, UserRole
from .meeting import Meeting, MeetingStatus, MeetingType
from .availability import AvailabilityWindow, UnavailabilityPeriod
from .feedback import Feedback
from .notification import Notification

__all__ = [
    "User",
    "UserRole",
    "Meeting",
    "MeetingStatus",
    "MeetingType",
    "AvailabilityWindow",
    "UnavailabilityPeriod",
    "Feedback",
    "Notification",
]
