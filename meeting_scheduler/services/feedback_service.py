from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meeting_scheduler.core.config import settings
from meeting_scheduler.core.exceptions import NotFoundError, UnauthorizedActorError, ValidationError
from meeting_scheduler.models.feedback import Feedback
from meeting_scheduler.models.meeting import Meeting, MeetingStatus
from meeting_scheduler.models.user import User
from meeting_scheduler.services.base import BaseService


class FeedbackService(BaseService):
    """Feedback store: one record per participant per completed meeting."""

    def __init__(self, db: Session):
        super().__init__(db)

    def _get_meeting(self, meeting_id: int) -> Meeting:
        meeting = self.db.get(Meeting, meeting_id)
        if not meeting:
            raise NotFoundError("Meeting not found")
        return meeting

    @staticmethod
    def _check_rating(value: Optional[int], field: str):
        low, high = settings.scheduling.min_rating, settings.scheduling.max_rating
        if value is not None and not low <= value <= high:
            raise ValidationError(f"{field} must be between {low} and {high}")

    def submit(
        self,
        meeting_id: int,
        rater_id: int,
        rating: int,
        comments: Optional[str] = None,
        platform_rating: Optional[int] = None,
    ) -> Feedback:
        meeting = self._get_meeting(meeting_id)
        if not meeting.involves(rater_id):
            raise UnauthorizedActorError("Unauthorized to submit feedback for this meeting")
        if meeting.status != MeetingStatus.COMPLETED.value:
            raise ValidationError(
                f"Feedback can only be submitted for completed meetings. Current status: '{meeting.status}'"
            )
        if rating is None:
            raise ValidationError("rating is required")
        self._check_rating(rating, "rating")
        self._check_rating(platform_rating, "platform_rating")

        existing = self.db.query(Feedback).filter(
            Feedback.meeting_id == meeting_id,
            Feedback.rater_id == rater_id,
        ).first()
        if existing:
            raise ValidationError("You have already submitted feedback for this meeting")

        feedback = Feedback(
            meeting_id=meeting_id,
            rater_id=rater_id,
            rating=rating,
            platform_rating=platform_rating,
            comments=comments,
        )
        try:
            self.run_write(lambda: self.db.add(feedback))
        except IntegrityError:
            # Lost a race against a concurrent submission from the same rater
            raise ValidationError("You have already submitted feedback for this meeting")
        self.db.refresh(feedback)
        self.log_info(f"Feedback submitted for meeting {meeting_id}", rater_id=rater_id)
        return feedback

    def list_for_meeting(self, meeting_id: int, viewer: User) -> List[Feedback]:
        meeting = self._get_meeting(meeting_id)
        if not meeting.involves(viewer.id) and not viewer.is_admin:
            raise UnauthorizedActorError("Unauthorized to view feedback for this meeting")
        return self.db.query(Feedback).filter(
            Feedback.meeting_id == meeting_id
        ).order_by(Feedback.created_at.asc(), Feedback.id.asc()).all()
