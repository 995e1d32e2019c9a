from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy.orm import Session

from meeting_scheduler.core.exceptions import NotFoundError
from meeting_scheduler.models.notification import Notification


class MeetingEventKind:
    REQUESTED = "meeting_requested"
    ACCEPTED = "meeting_accepted"
    DECLINED = "meeting_declined"
    CANCELLED = "meeting_cancelled"
    COMPLETED = "meeting_completed"
    REMINDER = "meeting_reminder"


_TITLES = {
    MeetingEventKind.REQUESTED: "New Meeting Request",
    MeetingEventKind.ACCEPTED: "Meeting Accepted",
    MeetingEventKind.DECLINED: "Meeting Declined",
    MeetingEventKind.CANCELLED: "Meeting Cancelled",
    MeetingEventKind.COMPLETED: "Meeting Completed",
    MeetingEventKind.REMINDER: "Meeting Reminder",
}

_ACTOR_PREPOSITIONS = {
    MeetingEventKind.REQUESTED: "from",
    MeetingEventKind.REMINDER: "with",
}


@dataclass
class MeetingEvent:
    kind: str
    meeting_id: int
    recipient_id: int
    payload: Dict[str, Any] = field(default_factory=dict)


class NotificationGateway(Protocol):
    def notify(self, event: MeetingEvent) -> Any:
        ...


class NotificationService:
    """
    In-app notification gateway. Each event becomes a Notification row for its recipient.
    """

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def create_notification(
        db: Session,
        user_id: int,
        kind: str,
        title: str,
        message: str,
        meeting_id: Optional[int] = None
    ) -> Notification:
        """
        Internal utility for creating notifications.
        """
        notification = Notification(
            user_id=user_id,
            kind=kind,
            title=title,
            message=message,
            meeting_id=meeting_id
        )
        db.add(notification)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(notification)
        return notification

    def notify(self, event: MeetingEvent) -> Notification:
        payload = event.payload
        title = _TITLES.get(event.kind, "Meeting Update")
        actor = payload.get("actor_name")
        if actor:
            title = f"{title} {_ACTOR_PREPOSITIONS.get(event.kind, 'by')} {actor}"

        message = f"{payload.get('title', 'Meeting')} on {payload.get('meeting_date')} {payload.get('time_range', '')}".strip()
        if payload.get("decline_reason"):
            message += f". Reason: {payload['decline_reason']}"

        return self.create_notification(
            self.db,
            user_id=event.recipient_id,
            kind=event.kind,
            title=title,
            message=message,
            meeting_id=event.meeting_id
        )

    def inbox(
        self,
        user_id: int,
        unread_only: bool = False,
        meeting_id: Optional[int] = None,
        limit: int = 50
    ) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)
        if meeting_id is not None:
            query = query.filter(Notification.meeting_id == meeting_id)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        # Someone else's notification is reported as missing
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if not notification:
            raise NotFoundError("Notification not found")

        notification.is_read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_read(self, user_id: int) -> int:
        updated = self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).update({Notification.is_read: True}, synchronize_session=False)
        self.db.commit()
        return updated
