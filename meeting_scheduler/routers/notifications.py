from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from meeting_scheduler.database import get_db
from meeting_scheduler.models.user import User
from meeting_scheduler.routers.auth_deps import get_current_user
from meeting_scheduler.schemas.notification import NotificationResponse
from meeting_scheduler.services.notification import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])

@router.get("", response_model=List[NotificationResponse])
def list_meeting_notifications(
    unread_only: bool = False,
    meeting_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return NotificationService(db).inbox(current_user.id, unread_only=unread_only, meeting_id=meeting_id, limit=limit)

@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def read_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return NotificationService(db).mark_read(notification_id, current_user.id)

@router.post("/mark-all-read")
def read_all_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    updated = NotificationService(db).mark_all_read(current_user.id)
    return {"message": "All notifications marked as read", "updated": updated}
