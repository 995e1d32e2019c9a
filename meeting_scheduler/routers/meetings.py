"""
Meetings Router
Request > Accept / Decline / Cancel > (auto) Complete > Feedback, plus the
calendar and analytics read views.
"""
from fastapi import APIRouter, Body, Depends, Query, Request, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from meeting_scheduler.core.config import settings
from meeting_scheduler.core.exceptions import UnauthorizedActorError, ValidationError
from meeting_scheduler.core.limiter import limiter
from meeting_scheduler.database import get_db
from meeting_scheduler.models.meeting import MeetingStatus, MeetingType
from meeting_scheduler.models.user import User
from meeting_scheduler.routers.auth_deps import get_current_user, require_participant_role
from meeting_scheduler.schemas.analytics import AnalyticsSummary
from meeting_scheduler.schemas.calendar import CalendarDay
from meeting_scheduler.schemas.feedback import FeedbackCreate, FeedbackResponse
from meeting_scheduler.schemas.meeting import (
    MeetingCreate, MeetingDecline, MeetingDetailResponse, MeetingResponse
)
from meeting_scheduler.services.analytics import AnalyticsFilter, FeedbackAnalyticsAggregator
from meeting_scheduler.services.calendar_projector import CalendarProjector
from meeting_scheduler.services.feedback_service import FeedbackService
from meeting_scheduler.services.meeting_service import MeetingFilter, MeetingRequestService

router = APIRouter(
    prefix="/meetings",
    tags=["meetings"]
)


def _check_range(date_from: Optional[date], date_to: Optional[date]):
    if date_from and date_to and date_from > date_to:
        raise ValidationError("'from' must not be after 'to'")


def _scope_user(current_user: User, user_id: Optional[int]) -> Optional[int]:
    """Admins may look at anyone (or everyone); other users only at themselves."""
    if current_user.is_admin:
        return user_id
    if user_id is not None and user_id != current_user.id:
        raise UnauthorizedActorError("You can only view your own meetings")
    return current_user.id


# --- Meeting Lifecycle ---

@router.post("", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
def request_meeting(
    request: Request,
    payload: MeetingCreate = Body(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_participant_role())
):
    """Request a meeting with another user. The recipient must be free at that time."""
    service = MeetingRequestService(db)
    return service.create(
        requestor_id=current_user.id,
        recipient_id=payload.recipient_id,
        meeting_date=payload.meeting_date,
        start=payload.start_time,
        end=payload.end_time,
        title=payload.title,
        description=payload.description,
        meeting_type=payload.meeting_type,
    )

@router.get("", response_model=List[MeetingResponse])
def list_meetings(
    status_filter: Optional[MeetingStatus] = Query(None, alias="status"),
    meeting_type: Optional[MeetingType] = Query(None, alias="type"),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    role: Optional[str] = Query(None, pattern="^(requestor|recipient)$"),
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List meetings the current user takes part in. Admins see everyone's."""
    _check_range(date_from, date_to)
    meeting_filter = MeetingFilter(
        participant_id=_scope_user(current_user, user_id),
        participant_role=role,
        status=status_filter,
        meeting_type=meeting_type,
        date_from=date_from,
        date_to=date_to,
    )
    return MeetingRequestService(db).list(meeting_filter)

# Fixed paths go before /{meeting_id} so they are not captured by it

@router.get("/calendar", response_model=List[CalendarDay])
def get_calendar(
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Day-by-day calendar. Declined and cancelled meetings are left out."""
    _check_range(date_from, date_to)
    service = MeetingRequestService(db)
    meetings = service.list(MeetingFilter(
        participant_id=_scope_user(current_user, user_id),
        date_from=date_from,
        date_to=date_to,
    ))
    calendar = CalendarProjector().project(meetings, service.participant_names(meetings))
    return [{"date": day, "events": events} for day, events in calendar.items()]

@router.get("/analytics", response_model=AnalyticsSummary)
def get_analytics(
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    user_id: Optional[int] = None,
    meeting_type: Optional[MeetingType] = Query(None, alias="type"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Meeting counts and feedback ratings. Admins get platform-wide figures by default."""
    _check_range(date_from, date_to)
    aggregator = FeedbackAnalyticsAggregator(db)
    return aggregator.summarize(AnalyticsFilter(
        user_id=_scope_user(current_user, user_id),
        date_from=date_from,
        date_to=date_to,
        meeting_type=meeting_type,
    ))

@router.get("/{meeting_id}", response_model=MeetingDetailResponse)
def get_meeting(
    meeting_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = MeetingRequestService(db)
    meeting = service.get_for_viewer(meeting_id, current_user)
    names = service.participant_names([meeting])
    response = MeetingDetailResponse.model_validate(meeting)
    response.requestor_name = names.get(meeting.requestor_id)
    response.recipient_name = names.get(meeting.recipient_id)
    return response

@router.put("/{meeting_id}/accept", response_model=MeetingResponse)
def accept_meeting(
    meeting_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return MeetingRequestService(db).accept(meeting_id, current_user.id)

@router.put("/{meeting_id}/decline", response_model=MeetingResponse)
def decline_meeting(
    meeting_id: int,
    payload: Optional[MeetingDecline] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    reason = payload.decline_reason if payload else None
    return MeetingRequestService(db).decline(meeting_id, current_user.id, reason)

@router.put("/{meeting_id}/cancel", response_model=MeetingResponse)
def cancel_meeting(
    meeting_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return MeetingRequestService(db).cancel(meeting_id, current_user.id)

# --- Feedback ---

@router.post("/{meeting_id}/feedback", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
def submit_feedback(
    meeting_id: int,
    payload: FeedbackCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_participant_role())
):
    """Rate a completed meeting. Each participant may do so once."""
    return FeedbackService(db).submit(
        meeting_id=meeting_id,
        rater_id=current_user.id,
        rating=payload.rating,
        comments=payload.comments,
        platform_rating=payload.platform_rating,
    )

@router.get("/{meeting_id}/feedback", response_model=List[FeedbackResponse])
def get_feedback(
    meeting_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return FeedbackService(db).list_for_meeting(meeting_id, current_user)
