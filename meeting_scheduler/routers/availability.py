"""
Availability Router
Owners manage their weekly schedule, date exceptions and unavailability
periods. Anyone signed in can read a user's availability and free slots.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from meeting_scheduler.core.config import settings
from meeting_scheduler.core.exceptions import NotFoundError, UnauthorizedActorError
from meeting_scheduler.database import get_db
from meeting_scheduler.models.user import User
from meeting_scheduler.routers.auth_deps import get_current_user
from meeting_scheduler.schemas.availability import (
    AvailabilityExceptionCreate,
    AvailabilityUpdate,
    AvailabilityWindowResponse,
    AvailableSlotsResponse,
    UnavailabilityCreate,
    UnavailabilityResponse,
)
from meeting_scheduler.services.availability import AvailabilityStore

router = APIRouter(
    prefix="/availability",
    tags=["availability"]
)


def _get_target_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _require_owner(current_user: User, user_id: int):
    if current_user.id != user_id:
        raise UnauthorizedActorError("You can only change your own availability")


# --- Weekly schedule ---

@router.get("/{user_id}", response_model=List[AvailabilityWindowResponse])
def get_availability(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Recurring windows (by weekday) followed by date exceptions."""
    _get_target_user(db, user_id)
    return AvailabilityStore(db).get_windows(user_id)

@router.put("/{user_id}", response_model=List[AvailabilityWindowResponse])
def set_availability(
    user_id: int,
    payload: AvailabilityUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Replace the weekly schedule. Date exceptions are kept."""
    _require_owner(current_user, user_id)
    return AvailabilityStore(db).set_windows(user_id, payload.windows)

@router.post("/{user_id}/exceptions", response_model=AvailabilityWindowResponse, status_code=status.HTTP_201_CREATED)
def add_exception(
    user_id: int,
    payload: AvailabilityExceptionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    _require_owner(current_user, user_id)
    return AvailabilityStore(db).add_exception(
        user_id,
        payload.specific_date,
        start=payload.start_time,
        end=payload.end_time,
        is_blocked=payload.is_blocked,
    )

@router.delete("/{user_id}/windows/{window_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_window(
    user_id: int,
    window_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    _require_owner(current_user, user_id)
    AvailabilityStore(db).delete_window(user_id, window_id)

# --- Unavailability periods ---

@router.get("/{user_id}/unavailability", response_model=List[UnavailabilityResponse])
def list_unavailability(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    _get_target_user(db, user_id)
    return AvailabilityStore(db).list_unavailability(user_id)

@router.post("/{user_id}/unavailability", response_model=UnavailabilityResponse, status_code=status.HTTP_201_CREATED)
def add_unavailability(
    user_id: int,
    payload: UnavailabilityCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    _require_owner(current_user, user_id)
    return AvailabilityStore(db).add_unavailability(user_id, payload.start_at, payload.end_at, payload.reason)

@router.delete("/{user_id}/unavailability/{period_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_unavailability(
    user_id: int,
    period_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    _require_owner(current_user, user_id)
    AvailabilityStore(db).delete_unavailability(user_id, period_id)

# --- Slots ---

@router.get("/{user_id}/slots", response_model=AvailableSlotsResponse)
def get_available_slots(
    user_id: int,
    on_date: date = Query(..., alias="date"),
    slot_minutes: Optional[int] = Query(None, ge=5, le=480),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Bookable slots for a date, excluding blocks and the user's pending or accepted meetings."""
    _get_target_user(db, user_id)
    minutes = slot_minutes or settings.scheduling.slot_minutes
    slots = AvailabilityStore(db).available_slots(user_id, on_date, minutes)
    return {
        "user_id": user_id,
        "date": on_date,
        "slot_minutes": minutes,
        "slots": [{"start_time": start, "end_time": end} for start, end in slots],
    }
