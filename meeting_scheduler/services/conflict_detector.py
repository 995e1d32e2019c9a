"""
Conflict detection for meeting slots.

A conflict is an overlap between a candidate interval and another *accepted*
meeting of the same participant on the same date. Intervals are half-open,
so back-to-back meetings (10:00-10:30 and 10:30-11:00) never conflict.
"""
import threading
from contextlib import contextmanager
from datetime import date, time
from typing import Iterator, Optional, Tuple

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, aliased

from meeting_scheduler.models.meeting import Meeting, MeetingStatus

_LOCK_STRIPES = 64
_participant_locks: Tuple[threading.Lock, ...] = tuple(threading.Lock() for _ in range(_LOCK_STRIPES))


def intervals_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    return start_a < end_b and start_b < end_a


@contextmanager
def participant_lock(*user_ids: int) -> Iterator[None]:
    """
    Serialise check-then-write sections touching the same users within this process.

    Users share a fixed set of striped locks, taken in ascending stripe order so
    two bookings over the same pair of users cannot deadlock. Across processes
    the accept UPDATE itself is the guard (see MeetingRequestService.accept).
    """
    stripes = sorted({uid % _LOCK_STRIPES for uid in user_ids})
    locks = [_participant_locks[i] for i in stripes]
    for lock in locks:
        lock.acquire()
    try:
        yield
    finally:
        for lock in reversed(locks):
            lock.release()


class ConflictDetector:
    def __init__(self, db: Session):
        self.db = db

    def accepted_meetings_on(self, user_id: int, meeting_date: date, exclude_meeting_id: Optional[int] = None):
        query = self.db.query(Meeting).filter(
            or_(Meeting.requestor_id == user_id, Meeting.recipient_id == user_id),
            Meeting.meeting_date == meeting_date,
            Meeting.status == MeetingStatus.ACCEPTED.value,
        )
        if exclude_meeting_id is not None:
            query = query.filter(Meeting.id != exclude_meeting_id)
        return query.order_by(Meeting.start_time.asc(), Meeting.id.asc()).all()

    def find_conflict(
        self,
        user_id: int,
        meeting_date: date,
        start: time,
        end: time,
        exclude_meeting_id: Optional[int] = None,
    ) -> Optional[Meeting]:
        """Return the first accepted meeting of `user_id` overlapping [start, end), or None."""
        for existing in self.accepted_meetings_on(user_id, meeting_date, exclude_meeting_id):
            if intervals_overlap(start, end, existing.start_time, existing.end_time):
                return existing
        return None

    def find_conflict_for_any(
        self,
        user_ids,
        meeting_date: date,
        start: time,
        end: time,
        exclude_meeting_id: Optional[int] = None,
    ) -> Optional[Meeting]:
        for user_id in user_ids:
            conflict = self.find_conflict(user_id, meeting_date, start, end, exclude_meeting_id)
            if conflict is not None:
                return conflict
        return None

    @staticmethod
    def overlap_exists(user_ids, meeting_date: date, start: time, end: time, exclude_meeting_id: Optional[int] = None):
        """EXISTS clause matching any accepted meeting of `user_ids` that overlaps [start, end)."""
        ids = list(user_ids)
        other = aliased(Meeting)
        clause = select(other.id).where(
            or_(other.requestor_id.in_(ids), other.recipient_id.in_(ids)),
            other.meeting_date == meeting_date,
            other.status == MeetingStatus.ACCEPTED.value,
            other.start_time < end,
            other.end_time > start,
        )
        if exclude_meeting_id is not None:
            clause = clause.where(other.id != exclude_meeting_id)
        return clause.exists()
