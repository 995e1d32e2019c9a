"""
AvailabilityStore: declared availability per user.

Day resolution: when a date has at least one non-blocked exception window,
those windows replace the recurring weekly schedule for that date. Blocked
exceptions and unavailability periods are then carved out of whatever is
left. A candidate slot must fit entirely inside one window; adjacent windows
(09:00-10:00 + 10:00-11:00) are merged first so a slot may straddle them.
"""
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from meeting_scheduler.core.config import settings
from meeting_scheduler.core.exceptions import NotFoundError, ValidationError
from meeting_scheduler.models.availability import AvailabilityWindow, UnavailabilityPeriod
from meeting_scheduler.models.meeting import Meeting, MeetingStatus
from meeting_scheduler.services.base import BaseService, Clock

Interval = Tuple[datetime, datetime]


def day_of_week(on_date: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (on_date.weekday() + 1) % 7


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    merged: List[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def _overlaps(a: Interval, b: Interval) -> bool:
    return a[0] < b[1] and b[0] < a[1]


def _check_no_overlap(spans: List[Tuple[time, time]], label: str):
    ordered = sorted(spans)
    for (prev_start, prev_end), (start, end) in zip(ordered, ordered[1:]):
        if start < prev_end:
            raise ValidationError(
                f"Availability windows overlap on {label}: "
                f"{prev_start:%H:%M}-{prev_end:%H:%M} and {start:%H:%M}-{end:%H:%M}"
            )


def _check_times(start: time, end: time):
    if start >= end:
        raise ValidationError("Window start time must be before end time")


class AvailabilityStore(BaseService):
    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)

    # --- Reads ---

    def get_windows(self, user_id: int) -> List[AvailabilityWindow]:
        windows = self.db.query(AvailabilityWindow).filter(AvailabilityWindow.user_id == user_id).all()
        recurring = sorted(
            (w for w in windows if w.is_recurring),
            key=lambda w: (w.day_of_week, w.start_time, w.id),
        )
        exceptions = sorted(
            (w for w in windows if not w.is_recurring),
            key=lambda w: (w.specific_date, w.start_time, w.id),
        )
        return recurring + exceptions

    def list_unavailability(self, user_id: int) -> List[UnavailabilityPeriod]:
        return self.db.query(UnavailabilityPeriod).filter(
            UnavailabilityPeriod.user_id == user_id
        ).order_by(UnavailabilityPeriod.start_at.asc(), UnavailabilityPeriod.id.asc()).all()

    def free_intervals(self, user_id: int, on_date: date) -> List[Interval]:
        """Merged available intervals for the day, before blocks are carved out."""
        exceptions = self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.user_id == user_id,
            AvailabilityWindow.specific_date == on_date,
            AvailabilityWindow.is_blocked == False,
        ).all()
        if exceptions:
            windows = exceptions
        else:
            windows = self.db.query(AvailabilityWindow).filter(
                AvailabilityWindow.user_id == user_id,
                AvailabilityWindow.specific_date.is_(None),
                AvailabilityWindow.day_of_week == day_of_week(on_date),
            ).all()
        return merge_intervals(
            (datetime.combine(on_date, w.start_time), datetime.combine(on_date, w.end_time))
            for w in windows
        )

    def blocked_intervals(self, user_id: int, on_date: date) -> List[Interval]:
        day_start = datetime.combine(on_date, time.min)
        day_end = day_start + timedelta(days=1)

        blocked = [
            (datetime.combine(on_date, w.start_time), datetime.combine(on_date, w.end_time))
            for w in self.db.query(AvailabilityWindow).filter(
                AvailabilityWindow.user_id == user_id,
                AvailabilityWindow.specific_date == on_date,
                AvailabilityWindow.is_blocked == True,
            ).all()
        ]
        periods = self.db.query(UnavailabilityPeriod).filter(
            UnavailabilityPeriod.user_id == user_id,
            UnavailabilityPeriod.start_at < day_end,
            UnavailabilityPeriod.end_at > day_start,
        ).all()
        for period in periods:
            blocked.append((max(period.start_at, day_start), min(period.end_at, day_end)))
        return merge_intervals(blocked)

    def is_available(self, user_id: int, on_date: date, start: time, end: time) -> bool:
        if start >= end:
            return False
        candidate = (datetime.combine(on_date, start), datetime.combine(on_date, end))

        contained = any(
            free_start <= candidate[0] and candidate[1] <= free_end
            for free_start, free_end in self.free_intervals(user_id, on_date)
        )
        if not contained:
            return False
        return not any(_overlaps(candidate, block) for block in self.blocked_intervals(user_id, on_date))

    def available_slots(self, user_id: int, on_date: date, slot_minutes: Optional[int] = None) -> List[Tuple[time, time]]:
        """
        Split the day's availability into fixed-length bookable slots.

        Slots that intersect a block, an unavailability period, or one of the
        user's requested/accepted meetings are left out, as are slots that have
        already started.
        """
        slot_minutes = slot_minutes or settings.scheduling.slot_minutes
        if slot_minutes <= 0:
            raise ValidationError("Slot length must be positive")
        step = timedelta(minutes=slot_minutes)

        busy = list(self.blocked_intervals(user_id, on_date))
        meetings = self.db.query(Meeting).filter(
            or_(Meeting.requestor_id == user_id, Meeting.recipient_id == user_id),
            Meeting.meeting_date == on_date,
            Meeting.status.in_([MeetingStatus.REQUESTED.value, MeetingStatus.ACCEPTED.value]),
        ).all()
        busy.extend(
            (datetime.combine(on_date, m.start_time), datetime.combine(on_date, m.end_time))
            for m in meetings
        )
        now = self.clock()

        slots = []
        for free_start, free_end in self.free_intervals(user_id, on_date):
            cursor = free_start
            while cursor + step <= free_end:
                slot = (cursor, cursor + step)
                if slot[0] > now and not any(_overlaps(slot, b) for b in busy):
                    slots.append((slot[0].time(), slot[1].time()))
                cursor += step
        return slots

    # --- Writes ---

    def set_windows(self, user_id: int, windows: Iterable) -> List[AvailabilityWindow]:
        """Replace the user's recurring weekly schedule. Exceptions are left untouched."""
        windows = list(windows)
        by_day = {}
        for w in windows:
            if w.day_of_week is None or not 0 <= w.day_of_week <= 6:
                raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
            _check_times(w.start_time, w.end_time)
            by_day.setdefault(w.day_of_week, []).append((w.start_time, w.end_time))
        for day, spans in by_day.items():
            _check_no_overlap(spans, f"day {day}")

        def replace():
            self.db.query(AvailabilityWindow).filter(
                AvailabilityWindow.user_id == user_id,
                AvailabilityWindow.specific_date.is_(None),
            ).delete(synchronize_session=False)
            for w in windows:
                self.db.add(AvailabilityWindow(
                    user_id=user_id,
                    day_of_week=w.day_of_week,
                    start_time=w.start_time,
                    end_time=w.end_time,
                    is_blocked=False,
                ))

        self.run_write(replace)
        self.log_info(f"Availability replaced for user {user_id}", window_count=len(windows))
        return self.get_windows(user_id)

    def add_exception(
        self,
        user_id: int,
        on_date: date,
        start: Optional[time] = None,
        end: Optional[time] = None,
        is_blocked: bool = False,
    ) -> AvailabilityWindow:
        """
        Add a one-off exception for a date.

        An available exception needs explicit times. A blocked exception without
        times blocks the whole day.
        """
        if start is None or end is None:
            if not is_blocked:
                raise ValidationError("Available exceptions need a start and end time")
            if start is not None or end is not None:
                raise ValidationError("Provide both start and end time, or neither for a full-day block")
            start, end = time.min, time.max
        _check_times(start, end)

        same_kind = self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.user_id == user_id,
            AvailabilityWindow.specific_date == on_date,
            AvailabilityWindow.is_blocked == is_blocked,
        ).all()
        _check_no_overlap([(w.start_time, w.end_time) for w in same_kind] + [(start, end)], on_date.isoformat())

        window = AvailabilityWindow(
            user_id=user_id,
            specific_date=on_date,
            start_time=start,
            end_time=end,
            is_blocked=is_blocked,
        )

        def insert():
            self.db.add(window)

        self.run_write(insert)
        self.db.refresh(window)
        return window

    def delete_window(self, user_id: int, window_id: int) -> None:
        window = self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.id == window_id,
            AvailabilityWindow.user_id == user_id,
        ).first()
        if not window:
            raise NotFoundError("Availability window not found")
        self.run_write(lambda: self.db.delete(window))

    def add_unavailability(self, user_id: int, start_at: datetime, end_at: datetime, reason: Optional[str] = None) -> UnavailabilityPeriod:
        if start_at >= end_at:
            raise ValidationError("Unavailability end must be after its start")
        period = UnavailabilityPeriod(user_id=user_id, start_at=start_at, end_at=end_at, reason=reason)
        self.run_write(lambda: self.db.add(period))
        self.db.refresh(period)
        return period

    def delete_unavailability(self, user_id: int, period_id: int) -> None:
        period = self.db.query(UnavailabilityPeriod).filter(
            UnavailabilityPeriod.id == period_id,
            UnavailabilityPeriod.user_id == user_id,
        ).first()
        if not period:
            raise NotFoundError("Unavailability period not found")
        self.run_write(lambda: self.db.delete(period))
