"""
Background completion of elapsed meetings and upcoming-meeting reminders.

Every `COMPLETION_INTERVAL_SECONDS` the scheduler opens its own session,
finds `accepted` meetings whose date + end time is strictly in the past and
moves each one to `completed`. The same cycle then reminds both participants
of accepted meetings starting within `REMINDER_WINDOW_HOURS`, once per
meeting. A failure on one meeting is logged and the cycle carries on with the
next. Cycles never overlap: a tick that fires while the previous one is still
running is skipped.
"""
import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from meeting_scheduler.core.config import settings
from meeting_scheduler.core.exceptions import AppException
from meeting_scheduler.database import SessionLocal
from meeting_scheduler.models.meeting import Meeting, MeetingStatus
from meeting_scheduler.services.base import Clock, scheduling_now
from meeting_scheduler.services.meeting_service import MeetingRequestService
from meeting_scheduler.services.notification import NotificationGateway

logger = logging.getLogger(__name__)


def find_elapsed_meeting_ids(db: Session, now: datetime) -> List[int]:
    """Ids of accepted meetings that ended before `now`, oldest first."""
    rows = db.query(Meeting.id).filter(
        Meeting.status == MeetingStatus.ACCEPTED.value,
        or_(
            Meeting.meeting_date < now.date(),
            and_(Meeting.meeting_date == now.date(), Meeting.end_time < now.time()),
        ),
    ).order_by(Meeting.meeting_date.asc(), Meeting.end_time.asc(), Meeting.id.asc()).all()
    return [row.id for row in rows]


def find_meetings_due_for_reminder(db: Session, now: datetime, window: timedelta) -> List[int]:
    """Ids of accepted, not yet reminded meetings starting in [now, now + window)."""
    horizon = now + window
    candidates = db.query(Meeting).filter(
        Meeting.status == MeetingStatus.ACCEPTED.value,
        Meeting.reminder_sent == False,
        Meeting.meeting_date >= now.date(),
        Meeting.meeting_date <= horizon.date(),
    ).order_by(Meeting.meeting_date.asc(), Meeting.start_time.asc(), Meeting.id.asc()).all()
    return [
        m.id for m in candidates
        if now <= datetime.combine(m.meeting_date, m.start_time) < horizon
    ]


class CompletionScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Optional[Clock] = None,
        notifier_factory: Optional[Callable[[Session], NotificationGateway]] = None,
        reminder_window: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory
        self.clock: Clock = clock or scheduling_now
        self.notifier_factory = notifier_factory
        self.reminder_window = reminder_window or timedelta(hours=settings.scheduling.reminder_window_hours)
        self._run_lock = threading.Lock()

    def run_once(self) -> Dict[str, int]:
        """Run one cycle. Returns counts of scanned/completed/reminded/failed meetings."""
        summary = {"scanned": 0, "completed": 0, "reminded": 0, "failed": 0, "skipped": 0}
        if not self._run_lock.acquire(blocking=False):
            logger.info("Completion cycle already running, skipping this tick")
            summary["skipped"] = 1
            return summary

        try:
            db = self.session_factory()
            try:
                now = self.clock()
                notifier = self.notifier_factory(db) if self.notifier_factory else None
                service = MeetingRequestService(db, notifier=notifier, clock=lambda: now)

                elapsed = find_elapsed_meeting_ids(db, now)
                summary["scanned"] = len(elapsed)
                for meeting_id in elapsed:
                    if self._apply(db, "complete", service.complete, meeting_id, summary):
                        summary["completed"] += 1

                for meeting_id in find_meetings_due_for_reminder(db, now, self.reminder_window):
                    if self._apply(db, "remind", service.send_reminder, meeting_id, summary):
                        summary["reminded"] += 1
            finally:
                db.close()
        finally:
            self._run_lock.release()

        if summary["scanned"] or summary["reminded"]:
            logger.info(
                f"Completion cycle finished: {summary['completed']}/{summary['scanned']} completed, "
                f"{summary['reminded']} reminded",
                extra=summary,
            )
        return summary

    @staticmethod
    def _apply(db: Session, action: str, operation: Callable[[int], object], meeting_id: int, summary: Dict[str, int]) -> bool:
        try:
            return bool(operation(meeting_id))
        except AppException as e:
            # Usually a participant cancelled it between the scan and the update
            summary["failed"] += 1
            logger.warning(
                f"Could not {action} meeting {meeting_id}: {e.message}",
                extra={"meeting_id": meeting_id, "code": e.error_code},
            )
        except Exception as e:
            summary["failed"] += 1
            db.rollback()
            logger.error(
                f"Unexpected error trying to {action} meeting {meeting_id}: {e}",
                extra={"meeting_id": meeting_id},
            )
        return False

    async def run_forever(self, interval_seconds: Optional[int] = None):
        interval = interval_seconds or settings.scheduling.completion_interval_seconds
        logger.info(f"Completion scheduler started (interval={interval}s)")
        while True:
            try:
                await run_in_threadpool(self.run_once)
            except Exception as e:
                logger.error(f"Completion cycle crashed: {e}")
            await asyncio.sleep(interval)
