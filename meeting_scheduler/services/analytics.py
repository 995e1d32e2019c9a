"""
Meeting and feedback analytics.

Counts cover every meeting matching the filter, whatever its status. Rating
aggregates only use feedback attached to completed meetings, and a bucket
without any feedback reports None rather than 0.
"""
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from meeting_scheduler.models.feedback import Feedback
from meeting_scheduler.models.meeting import Meeting, MeetingStatus, MeetingType
from meeting_scheduler.services.base import BaseService, Clock
from meeting_scheduler.services.calendar_projector import format_time_range

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
UPCOMING_LIMIT = 5


def _average(values: List[int]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


@dataclass
class AnalyticsFilter:
    user_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    meeting_type: Optional[MeetingType] = None


class FeedbackAnalyticsAggregator(BaseService):
    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)

    def _meetings(self, f: AnalyticsFilter) -> List[Meeting]:
        query = self.db.query(Meeting)
        if f.user_id is not None:
            query = query.filter(or_(Meeting.requestor_id == f.user_id, Meeting.recipient_id == f.user_id))
        if f.date_from:
            query = query.filter(Meeting.meeting_date >= f.date_from)
        if f.date_to:
            query = query.filter(Meeting.meeting_date <= f.date_to)
        if f.meeting_type:
            query = query.filter(Meeting.meeting_type == MeetingType(f.meeting_type).value)
        return query.order_by(Meeting.meeting_date.asc(), Meeting.start_time.asc(), Meeting.id.asc()).all()

    def _completed_feedback(self, meetings: List[Meeting]) -> List[Feedback]:
        completed_ids = [m.id for m in meetings if m.status == MeetingStatus.COMPLETED.value]
        if not completed_ids:
            return []
        return self.db.query(Feedback).filter(Feedback.meeting_id.in_(completed_ids)).all()

    def summarize(self, analytics_filter: Optional[AnalyticsFilter] = None) -> Dict[str, Any]:
        f = analytics_filter or AnalyticsFilter()
        meetings = self._meetings(f)
        feedback = self._completed_feedback(meetings)

        by_status = {s.value: 0 for s in MeetingStatus}
        by_type = {t.value: 0 for t in MeetingType}
        for m in meetings:
            by_status[m.status] = by_status.get(m.status, 0) + 1
            by_type[m.meeting_type] = by_type.get(m.meeting_type, 0) + 1

        summary = {
            "total_meetings": len(meetings),
            "meeting_counts_by_status": by_status,
            "meeting_counts_by_type": by_type,
            "average_rating": _average([fb.rating for fb in feedback]),
            "average_platform_rating": _average([fb.platform_rating for fb in feedback if fb.platform_rating is not None]),
            "feedback_count": len(feedback),
            "trend_by_day": self._trend_by_day(meetings, feedback),
            "busiest_days": self._busiest_days(meetings),
            "busiest_hours": self._busiest_hours(meetings),
        }

        if f.user_id is not None:
            summary["average_rating_given"] = _average([fb.rating for fb in feedback if fb.rater_id == f.user_id])
            summary["average_rating_received"] = _average([fb.rating for fb in feedback if fb.rater_id != f.user_id])
            summary["upcoming_meetings"] = self._upcoming(f)

        return summary

    @staticmethod
    def _trend_by_day(meetings: List[Meeting], feedback: List[Feedback]) -> List[Dict[str, Any]]:
        dates = {m.id: m.meeting_date for m in meetings}
        ratings_by_day = defaultdict(list)
        for fb in feedback:
            ratings_by_day[dates[fb.meeting_id]].append(fb.rating)

        totals = Counter(m.meeting_date for m in meetings)
        completed = Counter(m.meeting_date for m in meetings if m.status == MeetingStatus.COMPLETED.value)
        return [
            {
                "date": day,
                "total": totals[day],
                "completed": completed[day],
                "average_rating": _average(ratings_by_day.get(day, [])),
            }
            for day in sorted(totals)
        ]

    @staticmethod
    def _busiest_days(meetings: List[Meeting]) -> List[Dict[str, Any]]:
        counts = Counter(m.meeting_date.weekday() for m in meetings)
        # Ties keep calendar order, Monday first
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [{"day_of_week": WEEKDAY_NAMES[day], "count": count} for day, count in ranked]

    @staticmethod
    def _busiest_hours(meetings: List[Meeting]) -> List[Dict[str, Any]]:
        counts = Counter(m.start_time.hour for m in meetings)
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return [{"hour": hour, "count": count} for hour, count in ranked]

    def _upcoming(self, f: AnalyticsFilter) -> List[Dict[str, Any]]:
        """Next accepted meetings of the user from now on. The date range does not apply here."""
        now = self.clock()
        query = self.db.query(Meeting).filter(
            or_(Meeting.requestor_id == f.user_id, Meeting.recipient_id == f.user_id),
            Meeting.status == MeetingStatus.ACCEPTED.value,
            Meeting.meeting_date >= now.date(),
        )
        if f.meeting_type:
            query = query.filter(Meeting.meeting_type == MeetingType(f.meeting_type).value)
        candidates = query.order_by(Meeting.meeting_date.asc(), Meeting.start_time.asc(), Meeting.id.asc()).all()
        upcoming = [
            m for m in candidates
            if datetime.combine(m.meeting_date, m.end_time) > now
        ]
        return [
            {
                "meeting_id": m.id,
                "title": m.title,
                "meeting_date": m.meeting_date,
                "time_range": format_time_range(m.start_time, m.end_time),
                "requestor_id": m.requestor_id,
                "recipient_id": m.recipient_id,
                "meeting_type": m.meeting_type,
            }
            for m in upcoming[:UPCOMING_LIMIT]
        ]
