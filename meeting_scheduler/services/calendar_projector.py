from collections import defaultdict
from dataclasses import dataclass
from datetime import date, time
from typing import Dict, Iterable, List, Mapping, Optional

from meeting_scheduler.models.meeting import Meeting, MeetingStatus

HIDDEN_STATUSES = frozenset({MeetingStatus.DECLINED.value, MeetingStatus.CANCELLED.value})


def format_time(value: time) -> str:
    """09:30 -> '9:30 AM'"""
    return value.strftime("%I:%M %p").lstrip("0")


def format_time_range(start: time, end: time) -> str:
    return f"{format_time(start)} - {format_time(end)}"


def meeting_type_label(meeting_type: str) -> str:
    """'student_company' -> 'Student - Company'"""
    return " - ".join(part.capitalize() for part in meeting_type.split("_"))


@dataclass
class CalendarEvent:
    meeting_id: int
    title: str
    meeting_date: date
    start_time: time
    end_time: time
    time_range: str
    requestor_id: int
    requestor_name: str
    recipient_id: int
    recipient_name: str
    status: str
    meeting_type: str
    type_label: str


class CalendarProjector:
    """
    Builds day-bucketed calendar views from meetings.

    Declined and cancelled meetings never appear. Within a day events are
    ordered by start time, then meeting id.
    """

    def project(
        self,
        meetings: Iterable[Meeting],
        names: Optional[Mapping[int, str]] = None,
    ) -> Dict[date, List[CalendarEvent]]:
        names = names or {}
        buckets: Dict[date, List[CalendarEvent]] = defaultdict(list)

        for meeting in meetings:
            if meeting.status in HIDDEN_STATUSES:
                continue
            buckets[meeting.meeting_date].append(self._to_event(meeting, names))

        return {
            day: sorted(buckets[day], key=lambda e: (e.start_time, e.meeting_id))
            for day in sorted(buckets)
        }

    @staticmethod
    def _to_event(meeting: Meeting, names: Mapping[int, str]) -> CalendarEvent:
        return CalendarEvent(
            meeting_id=meeting.id,
            title=meeting.title,
            meeting_date=meeting.meeting_date,
            start_time=meeting.start_time,
            end_time=meeting.end_time,
            time_range=format_time_range(meeting.start_time, meeting.end_time),
            requestor_id=meeting.requestor_id,
            requestor_name=names.get(meeting.requestor_id, f"User {meeting.requestor_id}"),
            recipient_id=meeting.recipient_id,
            recipient_name=names.get(meeting.recipient_id, f"User {meeting.recipient_id}"),
            status=meeting.status,
            meeting_type=meeting.meeting_type,
            type_label=meeting_type_label(meeting.meeting_type),
        )
