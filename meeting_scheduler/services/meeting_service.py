"""
MeetingRequestService: owns the Meeting entity and its lifecycle.

    requested --accept(recipient)--> accepted
    requested --decline(recipient, reason)--> declined
    requested --cancel(participant)--> cancelled
    accepted  --cancel(participant)--> cancelled
    accepted  --[time elapsed]--> completed   (CompletionScheduler only)

Every status change is a conditional UPDATE keyed on the status the caller
observed. If no row matches, another actor got there first and the caller
gets StaleStateError instead of silently overwriting their change.
"""
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from meeting_scheduler.core.exceptions import (
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    StaleStateError,
    UnauthorizedActorError,
    ValidationError,
)
from meeting_scheduler.models.meeting import Meeting, MeetingStatus, MeetingType
from meeting_scheduler.models.user import User, UserRole
from meeting_scheduler.services.availability import AvailabilityStore
from meeting_scheduler.services.base import BaseService, Clock
from meeting_scheduler.services.calendar_projector import format_time_range
from meeting_scheduler.services.conflict_detector import ConflictDetector, participant_lock
from meeting_scheduler.services.notification import (
    MeetingEvent,
    MeetingEventKind,
    NotificationGateway,
    NotificationService,
)

_ROLE_KEYS = {
    UserRole.STUDENT: "student",
    UserRole.COMPANY: "company",
    UserRole.COUNSELOR: "counselor",
}
_ROLE_ORDER = ["student", "company", "counselor"]


def infer_meeting_type(role_a: UserRole, role_b: UserRole) -> MeetingType:
    """Meeting type from the two participants' roles, e.g. (COUNSELOR, STUDENT) -> student_counselor."""
    if role_a not in _ROLE_KEYS or role_b not in _ROLE_KEYS:
        raise ValidationError("Meeting type cannot be inferred for administrator accounts")
    first, second = sorted((_ROLE_KEYS[role_a], _ROLE_KEYS[role_b]), key=_ROLE_ORDER.index)
    return MeetingType(f"{first}_{second}")


@dataclass
class MeetingFilter:
    participant_id: Optional[int] = None
    participant_role: Optional[str] = None  # "requestor" | "recipient" | None for either
    status: Optional[MeetingStatus] = None
    meeting_type: Optional[MeetingType] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class MeetingRequestService(BaseService):
    def __init__(
        self,
        db: Session,
        availability: Optional[AvailabilityStore] = None,
        conflicts: Optional[ConflictDetector] = None,
        notifier: Optional[NotificationGateway] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock)
        self.availability = availability or AvailabilityStore(db, self.clock)
        self.conflicts = conflicts or ConflictDetector(db)
        self.notifier = notifier if notifier is not None else NotificationService(db)

    # --- Queries ---

    def get(self, meeting_id: int) -> Meeting:
        meeting = self.db.get(Meeting, meeting_id)
        if not meeting:
            raise NotFoundError("Meeting not found")
        return meeting

    def get_for_viewer(self, meeting_id: int, viewer: User) -> Meeting:
        meeting = self.get(meeting_id)
        if not meeting.involves(viewer.id) and not viewer.is_admin:
            raise UnauthorizedActorError("Unauthorized to view this meeting")
        return meeting

    def list(self, meeting_filter: Optional[MeetingFilter] = None) -> List[Meeting]:
        f = meeting_filter or MeetingFilter()
        query = self.db.query(Meeting)

        if f.participant_id is not None:
            if f.participant_role == "requestor":
                query = query.filter(Meeting.requestor_id == f.participant_id)
            elif f.participant_role == "recipient":
                query = query.filter(Meeting.recipient_id == f.participant_id)
            else:
                query = query.filter(or_(
                    Meeting.requestor_id == f.participant_id,
                    Meeting.recipient_id == f.participant_id,
                ))
        if f.status:
            query = query.filter(Meeting.status == MeetingStatus(f.status).value)
        if f.meeting_type:
            query = query.filter(Meeting.meeting_type == MeetingType(f.meeting_type).value)
        if f.date_from:
            query = query.filter(Meeting.meeting_date >= f.date_from)
        if f.date_to:
            query = query.filter(Meeting.meeting_date <= f.date_to)

        return query.order_by(Meeting.meeting_date.asc(), Meeting.start_time.asc(), Meeting.id.asc()).all()

    def participant_names(self, meetings: Iterable[Meeting]) -> Dict[int, str]:
        ids = set()
        for m in meetings:
            ids.update((m.requestor_id, m.recipient_id))
        if not ids:
            return {}
        users = self.db.query(User).filter(User.id.in_(ids)).all()
        return {u.id: u.display_name for u in users}

    # --- Commands ---

    def create(
        self,
        requestor_id: int,
        recipient_id: int,
        meeting_date: date,
        start: time,
        end: time,
        title: str,
        description: Optional[str] = None,
        meeting_type: Optional[MeetingType] = None,
    ) -> Meeting:
        if requestor_id == recipient_id:
            raise ValidationError("You cannot request a meeting with yourself")
        if start >= end:
            raise ValidationError("Start time must be before end time")
        if not title or not title.strip():
            raise ValidationError("Meeting title is required")

        now = self.clock()
        if meeting_date < now.date():
            raise ValidationError("Meeting date cannot be in the past")
        if meeting_date == now.date() and start <= now.time():
            raise ValidationError("Meeting start time has already passed")

        requestor = self._get_user(requestor_id)
        recipient = self._get_user(recipient_id)
        if requestor.is_admin:
            raise UnauthorizedActorError("Administrators cannot request meetings")
        if recipient.is_admin:
            raise ValidationError("Meetings cannot be requested with administrator accounts")
        if meeting_type is None:
            meeting_type = infer_meeting_type(requestor.role, recipient.role)
        else:
            meeting_type = MeetingType(meeting_type)

        if not self.availability.is_available(recipient_id, meeting_date, start, end):
            raise ConflictError("The recipient is not available at the selected time")

        conflict = self.conflicts.find_conflict_for_any((recipient_id, requestor_id), meeting_date, start, end)
        if conflict:
            raise ConflictError("This time conflicts with an existing meeting", conflict)

        meeting = Meeting(
            requestor_id=requestor_id,
            recipient_id=recipient_id,
            meeting_date=meeting_date,
            start_time=start,
            end_time=end,
            title=title.strip(),
            description=description,
            meeting_type=meeting_type.value,
            status=MeetingStatus.REQUESTED.value,
        )
        self.run_write(lambda: self.db.add(meeting))
        self.db.refresh(meeting)

        self.log_info(f"Meeting {meeting.id} requested", requestor_id=requestor_id, recipient_id=recipient_id)
        self._emit(MeetingEventKind.REQUESTED, meeting, recipient_id, actor=requestor)
        return meeting

    def accept(self, meeting_id: int, actor_id: int) -> Meeting:
        meeting = self.get(meeting_id)
        if actor_id != meeting.recipient_id:
            raise UnauthorizedActorError("Only the recipient can accept this meeting")
        self._ensure_status(meeting, {MeetingStatus.REQUESTED}, "accept")

        # First accepted wins: re-check against meetings accepted since this one was requested
        with participant_lock(meeting.requestor_id, meeting.recipient_id):
            conflict = self.conflicts.find_conflict_for_any(
                (meeting.recipient_id, meeting.requestor_id),
                meeting.meeting_date,
                meeting.start_time,
                meeting.end_time,
                exclude_meeting_id=meeting.id,
            )
            if conflict:
                raise ConflictError("This time conflicts with an existing meeting", conflict)
            self.run_write(lambda: self._guarded_accept(meeting))
            self.db.refresh(meeting)

        self.log_info(f"Meeting {meeting.id} accepted", actor_id=actor_id)
        self._emit(MeetingEventKind.ACCEPTED, meeting, meeting.requestor_id, actor=self.db.get(User, actor_id))
        return meeting

    def decline(self, meeting_id: int, actor_id: int, reason: Optional[str]) -> Meeting:
        if reason is None or not reason.strip():
            raise ValidationError("declineReason required")

        meeting = self.get(meeting_id)
        if actor_id != meeting.recipient_id:
            raise UnauthorizedActorError("Only the recipient can decline this meeting")
        self._ensure_status(meeting, {MeetingStatus.REQUESTED}, "decline")

        self._transition(meeting, MeetingStatus.REQUESTED, MeetingStatus.DECLINED, decline_reason=reason.strip())

        self.log_info(f"Meeting {meeting.id} declined", actor_id=actor_id)
        self._emit(MeetingEventKind.DECLINED, meeting, meeting.requestor_id, actor=self.db.get(User, actor_id))
        return meeting

    def cancel(self, meeting_id: int, actor_id: int) -> Meeting:
        meeting = self.get(meeting_id)
        if not meeting.involves(actor_id):
            raise UnauthorizedActorError("Only meeting participants can cancel this meeting")
        self._ensure_status(meeting, {MeetingStatus.REQUESTED, MeetingStatus.ACCEPTED}, "cancel")

        self._transition(meeting, MeetingStatus(meeting.status), MeetingStatus.CANCELLED, cancelled_by=actor_id)

        self.log_info(f"Meeting {meeting.id} cancelled", actor_id=actor_id)
        self._emit(MeetingEventKind.CANCELLED, meeting, meeting.other_party(actor_id), actor=self.db.get(User, actor_id))
        return meeting

    def complete(self, meeting_id: int) -> Meeting:
        """Mark an elapsed accepted meeting as completed. Reserved for the CompletionScheduler."""
        meeting = self.get(meeting_id)
        self._ensure_status(meeting, {MeetingStatus.ACCEPTED}, "complete")
        if self.ends_at(meeting) >= self.clock():
            raise ValidationError("Meeting has not ended yet")

        self._transition(meeting, MeetingStatus.ACCEPTED, MeetingStatus.COMPLETED)

        for participant_id in (meeting.requestor_id, meeting.recipient_id):
            self._emit(MeetingEventKind.COMPLETED, meeting, participant_id)
        return meeting

    def send_reminder(self, meeting_id: int) -> bool:
        """
        Remind both participants of an accepted meeting, at most once.

        The reminder is claimed with a conditional update on `reminder_sent`,
        so a concurrent pass that already claimed it makes this a no-op (False).
        """
        meeting = self.get(meeting_id)
        self._ensure_status(meeting, {MeetingStatus.ACCEPTED}, "remind")

        def claim() -> int:
            return self.db.query(Meeting).filter(
                Meeting.id == meeting_id,
                Meeting.status == MeetingStatus.ACCEPTED.value,
                Meeting.reminder_sent == False,
            ).update({"reminder_sent": True}, synchronize_session=False)

        if not self.run_write(claim):
            return False
        self.db.refresh(meeting)

        participants = {u.id: u for u in self.db.query(User).filter(User.id.in_(
            (meeting.requestor_id, meeting.recipient_id)
        ))}
        for participant_id in (meeting.requestor_id, meeting.recipient_id):
            self._emit(
                MeetingEventKind.REMINDER,
                meeting,
                participant_id,
                actor=participants.get(meeting.other_party(participant_id)),
            )
        self.log_info(f"Reminder sent for meeting {meeting.id}")
        return True

    # --- Internals ---

    @staticmethod
    def ends_at(meeting: Meeting) -> datetime:
        return datetime.combine(meeting.meeting_date, meeting.end_time)

    def _get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user or not user.is_active:
            raise NotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def _ensure_status(meeting: Meeting, allowed: Set[MeetingStatus], action: str):
        if MeetingStatus(meeting.status) not in allowed:
            raise InvalidStateTransitionError(meeting.status, action)

    def _transition(self, meeting: Meeting, expected: MeetingStatus, target: MeetingStatus, **values) -> Meeting:
        meeting_id = meeting.id

        def conditional_update():
            updated = self.db.query(Meeting).filter(
                Meeting.id == meeting_id,
                Meeting.status == expected.value,
            ).update({"status": target.value, **values}, synchronize_session=False)
            if updated == 0:
                raise StaleStateError(meeting_id, expected.value)

        self.run_write(conditional_update)
        self.db.refresh(meeting)
        return meeting

    def _guarded_accept(self, meeting: Meeting):
        """
        Accept inside one transaction that other workers cannot interleave with.

        The participants' user rows are locked FOR UPDATE (PostgreSQL) and the
        UPDATE only matches while no overlapping accepted meeting exists for
        either participant, so the overlap check and the write are one statement.
        """
        participant_ids = sorted({meeting.requestor_id, meeting.recipient_id})
        self.db.query(User.id).filter(User.id.in_(participant_ids)).order_by(User.id).with_for_update().all()

        overlap = ConflictDetector.overlap_exists(
            participant_ids,
            meeting.meeting_date,
            meeting.start_time,
            meeting.end_time,
            exclude_meeting_id=meeting.id,
        )
        updated = self.db.query(Meeting).filter(
            Meeting.id == meeting.id,
            Meeting.status == MeetingStatus.REQUESTED.value,
            ~overlap,
        ).update({"status": MeetingStatus.ACCEPTED.value}, synchronize_session=False)
        if updated:
            return

        current = self.db.query(Meeting.status).filter(Meeting.id == meeting.id).scalar()
        if current != MeetingStatus.REQUESTED.value:
            raise StaleStateError(meeting.id, MeetingStatus.REQUESTED.value)
        conflict = self.conflicts.find_conflict_for_any(
            participant_ids,
            meeting.meeting_date,
            meeting.start_time,
            meeting.end_time,
            exclude_meeting_id=meeting.id,
        )
        raise ConflictError("This time conflicts with an existing meeting", conflict)

    def _emit(self, kind: str, meeting: Meeting, recipient_id: int, actor: Optional[User] = None):
        payload = {
            "title": meeting.title,
            "meeting_date": meeting.meeting_date.isoformat(),
            "start_time": meeting.start_time.strftime("%H:%M"),
            "end_time": meeting.end_time.strftime("%H:%M"),
            "time_range": format_time_range(meeting.start_time, meeting.end_time),
            "status": meeting.status,
        }
        if actor is not None:
            payload["actor_id"] = actor.id
            payload["actor_name"] = actor.display_name
        if meeting.decline_reason:
            payload["decline_reason"] = meeting.decline_reason

        # Fire-and-forget: the state change is already committed
        try:
            self.notifier.notify(MeetingEvent(kind=kind, meeting_id=meeting.id, recipient_id=recipient_id, payload=payload))
        except Exception as e:
            self.log_warning(f"Notification failed for meeting {meeting.id}: {e}")
