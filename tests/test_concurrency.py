"""
Races between simultaneous actors, run against a file-backed SQLite database
so every session gets its own connection.
"""
import threading
from contextlib import nullcontext
import pytest
from datetime import date, datetime, time
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from meeting_scheduler.core.exceptions import ConflictError, StaleStateError
from meeting_scheduler.database import Base
from meeting_scheduler.models.meeting import Meeting, MeetingStatus
from meeting_scheduler.models.user import User, UserRole
from meeting_scheduler.services import conflict_detector, meeting_service
from meeting_scheduler.services.conflict_detector import ConflictDetector, participant_lock
from meeting_scheduler.services.meeting_service import MeetingRequestService

from tests.support import FakeClock, RecordingNotifier

DAY = date(2025, 5, 1)


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def seeded(file_sessions):
    with file_sessions() as db:
        student = User(email="s@guidia.test", role=UserRole.STUDENT, full_name="Sam")
        peer = User(email="p@guidia.test", role=UserRole.STUDENT, full_name="Pat")
        counselor = User(email="c@guidia.test", role=UserRole.COUNSELOR, full_name="Casey")
        db.add_all([student, peer, counselor])
        db.flush()
        meetings = [
            Meeting(requestor_id=student.id, recipient_id=counselor.id, meeting_date=DAY,
                    start_time=time(10), end_time=time(10, 30), title="Chat",
                    meeting_type="student_counselor", status=MeetingStatus.REQUESTED.value),
            Meeting(requestor_id=peer.id, recipient_id=counselor.id, meeting_date=DAY,
                    start_time=time(10, 15), end_time=time(10, 45), title="Overlapping chat",
                    meeting_type="student_counselor", status=MeetingStatus.REQUESTED.value),
        ]
        db.add_all(meetings)
        db.commit()
        return {"counselor_id": counselor.id, "meeting_ids": [m.id for m in meetings]}


def _service(db):
    return MeetingRequestService(db, notifier=RecordingNotifier(), clock=FakeClock(datetime(2025, 4, 28, 8, 0)))


def test_second_accept_from_stale_snapshot_is_rejected(file_sessions, seeded):
    meeting_id = seeded["meeting_ids"][0]
    counselor_id = seeded["counselor_id"]

    with file_sessions() as first, file_sessions() as second:
        # Both requests load the meeting while it is still requested
        first.get(Meeting, meeting_id)
        second.get(Meeting, meeting_id)

        accepted = _service(first).accept(meeting_id, counselor_id)
        assert accepted.status == MeetingStatus.ACCEPTED.value

        with pytest.raises(StaleStateError):
            _service(second).accept(meeting_id, counselor_id)

    with file_sessions() as check:
        assert check.get(Meeting, meeting_id).status == MeetingStatus.ACCEPTED.value


def test_simultaneous_accepts_exactly_one_wins(file_sessions, seeded):
    meeting_id = seeded["meeting_ids"][0]
    counselor_id = seeded["counselor_id"]
    barrier = threading.Barrier(2)
    results = []
    lock = threading.Lock()

    def accept():
        with file_sessions() as db:
            db.get(Meeting, meeting_id)
            barrier.wait(timeout=5)
            try:
                _service(db).accept(meeting_id, counselor_id)
                outcome = "accepted"
            except StaleStateError:
                outcome = "stale"
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=accept) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(results) == ["accepted", "stale"]


def test_overlapping_accepts_never_double_book(file_sessions, seeded):
    counselor_id = seeded["counselor_id"]
    barrier = threading.Barrier(2)
    results = {}

    def accept(meeting_id):
        with file_sessions() as db:
            barrier.wait(timeout=5)
            try:
                _service(db).accept(meeting_id, counselor_id)
                results[meeting_id] = "accepted"
            except ConflictError:
                results[meeting_id] = "conflict"

    threads = [threading.Thread(target=accept, args=(mid,)) for mid in seeded["meeting_ids"]]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(results.values()) == ["accepted", "conflict"]
    with file_sessions() as check:
        accepted = check.query(Meeting).filter(Meeting.status == MeetingStatus.ACCEPTED.value).all()
        assert len(accepted) == 1


def test_accept_guard_holds_across_worker_processes(file_sessions, seeded, monkeypatch):
    first_id, second_id = seeded["meeting_ids"]
    counselor_id = seeded["counselor_id"]

    # Each worker process has its own in-memory locks, so they never see each other
    monkeypatch.setattr(meeting_service, "participant_lock", lambda *user_ids: nullcontext())

    original_check = ConflictDetector.find_conflict_for_any
    interleaved = []

    def check_then_other_worker_accepts(self, *args, **kwargs):
        result = original_check(self, *args, **kwargs)
        if not interleaved:
            interleaved.append(True)
            with file_sessions() as other_worker:
                _service(other_worker).accept(second_id, counselor_id)
        return result

    monkeypatch.setattr(ConflictDetector, "find_conflict_for_any", check_then_other_worker_accepts)

    with file_sessions() as db:
        with pytest.raises(ConflictError) as exc:
            _service(db).accept(first_id, counselor_id)
        assert exc.value.details["conflicting_meeting_id"] == second_id

    with file_sessions() as check:
        accepted = check.query(Meeting).filter(Meeting.status == MeetingStatus.ACCEPTED.value).all()
        assert [m.id for m in accepted] == [second_id]
        assert check.get(Meeting, first_id).status == MeetingStatus.REQUESTED.value


def test_striped_locks_are_bounded_and_colliding_ids_do_not_deadlock():
    stripes = len(conflict_detector._participant_locks)
    # Two ids on the same stripe must not deadlock on themselves
    with participant_lock(3, 3 + stripes):
        pass
    for uid in range(10 * stripes):
        with participant_lock(uid, uid + 1):
            pass
    assert len(conflict_detector._participant_locks) == stripes
