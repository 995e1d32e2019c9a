import pytest
from datetime import date, timedelta
from sqlalchemy.exc import OperationalError

from meeting_scheduler.core.config import settings
from meeting_scheduler.core.exceptions import ServiceUnavailableError, ValidationError
from meeting_scheduler.models.notification import Notification
from meeting_scheduler.services.availability import day_of_week
from meeting_scheduler.services.base import BaseService

MEETING_DAY = date.today() + timedelta(days=14)


def _locked():
    return OperationalError("UPDATE meetings", {}, Exception("database is locked"))


def _flaky_insert(db_session, user_id, failures):
    calls = []

    def operation():
        calls.append(1)
        db_session.add(Notification(user_id=user_id, kind="meeting_requested", title="t", message="m"))
        if len(calls) <= failures:
            raise _locked()
        return "written"

    return operation, calls


def test_transient_failure_is_retried_then_committed(db_session, student):
    service = BaseService(db_session)
    operation, calls = _flaky_insert(db_session, student.id, failures=settings.scheduling.storage_retry_attempts - 1)

    assert service.run_write(operation) == "written"
    assert len(calls) == settings.scheduling.storage_retry_attempts
    # Earlier attempts were rolled back, only the successful one persisted
    assert db_session.query(Notification).count() == 1

def test_exhausted_retries_become_service_unavailable(db_session, student):
    service = BaseService(db_session)
    operation, calls = _flaky_insert(db_session, student.id, failures=100)

    with pytest.raises(ServiceUnavailableError) as exc:
        service.run_write(operation)
    assert exc.value.status_code == 503
    assert isinstance(exc.value.__cause__, OperationalError)
    assert len(calls) == settings.scheduling.storage_retry_attempts
    assert db_session.query(Notification).count() == 0

def test_business_errors_are_not_retried(db_session, student):
    service = BaseService(db_session)
    calls = []

    def operation():
        calls.append(1)
        db_session.add(Notification(user_id=student.id, kind="meeting_requested", title="t", message="m"))
        raise ValidationError("nope")

    with pytest.raises(ValidationError):
        service.run_write(operation)
    assert calls == [1]
    assert db_session.query(Notification).count() == 0

def test_storage_outage_is_503(client, auth_headers, db_session, student, counselor, monkeypatch):
    client.put(
        f"/api/availability/{counselor.id}",
        headers=auth_headers(counselor),
        json={"windows": [{"day_of_week": day_of_week(MEETING_DAY), "start_time": "09:00:00", "end_time": "12:00:00"}]}
    )
    commits = []

    def failing_commit():
        commits.append(1)
        raise _locked()

    monkeypatch.setattr(db_session, "commit", failing_commit)
    response = client.post("/api/meetings", headers=auth_headers(student), json={
        "recipient_id": counselor.id,
        "meeting_date": MEETING_DAY.isoformat(),
        "start_time": "10:00:00",
        "end_time": "10:30:00",
        "title": "Career chat",
    })

    assert response.status_code == 503
    assert response.json()["errors"][0]["code"] == "SERVICE_UNAVAILABLE"
    assert len(commits) == settings.scheduling.storage_retry_attempts
