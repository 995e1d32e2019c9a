import pytest
import os
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENABLE_COMPLETION_SCHEDULER"] = "false"

from meeting_scheduler.database import Base, get_db
from meeting_scheduler.main import app
from meeting_scheduler.models.meeting import Meeting, MeetingStatus
from meeting_scheduler.models.user import User, UserRole
from fastapi.testclient import TestClient
from tests.support import FakeClock, RecordingNotifier


@pytest.fixture(scope="function")
def engine():
    """A fresh in-memory database per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="function")
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()

@pytest.fixture(scope="function")
def clock():
    # Monday 2025-04-28, 08:00
    return FakeClock(datetime(2025, 4, 28, 8, 0))

@pytest.fixture(scope="function")
def notifier():
    return RecordingNotifier()

@pytest.fixture(scope="function")
def make_user(db_session):
    def _make_user(email, role, full_name=None, is_active=True):
        user = User(email=email, role=role, full_name=full_name, is_active=is_active)
        db_session.add(user)
        db_session.commit()
        return user
    return _make_user

@pytest.fixture(scope="function")
def student(make_user):
    return make_user("student@guidia.test", UserRole.STUDENT, "Sam Student")

@pytest.fixture(scope="function")
def other_student(make_user):
    return make_user("peer@guidia.test", UserRole.STUDENT, "Pat Peer")

@pytest.fixture(scope="function")
def counselor(make_user):
    return make_user("counselor@guidia.test", UserRole.COUNSELOR, "Casey Counselor")

@pytest.fixture(scope="function")
def company(make_user):
    return make_user("hr@acme.test", UserRole.COMPANY, "Acme Corp")

@pytest.fixture(scope="function")
def admin_user(make_user):
    return make_user("admin@guidia.test", UserRole.ADMIN, "System Admin")

@pytest.fixture(scope="function")
def make_meeting(db_session):
    """Insert a meeting directly, bypassing availability and conflict checks."""
    def _make_meeting(requestor, recipient, on_date, start, end, status=MeetingStatus.REQUESTED,
                      meeting_type="student_counselor", title="Career chat"):
        meeting = Meeting(
            requestor_id=requestor.id,
            recipient_id=recipient.id,
            meeting_date=on_date,
            start_time=start,
            end_time=end,
            title=title,
            meeting_type=meeting_type,
            status=MeetingStatus(status).value,
        )
        db_session.add(meeting)
        db_session.commit()
        return meeting
    return _make_meeting

@pytest.fixture(scope="function")
def get_token():
    """Helper fixture to create access tokens the way the identity service does."""
    from meeting_scheduler.services.auth import create_access_token

    def _get_token(user):
        return create_access_token(data={
            "sub": user.id,
            "role": user.role.value,
            "type": "access"
        })
    return _get_token

@pytest.fixture(scope="function")
def auth_headers(get_token):
    def _auth_headers(user):
        return {"Authorization": f"Bearer {get_token(user)}"}
    return _auth_headers

@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
