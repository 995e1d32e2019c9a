import pytest
from datetime import date, datetime, time

from meeting_scheduler.core.exceptions import NotFoundError, ValidationError
from meeting_scheduler.models.meeting import MeetingStatus
from meeting_scheduler.schemas.availability import AvailabilityWindowIn
from meeting_scheduler.services.availability import AvailabilityStore, day_of_week, merge_intervals

THURSDAY = date(2025, 5, 1)
SUNDAY = 0
THURSDAY_DOW = 4


def _window(day, start, end):
    return AvailabilityWindowIn(day_of_week=day, start_time=start, end_time=end)


@pytest.fixture
def store(db_session, clock):
    return AvailabilityStore(db_session, clock)


def test_day_of_week_starts_on_sunday():
    assert day_of_week(date(2025, 5, 4)) == SUNDAY
    assert day_of_week(THURSDAY) == THURSDAY_DOW
    assert day_of_week(date(2025, 5, 3)) == 6

def test_merge_intervals_joins_touching_spans():
    a = (datetime(2025, 5, 1, 9), datetime(2025, 5, 1, 10))
    b = (datetime(2025, 5, 1, 10), datetime(2025, 5, 1, 11))
    c = (datetime(2025, 5, 1, 13), datetime(2025, 5, 1, 14))
    assert merge_intervals([c, b, a]) == [(a[0], b[1]), c]

def test_recurring_window_contains_slot(store, counselor):
    store.set_windows(counselor.id, [_window(THURSDAY_DOW, time(9), time(12))])
    assert store.is_available(counselor.id, THURSDAY, time(10), time(10, 30))
    assert store.is_available(counselor.id, THURSDAY, time(9), time(12))
    # Spills past the window
    assert not store.is_available(counselor.id, THURSDAY, time(11, 45), time(12, 15))
    # Other weekday
    assert not store.is_available(counselor.id, date(2025, 5, 2), time(10), time(10, 30))

def test_slot_may_straddle_adjacent_windows(store, counselor):
    store.set_windows(counselor.id, [
        _window(THURSDAY_DOW, time(9), time(10)),
        _window(THURSDAY_DOW, time(10), time(11)),
    ])
    assert store.is_available(counselor.id, THURSDAY, time(9, 30), time(10, 30))

def test_set_windows_rejects_overlap_and_bad_times(store, counselor):
    with pytest.raises(ValidationError):
        store.set_windows(counselor.id, [
            _window(THURSDAY_DOW, time(9), time(11)),
            _window(THURSDAY_DOW, time(10), time(12)),
        ])
    with pytest.raises(ValidationError):
        store.set_windows(counselor.id, [_window(THURSDAY_DOW, time(12), time(9))])
    with pytest.raises(ValidationError):
        store.set_windows(counselor.id, [_window(7, time(9), time(10))])
    assert store.get_windows(counselor.id) == []

def test_set_windows_replaces_schedule_but_keeps_exceptions(store, counselor):
    store.set_windows(counselor.id, [_window(1, time(9), time(10))])
    store.add_exception(counselor.id, THURSDAY, time(14), time(15))
    windows = store.set_windows(counselor.id, [
        _window(THURSDAY_DOW, time(13), time(14)),
        _window(2, time(8), time(9)),
    ])

    recurring = [w for w in windows if w.is_recurring]
    exceptions = [w for w in windows if not w.is_recurring]
    assert [(w.day_of_week, w.start_time) for w in recurring] == [(2, time(8)), (THURSDAY_DOW, time(13))]
    assert [(w.specific_date, w.start_time) for w in exceptions] == [(THURSDAY, time(14))]
    # Recurring first, then exceptions
    assert windows[-1].specific_date == THURSDAY

def test_available_exception_replaces_recurring_windows(store, counselor):
    store.set_windows(counselor.id, [_window(THURSDAY_DOW, time(9), time(12))])
    store.add_exception(counselor.id, THURSDAY, time(15), time(17))

    assert not store.is_available(counselor.id, THURSDAY, time(10), time(10, 30))
    assert store.is_available(counselor.id, THURSDAY, time(15), time(16))
    # The following Thursday still uses the weekly schedule
    assert store.is_available(counselor.id, date(2025, 5, 8), time(10), time(10, 30))

def test_blocked_exception_removes_availability(store, counselor):
    store.set_windows(counselor.id, [_window(THURSDAY_DOW, time(9), time(12))])
    store.add_exception(counselor.id, THURSDAY, time(10), time(11), is_blocked=True)

    assert store.is_available(counselor.id, THURSDAY, time(9), time(10))
    assert not store.is_available(counselor.id, THURSDAY, time(10, 30), time(11, 30))
    assert store.is_available(counselor.id, THURSDAY, time(11), time(12))

def test_blocked_exception_without_times_blocks_whole_day(store, counselor):
    store.set_windows(counselor.id, [_window(THURSDAY_DOW, time(9), time(12))])
    store.add_exception(counselor.id, THURSDAY, is_blocked=True)

    assert not store.is_available(counselor.id, THURSDAY, time(9), time(9, 30))
    assert store.available_slots(counselor.id, THURSDAY) == []

def test_exception_validation(store, counselor):
    with pytest.raises(ValidationError):
        store.add_exception(counselor.id, THURSDAY)  # available exception needs times
    with pytest.raises(ValidationError):
        store.add_exception(counselor.id, THURSDAY, start=time(9), is_blocked=True)
    store.add_exception(counselor.id, THURSDAY, time(9), time(10))
    with pytest.raises(ValidationError):
        store.add_exception(counselor.id, THURSDAY, time(9, 30), time(10, 30))
    # Touching is fine, and a blocked window may overlap an available one
    store.add_exception(counselor.id, THURSDAY, time(10), time(11))
    store.add_exception(counselor.id, THURSDAY, time(9, 30), time(10, 30), is_blocked=True)

def test_unavailability_period_spanning_days(store, counselor):
    store.set_windows(counselor.id, [
        _window(THURSDAY_DOW, time(9), time(17)),
        _window(5, time(9), time(17)),
    ])
    store.add_unavailability(counselor.id, datetime(2025, 5, 1, 15), datetime(2025, 5, 2, 10), "Conference")

    assert store.is_available(counselor.id, THURSDAY, time(14), time(15))
    assert not store.is_available(counselor.id, THURSDAY, time(15), time(16))
    assert not store.is_available(counselor.id, date(2025, 5, 2), time(9, 30), time(10))
    assert store.is_available(counselor.id, date(2025, 5, 2), time(10), time(10, 30))

    periods = store.list_unavailability(counselor.id)
    assert len(periods) == 1
    assert periods[0].reason == "Conference"

def test_unavailability_requires_ordered_range(store, counselor):
    with pytest.raises(ValidationError):
        store.add_unavailability(counselor.id, datetime(2025, 5, 1, 15), datetime(2025, 5, 1, 15))

def test_available_slots_skip_meetings_and_blocks(store, counselor, student, make_meeting):
    store.set_windows(counselor.id, [_window(THURSDAY_DOW, time(9), time(11, 45))])
    store.add_exception(counselor.id, THURSDAY, time(11), time(11, 30), is_blocked=True)
    make_meeting(student, counselor, THURSDAY, time(9, 30), time(10))
    make_meeting(student, counselor, THURSDAY, time(10), time(10, 30), status=MeetingStatus.DECLINED)

    slots = store.available_slots(counselor.id, THURSDAY)
    # 11:30-12:00 would overrun the window
    assert slots == [
        (time(9), time(9, 30)),
        (time(10), time(10, 30)),
        (time(10, 30), time(11)),
    ]

def test_available_slots_drop_elapsed_times(store, counselor, clock):
    store.set_windows(counselor.id, [_window(THURSDAY_DOW, time(9), time(11))])
    clock.now = datetime(2025, 5, 1, 9, 45)
    assert store.available_slots(counselor.id, THURSDAY) == [(time(10), time(10, 30)), (time(10, 30), time(11))]
    assert store.available_slots(counselor.id, THURSDAY, slot_minutes=60) == [(time(10), time(11))]

def test_delete_window_only_by_owner(store, counselor, student):
    windows = store.set_windows(counselor.id, [_window(THURSDAY_DOW, time(9), time(12))])
    with pytest.raises(NotFoundError):
        store.delete_window(student.id, windows[0].id)
    store.delete_window(counselor.id, windows[0].id)
    assert store.get_windows(counselor.id) == []

def test_delete_unavailability(store, counselor, student):
    period = store.add_unavailability(counselor.id, datetime(2025, 5, 1, 9), datetime(2025, 5, 1, 10))
    with pytest.raises(NotFoundError):
        store.delete_unavailability(student.id, period.id)
    store.delete_unavailability(counselor.id, period.id)
    assert store.list_unavailability(counselor.id) == []
