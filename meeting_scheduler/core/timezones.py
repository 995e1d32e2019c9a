"""
Canonical scheduling timezone.

Dates and times are stored naive and read as wall-clock values in
`settings.scheduling.timezone`. Input that carries a UTC offset is converted
into that zone and stripped before it reaches the services.
"""
from datetime import date, datetime, time
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from meeting_scheduler.core.config import settings


def scheduling_zone() -> ZoneInfo:
    return ZoneInfo(settings.scheduling.timezone)


def is_aware(value) -> bool:
    return value is not None and value.tzinfo is not None


def ensure_consistent_offsets(*values):
    """Reject a mix of values with and without a UTC offset."""
    present = [v for v in values if v is not None]
    if len({is_aware(v) for v in present}) > 1:
        raise ValueError("Either all times carry a UTC offset or none do")


def to_scheduling_datetime(value: datetime) -> datetime:
    if not is_aware(value):
        return value
    return value.astimezone(scheduling_zone()).replace(tzinfo=None)


def to_scheduling_times(
    on_date: date,
    start: Optional[time],
    end: Optional[time],
) -> Tuple[date, Optional[time], Optional[time]]:
    """
    Convert an offset-carrying start/end pair on `on_date` into the scheduling zone.

    The date moves with the start when the conversion crosses midnight; a pair
    that ends up on two different days is rejected.
    """
    ensure_consistent_offsets(start, end)
    if not is_aware(start) and not is_aware(end):
        return on_date, start, end

    zone = scheduling_zone()
    start_at = datetime.combine(on_date, start).astimezone(zone) if start is not None else None
    end_at = datetime.combine(on_date, end).astimezone(zone) if end is not None else None
    if start_at and end_at and start_at.date() != end_at.date():
        raise ValueError("Start and end must fall on the same day in the scheduling timezone")

    anchor = start_at or end_at
    return (
        anchor.date(),
        start_at.time() if start_at else None,
        end_at.time() if end_at else None,
    )
