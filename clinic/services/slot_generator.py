"""Builds weekly slot templates from availability windows."""

from sqlalchemy.orm import Session

from clinic.core.timeparse import SlotTime, parse_time
from clinic.models.doctor_availability import DoctorAvailability
from clinic.models.doctor_slot import DoctorSlot

DEFAULT_WORKING_DAYS = ("Monday", "Tuesday", "Wednesday", "Friday", "Saturday")

# (start, end, admin_only); lunch break 13:00-14:00
DEFAULT_WINDOWS = (
    (SlotTime(6, 30), SlotTime(9, 0), True),
    (SlotTime(9, 0), SlotTime(13, 0), False),
    (SlotTime(14, 0), SlotTime(19, 0), False),
)


def split_window(start: SlotTime, end: SlotTime, duration: int) -> list[tuple[SlotTime, SlotTime]]:
    """Consecutive ``duration``-minute ranges that fit entirely inside [start, end)."""
    ranges = []
    cursor = start.minutes
    while cursor + duration <= end.minutes:
        ranges.append((SlotTime.from_minutes(cursor), SlotTime.from_minutes(cursor + duration)))
        cursor += duration
    return ranges


def expand_windows(windows: list[dict], duration: int) -> list[tuple[SlotTime, SlotTime]]:
    """Split 12-hour display windows (``{"start_time", "end_time"}``) into slot ranges."""
    ranges = []
    for window in windows:
        ranges.extend(split_window(parse_time(window["start_time"]), parse_time(window["end_time"]), duration))
    return ranges


def _template(doctor_id: int, day: str, start: SlotTime, end: SlotTime, duration: int, admin_only: bool):
    return DoctorSlot(
        doctor_id=doctor_id,
        day=day,
        date=None,
        start_time=start.to_24h(),
        end_time=end.to_24h(),
        duration=duration,
        is_available=True,
        is_admin_only=admin_only,
    )


def generate_doctor_slots(db: Session, doctor_id: int, duration: int = 15) -> list[DoctorSlot]:
    """
    Weekly templates for ``doctor_id``.

    Uses the doctor's availability windows when any are on record, otherwise
    the clinic's default schedule. Returned rows are not yet added to the session.
    """
    availability = (
        db.query(DoctorAvailability)
        .filter(DoctorAvailability.doctor_id == doctor_id, DoctorAvailability.is_available.is_(True))
        .all()
    )

    slots = []
    if availability:
        for record in availability:
            for start, end in expand_windows(record.slots or [], duration):
                slots.append(_template(doctor_id, record.day, start, end, duration, False))
        return slots

    for day in DEFAULT_WORKING_DAYS:
        for window_start, window_end, admin_only in DEFAULT_WINDOWS:
            for start, end in split_window(window_start, window_end, duration):
                slots.append(_template(doctor_id, day, start, end, duration, admin_only))
    return slots
