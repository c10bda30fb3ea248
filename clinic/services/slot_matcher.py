"""
Slot lookup for a doctor on a calendar date.

A doctor's availability is a set of weekly templates (``date`` is null) plus
date-specific rows. A date-specific row at a given start time always takes
precedence over the template at the same start time, whether it opens the
slot (admin-added) or closes it (consumed by a booking).
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from clinic.core.timeparse import SlotTime, day_name
from clinic.models.appointment import ACTIVE_STATUSES, Appointment
from clinic.models.doctor_slot import DoctorSlot

logger = logging.getLogger(__name__)


def _is_bookable(slot: DoctorSlot, include_admin_only: bool) -> bool:
    if not slot.is_available:
        return False
    return include_admin_only or not slot.is_admin_only


def find_date_override(db: Session, doctor_id: int, on_date: date, start_time: str) -> Optional[DoctorSlot]:
    return (
        db.query(DoctorSlot)
        .filter(
            DoctorSlot.doctor_id == doctor_id,
            DoctorSlot.date == on_date,
            DoctorSlot.start_time == start_time,
        )
        .first()
    )


def find_template(db: Session, doctor_id: int, day: str, start_time: str) -> Optional[DoctorSlot]:
    return (
        db.query(DoctorSlot)
        .filter(
            DoctorSlot.doctor_id == doctor_id,
            DoctorSlot.date.is_(None),
            DoctorSlot.day == day,
            DoctorSlot.start_time == start_time,
        )
        .first()
    )


def find_bookable_slot(
    db: Session,
    doctor_id: int,
    on_date: date,
    slot_time: SlotTime,
    include_admin_only: bool = False,
) -> Optional[DoctorSlot]:
    """Return the slot row a booking at ``slot_time`` on ``on_date`` would use, or None."""
    start_time = slot_time.to_24h()

    override = find_date_override(db, doctor_id, on_date, start_time)
    if override is not None:
        if _is_bookable(override, include_admin_only):
            return override
        logger.info(f"Slot {start_time} on {on_date} for doctor {doctor_id} is closed by a date override")
        return None

    template = find_template(db, doctor_id, day_name(on_date), start_time)
    if template is not None and _is_bookable(template, include_admin_only):
        return template
    return None


def booked_times_for_date(db: Session, doctor_id: int, on_date: date) -> set[str]:
    appointments = (
        db.query(Appointment.slot_time)
        .filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date == on_date,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        .all()
    )
    return {row.slot_time for row in appointments}


def available_slots_for_date(
    db: Session,
    doctor_id: int,
    on_date: date,
    include_admin_only: bool = False,
) -> list[DoctorSlot]:
    """Slots still open for booking on ``on_date``, sorted by start time."""
    overrides = (
        db.query(DoctorSlot)
        .filter(DoctorSlot.doctor_id == doctor_id, DoctorSlot.date == on_date)
        .all()
    )
    templates = (
        db.query(DoctorSlot)
        .filter(
            DoctorSlot.doctor_id == doctor_id,
            DoctorSlot.date.is_(None),
            DoctorSlot.day == day_name(on_date),
        )
        .all()
    )

    overridden_times = {slot.start_time for slot in overrides}
    candidates = overrides + [slot for slot in templates if slot.start_time not in overridden_times]

    booked = booked_times_for_date(db, doctor_id, on_date)
    available = [
        slot
        for slot in candidates
        if _is_bookable(slot, include_admin_only) and slot.start_time not in booked
    ]
    logger.debug(
        f"Returning {len(available)} available slots out of {len(candidates)} for doctor {doctor_id} on {on_date}"
    )
    return sorted(available, key=lambda slot: slot.start_time)


def slots_overlap(a_start: SlotTime, a_end: SlotTime, b_start: SlotTime, b_end: SlotTime) -> bool:
    return a_start.minutes < b_end.minutes and b_start.minutes < a_end.minutes
