import datetime as dt
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic.core.errors import Conflict, NotFound, ValidationError
from clinic.core.security import get_current_active_user, require_roles
from clinic.core.timeparse import WEEKDAYS, InvalidTimeError, SlotTime, day_name, parse_24h
from clinic.database import get_db
from clinic.models.doctor_slot import SLOT_DURATIONS, DoctorSlot
from clinic.models.user import User, UserRole
from clinic.services import slot_generator
from clinic.services.slot_matcher import slots_overlap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/slots", tags=["slots"])


class SlotResponse(BaseModel):
    id: int
    doctor_id: int
    day: str
    date: Optional[dt.date] = None
    start_time: str
    end_time: str
    duration: int
    is_available: bool
    is_admin_only: bool
    booked_by: Optional[int] = None
    booking_time: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class SlotAdd(BaseModel):
    doctor_id: Optional[int] = None
    day: Optional[str] = None
    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[int] = None
    is_admin_only: bool = False
    is_available: bool = True


class SlotFlags(BaseModel):
    is_available: Optional[bool] = None
    is_admin_only: Optional[bool] = None


class SlotFlagsUpdate(SlotFlags):
    id: int


class SlotBulkUpdate(BaseModel):
    slots: List[SlotFlagsUpdate] = []


class SlotGenerate(BaseModel):
    doctor_id: int
    duration: int = 15


def _get_doctor(db: Session, doctor_id: int) -> User:
    doctor = db.query(User).filter(User.id == doctor_id, User.role == UserRole.DOCTOR).first()
    if not doctor:
        raise NotFound("Doctor not found")
    return doctor


def _get_slot(db: Session, slot_id: int) -> DoctorSlot:
    slot = db.query(DoctorSlot).filter(DoctorSlot.id == slot_id).first()
    if not slot:
        raise NotFound("Slot not found")
    return slot


def _find_overlap(
    db: Session, doctor_id: int, day: str, on_date: Optional[dt.date], start: SlotTime, end: SlotTime
) -> Optional[DoctorSlot]:
    query = db.query(DoctorSlot).filter(DoctorSlot.doctor_id == doctor_id, DoctorSlot.is_available.is_(True))
    if on_date is not None:
        # Dated slots clash with other slots that day and with that weekday's templates
        query = query.filter(
            (DoctorSlot.date == on_date) | (DoctorSlot.date.is_(None) & (DoctorSlot.day == day))
        )
    else:
        query = query.filter(DoctorSlot.date.is_(None), DoctorSlot.day == day)

    for existing in query.all():
        if slots_overlap(start, end, parse_24h(existing.start_time), parse_24h(existing.end_time)):
            return existing
    return None


@router.get("")
async def get_slots(
    doctor_id: Optional[int] = None,
    day: Optional[str] = None,
    is_available: Optional[bool] = None,
    is_admin_only: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    query = db.query(DoctorSlot)
    if doctor_id is not None:
        query = query.filter(DoctorSlot.doctor_id == doctor_id)
    if day:
        query = query.filter(DoctorSlot.day == day)
    if is_available is not None:
        query = query.filter(DoctorSlot.is_available.is_(is_available))
    if is_admin_only is not None:
        query = query.filter(DoctorSlot.is_admin_only.is_(is_admin_only))
    if current_user.role == UserRole.PATIENT:
        query = query.filter(DoctorSlot.is_admin_only.is_(False))

    slots = query.order_by(DoctorSlot.day, DoctorSlot.start_time).all()
    return {"slots": [SlotResponse.model_validate(s) for s in slots]}


@router.post("")
async def generate_slots(
    request: SlotGenerate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    """Create the weekly templates for a doctor who has none yet."""
    _get_doctor(db, request.doctor_id)
    if request.duration not in SLOT_DURATIONS:
        raise ValidationError("Duration must be 15, 30, 45, or 60 minutes")

    existing = db.query(DoctorSlot).filter(DoctorSlot.doctor_id == request.doctor_id).count()
    if existing:
        return {"message": "Slots already exist for this doctor", "count": existing}

    slots = slot_generator.generate_doctor_slots(db, request.doctor_id, request.duration)
    db.add_all(slots)
    db.commit()
    logger.info(f"Generated {len(slots)} slots for doctor {request.doctor_id}")
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"message": "Default slots generated successfully", "count": len(slots)},
    )


@router.put("")
async def update_slots(
    request: SlotBulkUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    if not request.slots:
        raise ValidationError("Valid slots array is required")

    results = []
    for item in request.slots:
        slot = db.query(DoctorSlot).filter(DoctorSlot.id == item.id).first()
        if not slot:
            results.append({"error": "Slot not found", "id": item.id})
            continue
        if item.is_available is not None:
            slot.is_available = item.is_available
        if item.is_admin_only is not None:
            slot.is_admin_only = item.is_admin_only
        results.append(slot)
    db.commit()

    return {
        "message": "Slots updated",
        "results": [r if isinstance(r, dict) else SlotResponse.model_validate(r) for r in results],
    }


@router.post("/add", status_code=status.HTTP_201_CREATED)
async def add_slot(
    request: SlotAdd,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    day = request.day or (day_name(request.date) if request.date else None)
    if not request.doctor_id or not day or not request.start_time or not request.end_time:
        raise ValidationError("All fields are required")
    if day not in WEEKDAYS:
        raise ValidationError(f"Day must be one of {', '.join(WEEKDAYS)}")

    try:
        start = parse_24h(request.start_time)
        end = parse_24h(request.end_time)
    except InvalidTimeError:
        raise ValidationError("Times must be in 24-hour format (HH:MM)")

    duration = request.duration or 15
    if duration not in SLOT_DURATIONS:
        raise ValidationError("Duration must be 15, 30, 45, or 60 minutes")

    if end.minutes <= start.minutes:
        raise ValidationError("End time must be after start time")

    if end.minutes - start.minutes != duration:
        # The duration wins; the end time is recomputed from it
        try:
            end = start.plus_minutes(duration)
        except InvalidTimeError:
            raise ValidationError("Slot must end before midnight")

    _get_doctor(db, request.doctor_id)

    conflicting = _find_overlap(db, request.doctor_id, day, request.date, start, end)
    if conflicting is not None:
        raise Conflict(
            "This slot overlaps with an existing slot",
            extra={
                "conflicting_slot": {
                    "day": conflicting.day,
                    "date": conflicting.date.isoformat() if conflicting.date else None,
                    "start_time": conflicting.start_time,
                    "end_time": conflicting.end_time,
                }
            },
        )

    new_slot = DoctorSlot(
        doctor_id=request.doctor_id,
        day=day,
        date=request.date,
        start_time=start.to_24h(),
        end_time=end.to_24h(),
        duration=duration,
        is_admin_only=request.is_admin_only,
        is_available=request.is_available,
    )
    db.add(new_slot)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Duplicate slot. A slot with these details already exists.")
    db.refresh(new_slot)

    return {"message": "Slot added successfully", "slot": SlotResponse.model_validate(new_slot)}


@router.post("/fix")
async def fix_slots(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    """Repair slots whose end time or duration disagree."""
    fixed_count = 0
    error_slots = []

    for slot in db.query(DoctorSlot).all():
        try:
            start = parse_24h(slot.start_time)
            end = parse_24h(slot.end_time)
        except InvalidTimeError:
            error_slots.append({"id": slot.id, "error": "Invalid time format"})
            continue

        if end.minutes <= start.minutes:
            try:
                slot.end_time = start.plus_minutes(slot.duration or 15).to_24h()
            except InvalidTimeError:
                error_slots.append({"id": slot.id, "error": "Slot runs past midnight"})
                continue
            fixed_count += 1
        elif end.minutes - start.minutes != slot.duration:
            slot.duration = end.minutes - start.minutes
            fixed_count += 1

    db.commit()
    return {"message": f"Fixed {fixed_count} slots", "fixed": fixed_count, "errors": error_slots}


@router.get("/{slot_id}")
async def get_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return {"slot": SlotResponse.model_validate(_get_slot(db, slot_id))}


@router.put("/{slot_id}")
async def update_slot(
    slot_id: int,
    request: SlotFlags,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    slot = _get_slot(db, slot_id)
    if request.is_available is not None:
        slot.is_available = request.is_available
    if request.is_admin_only is not None:
        slot.is_admin_only = request.is_admin_only
    db.commit()
    db.refresh(slot)
    return {"message": "Slot updated successfully", "slot": SlotResponse.model_validate(slot)}


@router.delete("/{slot_id}")
async def delete_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    db.delete(_get_slot(db, slot_id))
    db.commit()
    return {"message": "Slot deleted successfully"}
