from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional
from clinic.core.security import get_current_active_user, require_roles
from clinic.core.timeparse import WEEKDAYS, InvalidTimeError, parse_time
from clinic.database import get_db
from clinic.models.doctor_availability import DoctorAvailability
from clinic.models.user import User, UserRole
from pydantic import BaseModel

router = APIRouter(prefix="/api/doctors/availability", tags=["availability"])


class AvailabilityWindow(BaseModel):
    start_time: str
    end_time: str


class AvailabilityCreate(BaseModel):
    doctor_id: int
    day: str
    slots: List[AvailabilityWindow]
    is_available: bool = True


class AvailabilityResponse(BaseModel):
    id: int
    doctor_id: int
    day: str
    slots: List[AvailabilityWindow]
    is_available: bool

    class Config:
        from_attributes = True


def normalize_windows(windows: List[AvailabilityWindow]) -> list[dict]:
    """Validate windows and return them in 12-hour display form, earliest first."""
    parsed = []
    for window in windows:
        try:
            start = parse_time(window.start_time)
            end = parse_time(window.end_time)
        except InvalidTimeError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        if start.minutes >= end.minutes:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Start time must be before end time"
            )
        parsed.append((start, end))

    parsed.sort()
    for (_, previous_end), (next_start, _) in zip(parsed, parsed[1:]):
        if next_start.minutes < previous_end.minutes:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Availability windows must not overlap"
            )
    return [{"start_time": start.to_12h(), "end_time": end.to_12h()} for start, end in parsed]


@router.get("")
async def get_availability(
    doctor_id: Optional[int] = None,
    day: Optional[str] = None,
    db: Session = Depends(get_db)
):
    query = db.query(DoctorAvailability)
    if doctor_id is not None:
        query = query.filter(DoctorAvailability.doctor_id == doctor_id)
    if day:
        query = query.filter(DoctorAvailability.day == day)

    records = query.all()
    records.sort(key=lambda r: (r.doctor_id, WEEKDAYS.index(r.day)))
    return {"availability": [AvailabilityResponse.model_validate(r) for r in records]}


@router.post("", response_model=AvailabilityResponse)
async def set_availability(
    availability: AvailabilityCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    # Admins manage everyone; a doctor manages their own week
    if not (current_user.is_admin or (current_user.is_doctor and current_user.id == availability.doctor_id)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to set availability"
        )

    if availability.day not in WEEKDAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Day must be one of {', '.join(WEEKDAYS)}"
        )
    if not availability.slots:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one slot is required"
        )

    doctor = db.query(User).filter(User.id == availability.doctor_id, User.role == UserRole.DOCTOR).first()
    if not doctor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Doctor not found")

    windows = normalize_windows(availability.slots)

    record = db.query(DoctorAvailability).filter(
        DoctorAvailability.doctor_id == availability.doctor_id,
        DoctorAvailability.day == availability.day
    ).first()
    if record is None:
        record = DoctorAvailability(doctor_id=availability.doctor_id, day=availability.day)
        db.add(record)

    record.slots = windows
    record.is_available = availability.is_available
    db.commit()
    db.refresh(record)
    return record


@router.delete("/{availability_id}")
async def delete_availability(
    availability_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.DOCTOR))
):
    record = db.query(DoctorAvailability).filter(DoctorAvailability.id == availability_id).first()
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Availability not found"
        )
    if current_user.is_doctor and record.doctor_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to delete this availability"
        )

    db.delete(record)
    db.commit()
    return {"message": "Availability deleted successfully"}
