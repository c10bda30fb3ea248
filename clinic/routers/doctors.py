import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from clinic.core.errors import Conflict
from clinic.core.security import get_current_active_user, require_roles
from clinic.database import get_db
from clinic.models.appointment import ACTIVE_STATUSES, Appointment
from clinic.models.doctor_slot import DoctorSlot
from clinic.models.user import User, UserRole
from clinic.routers.slots import SlotResponse
from clinic.services.slot_matcher import available_slots_for_date

router = APIRouter(prefix="/api/doctors", tags=["doctors"])


class DoctorCreate(BaseModel):
    name: str
    mobile: str
    address: str = ""
    email: Optional[EmailStr] = None
    specialization: Optional[str] = None
    qualifications: Optional[str] = None


class DoctorUpdate(BaseModel):
    name: Optional[str] = None
    mobile: Optional[str] = None
    address: Optional[str] = None
    email: Optional[EmailStr] = None
    specialization: Optional[str] = None
    qualifications: Optional[str] = None
    is_active: Optional[bool] = None


class DoctorResponse(BaseModel):
    id: int
    name: str
    mobile: str
    email: Optional[str]
    address: Optional[str]
    specialization: Optional[str]
    qualifications: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


def _get_doctor_or_404(db: Session, doctor_id: int, active_only: bool = False) -> User:
    query = db.query(User).filter(
        User.id == doctor_id,
        User.role == UserRole.DOCTOR
    )
    if active_only:
        query = query.filter(User.is_active.is_(True))
    doctor = query.first()

    if not doctor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found"
        )
    return doctor


def _check_contact_unique(db: Session, mobile: Optional[str], email: Optional[str], exclude_id: Optional[int] = None):
    if mobile:
        query = db.query(User).filter(User.mobile == mobile)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise Conflict("Mobile number is already registered")
    if email:
        query = db.query(User).filter(User.email == email)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise Conflict("Email is already registered")


@router.get("", response_model=List[DoctorResponse])
async def list_doctors(
    specialization: Optional[str] = None,
    db: Session = Depends(get_db)
):
    query = db.query(User).filter(User.role == UserRole.DOCTOR, User.is_active.is_(True))

    if specialization:
        query = query.filter(User.specialization.ilike(f"%{specialization}%"))

    return query.order_by(User.name).all()


@router.post("", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
async def create_doctor(
    doctor_data: DoctorCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    _check_contact_unique(db, doctor_data.mobile, doctor_data.email)

    doctor = User(**doctor_data.model_dump(), role=UserRole.DOCTOR, verified=True)
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    return doctor


@router.get("/{doctor_id}", response_model=DoctorResponse)
async def get_doctor(
    doctor_id: int,
    db: Session = Depends(get_db)
):
    return _get_doctor_or_404(db, doctor_id)


@router.put("/{doctor_id}", response_model=DoctorResponse)
async def update_doctor(
    doctor_id: int,
    doctor_data: DoctorUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    doctor = _get_doctor_or_404(db, doctor_id)
    changes = doctor_data.model_dump(exclude_unset=True)
    _check_contact_unique(db, changes.get("mobile"), changes.get("email"), exclude_id=doctor.id)

    for key, value in changes.items():
        setattr(doctor, key, value)

    db.commit()
    db.refresh(doctor)
    return doctor


@router.delete("/{doctor_id}")
async def delete_doctor(
    doctor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN))
):
    doctor = _get_doctor_or_404(db, doctor_id)

    upcoming = db.query(Appointment).filter(
        Appointment.doctor_id == doctor.id,
        Appointment.status.in_(ACTIVE_STATUSES)
    ).count()
    if upcoming:
        raise Conflict(f"Doctor has {upcoming} open appointments; cancel or complete them first")

    # Past appointments keep referencing the doctor, so only deactivate
    if db.query(Appointment).filter(Appointment.doctor_id == doctor.id).first():
        doctor.is_active = False
        db.commit()
        return {"message": "Doctor deactivated; past appointments are kept"}

    # Slots and availability go with the doctor
    db.delete(doctor)
    db.commit()
    return {"message": "Doctor deleted successfully"}


@router.get("/{doctor_id}/slots")
async def get_doctor_slots(
    doctor_id: int,
    date_str: Optional[str] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """
    Returns a doctor's slots. With ``?date=YYYY-MM-DD`` only the slots still
    open for booking that day are returned.
    """
    _get_doctor_or_404(db, doctor_id, active_only=True)
    include_admin_only = current_user.role != UserRole.PATIENT

    if date_str is None:
        query = db.query(DoctorSlot).filter(DoctorSlot.doctor_id == doctor_id)
        if not include_admin_only:
            query = query.filter(DoctorSlot.is_admin_only.is_(False))
        slots = query.order_by(DoctorSlot.start_time).all()
        return {"slots": [SlotResponse.model_validate(s) for s in slots]}

    try:
        target_date = dt.datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD.")

    slots = available_slots_for_date(db, doctor_id, target_date, include_admin_only=include_admin_only)
    return {"slots": [SlotResponse.model_validate(s) for s in slots]}
