import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from clinic.core.errors import Conflict, Forbidden, NotFound
from clinic.core.security import get_current_active_user, require_roles
from clinic.database import get_db
from clinic.models.user import User, UserRole

router = APIRouter(prefix="/api/patients", tags=["patients"])


class PatientResponse(BaseModel):
    id: int
    name: str
    mobile: str
    email: Optional[str] = None
    address: Optional[str] = None
    verified: bool
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class PatientUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    email: Optional[EmailStr] = None


def _get_patient(db: Session, patient_id: int, current_user: User) -> User:
    if current_user.role == UserRole.PATIENT and current_user.id != patient_id:
        raise Forbidden("Not authorized to view this patient")
    patient = db.query(User).filter(User.id == patient_id, User.role == UserRole.PATIENT).first()
    if not patient:
        raise NotFound("Patient not found")
    return patient


@router.get("", response_model=List[PatientResponse])
async def list_patients(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.DOCTOR)),
):
    query = db.query(User).filter(User.role == UserRole.PATIENT)
    if search:
        pattern = f"%{search}%"
        query = query.filter(User.name.ilike(pattern) | User.mobile.ilike(pattern))
    return query.order_by(User.name).all()


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return _get_patient(db, patient_id, current_user)


@router.put("/{patient_id}", response_model=PatientResponse)
async def update_patient(
    patient_id: int,
    patient_data: PatientUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    if current_user.role == UserRole.DOCTOR:
        raise Forbidden("Doctors cannot edit patient records")
    patient = _get_patient(db, patient_id, current_user)

    changes = patient_data.model_dump(exclude_unset=True)
    if changes.get("email"):
        taken = db.query(User).filter(User.email == changes["email"], User.id != patient.id).first()
        if taken:
            raise Conflict("Email is already registered")

    for key, value in changes.items():
        setattr(patient, key, value)
    db.commit()
    db.refresh(patient)
    return patient
