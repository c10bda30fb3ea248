import asyncio
import logging
import datetime as dt
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session, joinedload
from starlette.concurrency import run_in_threadpool

from clinic.config import APPOINTMENT_LIST_TIMEOUT_SECONDS
from clinic.core.errors import Forbidden, NotFound
from clinic.core.security import get_current_active_user, require_roles
from clinic.database import SessionLocal, get_db
from clinic.models.appointment import (
    Appointment,
    AppointmentStatus,
    BookedBy,
    PaymentMethod,
    PaymentStatus,
)
from clinic.models.user import User, UserRole
from clinic.services import booking, notifications

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/appointments", tags=["appointments"])


class AppointmentCreate(BaseModel):
    doctor_id: Optional[int] = None
    service_id: Optional[int] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    payment_amount: Optional[float] = None  # staff only; patients pay the service price
    booked_by: Optional[BookedBy] = None  # informational; the caller's role decides
    patient_id: Optional[int] = None
    payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_signature: Optional[str] = None


class AppointmentUpdate(BaseModel):
    status: AppointmentStatus
    notes: Optional[str] = None


class PersonBrief(BaseModel):
    id: int
    name: str
    mobile: Optional[str] = None
    specialization: Optional[str] = None

    class Config:
        from_attributes = True


class ServiceBrief(BaseModel):
    id: int
    name: str
    price: float
    duration: int

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    service_id: int
    date: dt.date
    time: str
    slot_time: str
    status: AppointmentStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    payment_amount: float
    payment_date: Optional[dt.datetime] = None
    payment_id: Optional[str] = None
    booked_by: BookedBy
    notes: Optional[str] = None
    patient: Optional[PersonBrief] = None
    doctor: Optional[PersonBrief] = None
    service: Optional[ServiceBrief] = None

    class Config:
        from_attributes = True


def _get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if not appointment:
        raise NotFound("Appointment not found")
    return appointment


def _check_can_view(appointment: Appointment, current_user: User) -> None:
    if (current_user.role == UserRole.PATIENT and appointment.patient_id != current_user.id) or (
        current_user.role == UserRole.DOCTOR and appointment.doctor_id != current_user.id
    ):
        raise Forbidden("You do not have permission to view this appointment")


def _list_appointments(
    user_id: int,
    role: UserRole,
    status_filter: Optional[AppointmentStatus],
    doctor_id: Optional[int],
    on_date: Optional[dt.date],
) -> list[AppointmentResponse]:
    # Runs in a worker thread, so it must not share the request session
    db = SessionLocal()
    try:
        query = db.query(Appointment).options(
            joinedload(Appointment.patient), joinedload(Appointment.doctor), joinedload(Appointment.service)
        )

        # Patients only ever see their own appointments
        if role == UserRole.PATIENT:
            query = query.filter(Appointment.patient_id == user_id)
        elif doctor_id is None and role == UserRole.DOCTOR:
            query = query.filter(Appointment.doctor_id == user_id)

        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if on_date is not None:
            query = query.filter(Appointment.date == on_date)
        if status_filter is not None:
            query = query.filter(Appointment.status == status_filter)

        appointments = query.order_by(Appointment.date, Appointment.slot_time).all()
        return [AppointmentResponse.model_validate(a) for a in appointments]
    finally:
        db.close()


@router.get("")
async def get_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    doctor_id: Optional[int] = Query(None, alias="doctor"),
    on_date: Optional[dt.date] = Query(None, alias="date"),
    current_user: User = Depends(get_current_active_user),
):
    try:
        appointments = await asyncio.wait_for(
            run_in_threadpool(
                _list_appointments, current_user.id, current_user.role, status_filter, doctor_id, on_date
            ),
            timeout=APPOINTMENT_LIST_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.error(f"Listing appointments for user {current_user.id} timed out")
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="Request timed out")
    return {"appointments": appointments}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    appointment: AppointmentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    db_appointment = booking.book_appointment(db, current_user, appointment)
    background_tasks.add_task(notifications.send_booking_confirmation, db_appointment.id)
    return {
        "message": "Appointment booked successfully",
        "appointment": AppointmentResponse.model_validate(db_appointment),
    }


@router.get("/{appointment_id}")
async def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    appointment = _get_appointment(db, appointment_id)
    _check_can_view(appointment, current_user)
    return {"appointment": AppointmentResponse.model_validate(appointment)}


@router.patch("/{appointment_id}")
async def update_appointment_status(
    appointment_id: int,
    update: AppointmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    appointment = _get_appointment(db, appointment_id)
    appointment = booking.update_status(db, appointment, current_user, update.status, update.notes)
    return {
        "message": "Appointment updated successfully",
        "appointment": AppointmentResponse.model_validate(appointment),
    }


@router.delete("/{appointment_id}")
async def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    appointment = _get_appointment(db, appointment_id)
    if appointment.status in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED):
        booking.release_slot(db, appointment)
    db.delete(appointment)
    db.commit()
    return {"message": "Appointment deleted successfully"}
