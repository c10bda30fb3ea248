"""
Appointment booking procedure.

Validation, existence checks, slot matching and conflict checks run before
anything is written. The appointment commit is the point of success: the
partial unique indexes on ``appointments`` make the double-booking check
atomic. Slot bookkeeping after the commit is best effort, and the booking
confirmation is sent by the router as a background task.
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic.core.errors import BookingConflict, Forbidden, NotFound, SlotUnavailable, ValidationError
from clinic.core.timeparse import InvalidTimeError, SlotTime, day_name, parse_time
from clinic.models.appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    BookedBy,
    PaymentMethod,
    PaymentStatus,
)
from clinic.models.doctor_slot import DoctorSlot
from clinic.models.service import Service
from clinic.models.user import User, UserRole
from clinic.services.payments import derive_payment_status, order_matches_amount, verify_payment_signature
from clinic.services.slot_matcher import find_bookable_slot, find_date_override

logger = logging.getLogger(__name__)

# Allowed status changes; setting the current status again is always allowed
STATUS_TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}


def _resolve_patient(db: Session, current_user: User, patient_id: Optional[int]) -> User:
    if current_user.role == UserRole.PATIENT:
        return current_user

    if not patient_id:
        raise ValidationError("patient_id is required when booking on behalf of a patient")
    patient = db.query(User).filter(User.id == patient_id, User.role == UserRole.PATIENT).first()
    if not patient:
        raise NotFound("Patient not found")
    return patient


def _check_payment_fields(request, payment_method: PaymentMethod, booked_by: BookedBy) -> None:
    if payment_method != PaymentMethod.ONLINE:
        return

    fields = (request.payment_id, request.razorpay_order_id, request.razorpay_signature)
    if booked_by != BookedBy.PATIENT and not any(fields):
        # Staff may record an online booking whose payment is collected later
        return
    if not all(fields):
        raise ValidationError("Online payment requires payment_id, razorpay_order_id and razorpay_signature")
    if not verify_payment_signature(request.razorpay_order_id, request.payment_id, request.razorpay_signature):
        raise ValidationError("Invalid payment signature")


def check_payment_claim(
    db: Session, payment_id: str, order_id: str, amount: float, appointment_id: Optional[int] = None
) -> None:
    """
    Refuse a Razorpay payment that is already recorded on another appointment,
    or whose order was not created for ``amount``.
    """
    query = db.query(Appointment).filter(Appointment.payment_id == payment_id)
    if appointment_id is not None:
        query = query.filter(Appointment.id != appointment_id)
    if query.first():
        logger.warning(f"Payment {payment_id} has already been used")
        raise ValidationError("This payment has already been used")
    if not order_matches_amount(order_id, amount):
        logger.warning(f"Order {order_id} amount does not match {amount}")
        raise ValidationError("Payment amount does not match the appointment amount")


def find_conflicting_appointment(
    db: Session, on_date: date, slot_time: str, doctor_id: Optional[int] = None, patient_id: Optional[int] = None
) -> Optional[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.date == on_date,
        Appointment.slot_time == slot_time,
        Appointment.status.in_(ACTIVE_STATUSES),
    )
    if doctor_id is not None:
        query = query.filter(Appointment.doctor_id == doctor_id)
    if patient_id is not None:
        query = query.filter(Appointment.patient_id == patient_id)
    return query.first()


def consume_slot(db: Session, slot: DoctorSlot, on_date: date, patient_id: int) -> DoctorSlot:
    """
    Mark ``slot`` as taken for ``on_date``.

    A date-specific row is closed in place. A weekly template is left alone
    and a date-specific row for ``on_date`` is created (or updated) instead,
    so the template stays bookable on every other date.
    """
    now = datetime.now()
    if not slot.is_recurring:
        slot.is_available = False
        slot.booked_by = patient_id
        slot.booking_time = now
        db.commit()
        return slot

    override = find_date_override(db, slot.doctor_id, on_date, slot.start_time)
    if override is None:
        override = DoctorSlot(
            doctor_id=slot.doctor_id,
            day=day_name(on_date),
            date=on_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            duration=slot.duration,
            is_admin_only=slot.is_admin_only,
        )
        db.add(override)
    override.is_available = False
    override.booked_by = patient_id
    override.booking_time = now
    db.commit()
    logger.info(f"Materialized slot override {slot.start_time} on {on_date} for doctor {slot.doctor_id}")
    return override


def release_slot(db: Session, appointment: Appointment) -> Optional[DoctorSlot]:
    """Reopen the slot override consumed by ``appointment``. Best effort."""
    try:
        override = find_date_override(db, appointment.doctor_id, appointment.date, appointment.slot_time)
        if override is None or override.booked_by != appointment.patient_id:
            return None
        override.is_available = True
        override.booked_by = None
        override.booking_time = None
        db.commit()
        logger.info(f"Released slot {override.start_time} on {override.date} for doctor {override.doctor_id}")
        return override
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to release slot for appointment {appointment.id}")
        return None


def book_appointment(db: Session, current_user: User, request) -> Appointment:
    if not request.doctor_id or not request.service_id or not request.date or not request.time:
        raise ValidationError("Doctor, service, date and time are required")

    booked_by = BookedBy(current_user.role.value)
    payment_method = request.payment_method if request.payment_method is not None else PaymentMethod.CASH
    _check_payment_fields(request, payment_method, booked_by)

    doctor = db.query(User).filter(
        User.id == request.doctor_id,
        User.role == UserRole.DOCTOR,
        User.is_active.is_(True)
    ).first()
    if not doctor:
        raise NotFound("Doctor not found")

    service = db.query(Service).filter(Service.id == request.service_id).first()
    if not service:
        raise NotFound("Service not found")
    if not service.is_active:
        raise ValidationError("Service is not currently offered")

    # Patients always pay the catalog price
    if booked_by == BookedBy.PATIENT or request.payment_amount is None:
        amount = service.price
    else:
        amount = request.payment_amount
    if payment_method == PaymentMethod.ONLINE and request.payment_id:
        check_payment_claim(db, request.payment_id, request.razorpay_order_id, amount)

    patient = _resolve_patient(db, current_user, request.patient_id)

    try:
        slot_time: SlotTime = parse_time(request.time)
    except InvalidTimeError as e:
        raise ValidationError(str(e)) from e
    start_time = slot_time.to_24h()

    slot = find_bookable_slot(
        db, doctor.id, request.date, slot_time, include_admin_only=booked_by != BookedBy.PATIENT
    )
    if slot is None:
        raise SlotUnavailable("Selected time is not a valid slot for this doctor")

    if find_conflicting_appointment(db, request.date, start_time, doctor_id=doctor.id):
        raise BookingConflict("This time slot is already booked")
    if find_conflicting_appointment(db, request.date, start_time, patient_id=patient.id):
        raise BookingConflict("You already have an appointment at this time")

    payment_status = derive_payment_status(payment_method, request.payment_id)
    appointment = Appointment(
        patient_id=patient.id,
        doctor_id=doctor.id,
        service_id=service.id,
        date=request.date,
        time=slot_time.to_12h(),
        slot_time=start_time,
        notes=request.notes or "",
        payment_method=payment_method,
        payment_amount=amount,
        payment_status=payment_status,
        payment_date=datetime.now() if payment_status == PaymentStatus.COMPLETED else None,
        payment_id=request.payment_id,
        razorpay_order_id=request.razorpay_order_id,
        booked_by=booked_by,
        status=AppointmentStatus.CONFIRMED if booked_by == BookedBy.ADMIN else AppointmentStatus.PENDING,
    )
    db.add(appointment)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if "payment_id" in str(e.orig):
            raise ValidationError("This payment has already been used") from e
        logger.warning(f"Concurrent booking rejected for doctor {doctor.id} on {request.date} at {start_time}")
        raise BookingConflict("This time slot is already booked") from e
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} booked for patient {patient.id} with doctor {doctor.id}")

    try:
        consume_slot(db, slot, request.date, patient.id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to mark slot {slot.id} as booked for appointment {appointment.id}")

    return appointment


def update_status(
    db: Session, appointment: Appointment, current_user: User, new_status: AppointmentStatus, notes: Optional[str]
) -> Appointment:
    if current_user.role == UserRole.PATIENT:
        if appointment.patient_id != current_user.id:
            raise Forbidden("You do not have permission to update this appointment")
        if new_status != AppointmentStatus.CANCELLED:
            raise Forbidden("Patients can only cancel appointments")
    elif current_user.role == UserRole.DOCTOR and appointment.doctor_id != current_user.id:
        raise Forbidden("You do not have permission to update this appointment")

    previous = appointment.status
    if new_status != previous and new_status not in STATUS_TRANSITIONS[previous]:
        raise ValidationError(f"Cannot change appointment status from {previous.value} to {new_status.value}")

    appointment.status = new_status
    if notes is not None:
        appointment.notes = notes
    db.commit()
    db.refresh(appointment)

    if new_status == AppointmentStatus.CANCELLED and previous != AppointmentStatus.CANCELLED:
        release_slot(db, appointment)
    return appointment
