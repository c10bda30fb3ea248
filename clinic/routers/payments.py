import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic.config import PAYMENT_CURRENCY, RAZORPAY_KEY_ID
from clinic.core.errors import Forbidden, NotFound, ValidationError
from clinic.core.security import get_current_active_user
from clinic.database import get_db
from clinic.models.appointment import Appointment, AppointmentStatus, PaymentMethod, PaymentStatus
from clinic.models.user import User, UserRole
from clinic.services import notifications
from clinic.services.booking import check_payment_claim
from clinic.services.payments import PaymentGatewayError, create_order, verify_payment_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


class OrderCreate(BaseModel):
    amount: Optional[float] = None
    appointment_data: Optional[dict] = None


class PaymentVerify(BaseModel):
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    appointment_id: Optional[int] = None


@router.post("/razorpay/create-order")
async def create_razorpay_order(
    order_data: OrderCreate,
    current_user: User = Depends(get_current_active_user)
):
    if not order_data.amount or order_data.amount <= 0:
        raise ValidationError("Amount is required")

    notes = {"user_id": str(current_user.id)}
    for key, value in (order_data.appointment_data or {}).items():
        notes[key] = str(value)

    try:
        order = create_order(order_data.amount, notes)
    except PaymentGatewayError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to create order: {e}")

    return {
        "order_id": order["id"],
        "amount": order["amount"],
        "currency": order.get("currency", PAYMENT_CURRENCY),
        "key_id": RAZORPAY_KEY_ID,
    }


@router.post("/razorpay/verify")
async def verify_razorpay_payment(
    payment: PaymentVerify,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    if not (payment.razorpay_payment_id and payment.razorpay_order_id and payment.razorpay_signature):
        raise ValidationError("Missing payment verification fields")

    if not verify_payment_signature(
        payment.razorpay_order_id, payment.razorpay_payment_id, payment.razorpay_signature
    ):
        logger.warning(f"Payment signature mismatch for order {payment.razorpay_order_id}")
        raise ValidationError("Invalid payment signature")

    if payment.appointment_id is None:
        return {"message": "Payment verified", "verified": True}

    appointment = db.query(Appointment).filter(Appointment.id == payment.appointment_id).first()
    if not appointment:
        raise NotFound("Appointment not found")
    if current_user.role == UserRole.PATIENT and appointment.patient_id != current_user.id:
        raise Forbidden("Not authorized to pay for this appointment")
    if appointment.status == AppointmentStatus.CANCELLED:
        raise ValidationError("Cannot pay for a cancelled appointment")
    if appointment.payment_status == PaymentStatus.COMPLETED:
        raise ValidationError("Appointment is already paid")
    check_payment_claim(
        db, payment.razorpay_payment_id, payment.razorpay_order_id, appointment.payment_amount, appointment.id
    )

    appointment.payment_status = PaymentStatus.COMPLETED
    appointment.payment_method = PaymentMethod.ONLINE
    appointment.payment_date = datetime.now()
    appointment.payment_id = payment.razorpay_payment_id
    appointment.razorpay_order_id = payment.razorpay_order_id
    if appointment.status == AppointmentStatus.PENDING:
        appointment.status = AppointmentStatus.CONFIRMED
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationError("This payment has already been used") from e
    db.refresh(appointment)
    logger.info(f"Payment {payment.razorpay_payment_id} recorded for appointment {appointment.id}")

    background_tasks.add_task(notifications.send_booking_confirmation, appointment.id, "payment")

    return {"message": "Payment verified", "verified": True, "appointment_id": appointment.id}
