"""
Notification dispatch for appointment events.

Delivery is best effort: every channel failure is logged and swallowed so a
booking or payment that already succeeded is never reported as failed.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from clinic.database import SessionLocal
from clinic.models.appointment import Appointment
from clinic.models.notification import Notification
from clinic.services.email import booking_confirmation_email, send_email
from clinic.services.sms import booking_confirmation_text, reminder_text, send_sms

logger = logging.getLogger(__name__)


def appointment_details(appointment: Appointment) -> dict:
    return {
        "appointment_id": appointment.id,
        "patient_name": appointment.patient.name,
        "doctor_name": appointment.doctor.name,
        "service_name": appointment.service.name,
        "date": appointment.date.strftime("%d %b %Y"),
        "time": appointment.time,
        "amount": appointment.payment_amount or 0,
        "status": appointment.status.value,
        "payment_method": appointment.payment_method.value,
        "payment_status": appointment.payment_status.value,
        "notes": appointment.notes,
    }


def create_appointment_notification(db: Session, appointment: Appointment, notification_type: str) -> Notification:
    details = appointment_details(appointment)
    if notification_type == "reminder":
        title = "Appointment Reminder"
        message = f"Your appointment with Dr. {details['doctor_name']} is scheduled for {details['date']} at {details['time']}"
    elif notification_type == "payment":
        title = "Payment Received"
        message = f"Payment for your appointment with Dr. {details['doctor_name']} on {details['date']} was received"
    else:
        title = "Appointment Booked"
        message = (
            f"Your appointment with Dr. {details['doctor_name']} on {details['date']} at {details['time']} "
            f"is {details['status']}"
        )

    notification = Notification(
        user_id=appointment.patient_id,
        title=title,
        message=message,
        type=notification_type,
        appointment_id=appointment.id,
    )
    db.add(notification)
    db.commit()
    return notification


async def dispatch_booking_confirmation(db: Session, appointment: Appointment, notification_type: str = "booking"):
    """In-app notification, then SMS, then email when the patient has one."""
    try:
        create_appointment_notification(db, appointment, notification_type)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to store in-app notification for appointment {appointment.id}")

    try:
        details = appointment_details(appointment)
    except Exception:
        logger.exception(f"Could not build notification details for appointment {appointment.id}")
        return

    patient = appointment.patient
    try:
        sent, error = await run_in_threadpool(send_sms, patient.mobile, booking_confirmation_text(details))
        if not sent:
            logger.warning(f"Booking SMS for appointment {appointment.id} not sent: {error}")
    except Exception:
        logger.exception(f"Error sending booking SMS for appointment {appointment.id}")

    if patient.email:
        try:
            subject, html = booking_confirmation_email(details)
            await run_in_threadpool(send_email, patient.email, subject, html)
        except Exception:
            logger.exception(f"Error sending booking email for appointment {appointment.id}")


async def send_booking_confirmation(appointment_id: int, notification_type: str = "booking") -> None:
    """Background task run after the response is sent; it opens its own session."""
    db = SessionLocal()
    try:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if appointment is None:
            logger.warning(f"Appointment {appointment_id} vanished before its confirmation was sent")
            return
        await dispatch_booking_confirmation(db, appointment, notification_type)
    finally:
        db.close()


def send_reminder(db: Session, appointment: Appointment) -> None:
    """Synchronous reminder used by the background scheduler."""
    try:
        create_appointment_notification(db, appointment, "reminder")
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to store reminder for appointment {appointment.id}")

    try:
        send_sms(appointment.patient.mobile, reminder_text(appointment_details(appointment)))
    except Exception:
        logger.exception(f"Error sending reminder SMS for appointment {appointment.id}")
