"""
Email Service using SMTP
Sends OTP codes and booking confirmations
"""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from clinic.config import (
    CLINIC_NAME,
    EMAIL_FROM,
    EMAIL_HOST,
    EMAIL_PASSWORD,
    EMAIL_PORT,
    EMAIL_USE_TLS,
    EMAIL_USER,
)

logger = logging.getLogger(__name__)


def smtp_configured() -> bool:
    return bool(EMAIL_HOST and EMAIL_USER)


def send_email(to: str, subject: str, html_content: str) -> bool:
    """Send an HTML email. Returns True once the SMTP server accepted it (or it was logged in dev)."""
    if not smtp_configured():
        logger.info(f"[MOCK EMAIL] to {to}: {subject}")
        return True

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = f"{CLINIC_NAME} <{EMAIL_FROM}>"
    message["To"] = to
    message.attach(MIMEText(html_content, "html"))

    with smtplib.SMTP(EMAIL_HOST, EMAIL_PORT, timeout=15) as server:
        if EMAIL_USE_TLS:
            server.starttls(context=ssl.create_default_context())
        server.login(EMAIL_USER, EMAIL_PASSWORD or "")
        server.sendmail(EMAIL_FROM, [to], message.as_string())

    logger.info(f"Email sent to {to}: {subject}")
    return True


def otp_email(otp: str) -> tuple[str, str]:
    subject = f"{CLINIC_NAME} verification code"
    html = (
        f"<p>Your verification code is <strong>{otp}</strong>.</p>"
        "<p>It expires in 10 minutes. If you did not request it, ignore this email.</p>"
    )
    return subject, html


def booking_confirmation_email(details: dict) -> tuple[str, str]:
    # Names and notes are typed by users
    safe = {key: escape(value) if isinstance(value, str) else value for key, value in details.items()}
    subject = f"Appointment {safe['status']} - {CLINIC_NAME}"
    html = f"""
    <h2>Your appointment is {safe['status']}</h2>
    <table>
      <tr><td>Appointment</td><td>#{safe['appointment_id']}</td></tr>
      <tr><td>Doctor</td><td>Dr. {safe['doctor_name']}</td></tr>
      <tr><td>Service</td><td>{safe['service_name']}</td></tr>
      <tr><td>Date</td><td>{safe['date']}</td></tr>
      <tr><td>Time</td><td>{safe['time']}</td></tr>
      <tr><td>Amount</td><td>Rs.{safe['amount']:.2f}</td></tr>
      <tr><td>Payment</td><td>{safe['payment_method'] or 'not selected'} ({safe['payment_status']})</td></tr>
      <tr><td>Notes</td><td>{safe['notes'] or 'None'}</td></tr>
    </table>
    """
    return subject, html
