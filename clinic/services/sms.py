"""
Twilio Messaging Service
Sends OTP codes, booking confirmations and reminders by SMS or WhatsApp
"""

import logging
from typing import Optional

import httpx

from clinic.config import (
    CLINIC_NAME,
    OTP_EXPIRE_MINUTES,
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_PHONE_NUMBER,
    TWILIO_WHATSAPP_NUMBER,
)

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


def twilio_configured() -> bool:
    return bool(
        TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER and TWILIO_ACCOUNT_SID.startswith("AC")
    )


def normalize_phone(mobile: str) -> str:
    """Return ``mobile`` in E.164 form, assuming Indian numbers for bare 10 digit input."""
    digits = "".join(ch for ch in mobile if ch.isdigit())
    if mobile.strip().startswith("+"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+91{digits}"
    return f"+{digits}"


def _error_message(response: httpx.Response) -> tuple[Optional[int], str]:
    try:
        error_data = response.json()
    except ValueError:
        return None, f"HTTP {response.status_code}: {response.text[:200]}"
    return error_data.get("code"), error_data.get("message", "Unknown error")


def _send_message(to: str, sender: str, message_body: str, channel: str) -> tuple[bool, Optional[str]]:
    data = {"To": to, "From": sender, "Body": message_body}
    try:
        with httpx.Client(timeout=10.0) as client:
            response = client.post(
                TWILIO_API_URL.format(account_sid=TWILIO_ACCOUNT_SID),
                auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
                data=data,
            )
    except httpx.HTTPError as e:
        logger.error(f"Twilio API error: {e}")
        return False, str(e)

    if response.status_code in (200, 201):
        try:
            sid = response.json().get("sid")
        except ValueError:
            sid = None
        logger.info(f"{channel} sent to {to} (SID: {sid})")
        return True, None

    code, error_message = _error_message(response)
    logger.error(f"Twilio API error [{code}]: {error_message}")
    return False, error_message


def send_sms(to_phone: str, message_body: str) -> tuple[bool, Optional[str]]:
    """
    Send an SMS via the Twilio REST API.

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not to_phone:
        return False, "No phone number provided"

    if not twilio_configured():
        logger.info(f"[MOCK SMS] to {to_phone}: {message_body}")
        return True, None

    return _send_message(normalize_phone(to_phone), TWILIO_PHONE_NUMBER, message_body, "SMS")


def send_whatsapp(to_phone: str, message_body: str) -> tuple[bool, Optional[str]]:
    """Send a WhatsApp message through Twilio's WhatsApp sender. Same return shape as ``send_sms``."""
    if not to_phone:
        return False, "No phone number provided"

    if not twilio_configured():
        logger.info(f"[MOCK WHATSAPP] to {to_phone}: {message_body}")
        return True, None

    return _send_message(
        f"whatsapp:{normalize_phone(to_phone)}",
        f"whatsapp:{normalize_phone(TWILIO_WHATSAPP_NUMBER)}",
        message_body,
        "WhatsApp message",
    )


def otp_text(otp: str) -> str:
    return f"Your {CLINIC_NAME} verification code is: {otp}. It expires in {OTP_EXPIRE_MINUTES} minutes."


def send_otp_sms(mobile: str, otp: str) -> tuple[bool, Optional[str]]:
    return send_sms(mobile, otp_text(otp))


def send_otp_whatsapp(mobile: str, otp: str) -> tuple[bool, Optional[str]]:
    return send_whatsapp(mobile, otp_text(otp))


def booking_confirmation_text(details: dict) -> str:
    return (
        f"Dear {details['patient_name']}, your appointment with Dr. {details['doctor_name']} "
        f"for {details['service_name']} on {details['date']} at {details['time']} is {details['status']}. "
        f"Amount: Rs.{details['amount']:.2f}. - {CLINIC_NAME}"
    )


def reminder_text(details: dict) -> str:
    return (
        f"Reminder: your appointment with Dr. {details['doctor_name']} is on "
        f"{details['date']} at {details['time']}. - {CLINIC_NAME}"
    )
