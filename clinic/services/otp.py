"""One-time password issue and verification for passwordless login."""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from clinic.config import DEV_OTP_BYPASS_CODE, IS_DEVELOPMENT, OTP_EXPIRE_MINUTES, OTP_LENGTH
from clinic.core.errors import ValidationError
from clinic.models.user import User

logger = logging.getLogger(__name__)


def generate_otp(length: int = OTP_LENGTH) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def issue_otp(db: Session, user: User, now: Optional[datetime] = None) -> str:
    """Store a fresh code on ``user`` and return it. Any previous code stops working."""
    now = now or datetime.now()
    otp = generate_otp()
    user.otp_code = otp
    user.otp_expires_at = now + timedelta(minutes=OTP_EXPIRE_MINUTES)
    db.commit()
    logger.info(f"OTP issued for user {user.id}")
    return otp


def check_otp(user: User, code: str, now: Optional[datetime] = None) -> None:
    """Raise ValidationError unless ``code`` is the user's current, unexpired OTP."""
    now = now or datetime.now()
    if IS_DEVELOPMENT and code == DEV_OTP_BYPASS_CODE:
        logger.warning(f"Development OTP bypass used for user {user.id}")
        return

    if not user.otp_code or not secrets.compare_digest(user.otp_code, code or ""):
        raise ValidationError("Invalid OTP")
    if user.otp_expires_at is None or user.otp_expires_at < now:
        raise ValidationError("OTP expired")
