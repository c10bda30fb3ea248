import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from clinic.config import IS_DEVELOPMENT
from clinic.core.security import create_user_token, get_current_active_user, verify_password
from clinic.database import get_db
from clinic.models.user import User, UserRole
from clinic.services.email import otp_email, send_email
from clinic.services.otp import check_otp, issue_otp
from clinic.services.sms import send_otp_sms, send_otp_whatsapp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])


class UserRegister(BaseModel):
    name: str
    mobile: str
    address: str = ""
    email: Optional[EmailStr] = None
    contact_method: Literal["sms", "email", "whatsapp"] = "sms"


class OTPRequest(BaseModel):
    mobile: Optional[str] = None
    email: Optional[EmailStr] = None
    contact_method: Optional[Literal["sms", "email", "whatsapp"]] = None


class OTPVerify(OTPRequest):
    otp: str


class PasswordLogin(BaseModel):
    mobile: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str
    role: str
    user_id: int


class UserResponse(BaseModel):
    id: int
    name: str
    mobile: str
    email: Optional[str] = None
    address: Optional[str] = None
    role: UserRole
    verified: bool
    specialization: Optional[str] = None

    class Config:
        from_attributes = True


def _find_user(db: Session, request: OTPRequest) -> Optional[User]:
    if request.mobile:
        return db.query(User).filter(User.mobile == request.mobile).first()
    if request.email:
        return db.query(User).filter(User.email == request.email).first()
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Mobile number or email is required"
    )


def _login_channel(request: OTPRequest) -> str:
    if request.contact_method:
        return request.contact_method
    return "sms" if request.mobile else "email"


async def _deliver_otp(db: Session, user: User, channel: str) -> dict:
    if channel == "email" and not user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No email address on record for this account"
        )

    otp = issue_otp(db, user)
    if channel == "email":
        subject, html = otp_email(otp)
        try:
            await run_in_threadpool(send_email, user.email, subject, html)
        except Exception:
            logger.exception(f"Failed to email OTP to user {user.id}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to send OTP email"
            )
    else:
        send_otp = send_otp_whatsapp if channel == "whatsapp" else send_otp_sms
        sent, error = await run_in_threadpool(send_otp, user.mobile, otp)
        if not sent:
            logger.error(f"Failed to send OTP by {channel} to user {user.id}: {error}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to send OTP"
            )

    response = {"message": "OTP sent successfully", "user_id": user.id, "contact_method": channel}
    if IS_DEVELOPMENT:
        response["otp"] = otp
    return response


@router.post("/register")
async def register(user_data: UserRegister, db: Session = Depends(get_db)):
    if user_data.contact_method == "email" and not user_data.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is required when contact method is email"
        )

    user = db.query(User).filter(User.mobile == user_data.mobile).first()
    if user and user.verified:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Mobile number already registered"
        )

    if user_data.email:
        email_owner = db.query(User).filter(User.email == user_data.email).first()
        if email_owner and (user is None or email_owner.id != user.id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

    if user is None:
        user = User(mobile=user_data.mobile, role=UserRole.PATIENT)
        db.add(user)
    user.name = user_data.name
    user.address = user_data.address
    user.email = user_data.email
    db.commit()
    db.refresh(user)

    return await _deliver_otp(db, user, user_data.contact_method)


@router.post("/login")
async def login(request: OTPRequest, db: Session = Depends(get_db)):
    user = _find_user(db, request)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")

    return await _deliver_otp(db, user, _login_channel(request))


@router.post("/resend-otp")
async def resend_otp(request: OTPRequest, db: Session = Depends(get_db)):
    return await login(request, db)


@router.post("/verify", response_model=Token)
async def verify(request: OTPVerify, db: Session = Depends(get_db)):
    user = _find_user(db, request)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    check_otp(user, request.otp)

    user.otp_code = None
    user.otp_expires_at = None
    user.verified = True
    db.commit()

    return {
        "access_token": create_user_token(user),
        "token_type": "bearer",
        "role": user.role.value,
        "user_id": user.id,
    }


@router.post("/password-login", response_model=Token)
async def password_login(credentials: PasswordLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.mobile == credentials.mobile).first()
    if not user or not verify_password(credentials.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect mobile number or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")

    return {
        "access_token": create_user_token(user),
        "token_type": "bearer",
        "role": user.role.value,
        "user_id": user.id,
    }


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_active_user)):
    return current_user
