import os

# Settings are read at import time, so the environment must be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_secret"
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["EMAIL_HOST"] = ""

from datetime import date  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from clinic.core.security import create_user_token, get_password_hash  # noqa: E402
from clinic.database import Base, SessionLocal, engine  # noqa: E402
from clinic.main import app  # noqa: E402
from clinic.models.doctor_slot import DoctorSlot  # noqa: E402
from clinic.models.service import Service  # noqa: E402
from clinic.models.user import User, UserRole  # noqa: E402

# 2024-06-03 is a Monday
MONDAY = date(2024, 6, 3)
NEXT_MONDAY = date(2024, 6, 10)


@pytest.fixture()
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db(schema):
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client(schema):
    return TestClient(app)


def make_user(db, role=UserRole.PATIENT, name="Test User", mobile="9000000001", email=None, password=None, **extra):
    user = User(
        name=name,
        mobile=mobile,
        email=email,
        address="12 Park Street",
        role=role,
        verified=True,
        hashed_password=get_password_hash(password) if password else None,
        **extra,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_slot(db, doctor, day="Monday", start_time="09:00", end_time="09:15", on_date=None, **extra):
    slot = DoctorSlot(
        doctor_id=doctor.id,
        day=day,
        date=on_date,
        start_time=start_time,
        end_time=end_time,
        duration=15,
        **extra,
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


def auth_headers(user):
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture()
def patient(db):
    return make_user(db, UserRole.PATIENT, name="Asha Patel", mobile="9000000001")


@pytest.fixture()
def other_patient(db):
    return make_user(db, UserRole.PATIENT, name="Ravi Kumar", mobile="9000000002")


@pytest.fixture()
def doctor(db):
    return make_user(db, UserRole.DOCTOR, name="Meera Iyer", mobile="9000000010", specialization="Dentist")


@pytest.fixture()
def admin(db):
    return make_user(db, UserRole.ADMIN, name="Front Desk", mobile="9000000099", password="admin-pass")


@pytest.fixture()
def service(db):
    service = Service(
        name="Consultation",
        description="General consultation",
        duration=15,
        price=500.0,
        category="General",
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture()
def monday_slot(db, doctor):
    return make_slot(db, doctor)


def booking_payload(doctor, service, on_date=MONDAY, time="9:00 AM", **extra):
    payload = {
        "doctor_id": doctor.id,
        "service_id": service.id,
        "date": on_date.isoformat(),
        "time": time,
    }
    payload.update(extra)
    return payload
