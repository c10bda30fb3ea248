from sqlalchemy import Boolean, Column, Date, DateTime, Enum, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship
import enum
from clinic.database import Base
from sqlalchemy.sql import func


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    ONLINE = "online"
    INSURANCE = "insurance"
    NONE = ""


class BookedBy(str, enum.Enum):
    PATIENT = "patient"
    ADMIN = "admin"
    DOCTOR = "doctor"


# Statuses that hold a doctor's and a patient's time
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)
_ACTIVE_WHERE = text("status IN ('pending', 'confirmed')")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String, nullable=False)  # display value, e.g. "10:30 AM"
    slot_time = Column(String, nullable=False)  # same instant as HH:MM
    status = Column(
        Enum(AppointmentStatus, values_callable=_enum_values, name="appointment_status"),
        default=AppointmentStatus.PENDING,
        nullable=False,
    )
    payment_status = Column(
        Enum(PaymentStatus, values_callable=_enum_values, name="payment_status"),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    payment_method = Column(
        Enum(PaymentMethod, values_callable=_enum_values, name="payment_method"),
        default=PaymentMethod.NONE,
        nullable=False,
    )
    payment_amount = Column(Float, default=0)
    payment_date = Column(DateTime, nullable=True)
    payment_id = Column(String, nullable=True, unique=True, index=True)
    razorpay_order_id = Column(String, nullable=True)
    booked_by = Column(
        Enum(BookedBy, values_callable=_enum_values, name="booked_by"),
        default=BookedBy.PATIENT,
        nullable=False,
    )
    notes = Column(Text, default="")
    reminder_sent = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    doctor = relationship("User", foreign_keys=[doctor_id], back_populates="doctor_appointments")
    patient = relationship("User", foreign_keys=[patient_id], back_populates="patient_appointments")
    service = relationship("Service")
    notifications = relationship("Notification", back_populates="appointment")

    __table_args__ = (
        Index(
            "uq_appointments_doctor_active",
            "doctor_id",
            "date",
            "slot_time",
            unique=True,
            sqlite_where=_ACTIVE_WHERE,
            postgresql_where=_ACTIVE_WHERE,
        ),
        Index(
            "uq_appointments_patient_active",
            "patient_id",
            "date",
            "slot_time",
            unique=True,
            sqlite_where=_ACTIVE_WHERE,
            postgresql_where=_ACTIVE_WHERE,
        ),
    )
