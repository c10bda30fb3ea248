from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from clinic.database import Base

SLOT_DURATIONS = (15, 30, 45, 60)


class DoctorSlot(Base):
    """
    A bookable slot. Rows with ``date`` null are weekly templates for ``day``;
    rows with a ``date`` override the template for that calendar date only.
    """

    __tablename__ = "doctor_slots"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day = Column(String, nullable=False)  # Monday..Sunday
    date = Column(Date, nullable=True)
    start_time = Column(String, nullable=False)  # HH:MM, 24-hour
    end_time = Column(String, nullable=False)  # HH:MM, 24-hour
    duration = Column(Integer, default=15)
    is_available = Column(Boolean, default=True)
    is_admin_only = Column(Boolean, default=False)
    booked_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    booking_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    doctor = relationship("User", foreign_keys=[doctor_id], back_populates="slots")

    __table_args__ = (
        Index(
            "uq_doctor_slots_template",
            "doctor_id",
            "day",
            "start_time",
            unique=True,
            sqlite_where=text("date IS NULL"),
            postgresql_where=text("date IS NULL"),
        ),
        Index(
            "uq_doctor_slots_dated",
            "doctor_id",
            "date",
            "start_time",
            unique=True,
            sqlite_where=text("date IS NOT NULL"),
            postgresql_where=text("date IS NOT NULL"),
        ),
    )

    @property
    def is_recurring(self) -> bool:
        return self.date is None
