from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from clinic.database import Base


class DoctorAvailability(Base):
    __tablename__ = "doctor_availability"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    day = Column(String, nullable=False)  # Monday..Sunday
    slots = Column(JSON, nullable=False, default=list)  # [{"start_time": "9:00 AM", "end_time": "1:00 PM"}]
    is_available = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    doctor = relationship("User", back_populates="availability")

    __table_args__ = (UniqueConstraint("doctor_id", "day", name="uq_doctor_availability_day"),)
