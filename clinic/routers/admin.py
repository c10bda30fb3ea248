from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from clinic.core.security import require_roles
from clinic.database import get_db
from clinic.models.appointment import Appointment, AppointmentStatus
from clinic.models.service import Service
from clinic.models.user import User, UserRole

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/stats")
async def get_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    return {
        "stats": {
            "doctors": db.query(User).filter(User.role == UserRole.DOCTOR).count(),
            "patients": db.query(User).filter(User.role == UserRole.PATIENT).count(),
            "appointments": db.query(Appointment).count(),
            "pending_appointments": db.query(Appointment)
            .filter(Appointment.status == AppointmentStatus.PENDING)
            .count(),
            "services": db.query(Service).count(),
            "active_services": db.query(Service).filter(Service.is_active.is_(True)).count(),
            "today_appointments": db.query(Appointment).filter(Appointment.date == date.today()).count(),
        }
    }
