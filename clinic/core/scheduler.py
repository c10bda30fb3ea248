import logging
from datetime import date, timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from clinic.config import REMINDER_INTERVAL_MINUTES
from clinic.database import SessionLocal
from clinic.models.appointment import ACTIVE_STATUSES, Appointment
from clinic.services.notifications import send_reminder

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def send_appointment_reminders(db: Optional[Session] = None, today: Optional[date] = None) -> int:
    """Remind patients of tomorrow's open appointments. Returns how many were reminded."""
    own_session = db is None
    db = db or SessionLocal()
    tomorrow = (today or date.today()) + timedelta(days=1)
    try:
        appointments = db.query(Appointment).filter(
            Appointment.date == tomorrow,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.reminder_sent.is_(False)
        ).all()

        for appointment in appointments:
            send_reminder(db, appointment)
            appointment.reminder_sent = True
            db.commit()

        if appointments:
            logger.info(f"Sent {len(appointments)} reminder(s) for {tomorrow.isoformat()}")
        return len(appointments)
    finally:
        if own_session:
            db.close()


def start_scheduler():
    # Check for tomorrow's appointments on a fixed interval
    scheduler.add_job(
        send_appointment_reminders,
        trigger=IntervalTrigger(minutes=REMINDER_INTERVAL_MINUTES),
        id="send_appointment_reminders",
        replace_existing=True
    )
    scheduler.start()
    logger.info("Reminder scheduler started")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Reminder scheduler stopped")
