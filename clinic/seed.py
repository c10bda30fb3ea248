"""
Schema creation and admin bootstrap.

Run once per deployment, before starting the API:

    python -m clinic.seed
"""

import logging

from sqlalchemy.orm import Session

from clinic import models  # noqa: F401 - registers every table on Base.metadata
from clinic.config import ADMIN_EMAIL, ADMIN_MOBILE, ADMIN_NAME, ADMIN_PASSWORD
from clinic.core.security import get_password_hash
from clinic.database import Base, SessionLocal, engine
from clinic.models.user import User, UserRole

logger = logging.getLogger(__name__)


def create_schema() -> None:
    Base.metadata.create_all(bind=engine)


def seed_admin(db: Session) -> tuple[User, bool]:
    """Create the configured admin unless an admin already exists."""
    admin = db.query(User).filter(User.role == UserRole.ADMIN).first()
    if admin:
        return admin, False

    admin = User(
        name=ADMIN_NAME,
        mobile=ADMIN_MOBILE,
        email=ADMIN_EMAIL,
        address="",
        hashed_password=get_password_hash(ADMIN_PASSWORD),
        role=UserRole.ADMIN,
        verified=True,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    return admin, True


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    create_schema()
    logger.info("Database schema is up to date")

    db = SessionLocal()
    try:
        admin, created = seed_admin(db)
    finally:
        db.close()

    if created:
        logger.info(f"Created admin user {admin.mobile}")
    else:
        logger.info("Admin user already exists, nothing to seed")


if __name__ == "__main__":
    main()
