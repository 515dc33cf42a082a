import logging

from sqlalchemy.orm import Session

from . import models
from .auth import get_password_hash
from .config import settings
from .database import SessionLocal

logger = logging.getLogger(__name__)


def seed_admin(db: Session) -> models.User:
    """Make sure the configured admin account exists. Safe to run on every start."""
    admin = db.query(models.User).filter(models.User.email == settings.ADMIN_EMAIL).first()
    if admin:
        logger.info("Seed: admin %s already exists", settings.ADMIN_EMAIL)
        return admin

    admin = models.User(
        username=settings.ADMIN_USERNAME,
        email=settings.ADMIN_EMAIL,
        password_hash=get_password_hash(settings.ADMIN_PASSWORD),
        first_name="Admin",
        last_name="User",
        role=models.UserRole.admin,
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)
    logger.info("Seed: admin %s created", settings.ADMIN_EMAIL)
    return admin


def seed_data() -> None:
    db = SessionLocal()
    try:
        seed_admin(db)
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    seed_data()
