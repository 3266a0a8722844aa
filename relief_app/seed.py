import logging
import os

from sqlalchemy.orm import Session

from relief_app.core.config import get_settings
from relief_app.core.logging import configure_logging
from relief_app.db.session import SessionLocal
from relief_app.models.enums import CreationMethod, UserRole
from relief_app.services.user_service import UserService

logger = logging.getLogger(__name__)

# email, role, first, last; passwords come from SEED_PASSWORD
SEED_ACCOUNTS = [
    ("admin@southlebanonaid.org", UserRole.ADMIN, "System", "Admin"),
    ("checker@southlebanonaid.org", UserRole.CHECKER, "Field", "Checker"),
]


def seed():
    password = os.getenv("SEED_PASSWORD")
    if not password:
        raise RuntimeError("SEED_PASSWORD environment variable not set")

    svc = UserService()
    db: Session = SessionLocal()
    try:
        for email, role, first, last in SEED_ACCOUNTS:
            if svc.get_by_email(db, email):
                logger.info("seed account exists", extra={"email": email})
                continue
            svc.create_user(
                db,
                email=email,
                password=password,
                first_name=first,
                last_name=last,
                role=role,
                creation_method=CreationMethod.system_created,
            )
            logger.info("seed account created", extra={"email": email, "role": role.value})
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging(get_settings())
    seed()
