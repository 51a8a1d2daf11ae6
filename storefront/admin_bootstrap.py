import os
import logging
from sqlalchemy.orm import Session

from storefront.models import User
from storefront.security import hash_password

logger = logging.getLogger(__name__)


def ensure_admin_exists(db: Session) -> None:
    """
    Ensures the admin account from ADMIN_EMAIL / ADMIN_PASSWORD exists.
    Runs on every startup; an existing user with that email is promoted.
    """

    admin_email = os.getenv("ADMIN_EMAIL")
    admin_password = os.getenv("ADMIN_PASSWORD")

    if not admin_email or not admin_password:
        logger.warning("ADMIN_EMAIL or ADMIN_PASSWORD not set | admin bootstrap skipped")
        return

    admin = db.query(User).filter(User.email == admin_email).first()

    if admin:
        if not admin.is_admin:
            admin.role = "admin"
            db.commit()
            logger.warning("Existing user upgraded to admin | user_id=%s", admin.id)
        return

    admin = User(
        name=os.getenv("ADMIN_NAME", "Administrator"),
        email=admin_email,
        password_hash=hash_password(admin_password),
        role="admin",
        is_active=True,
    )

    db.add(admin)
    db.commit()

    logger.info("Admin user created from environment | user_id=%s", admin.id)
