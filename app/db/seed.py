"""
Bootstrap the first board member.

Role assignment is restricted to board members, so a fresh deployment needs
one board role row written directly:

    python -m app.db.seed <user-id> [email]
"""
import logging
import sys

from sqlalchemy.orm import Session

from app.core.database import SessionLocal, engine, Base
from app.core.observability import configure_logging
from app.core.roles import TOP_ROLE
from app.models.profile import Profile
from app.models.user_role import UserRole

logger = logging.getLogger(__name__)


def seed_board_member(db: Session, user_id: str, email: str = None) -> bool:
    """Ensure `user_id` has a profile and the board role. Returns True if a role row was added."""
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        db.add(Profile(id=user_id, email=email))
        logger.info(f"Created profile for {user_id}")

    existing = db.query(UserRole).filter(
        UserRole.user_id == user_id,
        UserRole.role == TOP_ROLE.value
    ).first()
    if existing:
        db.commit()
        logger.info(f"User {user_id} already has {TOP_ROLE.value} role")
        return False

    db.add(UserRole(user_id=user_id, role=TOP_ROLE.value))
    db.commit()
    logger.info(f"Assigned {TOP_ROLE.value} role to {user_id}")
    return True


def seed_db(user_id: str, email: str = None):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_board_member(db, user_id, email)
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging()
    if len(sys.argv) < 2:
        sys.exit("usage: python -m app.db.seed <user-id> [email]")
    seed_db(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None)
