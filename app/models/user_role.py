from sqlalchemy import Column, String, DateTime, UniqueConstraint
from app.core.database import Base
from datetime import datetime
import uuid

class UserRole(Base):
    """
    One row per (user, role) grant. A user may hold several rows; the
    effective role is resolved by precedence, see app.core.roles.
    """
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, index=True, nullable=False)
    role = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
