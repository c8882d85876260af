from sqlalchemy import Column, String, DateTime
from app.core.database import Base
from datetime import datetime

class Profile(Base):
    """Mirror of the hosted auth user, keyed by the auth user id."""
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, index=True, nullable=True)
    full_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
