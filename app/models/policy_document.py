from sqlalchemy import Column, String, Text, DateTime, JSON
from sqlalchemy.orm import relationship
from app.core.database import Base
import enum
from datetime import datetime
import uuid

class GenerationStatus(str, enum.Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

class PolicyDocument(Base):
    __tablename__ = "policy_documents"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    user_id = Column(String, index=True, nullable=False)

    # administrator | executive; NULL means only the board role can use it
    role_assignment = Column(String, nullable=True, index=True)

    generation_status = Column(String, default=GenerationStatus.PENDING.value)
    example_questions = Column(JSON, default=list)
    icon = Column(String, nullable=True)
    color = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sources = relationship(
        "Source",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="Source.created_at",
    )
