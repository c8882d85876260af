from sqlalchemy import Column, String, Text, Integer, ForeignKey, DateTime, JSON
from sqlalchemy.orm import relationship
from app.core.database import Base
import enum
from datetime import datetime
import uuid

class SourceType(str, enum.Enum):
    PDF = "pdf"
    TEXT = "text"
    WEBSITE = "website"
    YOUTUBE = "youtube"
    AUDIO = "audio"

class ProcessingStatus(str, enum.Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

class VisibilityScope(str, enum.Enum):
    GLOBAL = "global"

class Source(Base):
    __tablename__ = "sources"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    notebook_id = Column(String, ForeignKey("policy_documents.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(Text, nullable=False)
    display_name = Column(Text, nullable=True)
    type = Column(String, nullable=False)

    content = Column(Text, nullable=True)
    url = Column(Text, nullable=True)
    file_path = Column(Text, nullable=True)
    file_size = Column(Integer, nullable=True)
    summary = Column(Text, nullable=True)

    processing_status = Column(String, default=ProcessingStatus.PENDING.value)
    # "metadata" is reserved on declarative classes
    source_metadata = Column("metadata", JSON, default=dict)

    visibility_scope = Column(String, default=VisibilityScope.GLOBAL.value, index=True)
    target_role = Column(String, nullable=True)
    uploaded_by_user_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    document = relationship("PolicyDocument", back_populates="sources")
