from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime

class PolicyDocumentCreate(BaseModel):
    title: str
    description: Optional[str] = None
    role_assignment: Optional[str] = None

class PolicyDocumentUpdate(BaseModel):
    title: str
    description: Optional[str] = None

class RoleAssignmentUpdate(BaseModel):
    role_assignment: str

class BulkRoleAssignmentRequest(BaseModel):
    document_ids: List[str]
    role_assignment: str

class BulkRoleAssignmentResult(BaseModel):
    success: bool
    success_count: int
    failed_count: int
    error: Optional[str] = None

class PolicyDocumentResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    user_id: str
    role_assignment: Optional[str] = None
    generation_status: Optional[str] = None
    example_questions: Optional[List[str]] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AccessCheckResponse(BaseModel):
    document_id: str
    allowed: bool
    chat_enabled: bool
    message: Optional[str] = None

class SourcesCountResponse(BaseModel):
    count: int
    description: str
