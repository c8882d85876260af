from typing import Optional
from pydantic import BaseModel
from datetime import datetime

class RoleAssignmentRequest(BaseModel):
    # Kept optional so missing fields surface as a 400 with a readable message
    user_id: Optional[str] = None
    role: Optional[str] = None
    action: Optional[str] = None

class UserRoleOut(BaseModel):
    id: str
    user_id: str
    role: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RoleAssignmentResult(BaseModel):
    success: bool
    message: str
    data: Optional[UserRoleOut] = None

class EffectiveRoleResponse(BaseModel):
    user_id: str
    role: Optional[str] = None
    is_administrator: bool = False
    is_executive: bool = False
    is_board: bool = False
