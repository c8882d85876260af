from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api import deps
from app.core.database import get_db
from app.core.roles import Role
from app.core.security import TokenClaims
from app.schemas.documents import (
    AccessCheckResponse,
    BulkRoleAssignmentRequest,
    BulkRoleAssignmentResult,
    PolicyDocumentCreate,
    PolicyDocumentResponse,
    PolicyDocumentUpdate,
    RoleAssignmentUpdate,
    SourcesCountResponse,
)
from app.services.access_guard import check_access
from app.services.documents import DocumentService, default_role_assignment
from app.services.storage import StorageService

router = APIRouter()


@router.post("/", response_model=PolicyDocumentResponse, status_code=201)
def create_document(
    body: PolicyDocumentCreate,
    db: Session = Depends(get_db),
    current_user: TokenClaims = Depends(deps.get_current_user),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    return DocumentService(db).create(
        current_user.sub,
        body.title,
        body.description,
        body.role_assignment or default_role_assignment(role),
    )


@router.get("/", response_model=List[PolicyDocumentResponse])
def list_documents(
    db: Session = Depends(get_db),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    """Documents the caller's role can use, most recently updated first."""
    return DocumentService(db).list_for_role(role)


@router.get("/sources-count", response_model=SourcesCountResponse)
def count_sources(
    db: Session = Depends(get_db),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    return DocumentService(db).count_sources(role)


@router.post("/bulk-role-assignment", response_model=BulkRoleAssignmentResult)
def bulk_role_assignment(
    body: BulkRoleAssignmentRequest,
    db: Session = Depends(get_db),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    return DocumentService(db).bulk_update_role_assignment(body.document_ids, role, body.role_assignment)


@router.get("/{document_id}", response_model=PolicyDocumentResponse)
def read_document(
    document_id: str,
    db: Session = Depends(get_db),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    return DocumentService(db).get_for_role(document_id, role)


@router.get("/{document_id}/access", response_model=AccessCheckResponse)
def check_document_access(
    document_id: str,
    db: Session = Depends(get_db),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    document = DocumentService(db).get(document_id)
    decision = check_access(role, document.role_assignment)
    return AccessCheckResponse(
        document_id=document_id,
        allowed=decision.allowed,
        chat_enabled=decision.allowed,
        message=decision.message,
    )


@router.put("/{document_id}", response_model=PolicyDocumentResponse)
def update_document(
    document_id: str,
    body: PolicyDocumentUpdate,
    db: Session = Depends(get_db),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    return DocumentService(db).update_details(document_id, role, body.title, body.description)


@router.put("/{document_id}/role-assignment", response_model=PolicyDocumentResponse)
def update_role_assignment(
    document_id: str,
    body: RoleAssignmentUpdate,
    db: Session = Depends(get_db),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    return DocumentService(db).update_role_assignment(document_id, role, body.role_assignment)


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    db: Session = Depends(get_db),
    role: Optional[Role] = Depends(deps.get_current_role),
    storage: StorageService = Depends(deps.get_storage),
) -> Any:
    """
    Delete a document, its sources, stored files and chat history.
    """
    title = await DocumentService(db, storage).delete(document_id, role)
    return {"success": True, "message": f'"{title}" has been successfully deleted.'}
