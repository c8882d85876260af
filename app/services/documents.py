import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import AuthorizationDenied, NotFound, UpstreamFailure, ValidationFailed
from app.core.roles import ASSIGNABLE_DOCUMENT_ROLES, Role, is_board, parse_role
from app.models.chat import ChatHistory
from app.models.policy_document import GenerationStatus, PolicyDocument
from app.models.source import Source, VisibilityScope
from app.schemas.documents import BulkRoleAssignmentResult, SourcesCountResponse
from app.services.access_guard import can_access_document, require_document_access
from app.services.storage import StorageService

logger = logging.getLogger(__name__)

ROLE_SOURCE_SCOPES = {
    Role.BOARD: "all organizational policies",
    Role.ADMINISTRATOR: "administrator-level policies",
    Role.EXECUTIVE: "executive-level policies",
}


def default_role_assignment(caller_role) -> Role:
    """New documents default to the creator's role when it is assignable."""
    role = parse_role(caller_role)
    if role in ASSIGNABLE_DOCUMENT_ROLES:
        return role
    return Role.EXECUTIVE


def validate_assignable_role(value) -> Role:
    role = parse_role(value)
    if role not in ASSIGNABLE_DOCUMENT_ROLES:
        raise ValidationFailed("Invalid role. Must be administrator or executive")
    return role


class DocumentService:
    def __init__(self, db: Session, storage: Optional[StorageService] = None):
        self.db = db
        self.storage = storage

    def create(
        self,
        owner_id: str,
        title: str,
        description: Optional[str] = None,
        role_assignment=None,
    ) -> PolicyDocument:
        title = (title or "").strip()
        if not title:
            raise ValidationFailed("Document title is required")
        role = validate_assignable_role(role_assignment)

        document = PolicyDocument(
            title=title,
            description=description.strip() if description else None,
            user_id=owner_id,
            role_assignment=role.value,
            generation_status=GenerationStatus.PENDING.value,
            example_questions=[],
        )
        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        logger.info(f"Created policy document {document.id} assigned to {role.value}")
        return document

    def get(self, document_id: str) -> PolicyDocument:
        document = self.db.query(PolicyDocument).filter(PolicyDocument.id == document_id).first()
        if not document:
            raise NotFound("Policy document not found")
        return document

    def get_for_role(self, document_id: str, caller_role) -> PolicyDocument:
        document = self.get(document_id)
        require_document_access(caller_role, document)
        return document

    def list_for_role(self, caller_role) -> List[PolicyDocument]:
        query = self.db.query(PolicyDocument)
        if not is_board(caller_role):
            role = parse_role(caller_role)
            if role is None:
                return []
            query = query.filter(PolicyDocument.role_assignment == role.value)
        return query.order_by(PolicyDocument.updated_at.desc()).all()

    def update_details(self, document_id: str, caller_role, title: str, description: Optional[str] = None) -> PolicyDocument:
        if not title or not title.strip():
            raise ValidationFailed("Title cannot be empty")
        document = self.get_for_role(document_id, caller_role)
        document.title = title.strip()
        document.description = (description or "").strip()
        document.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(document)
        return document

    def update_role_assignment(self, document_id: str, caller_role, new_role) -> PolicyDocument:
        if parse_role(caller_role) is None:
            raise AuthorizationDenied(
                "You must have administrator or executive role to change policy document role assignments"
            )
        role = validate_assignable_role(new_role)
        document = self.get_for_role(document_id, caller_role)
        document.role_assignment = role.value
        document.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(document)
        logger.info(f'"{document.title}" is now assigned to {role.value} role')
        return document

    def bulk_update_role_assignment(self, document_ids: List[str], caller_role, new_role) -> BulkRoleAssignmentResult:
        """
        Reassign several documents at once. Documents that do not exist or that
        the caller cannot access are counted as failed, not raised.
        """
        if parse_role(caller_role) is None:
            return BulkRoleAssignmentResult(
                success=False,
                success_count=0,
                failed_count=len(document_ids),
                error="You must have administrator or executive role to change policy document role assignments",
            )
        if not document_ids:
            return BulkRoleAssignmentResult(
                success=False, success_count=0, failed_count=0,
                error="No documents selected for bulk update",
            )
        try:
            role = validate_assignable_role(new_role)
        except ValidationFailed as e:
            return BulkRoleAssignmentResult(
                success=False, success_count=0, failed_count=len(document_ids), error=e.message,
            )

        documents = self.db.query(PolicyDocument).filter(PolicyDocument.id.in_(document_ids)).all()
        updated = 0
        for document in documents:
            if not can_access_document(caller_role, document.role_assignment):
                continue
            document.role_assignment = role.value
            document.updated_at = datetime.utcnow()
            updated += 1
        self.db.commit()

        failed = len(set(document_ids)) - updated
        return BulkRoleAssignmentResult(
            success=updated > 0,
            success_count=updated,
            failed_count=failed,
            error=f"{failed} documents could not be updated" if failed > 0 else None,
        )

    async def delete(self, document_id: str, caller_role) -> str:
        """
        Delete a document with its sources and chat history and return its title.
        Stored files are removed first; storage errors are logged and ignored.
        """
        document = self.get_for_role(document_id, caller_role)
        title = document.title
        file_paths = [s.file_path for s in document.sources if s.file_path]

        if file_paths and self.storage is not None:
            try:
                await self.storage.remove_files(file_paths)
                logger.info(f"Deleted {len(file_paths)} files from storage for {document_id}")
            except UpstreamFailure as e:
                logger.warning(f"Error deleting files from storage for {document_id}: {e.message}")

        self.db.query(ChatHistory).filter(ChatHistory.session_id == document_id).delete(synchronize_session=False)
        self.db.delete(document)
        self.db.commit()
        logger.info(f"Policy document {document_id} deleted with its sources")
        return title

    def count_sources(self, caller_role) -> SourcesCountResponse:
        role = parse_role(caller_role)
        if role is None:
            return SourcesCountResponse(count=0, description="No policy documents available")

        query = self.db.query(Source).filter(Source.visibility_scope == VisibilityScope.GLOBAL.value)
        if role != Role.BOARD:
            query = query.join(PolicyDocument, Source.notebook_id == PolicyDocument.id).filter(
                PolicyDocument.role_assignment == role.value
            )
        count = query.count()
        if count == 0:
            return SourcesCountResponse(count=0, description="No policy documents available")

        plural = "s" if count != 1 else ""
        return SourcesCountResponse(
            count=count,
            description=f"{count} policy document{plural} available ({ROLE_SOURCE_SCOPES[role]})",
        )
