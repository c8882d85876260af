import logging
from typing import Any, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from app.api import deps
from app.core.database import get_db
from app.core.exceptions import NotFound
from app.core.roles import Role
from app.core.security import TokenClaims
from app.models.policy_document import PolicyDocument
from app.models.source import Source
from app.schemas.sources import (
    SourceBatchResponse,
    SourceContentResponse,
    SourceResponse,
    TextSourceCreate,
    WebsiteSourcesCreate,
)
from app.services.access_guard import require_document_access
from app.services.content_parser import detect_content_type, markdown_to_text, parse_content_structure
from app.services.documents import DocumentService, default_role_assignment
from app.services.edge_functions import EdgeFunctionClient
from app.services.ingestion import (
    SourceIngestionService,
    UploadedFile,
    clean_urls,
    run_batch_processing,
    validate_files,
    validate_text_source,
)
from app.services.storage import StorageService

logger = logging.getLogger(__name__)

router = APIRouter()


def resolve_target_document(
    db: Session,
    owner_id: str,
    role: Optional[Role],
    notebook_id: Optional[str],
    document_title: Optional[str],
    target_role: Optional[str],
) -> PolicyDocument:
    """Use the given document, or create one from a title when no id is given."""
    documents = DocumentService(db)
    if notebook_id:
        return documents.get_for_role(notebook_id, role)
    return documents.create(owner_id, document_title, None, target_role or default_role_assignment(role))


@router.post("/sources/upload", response_model=SourceBatchResponse, status_code=201)
async def upload_sources(
    background_tasks: BackgroundTasks,
    files: List[UploadFile] = File(...),
    notebook_id: Optional[str] = Form(None),
    document_title: Optional[str] = Form(None),
    target_role: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    current_user: TokenClaims = Depends(deps.get_current_user),
    role: Optional[Role] = Depends(deps.get_current_role),
    storage: StorageService = Depends(deps.get_storage),
    functions: EdgeFunctionClient = Depends(deps.get_edge_functions),
    session_factory=Depends(deps.get_session_factory),
) -> Any:
    """
    Create one source per file and upload/process them in the background.
    """
    uploads = [
        UploadedFile(filename=f.filename, content_type=f.content_type, content=await f.read())
        for f in files
    ]
    validate_files(uploads)

    document = resolve_target_document(db, current_user.sub, role, notebook_id, document_title, target_role)
    service = SourceIngestionService(db, storage, functions)
    sources = await service.create_file_sources(
        document, uploads, current_user.sub, target_role or role
    )

    items = [(source.id, upload) for source, upload in zip(sources, uploads)]
    background_tasks.add_task(run_batch_processing, items, session_factory, storage, functions)
    logger.info(f"Queued {len(items)} files for processing in {document.id}")

    return SourceBatchResponse(
        notebook_id=document.id,
        sources=[SourceResponse.model_validate(s) for s in sources],
    )


@router.post("/sources/text", response_model=SourceResponse, status_code=201)
async def add_text_source(
    body: TextSourceCreate,
    db: Session = Depends(get_db),
    current_user: TokenClaims = Depends(deps.get_current_user),
    role: Optional[Role] = Depends(deps.get_current_role),
    storage: StorageService = Depends(deps.get_storage),
    functions: EdgeFunctionClient = Depends(deps.get_edge_functions),
) -> Any:
    validate_text_source(body.title, body.content)
    document = resolve_target_document(
        db, current_user.sub, role, body.notebook_id, body.document_title, body.target_role
    )
    service = SourceIngestionService(db, storage, functions)
    source = await service.add_text_source(
        document, body.title, body.content, current_user.sub, body.target_role or role
    )
    return SourceResponse.model_validate(source)


@router.post("/sources/websites", response_model=SourceBatchResponse, status_code=201)
async def add_website_sources(
    body: WebsiteSourcesCreate,
    db: Session = Depends(get_db),
    current_user: TokenClaims = Depends(deps.get_current_user),
    role: Optional[Role] = Depends(deps.get_current_role),
    storage: StorageService = Depends(deps.get_storage),
    functions: EdgeFunctionClient = Depends(deps.get_edge_functions),
) -> Any:
    urls = clean_urls(body.urls)
    document = resolve_target_document(
        db, current_user.sub, role, body.notebook_id, body.document_title, body.target_role
    )
    service = SourceIngestionService(db, storage, functions)
    sources = await service.add_website_sources(document, urls, current_user.sub, body.target_role or role)
    return SourceBatchResponse(
        notebook_id=document.id,
        sources=[SourceResponse.model_validate(s) for s in sources],
    )


@router.get("/documents/{document_id}/sources", response_model=List[SourceResponse])
def list_sources(
    document_id: str,
    db: Session = Depends(get_db),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    document = DocumentService(db).get_for_role(document_id, role)
    return [SourceResponse.model_validate(s) for s in document.sources]


@router.get("/sources/{source_id}/content", response_model=SourceContentResponse)
def read_source_content(
    source_id: str,
    highlight_from: Optional[int] = None,
    highlight_to: Optional[int] = None,
    db: Session = Depends(get_db),
    role: Optional[Role] = Depends(deps.get_current_role),
) -> Any:
    """
    Source text split into typed lines, with the cited range highlighted.
    """
    source = db.query(Source).filter(Source.id == source_id).first()
    if not source:
        raise NotFound("Source not found")
    require_document_access(role, source.document)

    content = source.content or ""
    parsed = parse_content_structure(content, highlight_from, highlight_to)
    return SourceContentResponse(
        source_id=source.id,
        title=source.title,
        content_type=detect_content_type(content),
        has_structured_content=parsed.has_structured_content,
        lines=parsed.lines,
        tables=parsed.tables,
        plain_text=markdown_to_text([content]),
    )
