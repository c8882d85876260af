import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import PolicyAiError, ValidationFailed
from app.core.observability import LatencyTracker
from app.core.roles import Role, parse_role
from app.models.policy_document import GenerationStatus, PolicyDocument
from app.models.source import ProcessingStatus, Source, SourceType, VisibilityScope
from app.services.edge_functions import EdgeFunctionClient
from app.services.storage import StorageService

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = (
    "application/pdf",
    "text/plain",
    "text/markdown",
    "audio/mpeg",
    "audio/wav",
    "audio/m4a",
    "audio/mp3",
)

# Forward-only processing lifecycle; terminal states have no successors
SOURCE_TRANSITIONS = {
    ProcessingStatus.PENDING: {ProcessingStatus.UPLOADING, ProcessingStatus.PROCESSING, ProcessingStatus.FAILED},
    ProcessingStatus.UPLOADING: {ProcessingStatus.PROCESSING, ProcessingStatus.FAILED},
    ProcessingStatus.PROCESSING: {ProcessingStatus.COMPLETED, ProcessingStatus.FAILED},
    ProcessingStatus.COMPLETED: set(),
    ProcessingStatus.FAILED: set(),
}
TERMINAL_STATUSES = {ProcessingStatus.COMPLETED, ProcessingStatus.FAILED}


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def can_transition(current, new) -> bool:
    current, new = ProcessingStatus(current), ProcessingStatus(new)
    return current == new or new in SOURCE_TRANSITIONS[current]


def advance(source: Source, new_status: ProcessingStatus) -> Source:
    """Move a source to `new_status`, refusing any backward transition."""
    current = ProcessingStatus(source.processing_status or ProcessingStatus.PENDING)
    if not can_transition(current, new_status):
        raise ValidationFailed(
            f"Illegal status transition for source {source.id}: {current.value} -> {new_status.value}"
        )
    source.processing_status = ProcessingStatus(new_status).value
    return source


def source_type_for(content_type: str) -> SourceType:
    content_type = (content_type or "").lower()
    if "pdf" in content_type:
        return SourceType.PDF
    if "audio" in content_type:
        return SourceType.AUDIO
    return SourceType.TEXT


def validate_file(upload: UploadedFile, max_size: Optional[int] = None) -> List[str]:
    max_size = max_size if max_size is not None else settings.MAX_UPLOAD_SIZE_BYTES
    errors = []
    if upload.size > max_size:
        errors.append(f"File size exceeds {max_size // (1024 * 1024)}MB limit")
    if upload.content_type not in ALLOWED_MIME_TYPES:
        errors.append(f"File type '{upload.content_type}' is not supported")
    return errors


def validate_files(uploads: Sequence[UploadedFile]) -> None:
    """Reject the whole batch if any file fails validation."""
    if not uploads:
        raise ValidationFailed("No files provided")
    problems = []
    for upload in uploads:
        errors = validate_file(upload)
        if errors:
            problems.append(f"{upload.filename}: {', '.join(errors)}")
    if problems:
        raise ValidationFailed("\n".join(problems))


def validate_text_source(title: Optional[str], content: Optional[str]) -> None:
    if not (title or "").strip() or not (content or "").strip():
        raise ValidationFailed("Text sources need a title and content")


def clean_urls(urls: Sequence[str]) -> List[str]:
    """Strip the given urls and drop blanks; at least one must remain."""
    cleaned = [u.strip() for u in urls if u and u.strip()]
    if not cleaned:
        raise ValidationFailed("At least one URL is required")
    return cleaned


def storage_path_for(source: Source, filename: str) -> str:
    extension = os.path.splitext(filename)[1].lstrip(".") or "bin"
    return f"{source.notebook_id}/{source.id}.{extension}"


def can_generate(source: Source) -> bool:
    """Whether the source carries enough data to seed document generation."""
    kind = source.type
    if kind in (SourceType.PDF.value, SourceType.AUDIO.value):
        return bool(source.file_path)
    if kind == SourceType.TEXT.value:
        return bool(source.content)
    if kind in (SourceType.WEBSITE.value, SourceType.YOUTUBE.value):
        return bool(source.url)
    return False


class SourceIngestionService:
    """
    Creates source rows and drives them through the processing lifecycle.

    Rows of a batch are created first-then-rest with a short stagger so the
    first source is the one that seeds document generation. After creation,
    each file is uploaded and handed off independently; one file's failure
    never changes the status of its siblings.
    """

    def __init__(
        self,
        db: Session,
        storage: StorageService,
        functions: EdgeFunctionClient,
        stagger_seconds: Optional[float] = None,
    ):
        self.db = db
        self.storage = storage
        self.functions = functions
        self.stagger_seconds = settings.SOURCE_BATCH_STAGGER_SECONDS if stagger_seconds is None else stagger_seconds
        self.latency_tracker = LatencyTracker()

    def _new_source(self, document: PolicyDocument, uploader_id: str, target_role, **fields) -> Source:
        role = parse_role(target_role) or Role.ADMINISTRATOR
        source = Source(
            notebook_id=document.id,
            visibility_scope=VisibilityScope.GLOBAL.value,
            target_role=role.value,
            uploaded_by_user_id=uploader_id,
            **fields,
        )
        self.db.add(source)
        self.db.commit()
        self.db.refresh(source)
        return source

    async def _create_staggered(self, rows: List[Dict], document: PolicyDocument, uploader_id: str, target_role) -> List[Source]:
        first = self._new_source(document, uploader_id, target_role, **rows[0])
        logger.info(f"First source created: {first.id}")
        created = [first]
        if len(rows) > 1:
            await asyncio.sleep(self.stagger_seconds)
            for row in rows[1:]:
                created.append(self._new_source(document, uploader_id, target_role, **row))
            logger.info(f"Created {len(rows) - 1} remaining sources for {document.id}")
        return created

    async def create_file_sources(
        self,
        document: PolicyDocument,
        uploads: Sequence[UploadedFile],
        uploader_id: str,
        target_role=None,
    ) -> List[Source]:
        validate_files(uploads)
        rows = [
            {
                "title": upload.filename,
                "type": source_type_for(upload.content_type).value,
                "file_size": upload.size,
                "processing_status": ProcessingStatus.PENDING.value,
                "source_metadata": {"fileName": upload.filename, "fileType": upload.content_type},
            }
            for upload in uploads
        ]
        return await self._create_staggered(rows, document, uploader_id, target_role)

    async def process_file(self, source_id: str, upload: UploadedFile) -> Source:
        source = self.db.query(Source).filter(Source.id == source_id).first()
        if source is None:
            logger.warning(f"Source {source_id} disappeared before processing")
            return None
        if ProcessingStatus(source.processing_status) in TERMINAL_STATUSES:
            logger.info(f"Source {source_id} already {source.processing_status}, skipping")
            return source

        try:
            advance(source, ProcessingStatus.UPLOADING)
            self.db.commit()
            with self.latency_tracker.measure(f"upload_{source_id}"):
                path = await self.storage.upload_file(
                    storage_path_for(source, upload.filename), upload.content, upload.content_type
                )
            source.file_path = path
            advance(source, ProcessingStatus.PROCESSING)
            self.db.commit()
        except PolicyAiError as e:
            logger.error(f"File processing failed for {upload.filename}: {e.message}")
            advance(source, ProcessingStatus.FAILED)
            self.db.commit()
            return source

        await self._hand_off(source, lambda: self.functions.process_document(
            source.id, source.file_path, source.type
        ))
        return source

    async def _hand_off(self, source: Source, call) -> None:
        """
        Run the downstream processing call. A downstream failure still leaves
        the source usable: it is completed without a summary and the error is
        kept in its metadata.
        """
        try:
            with self.latency_tracker.measure(f"processing_{source.id}"):
                await call()
            await self.maybe_trigger_generation(source)
        except PolicyAiError as e:
            logger.warning(f"Document processing failed for {source.id}: {e.message}")
            self.db.refresh(source)
            source.source_metadata = {**(source.source_metadata or {}), "processing_error": e.message}
            if ProcessingStatus(source.processing_status) not in TERMINAL_STATUSES:
                advance(source, ProcessingStatus.COMPLETED)
            self.db.commit()
            return

        # The processing function may already have completed the source out of band
        self.db.refresh(source)
        if ProcessingStatus(source.processing_status) not in TERMINAL_STATUSES:
            advance(source, ProcessingStatus.COMPLETED)
            self.db.commit()

    async def process_batch(self, items: Sequence[Tuple[str, UploadedFile]]) -> Dict[str, int]:
        """Process every created source concurrently and report the outcome counts."""
        results = await asyncio.gather(
            *(self.process_file(source_id, upload) for source_id, upload in items),
            return_exceptions=True,
        )
        failed = 0
        for (source_id, _), result in zip(items, results):
            if isinstance(result, BaseException):
                logger.error(f"Unexpected error processing source {source_id}: {result!r}")
                failed += 1
            elif result is not None and result.processing_status == ProcessingStatus.FAILED.value:
                failed += 1
        summary = {"successful": len(items) - failed, "failed": failed}
        logger.info(f"File processing completed: {summary}")
        logger.debug(f"Batch timings (ms): {self.latency_tracker.get_all_measurements()}")
        return summary

    async def add_text_source(
        self,
        document: PolicyDocument,
        title: str,
        content: str,
        uploader_id: str,
        target_role=None,
    ) -> Source:
        validate_text_source(title, content)
        source = self._new_source(
            document, uploader_id, target_role,
            title=title.strip(),
            type=SourceType.TEXT.value,
            content=content,
            processing_status=ProcessingStatus.PROCESSING.value,
            source_metadata={"characterCount": len(content), "webhookProcessed": True},
        )
        await self._hand_off(source, lambda: self.functions.process_additional_sources(
            "copied-text", document.id, [source.id], title=source.title, content=content
        ))
        return source

    async def add_website_sources(
        self,
        document: PolicyDocument,
        urls: Sequence[str],
        uploader_id: str,
        target_role=None,
    ) -> List[Source]:
        urls = clean_urls(urls)
        rows = [
            {
                "title": f"Website {index}: {url}",
                "type": SourceType.WEBSITE.value,
                "url": url,
                "processing_status": ProcessingStatus.PROCESSING.value,
                "source_metadata": {"originalUrl": url, "webhookProcessed": True},
            }
            for index, url in enumerate(urls, start=1)
        ]
        sources = await self._create_staggered(rows, document, uploader_id, target_role)

        try:
            await self.functions.process_additional_sources(
                "multiple-websites", document.id, [s.id for s in sources], urls=urls
            )
        except PolicyAiError as e:
            logger.warning(f"Website processing failed for {document.id}: {e.message}")
            for source in sources:
                source.source_metadata = {**(source.source_metadata or {}), "processing_error": e.message}
                advance(source, ProcessingStatus.COMPLETED)
            self.db.commit()
            return sources

        await self.maybe_trigger_generation(sources[0])
        return sources

    def _is_first_source(self, source: Source) -> bool:
        first = (
            self.db.query(Source.id)
            .filter(Source.notebook_id == source.notebook_id)
            .order_by(Source.created_at.asc(), Source.id.asc())
            .first()
        )
        return first is not None and first.id == source.id

    async def maybe_trigger_generation(self, source: Source) -> bool:
        """
        Request document generation when `source` is the document's first
        source, the document is still pending and the source has usable data.
        Failures are logged and mark the document as failed.
        """
        document = self.db.query(PolicyDocument).filter(PolicyDocument.id == source.notebook_id).first()
        if document is None or document.generation_status != GenerationStatus.PENDING.value:
            return False
        if not self._is_first_source(source) or not can_generate(source):
            return False

        document.generation_status = GenerationStatus.GENERATING.value
        self.db.commit()
        try:
            await self.functions.generate_notebook_content(
                document.id, source.file_path or source.url, source.type
            )
        except PolicyAiError as e:
            logger.error(f"Failed to generate notebook content for {document.id}: {e.message}")
            document.generation_status = GenerationStatus.FAILED.value
            self.db.commit()
            return False
        logger.info(f"Triggered notebook content generation for {document.id}")
        return True


async def run_batch_processing(
    items: Sequence[Tuple[str, UploadedFile]],
    db_session_factory,
    storage: StorageService,
    functions: EdgeFunctionClient,
):
    # Background tasks get their own session; the request session is closed by then
    db = db_session_factory()
    try:
        service = SourceIngestionService(db, storage, functions)
        return await service.process_batch(items)
    finally:
        db.close()
