# services/document_service.py
"""Document intake, lookup and removal"""
import logging
import mimetypes
import uuid
from typing import Any, Dict, List, Optional, Tuple

from core.domain import Document, WorkflowSelection
from core.enums import DocumentStatus, ErrorCode, SelectionMode, WorkflowStatus
from core.errors import (
    DocumentProcessingError,
    ExecutionConflictError,
    NotFoundError,
    ValidationError,
)
from core.interfaces import IDocumentRepository, IFileStorage, IStepEventRepository, IVectorStore
from services.workflow_selector import WorkflowSelector
from utils.common import (
    decode_content,
    get_file_extension,
    get_file_hash,
    guess_mime_type,
    sanitize_filename,
)
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


class DocumentService:

    def __init__(
        self,
        document_repo: IDocumentRepository,
        event_repo: IStepEventRepository,
        vector_store: IVectorStore,
        file_storage: IFileStorage,
        selector: WorkflowSelector,
    ):
        self.document_repo = document_repo
        self.event_repo = event_repo
        self.vector_store = vector_store
        self.file_storage = file_storage
        self.selector = selector

    # ============= Upload =============

    @staticmethod
    def _resolve_mime_type(filename: str, mime_type: Optional[str]) -> str:
        resolved = (mime_type or "").split(";")[0].strip().lower()
        if not resolved or resolved == "application/octet-stream":
            resolved = guess_mime_type(filename) or ""
        if resolved not in settings.ALLOWED_MIME_TYPES:
            raise DocumentProcessingError(
                f"Unsupported file type '{resolved or get_file_extension(filename) or 'unknown'}'. "
                f"Allowed: {', '.join(settings.ALLOWED_MIME_TYPES)}",
                ErrorCode.INVALID_FORMAT,
            )
        return resolved

    @staticmethod
    def _stored_name(filename: str, mime_type: str) -> str:
        extension = get_file_extension(filename)
        if not extension:
            extension = (mimetypes.guess_extension(mime_type) or "").lstrip(".")
        return f"{uuid.uuid4()}.{extension}" if extension else str(uuid.uuid4())

    async def upload(
        self,
        filename: str,
        content: bytes,
        mime_type: Optional[str] = None,
        uploaded_by: str = "anonymous",
        category: Optional[str] = None,
    ) -> Document:
        """Validates the bytes, stores them and persists an `uploaded` Document."""
        safe_name = sanitize_filename(filename or "")
        if not safe_name:
            raise ValidationError("Filename is required")
        if not content:
            raise ValidationError("File content is empty")

        resolved_mime = self._resolve_mime_type(safe_name, mime_type)
        if len(content) > settings.MAX_FILE_SIZE:
            raise DocumentProcessingError(
                f"File exceeds the {settings.MAX_FILE_SIZE // (1024 * 1024)}MB limit",
                ErrorCode.FILE_TOO_LARGE,
            )

        file_hash = get_file_hash(content)
        existing = await self.document_repo.get_by_hash(file_hash)
        if existing is not None:
            raise DocumentProcessingError(
                f"Document already uploaded as '{existing.filename}' ({existing.id})",
                ErrorCode.DUPLICATE_FILE,
            )

        stored_filename = self._stored_name(safe_name, resolved_mime)
        await self.file_storage.save(content, stored_filename)
        document = Document(
            id=str(uuid.uuid4()),
            filename=safe_name,
            mime_type=resolved_mime,
            size=len(content),
            file_hash=file_hash,
            stored_filename=stored_filename,
            uploaded_by=uploaded_by or "anonymous",
            category=category,
        )
        try:
            created = await self.document_repo.create(document)
        except Exception:
            # Keep disk and database in step
            await self.file_storage.delete(stored_filename)
            raise
        logger.info(f"Uploaded {safe_name} as document {created.id} ({len(content)} bytes)")
        return created

    async def upload_encoded(
        self,
        filename: str,
        content: str,
        encoding: str = "base64",
        mime_type: Optional[str] = None,
        uploaded_by: str = "anonymous",
        category: Optional[str] = None,
    ) -> Document:
        try:
            raw = decode_content(content or "", encoding)
        except ValueError as e:
            raise DocumentProcessingError(str(e), ErrorCode.INVALID_FORMAT)
        return await self.upload(filename, raw, mime_type, uploaded_by, category)

    # ============= Queries =============

    async def get(self, document_id: str) -> Document:
        document = await self.document_repo.get_by_id(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    async def list_documents(
        self, uploaded_by: Optional[str] = None, status: Optional[str] = None
    ) -> List[Document]:
        parsed = None
        if status:
            try:
                parsed = DocumentStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown document status '{status}'")
        return await self.document_repo.list_all(uploaded_by=uploaded_by, status=parsed)

    async def get_analysis(self, document_id: str) -> Dict[str, Any]:
        document = await self.get(document_id)
        execution = document.workflow_execution
        steps = []
        if execution is not None:
            steps = [e.to_dict() for e in await self.event_repo.list_for_execution(execution.execution_id)]
        return {
            "document_id": document.id,
            "filename": document.filename,
            "status": document.status.value,
            "processing_results": document.processing_results,
            "workflow_execution": execution.to_summary() if execution else None,
            "steps": steps,
            "integration_notifications": document.integration_notifications,
        }

    async def get_file(self, document_id: str) -> Tuple[str, Document]:
        document = await self.get(document_id)
        path = await self.file_storage.get_path(document.stored_filename)
        if path is None:
            raise NotFoundError(f"Stored file for document {document_id} is missing")
        return path, document

    # ============= Delete =============

    async def delete(self, document_id: str) -> Dict[str, Any]:
        document = await self.get(document_id)
        execution = document.workflow_execution
        if execution is not None and execution.status == WorkflowStatus.RUNNING:
            raise ExecutionConflictError(f"Document {document_id} is being processed")

        file_deleted = await self.file_storage.delete(document.stored_filename)
        if not file_deleted:
            logger.warning(f"Stored file {document.stored_filename} was already gone")
        chunks_deleted = await self.vector_store.delete_by_document(document_id)
        events_deleted = await self.event_repo.delete_by_document(document_id)
        await self.document_repo.delete(document_id)
        logger.info(f"Deleted document {document_id} ({chunks_deleted} chunks, {events_deleted} step events)")
        return {
            "document_id": document_id,
            "file_deleted": file_deleted,
            "chunks_deleted": chunks_deleted,
            "events_deleted": events_deleted,
        }

    # ============= Workflow selection =============

    async def select_workflow(
        self,
        document_id: str,
        mode: Optional[str] = None,
        workflow_id: Optional[str] = None,
        category: Optional[str] = None,
        auto_detect: bool = True,
    ) -> Tuple[Document, WorkflowSelection]:
        document = await self.get(document_id)
        execution = document.workflow_execution
        if execution is not None and execution.status == WorkflowStatus.RUNNING:
            raise ExecutionConflictError(
                f"Document {document_id} already has execution {execution.execution_id} running"
            )

        selection_mode = None
        if mode:
            try:
                selection_mode = SelectionMode(mode)
            except ValueError:
                raise ValidationError(f"Unknown selection mode '{mode}'")
        selection = await self.selector.select(
            document,
            mode=selection_mode,
            workflow_id=workflow_id,
            category=category or document.category,
            auto_detect=auto_detect,
        )
        return document, selection
