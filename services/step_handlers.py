# services/step_handlers.py
"""Handlers for each workflow step type"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List

from core.domain import (
    Approval,
    Document,
    WorkflowDefinition,
    WorkflowStep,
    to_iso,
    utc_now,
)
from core.enums import ApprovalStatus, IntegrationType, NotificationStatus, StepType
from core.errors import AIServiceError, IntegrationError, StepExecutionError
from core.interfaces import (
    IAIClient,
    IApprovalRepository,
    IDocumentRepository,
    IFileStorage,
    IIntegrationRepository,
)
from infrastructure.notifiers import NotifierRegistry
from services.entity_extractor import EntityExtractor
from services.field_extractor import DOCUMENT_LABELS, FieldExtractor, keyword_classify
from services.ingestion_service import DocumentIngestor
from services.text_extractor_factory import TextExtractorFactory
from utils.common import count_words, truncate_text
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

CLASSIFY_INPUT_CHARS = 1000
SUMMARY_INPUT_CHARS = 3000
FALLBACK_SUMMARY_CHARS = 200


@dataclass
class StepContext:
    """Everything a handler may read while running one step"""
    document: Document
    workflow: WorkflowDefinition
    execution_id: str
    step_index: int
    step: WorkflowStep
    previous_results: Dict[str, Any] = field(default_factory=dict)


StepHandler = Callable[[StepContext], Awaitable[Dict[str, Any]]]


class StepHandlers:
    """
    Runs a single step against a document.

    Handlers return a JSON-serialisable result dict or raise. A require_approval
    step that is still waiting returns {"status": "pending", ...} so the executor
    can pause.
    """

    def __init__(
        self,
        document_repo: IDocumentRepository,
        file_storage: IFileStorage,
        extractor_factory: TextExtractorFactory,
        ingestor: DocumentIngestor,
        ai_client: IAIClient,
        field_extractor: FieldExtractor,
        entity_extractor: EntityExtractor,
        integration_repo: IIntegrationRepository,
        approval_repo: IApprovalRepository,
        notifiers: NotifierRegistry,
    ):
        self.document_repo = document_repo
        self.file_storage = file_storage
        self.extractor_factory = extractor_factory
        self.ingestor = ingestor
        self.ai_client = ai_client
        self.field_extractor = field_extractor
        self.entity_extractor = entity_extractor
        self.integration_repo = integration_repo
        self.approval_repo = approval_repo
        self.notifiers = notifiers
        self._handlers: Dict[StepType, StepHandler] = {
            StepType.EXTRACT_TEXT: self.extract_text,
            StepType.ANALYZE_CONTENT: self.analyze_content,
            StepType.SEND_NOTIFICATION: self.send_notification,
            StepType.STORE_DATA: self.store_data,
            StepType.REQUIRE_APPROVAL: self.require_approval,
        }

    async def run(self, context: StepContext) -> Dict[str, Any]:
        handler = self._handlers.get(context.step.type)
        if handler is None:
            raise StepExecutionError(f"Unknown step type: {context.step.type}")
        logger.info(
            f"Running step {context.step_index} '{context.step.name}' ({context.step.type.value}) "
            f"for document {context.document.id}"
        )
        return await handler(context)

    # ============= extract_text =============

    async def extract_text(self, context: StepContext) -> Dict[str, Any]:
        document = context.document
        file_path = await self.file_storage.get_path(document.stored_filename)
        if not file_path:
            raise StepExecutionError(f"Stored file for document {document.id} is missing")

        extractor = self.extractor_factory.get_extractor(document.mime_type)
        extraction = await extractor.extract(file_path)
        text = extraction.text.strip()
        if not text:
            raise StepExecutionError(f"No text could be extracted from {document.filename}")

        chunk_count = await self.ingestor.ingest(document.id, document.filename, extraction)
        word_count = count_words(text)
        await self.document_repo.merge_processing_results(document.id, {
            "extracted_text": text,
            "ocr_results": {
                "method": extraction.method,
                "confidence": extraction.confidence,
                "text_length": len(text),
                "word_count": word_count,
                "page_count": extraction.page_count,
                "extracted_at": to_iso(utc_now()),
            },
        })
        return {
            "text_length": len(text),
            "word_count": word_count,
            "chunk_count": chunk_count,
            "method": extraction.method,
        }

    # ============= analyze_content =============

    async def _classify(self, text: str) -> Dict[str, Any]:
        try:
            label, score = await self.ai_client.classify(text[:CLASSIFY_INPUT_CHARS], DOCUMENT_LABELS)
            method = "ai"
        except AIServiceError as e:
            logger.warning(f"AI classification unavailable, using keyword rules: {e.message}")
            label, score = keyword_classify(text)
            method = "keyword"
        return {"label": label, "score": round(score, 4), "method": method}

    async def _summarize(self, text: str) -> Dict[str, str]:
        try:
            summary = await self.ai_client.summarize(
                text[:SUMMARY_INPUT_CHARS], max_length=settings.SUMMARY_DEFAULT_MAX_LENGTH
            )
            return {"summary": summary, "summary_method": "ai"}
        except AIServiceError as e:
            logger.warning(f"AI summarization unavailable, truncating text: {e.message}")
            return {"summary": truncate_text(text, FALLBACK_SUMMARY_CHARS), "summary_method": "truncation"}

    async def analyze_content(self, context: StepContext) -> Dict[str, Any]:
        text = context.document.processing_results.get("extracted_text")
        if not text:
            raise StepExecutionError("No extracted text to analyze; run an extract_text step first")

        classification = await self._classify(text)
        entities = await self.entity_extractor.extract(text)
        analysis = {
            "document_type": classification["label"],
            "classification": classification,
            "fields": self.field_extractor.analyze(text, classification["label"]),
            "entities": [e.to_dict() for e in entities],
            **await self._summarize(text),
            "analyzed_at": to_iso(utc_now()),
        }
        await self.document_repo.merge_processing_results(context.document.id, {"analysis": analysis})
        return analysis

    # ============= Integrations =============

    @staticmethod
    def _integration_type(context: StepContext, default: IntegrationType) -> IntegrationType:
        value = context.step.config.get("integrationType", default.value)
        try:
            return IntegrationType(value)
        except ValueError:
            raise StepExecutionError(f"Step '{context.step.name}' has unknown integrationType '{value}'")

    @staticmethod
    def _payload(context: StepContext) -> Dict[str, Any]:
        document = context.document
        analysis = document.processing_results.get("analysis") or {}
        document_type = analysis.get("document_type", "unknown")
        return {
            "title": f"{context.workflow.name}: {document.filename}",
            "text": f"Document type: {document_type}\n{analysis.get('summary', '')}".strip(),
            "document_id": document.id,
            "filename": document.filename,
            "workflow_id": context.workflow.id,
            "execution_id": context.execution_id,
            "step_name": context.step.name,
            "analysis": analysis,
            "ocr_results": document.processing_results.get("ocr_results"),
        }

    async def send_notification(self, context: StepContext) -> Dict[str, Any]:
        integration_type = self._integration_type(context, IntegrationType.SLACK)
        integrations = await self.integration_repo.list_enabled(integration_type)
        if not integrations:
            return {"message": f"No active {integration_type.value} integrations"}

        notifier = self.notifiers.get(integration_type)
        payload = self._payload(context)
        notifications: List[Dict[str, Any]] = []
        for integration in integrations:
            record: Dict[str, Any] = {
                "integration_id": integration.id,
                "integration_name": integration.name,
                "integration_type": integration_type.value,
                "step_name": context.step.name,
            }
            try:
                record["response"] = await notifier.send(integration, payload)
                record["status"] = NotificationStatus.SENT.value
            except IntegrationError as e:
                logger.warning(f"Notification via {integration.name} failed: {e.message}")
                record["status"] = NotificationStatus.FAILED.value
                record["error"] = e.message
            record["sent_at"] = to_iso(utc_now())
            notifications.append(record)

        await self.document_repo.append_notifications(context.document.id, notifications)
        return {"notifications": notifications}

    async def store_data(self, context: StepContext) -> Dict[str, Any]:
        integration_type = self._integration_type(context, IntegrationType.DATABASE)
        integrations = await self.integration_repo.list_enabled(integration_type)
        if not integrations:
            return {"message": f"No active {integration_type.value} integrations"}

        notifier = self.notifiers.get(integration_type)
        payload = self._payload(context)
        results: List[Dict[str, Any]] = []
        for integration in integrations:
            entry: Dict[str, Any] = {"integration_id": integration.id, "integration_name": integration.name}
            try:
                response = await notifier.send(integration, payload)
                entry["success"] = True
                entry["record_id"] = response.get("record_id")
            except IntegrationError as e:
                logger.warning(f"Storing via {integration.name} failed: {e.message}")
                entry["success"] = False
                entry["error"] = e.message
            results.append(entry)
        return {"storageResults": results}

    # ============= require_approval =============

    async def _request_in_slack(self, context: StepContext, approval: Approval) -> None:
        integrations = await self.integration_repo.list_enabled(IntegrationType.SLACK)
        if not integrations:
            return
        payload = self._payload(context)
        payload["title"] = f"Approval needed: {context.step.name}"
        payload["approval_id"] = approval.id
        notifier = self.notifiers.get(IntegrationType.SLACK)
        for integration in integrations:
            try:
                await notifier.send(integration, payload)
            except IntegrationError as e:
                logger.warning(f"Could not post approval request to {integration.name}: {e.message}")

    async def require_approval(self, context: StepContext) -> Dict[str, Any]:
        approval = await self.approval_repo.get_for_step(context.execution_id, context.step_index)
        if approval is None:
            approval = await self.approval_repo.create(Approval(
                id=str(uuid.uuid4()),
                document_id=context.document.id,
                execution_id=context.execution_id,
                workflow_id=context.workflow.id,
                step_index=context.step_index,
                step_name=context.step.name,
            ))
            logger.info(f"Approval {approval.id} requested for document {context.document.id}")
            await self._request_in_slack(context, approval)

        if approval.status == ApprovalStatus.PENDING:
            return {"approval_id": approval.id, "status": ApprovalStatus.PENDING.value}
        if approval.status == ApprovalStatus.REJECTED:
            raise StepExecutionError(
                f"Approval {approval.id} rejected by {approval.approver_id or 'unknown'}"
                + (f": {approval.reason}" if approval.reason else "")
            )
        return {
            "approval_id": approval.id,
            "status": approval.status.value,
            "approver_id": approval.approver_id,
            "decided_at": to_iso(approval.decided_at),
        }


def is_pending_approval(step: WorkflowStep, result: Dict[str, Any]) -> bool:
    return step.type == StepType.REQUIRE_APPROVAL and result.get("status") == ApprovalStatus.PENDING.value
