# services/workflow_selector.py
"""Chooses the workflow a document runs through"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from core.domain import Document, WorkflowSelection
from core.enums import DocumentCategory, SelectionMode
from services.workflow_registry import WorkflowRegistry
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


@dataclass(frozen=True)
class CategoryMapping:
    category: DocumentCategory
    workflow_id: str
    description: str
    priority: int


CATEGORY_MAPPINGS: List[CategoryMapping] = sorted(
    [
        CategoryMapping(DocumentCategory.INVOICE, "invoice-processing-workflow",
                        "Invoice processing with field extraction and accounting export", 100),
        CategoryMapping(DocumentCategory.CONTRACT, "contract-analysis-workflow",
                        "Contract analysis with term extraction and approval", 95),
        CategoryMapping(DocumentCategory.LEGAL, "legal-document-workflow",
                        "Legal document processing with a review gate", 90),
        CategoryMapping(DocumentCategory.FINANCIAL, "financial-analysis-workflow",
                        "Financial document analysis and reporting", 85),
        CategoryMapping(DocumentCategory.RECEIPT, "receipt-processing-workflow",
                        "Receipt processing for expense tracking", 80),
        CategoryMapping(DocumentCategory.FORM, "form-processing-workflow",
                        "Form processing with field extraction", 75),
        CategoryMapping(DocumentCategory.OTHER, "demo-workflow-1",
                        "General document processing workflow", 10),
    ],
    key=lambda m: m.priority,
    reverse=True,
)

# (keywords, category, confidence), checked in order
FILENAME_RULES: List[Tuple[Tuple[str, ...], DocumentCategory, float]] = [
    (("invoice", "inv-", "bill"), DocumentCategory.INVOICE, 0.9),
    (("contract", "agreement", "nda"), DocumentCategory.CONTRACT, 0.85),
    (("receipt", "rcp-"), DocumentCategory.RECEIPT, 0.8),
    (("legal", "terms"), DocumentCategory.LEGAL, 0.75),
    (("financial", "statement", "report"), DocumentCategory.FINANCIAL, 0.7),
    (("form", "application"), DocumentCategory.FORM, 0.65),
]
LARGE_PDF_BYTES = 1_000_000


def detect_category(document: Document) -> Tuple[DocumentCategory, float]:
    """Rule-based category detection from filename, MIME type and size."""
    filename = (document.filename or "").lower()
    for keywords, category, confidence in FILENAME_RULES:
        if any(k in filename for k in keywords):
            return category, confidence

    # Large PDFs are most often legal documents
    if (document.mime_type or "").lower() == "application/pdf" and (document.size or 0) > LARGE_PDF_BYTES:
        return DocumentCategory.LEGAL, 0.6

    return DocumentCategory.UNKNOWN, 0.3


def mapping_for(category: str) -> Optional[CategoryMapping]:
    """Highest-priority mapping for the category."""
    for mapping in CATEGORY_MAPPINGS:
        if mapping.category.value == category:
            return mapping
    return None


class WorkflowSelector:

    def __init__(self, registry: WorkflowRegistry):
        self.registry = registry

    async def select(
        self,
        document: Document,
        mode: Optional[SelectionMode] = None,
        workflow_id: Optional[str] = None,
        category: Optional[str] = None,
        auto_detect: bool = True,
    ) -> WorkflowSelection:
        mode = mode or SelectionMode.HYBRID
        logger.info(f"Selecting workflow for {document.filename} using {mode.value} mode")

        if mode == SelectionMode.MANUAL:
            selection = await self._select_manually(workflow_id, category)
        elif mode == SelectionMode.AUTO:
            selection = await self._select_automatically(document)
        elif mode == SelectionMode.HYBRID:
            selection = await self._select_hybrid(document, workflow_id, category, auto_detect)
        else:
            selection = await self._default()
        logger.info(
            f"Selected {selection.workflow_id} for {document.filename} "
            f"({selection.method}, confidence {selection.confidence:.2f})"
        )
        return selection

    async def _build(
        self,
        workflow_id: str,
        method: str,
        confidence: float,
        reason: str,
        category: Optional[str] = None,
        alternatives: Optional[List[str]] = None,
    ) -> WorkflowSelection:
        workflow = await self.registry.get(workflow_id)
        return WorkflowSelection(
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            method=method,
            confidence=confidence,
            reason=reason,
            category=category,
            alternative_workflows=alternatives or [],
        )

    async def _default(self, reason: str = "Using default workflow") -> WorkflowSelection:
        return await self._build(settings.DEFAULT_WORKFLOW_ID, SelectionMode.DEFAULT.value, 0.5, reason)

    async def _select_manually(self, workflow_id: Optional[str], category: Optional[str]) -> WorkflowSelection:
        if workflow_id:
            if await self.registry.find(workflow_id) is not None:
                return await self._build(
                    workflow_id, SelectionMode.MANUAL.value, 1.0,
                    f"User explicitly specified workflow: {workflow_id}",
                )
            logger.warning(f"Invalid workflow ID provided: {workflow_id}")
            return await self._default("Invalid workflow ID provided")

        if category:
            mapping = mapping_for(category)
            if mapping:
                return await self._build(
                    mapping.workflow_id, SelectionMode.MANUAL.value, 0.95,
                    f"User specified document category: {category} → {mapping.workflow_id}",
                    category=category,
                )
            logger.warning(f"Unknown document category: {category}")
            return await self._default("Unknown document category")

        return await self._default("No manual selection provided")

    async def _select_automatically(self, document: Document) -> WorkflowSelection:
        category, confidence = detect_category(document)
        if category != DocumentCategory.UNKNOWN:
            mapping = mapping_for(category.value)
            if mapping:
                return await self._build(
                    mapping.workflow_id, SelectionMode.AUTO.value, confidence,
                    f"Detected document type: {category.value} ({round(confidence * 100)}% confidence)",
                    category=category.value,
                )
        return await self._default("Could not confidently detect document type")

    async def _select_hybrid(
        self,
        document: Document,
        workflow_id: Optional[str],
        category: Optional[str],
        auto_detect: bool,
    ) -> WorkflowSelection:
        if not (workflow_id or category):
            auto = await self._select_automatically(document)
            auto.method = SelectionMode.HYBRID.value
            return auto

        manual = await self._select_manually(workflow_id, category)
        if auto_detect:
            auto = await self._select_automatically(document)
            if auto.method == SelectionMode.AUTO.value and auto.workflow_id != manual.workflow_id:
                if auto.confidence > settings.AUTO_SELECT_OVERRIDE_THRESHOLD:
                    return await self._build(
                        auto.workflow_id, SelectionMode.HYBRID.value, auto.confidence,
                        f"Override: {auto.reason} (overriding manual selection)",
                        category=auto.category,
                        alternatives=[manual.workflow_id],
                    )
                return await self._build(
                    manual.workflow_id, SelectionMode.HYBRID.value, manual.confidence,
                    f"Manual selection confirmed: {manual.reason} (detection confidence too low to override)",
                    category=manual.category,
                    alternatives=[auto.workflow_id],
                )

        manual.method = SelectionMode.HYBRID.value
        return manual

    async def options(self) -> Dict[str, Any]:
        workflows = await self.registry.list_all()
        return {
            "workflows": [
                {"id": wf.id, "name": wf.name, "description": wf.description, "is_builtin": wf.is_builtin}
                for wf in workflows
            ],
            "categories": [
                {
                    "id": m.category.value,
                    "name": m.category.value.capitalize(),
                    "workflow_id": m.workflow_id,
                    "description": m.description,
                    "priority": m.priority,
                }
                for m in CATEGORY_MAPPINGS
            ],
            "modes": [m.value for m in SelectionMode],
        }
