# core/domain.py
"""Domain models shared by services, repositories and the API layer."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional

from core.enums import (
    ApprovalStatus,
    DocumentStatus,
    IntegrationStatus,
    IntegrationType,
    StepStatus,
    StepType,
    WorkflowStatus,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# ============= Workflows =============

@dataclass
class WorkflowStep:
    """One ordered step of a workflow definition"""
    name: str
    type: StepType
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type.value, "config": dict(self.config)}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'WorkflowStep':
        return WorkflowStep(
            name=data["name"],
            type=StepType(data["type"]),
            config=dict(data.get("config") or {}),
        )


@dataclass
class WorkflowDefinition:
    id: str
    name: str
    steps: List[WorkflowStep]
    description: str = ""
    is_builtin: bool = False
    status: str = "active"
    execution_count: int = 0


@dataclass
class WorkflowSelection:
    """Outcome of choosing a workflow for a document"""
    workflow_id: str
    workflow_name: str
    method: str
    confidence: float
    reason: str
    category: Optional[str] = None
    alternative_workflows: List[str] = field(default_factory=list)


@dataclass
class StepEvent:
    """Immutable outcome of one step within one execution"""
    document_id: str
    execution_id: str
    workflow_id: str
    step_index: int
    step_name: str
    step_type: StepType
    status: StepStatus
    started_at: datetime
    completed_at: datetime
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_index": self.step_index,
            "step_name": self.step_name,
            "step_type": self.step_type.value,
            "status": self.status.value,
            "started_at": to_iso(self.started_at),
            "completed_at": to_iso(self.completed_at),
            "result": self.result,
            "error": self.error,
        }


@dataclass
class WorkflowExecution:
    """Execution summary stored on the document; steps come from the event log"""
    workflow_id: str
    execution_id: str
    status: WorkflowStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    current_step: Optional[int] = None
    pending_approval_id: Optional[str] = None
    steps: List[StepEvent] = field(default_factory=list)

    def to_summary(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "execution_id": self.execution_id,
            "status": self.status.value,
            "started_at": to_iso(self.started_at),
            "completed_at": to_iso(self.completed_at),
            "error": self.error,
            "current_step": self.current_step,
            "pending_approval_id": self.pending_approval_id,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_summary()
        data["steps"] = [step.to_dict() for step in self.steps]
        return data

    @staticmethod
    def from_summary(data: Dict[str, Any]) -> 'WorkflowExecution':
        return WorkflowExecution(
            workflow_id=data["workflow_id"],
            execution_id=data["execution_id"],
            status=WorkflowStatus(data["status"]),
            started_at=from_iso(data.get("started_at")),
            completed_at=from_iso(data.get("completed_at")),
            error=data.get("error"),
            current_step=data.get("current_step"),
            pending_approval_id=data.get("pending_approval_id"),
        )


# ============= Documents =============

@dataclass
class Document:
    """Domain model for uploaded documents"""
    id: str
    filename: str
    mime_type: str
    size: int
    file_hash: str
    stored_filename: str
    uploaded_by: str
    status: DocumentStatus = DocumentStatus.UPLOADED
    category: Optional[str] = None
    processing_results: Dict[str, Any] = field(default_factory=dict)
    workflow_execution: Optional[WorkflowExecution] = None
    integration_notifications: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1


@dataclass
class DocumentChunk:
    """Domain model for document chunks"""
    id: str
    content: str
    document_id: str
    chunk_index: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    embedding: Optional[List[float]] = None # Vector of float numbers
    page_number: Optional[int] = None


@dataclass
class ChunkSearchResult:
    """Domain model for search results"""
    chunk: DocumentChunk
    score: float


@dataclass
class ExtractionResult:
    """Text pulled out of a stored file"""
    text: str
    method: str
    confidence: float
    pages: List[str] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)


@dataclass
class ExtractedEntity:
    text: str
    label: str
    score: float
    start: Optional[int] = None
    end: Optional[int] = None
    source: str = "model"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "label": self.label,
            "score": round(float(self.score), 4),
            "start": self.start,
            "end": self.end,
            "source": self.source,
        }


# ============= Integrations & Approvals =============

@dataclass
class Integration:
    id: str
    type: IntegrationType
    name: str
    config: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    description: str = ""
    status: IntegrationStatus = IntegrationStatus.DISCONNECTED
    last_tested_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Approval:
    id: str
    document_id: str
    execution_id: str
    workflow_id: str
    step_index: int
    step_name: str
    status: ApprovalStatus = ApprovalStatus.PENDING
    approver_id: Optional[str] = None
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None


# ============= Users =============

@dataclass
class User:
    id: str
    email: str
    name: str
    password_hash: str = ""
    provider: str = "email"
    created_at: Optional[datetime] = None

    def to_profile(self) -> Dict[str, Any]:
        """Public view; never includes the password hash."""
        return {"id": self.id, "email": self.email, "name": self.name, "provider": self.provider}
