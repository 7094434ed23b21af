# api/schemas.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from core.domain import Approval, Document, WorkflowDefinition, to_iso
from core.enums import SelectionMode


# ============= Documents =============

class DocumentUploadRequest(BaseModel):
    filename: str
    content: str
    encoding: Literal["base64", "text"] = "base64"
    mime_type: Optional[str] = None
    uploaded_by: str = "anonymous"
    category: Optional[str] = None
    auto_process: bool = False


class DocumentResponse(BaseModel):
    id: str
    filename: str
    mime_type: str
    size: int
    status: str
    category: Optional[str] = None
    uploaded_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    workflow_execution: Optional[Dict[str, Any]] = None

    @classmethod
    def from_domain(cls, document: Document) -> "DocumentResponse":
        execution = document.workflow_execution
        return cls(
            id=document.id,
            filename=document.filename,
            mime_type=document.mime_type,
            size=document.size,
            status=document.status.value,
            category=document.category,
            uploaded_by=document.uploaded_by,
            created_at=document.created_at,
            updated_at=document.updated_at,
            workflow_execution=execution.to_summary() if execution else None,
        )


class DocumentsListResponse(BaseModel):
    documents: List[DocumentResponse]
    total: int


class ProcessRequest(BaseModel):
    mode: Optional[SelectionMode] = None
    workflow_id: Optional[str] = None
    category: Optional[str] = None
    auto_detect: bool = True
    execution_id: Optional[str] = None
    wait: bool = False


class ProcessResponse(BaseModel):
    document_id: str
    execution_id: str
    status: str
    selection: Dict[str, Any]
    execution: Optional[Dict[str, Any]] = None


# ============= Workflows =============

class WorkflowStepSchema(BaseModel):
    name: str
    type: str
    config: Dict[str, Any] = Field(default_factory=dict)


class WorkflowCreateRequest(BaseModel):
    name: str
    description: str = ""
    steps: List[WorkflowStepSchema]
    status: str = "active"


class WorkflowUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    steps: Optional[List[WorkflowStepSchema]] = None
    status: Optional[str] = None


class WorkflowResponse(BaseModel):
    id: str
    name: str
    description: str
    steps: List[Dict[str, Any]]
    is_builtin: bool
    status: str
    execution_count: int

    @classmethod
    def from_domain(cls, workflow: WorkflowDefinition) -> "WorkflowResponse":
        return cls(
            id=workflow.id,
            name=workflow.name,
            description=workflow.description,
            steps=[s.to_dict() for s in workflow.steps],
            is_builtin=workflow.is_builtin,
            status=workflow.status,
            execution_count=workflow.execution_count,
        )


class WorkflowSelectRequest(BaseModel):
    document_id: str
    mode: Optional[SelectionMode] = None
    workflow_id: Optional[str] = None
    category: Optional[str] = None
    auto_detect: bool = True


# ============= Integrations =============

class IntegrationCreateRequest(BaseModel):
    type: str
    name: str
    config: Dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    enabled: bool = True


class IntegrationUpdateRequest(BaseModel):
    name: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    description: Optional[str] = None
    enabled: Optional[bool] = None


# ============= Approvals =============

class ApprovalDecisionRequest(BaseModel):
    decision: str
    approver_id: str = "anonymous"
    reason: Optional[str] = None


class ApprovalResponse(BaseModel):
    id: str
    document_id: str
    execution_id: str
    workflow_id: str
    step_index: int
    step_name: str
    status: str
    approver_id: Optional[str] = None
    reason: Optional[str] = None
    created_at: Optional[str] = None
    decided_at: Optional[str] = None

    @classmethod
    def from_domain(cls, approval: Approval) -> "ApprovalResponse":
        return cls(
            id=approval.id,
            document_id=approval.document_id,
            execution_id=approval.execution_id,
            workflow_id=approval.workflow_id,
            step_index=approval.step_index,
            step_name=approval.step_name,
            status=approval.status.value,
            approver_id=approval.approver_id,
            reason=approval.reason,
            created_at=to_iso(approval.created_at),
            decided_at=to_iso(approval.decided_at),
        )


# ============= Search & agent =============

class SearchRequest(BaseModel):
    query: str
    top_k: int = 5
    document_id: Optional[str] = None


class SearchResponse(BaseModel):
    query: str
    results: List[Dict[str, Any]]
    total_results: int


class QARequest(BaseModel):
    query: Optional[str] = None
    top_k: int = 5
    document_id: Optional[str] = None


class SummarizeRequest(BaseModel):
    text: str
    max_length: int = 150


class EmbeddingRequest(BaseModel):
    text: str


# ============= Auth =============

class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str


class LoginRequest(BaseModel):
    email: str
    password: str
