# api/endpoints.py
"""
API endpoints for documents, workflows, approvals and search.

Identity: a signed-in caller (bearer token or auth cookie) is always
recorded by account id. `uploaded_by` and `approver_id` from the request
only name anonymous callers, which REQUIRE_AUTHENTICATION turns away.
There are no document-level permissions.
"""
import logging
import uuid
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse

from api.auth import caller_identity, get_optional_user
from api.errors import http_error
from api.schemas import (
    ApprovalDecisionRequest,
    ApprovalResponse,
    DocumentResponse,
    DocumentsListResponse,
    DocumentUploadRequest,
    ProcessRequest,
    ProcessResponse,
    SearchRequest,
    SearchResponse,
    WorkflowCreateRequest,
    WorkflowResponse,
    WorkflowSelectRequest,
    WorkflowUpdateRequest,
)
from core.domain import Document, User
from core.errors import ApexFlowError
from services.approval_service import ApprovalService
from services.document_service import DocumentService
from services.factory import (
    get_approval_service,
    get_document_service,
    get_search_service,
    get_workflow_executor,
    get_workflow_registry,
    get_workflow_selector,
    schedule_workflow,
)
from services.search_service import SearchService
from services.workflow_executor import WorkflowExecutor
from services.workflow_registry import WorkflowRegistry
from services.workflow_selector import WorkflowSelector
from utils.common import validate_document_id
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

router = APIRouter()


def _check_document_id(document_id: str) -> None:
    if not validate_document_id(document_id):
        raise HTTPException(status_code=400, detail="Invalid document ID format")


async def _auto_process(document_service: DocumentService, document: Document) -> None:
    """Selects a workflow (hybrid) and starts it in the background."""
    _, selection = await document_service.select_workflow(document.id)
    schedule_workflow(document.id, selection.workflow_id, str(uuid.uuid4()))
    logger.info(f"Auto-processing document {document.id} with {selection.workflow_id}")


# ---------- Documents ----------
@router.post("/documents", response_model=DocumentResponse, status_code=201)
async def upload_document(
    request: DocumentUploadRequest,
    user: Optional[User] = Depends(get_optional_user),
    document_service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    try:
        document = await document_service.upload_encoded(
            filename=request.filename,
            content=request.content,
            encoding=request.encoding,
            mime_type=request.mime_type,
            uploaded_by=caller_identity(user, request.uploaded_by),
            category=request.category,
        )
        if request.auto_process:
            await _auto_process(document_service, document)
    except ApexFlowError as e:
        raise http_error(e)
    return DocumentResponse.from_domain(document)


@router.post("/documents/upload", response_model=DocumentResponse, status_code=201)
async def upload_document_file(
    file: UploadFile = File(...),
    uploaded_by: str = Form("anonymous"),
    category: Optional[str] = Form(None),
    auto_process: bool = Form(False),
    user: Optional[User] = Depends(get_optional_user),
    document_service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    content = await file.read()
    try:
        document = await document_service.upload(
            filename=file.filename or "",
            content=content,
            mime_type=file.content_type,
            uploaded_by=caller_identity(user, uploaded_by),
            category=category,
        )
        if auto_process:
            await _auto_process(document_service, document)
    except ApexFlowError as e:
        raise http_error(e)
    return DocumentResponse.from_domain(document)


@router.get("/documents", response_model=DocumentsListResponse)
async def list_documents(
    uploaded_by: Optional[str] = None,
    status: Optional[str] = None,
    document_service: DocumentService = Depends(get_document_service),
) -> DocumentsListResponse:
    try:
        documents = await document_service.list_documents(uploaded_by=uploaded_by, status=status)
    except ApexFlowError as e:
        raise http_error(e)
    return DocumentsListResponse(
        documents=[DocumentResponse.from_domain(d) for d in documents],
        total=len(documents),
    )


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    document_service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    _check_document_id(document_id)
    try:
        return DocumentResponse.from_domain(await document_service.get(document_id))
    except ApexFlowError as e:
        raise http_error(e)


@router.get("/documents/{document_id}/analysis")
async def get_document_analysis(
    document_id: str,
    document_service: DocumentService = Depends(get_document_service),
) -> Dict[str, Any]:
    _check_document_id(document_id)
    try:
        return await document_service.get_analysis(document_id)
    except ApexFlowError as e:
        raise http_error(e)


@router.get("/documents/{document_id}/file")
async def download_document(
    document_id: str,
    document_service: DocumentService = Depends(get_document_service),
) -> FileResponse:
    _check_document_id(document_id)
    try:
        path, document = await document_service.get_file(document_id)
    except ApexFlowError as e:
        raise http_error(e)
    return FileResponse(path, media_type=document.mime_type, filename=document.filename)


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    document_service: DocumentService = Depends(get_document_service),
) -> Dict[str, Any]:
    _check_document_id(document_id)
    try:
        return await document_service.delete(document_id)
    except ApexFlowError as e:
        raise http_error(e)


@router.post("/documents/{document_id}/process", response_model=ProcessResponse, status_code=202)
async def process_document(
    document_id: str,
    request: Optional[ProcessRequest] = None,
    document_service: DocumentService = Depends(get_document_service),
    executor: WorkflowExecutor = Depends(get_workflow_executor),
) -> ProcessResponse:
    _check_document_id(document_id)
    request = request or ProcessRequest()
    try:
        document, selection = await document_service.select_workflow(
            document_id,
            mode=request.mode.value if request.mode else None,
            workflow_id=request.workflow_id,
            category=request.category,
            auto_detect=request.auto_detect,
        )
        execution_id = request.execution_id or str(uuid.uuid4())

        if request.wait:
            execution = await executor.execute(document.id, selection.workflow_id, execution_id)
            return ProcessResponse(
                document_id=document.id,
                execution_id=execution.execution_id,
                status=execution.status.value,
                selection=asdict(selection),
                execution=execution.to_dict(),
            )
    except ApexFlowError as e:
        raise http_error(e)

    schedule_workflow(document.id, selection.workflow_id, execution_id)
    return ProcessResponse(
        document_id=document.id,
        execution_id=execution_id,
        status="pending",
        selection=asdict(selection),
    )


@router.get("/documents/{document_id}/execution")
async def get_document_execution(
    document_id: str,
    executor: WorkflowExecutor = Depends(get_workflow_executor),
) -> Dict[str, Any]:
    _check_document_id(document_id)
    try:
        return (await executor.get_execution(document_id)).to_dict()
    except ApexFlowError as e:
        raise http_error(e)


# ---------- Workflows ----------
@router.get("/workflows", response_model=List[WorkflowResponse])
async def list_workflows(registry: WorkflowRegistry = Depends(get_workflow_registry)) -> List[WorkflowResponse]:
    return [WorkflowResponse.from_domain(w) for w in await registry.list_all()]


@router.get("/workflows/options")
async def workflow_options(selector: WorkflowSelector = Depends(get_workflow_selector)) -> Dict[str, Any]:
    return await selector.options()


@router.post("/workflows/select")
async def select_workflow(
    request: WorkflowSelectRequest,
    document_service: DocumentService = Depends(get_document_service),
) -> Dict[str, Any]:
    _check_document_id(request.document_id)
    try:
        _, selection = await document_service.select_workflow(
            request.document_id,
            mode=request.mode.value if request.mode else None,
            workflow_id=request.workflow_id,
            category=request.category,
            auto_detect=request.auto_detect,
        )
    except ApexFlowError as e:
        raise http_error(e)
    return asdict(selection)


@router.get("/workflows/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(workflow_id: str, registry: WorkflowRegistry = Depends(get_workflow_registry)) -> WorkflowResponse:
    try:
        return WorkflowResponse.from_domain(await registry.get(workflow_id))
    except ApexFlowError as e:
        raise http_error(e)


@router.post("/workflows", response_model=WorkflowResponse, status_code=201)
async def create_workflow(
    request: WorkflowCreateRequest,
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowResponse:
    try:
        workflow = await registry.create(
            name=request.name,
            steps=[s.model_dump() for s in request.steps],
            description=request.description,
            status=request.status,
        )
    except ApexFlowError as e:
        raise http_error(e)
    return WorkflowResponse.from_domain(workflow)


@router.put("/workflows/{workflow_id}", response_model=WorkflowResponse)
async def update_workflow(
    workflow_id: str,
    request: WorkflowUpdateRequest,
    registry: WorkflowRegistry = Depends(get_workflow_registry),
) -> WorkflowResponse:
    try:
        workflow = await registry.update(
            workflow_id,
            name=request.name,
            steps=[s.model_dump() for s in request.steps] if request.steps is not None else None,
            description=request.description,
            status=request.status,
        )
    except ApexFlowError as e:
        raise http_error(e)
    return WorkflowResponse.from_domain(workflow)


@router.delete("/workflows/{workflow_id}")
async def delete_workflow(workflow_id: str, registry: WorkflowRegistry = Depends(get_workflow_registry)) -> Dict[str, Any]:
    try:
        await registry.delete(workflow_id)
    except ApexFlowError as e:
        raise http_error(e)
    return {"status": "success", "workflow_id": workflow_id}


# ---------- Approvals ----------
@router.get("/approvals", response_model=List[ApprovalResponse])
async def list_approvals(
    status: Optional[str] = None,
    approval_service: ApprovalService = Depends(get_approval_service),
) -> List[ApprovalResponse]:
    try:
        approvals = await approval_service.list_all(status)
    except ApexFlowError as e:
        raise http_error(e)
    return [ApprovalResponse.from_domain(a) for a in approvals]


@router.get("/approvals/{approval_id}", response_model=ApprovalResponse)
async def get_approval(
    approval_id: str,
    approval_service: ApprovalService = Depends(get_approval_service),
) -> ApprovalResponse:
    try:
        return ApprovalResponse.from_domain(await approval_service.get(approval_id))
    except ApexFlowError as e:
        raise http_error(e)


@router.post("/approvals/{approval_id}/decision", response_model=ApprovalResponse)
async def decide_approval(
    approval_id: str,
    request: ApprovalDecisionRequest,
    user: Optional[User] = Depends(get_optional_user),
    approval_service: ApprovalService = Depends(get_approval_service),
) -> ApprovalResponse:
    try:
        approval = await approval_service.decide(
            approval_id, request.decision, caller_identity(user, request.approver_id), request.reason
        )
    except ApexFlowError as e:
        raise http_error(e)
    return ApprovalResponse.from_domain(approval)


# ---------- Search ----------
@router.post("/search", response_model=SearchResponse)
async def search_endpoint(
    request: SearchRequest,
    search_service: SearchService = Depends(get_search_service),
) -> SearchResponse:
    try:
        results = await search_service.search(request.query, request.top_k, request.document_id)
    except ApexFlowError as e:
        raise http_error(e)
    return SearchResponse(query=request.query, results=results, total_results=len(results))
