# services/workflow_executor.py
"""Runs a workflow's steps against a document"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from core.domain import StepEvent, WorkflowDefinition, WorkflowExecution, WorkflowStep, utc_now
from core.enums import DocumentStatus, StepStatus, WorkflowStatus
from core.errors import ExecutionConflictError, NotFoundError, ValidationError
from core.interfaces import IDocumentRepository, IStepEventRepository
from services.step_handlers import StepContext, StepHandlers, is_pending_approval
from services.workflow_registry import WorkflowRegistry
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


class WorkflowExecutor:
    """
    Sequential step runner.

    Every executed step appends one immutable StepEvent keyed by
    (execution_id, step_index). Calling execute() again with the same
    execution_id skips steps already completed, so a replay never repeats
    side effects and a paused execution resumes where it stopped.
    """

    # Serialises executions of one document within this process; an entry
    # lives while any caller holds or waits on its lock
    _locks: Dict[str, asyncio.Lock] = {}
    _waiters: Dict[str, int] = {}

    def __init__(
        self,
        document_repo: IDocumentRepository,
        event_repo: IStepEventRepository,
        registry: WorkflowRegistry,
        handlers: StepHandlers,
    ):
        self.document_repo = document_repo
        self.event_repo = event_repo
        self.registry = registry
        self.handlers = handlers

    @classmethod
    def _lock_for(cls, document_id: str) -> asyncio.Lock:
        cls._waiters[document_id] = cls._waiters.get(document_id, 0) + 1
        return cls._locks.setdefault(document_id, asyncio.Lock())

    @classmethod
    def _release(cls, document_id: str) -> None:
        remaining = cls._waiters[document_id] - 1
        if remaining:
            cls._waiters[document_id] = remaining
        else:
            del cls._waiters[document_id]
            del cls._locks[document_id]

    async def execute(
        self, document_id: str, workflow_id: str, execution_id: Optional[str] = None
    ) -> WorkflowExecution:
        lock = self._lock_for(document_id)
        try:
            async with lock:
                return await self._execute(document_id, workflow_id, execution_id)
        finally:
            self._release(document_id)

    async def _start(
        self, document_id: str, workflow_id: str, execution_id: Optional[str]
    ) -> WorkflowExecution:
        document = await self.document_repo.get_by_id(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")

        current = document.workflow_execution
        if current is not None and current.execution_id == execution_id:
            if current.workflow_id != workflow_id:
                raise ValidationError(
                    f"Execution {execution_id} belongs to workflow {current.workflow_id}, not {workflow_id}"
                )
            return current

        if current is not None and current.status == WorkflowStatus.RUNNING:
            raise ExecutionConflictError(
                f"Document {document_id} already has execution {current.execution_id} running"
            )
        return WorkflowExecution(
            workflow_id=workflow_id,
            execution_id=execution_id or str(uuid.uuid4()),
            status=WorkflowStatus.PENDING,
            started_at=utc_now(),
        )

    async def _execute(
        self, document_id: str, workflow_id: str, execution_id: Optional[str]
    ) -> WorkflowExecution:
        execution = await self._start(document_id, workflow_id, execution_id)
        workflow = await self.registry.get(workflow_id)

        if execution.status.is_terminal:
            logger.info(f"Execution {execution.execution_id} already {execution.status.value}; nothing to do")
            return await self._with_steps(execution)

        execution.status = WorkflowStatus.RUNNING
        execution.error = None
        execution.pending_approval_id = None
        await self.document_repo.update_execution(document_id, execution, DocumentStatus.PROCESSING)
        logger.info(
            f"Executing workflow {workflow.id} on document {document_id} (execution {execution.execution_id})"
        )

        try:
            return await self._run_steps(document_id, workflow, execution)
        except Exception as e:
            logger.error(
                f"Execution {execution.execution_id} aborted on document {document_id}: {e}", exc_info=True
            )
            execution.status = WorkflowStatus.FAILED
            execution.error = f"Execution aborted: {e}"
            execution.completed_at = utc_now()
            try:
                await self.document_repo.update_execution(document_id, execution, DocumentStatus.FAILED)
            except Exception as write_error:
                logger.warning(f"Could not mark execution {execution.execution_id} failed: {write_error}")
            return await self._with_steps(execution)

    async def _run_steps(
        self, document_id: str, workflow: WorkflowDefinition, execution: WorkflowExecution
    ) -> WorkflowExecution:
        completed = {
            event.step_index: event
            for event in await self.event_repo.list_for_execution(execution.execution_id)
            if event.status == StepStatus.COMPLETED
        }
        results: Dict[str, Any] = {}

        for index, step in enumerate(workflow.steps):
            if index in completed:
                results[step.name] = completed[index].result
                continue

            execution.current_step = index
            await self.document_repo.update_execution(document_id, execution)
            document = await self.document_repo.get_by_id(document_id)
            if document is None:
                raise NotFoundError(f"Document {document_id} was deleted during execution")

            context = StepContext(
                document=document,
                workflow=workflow,
                execution_id=execution.execution_id,
                step_index=index,
                step=step,
                previous_results=dict(results),
            )
            started_at = utc_now()
            try:
                result = await self.handlers.run(context)
            except Exception as e:
                # Any handler error fails the step; earlier events stay as they are
                logger.error(f"Step {index} '{step.name}' failed for document {document_id}: {e}")
                await self._record(execution, document_id, index, step, started_at, StepStatus.FAILED, error=str(e))
                execution.status = WorkflowStatus.FAILED
                execution.error = f"Step '{step.name}' failed: {e}"
                execution.completed_at = utc_now()
                await self.document_repo.update_execution(document_id, execution, DocumentStatus.FAILED)
                return await self._with_steps(execution)

            if is_pending_approval(step, result):
                execution.status = WorkflowStatus.PAUSED_FOR_APPROVAL
                execution.pending_approval_id = result["approval_id"]
                await self.document_repo.update_execution(document_id, execution)
                logger.info(f"Execution {execution.execution_id} paused for approval {result['approval_id']}")
                return await self._with_steps(execution)

            await self._record(execution, document_id, index, step, started_at, StepStatus.COMPLETED, result=result)
            results[step.name] = result

        execution.status = WorkflowStatus.COMPLETED
        execution.current_step = None
        execution.completed_at = utc_now()
        await self.document_repo.update_execution(document_id, execution, DocumentStatus.COMPLETED)
        try:
            await self.registry.increment_execution_count(workflow.id)
        except Exception as e:
            # The execution is already terminal; the counter is bookkeeping only
            logger.warning(f"Could not bump execution count for workflow {workflow.id}: {e}")
        logger.info(f"Execution {execution.execution_id} completed for document {document_id}")
        return await self._with_steps(execution)

    async def _record(
        self,
        execution: WorkflowExecution,
        document_id: str,
        index: int,
        step: WorkflowStep,
        started_at,
        status: StepStatus,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> StepEvent:
        return await self.event_repo.append(StepEvent(
            document_id=document_id,
            execution_id=execution.execution_id,
            workflow_id=execution.workflow_id,
            step_index=index,
            step_name=step.name,
            step_type=step.type,
            status=status,
            started_at=started_at,
            completed_at=utc_now(),
            result=result,
            error=error,
        ))

    async def _with_steps(self, execution: WorkflowExecution) -> WorkflowExecution:
        execution.steps = await self.event_repo.list_for_execution(execution.execution_id)
        return execution

    async def get_execution(self, document_id: str) -> WorkflowExecution:
        document = await self.document_repo.get_by_id(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        if document.workflow_execution is None:
            raise NotFoundError(f"Document {document_id} has no workflow execution")
        return await self._with_steps(document.workflow_execution)
