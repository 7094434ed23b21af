"""Tests for sequential workflow execution, replay and approval pauses."""
import asyncio
import uuid
from unittest.mock import AsyncMock, Mock

import pytest

from core.domain import StepEvent, WorkflowExecution, utc_now
from core.enums import ApprovalStatus, DocumentStatus, StepStatus, StepType, WorkflowStatus
from core.errors import (
    ConcurrentModificationError,
    ExecutionConflictError,
    NotFoundError,
    StepExecutionError,
)
from infrastructure.notifiers import NotifierRegistry
from infrastructure.repositories import (
    SQLApprovalRepository,
    SQLDocumentRepository,
    SQLIntegrationRepository,
    SQLStepEventRepository,
    SQLWorkflowRepository,
)
from services.step_handlers import StepHandlers
from services.workflow_executor import WorkflowExecutor
from services.workflow_registry import WorkflowRegistry

THREE_STEPS = [
    {"name": "First", "type": "extract_text"},
    {"name": "Second", "type": "analyze_content"},
    {"name": "Third", "type": "store_data", "config": {"integrationType": "database"}},
]


def _scripted_handlers(fail_at: int = None) -> Mock:
    """Handlers that return {"step": index}, raising at fail_at."""
    handlers = Mock(spec=StepHandlers)

    async def run(context):
        if context.step_index == fail_at:
            raise StepExecutionError(f"boom at {context.step_index}")
        return {"step": context.step_index, "seen": sorted(context.previous_results)}

    handlers.run = AsyncMock(side_effect=run)
    return handlers


def _executor(session, handlers) -> WorkflowExecutor:
    return WorkflowExecutor(
        document_repo=SQLDocumentRepository(session),
        event_repo=SQLStepEventRepository(session),
        registry=WorkflowRegistry(SQLWorkflowRepository(session)),
        handlers=handlers,
    )


async def _workflow(session, steps=THREE_STEPS):
    registry = WorkflowRegistry(SQLWorkflowRepository(session))
    return await registry.create(name=f"wf-{uuid.uuid4().hex[:8]}", steps=steps)


class TestExecution:

    @pytest.mark.asyncio
    async def test_all_steps_complete(self, session, saved_document):
        workflow = await _workflow(session)
        handlers = _scripted_handlers()

        execution = await _executor(session, handlers).execute(saved_document.id, workflow.id)

        assert execution.status == WorkflowStatus.COMPLETED
        assert execution.completed_at is not None
        assert [e.step_index for e in execution.steps] == [0, 1, 2]
        assert all(e.status == StepStatus.COMPLETED for e in execution.steps)

        document = await SQLDocumentRepository(session).get_by_id(saved_document.id)
        assert document.status == DocumentStatus.COMPLETED
        assert document.workflow_execution.status == WorkflowStatus.COMPLETED

        stored = await SQLWorkflowRepository(session).get_by_id(workflow.id)
        assert stored.execution_count == 1

    @pytest.mark.asyncio
    async def test_results_accumulate_in_order(self, session, saved_document):
        workflow = await _workflow(session)

        execution = await _executor(session, _scripted_handlers()).execute(saved_document.id, workflow.id)

        assert execution.steps[0].result["seen"] == []
        assert execution.steps[1].result["seen"] == ["First"]
        assert execution.steps[2].result["seen"] == ["First", "Second"]

    @pytest.mark.asyncio
    async def test_failure_preserves_partial_results(self, session, saved_document):
        workflow = await _workflow(session)
        handlers = _scripted_handlers(fail_at=2)

        execution = await _executor(session, handlers).execute(saved_document.id, workflow.id)

        assert execution.status == WorkflowStatus.FAILED
        assert "Third" in execution.error
        statuses = [(e.step_index, e.status) for e in execution.steps]
        assert statuses == [(0, StepStatus.COMPLETED), (1, StepStatus.COMPLETED), (2, StepStatus.FAILED)]
        assert "boom at 2" in execution.steps[2].error

        document = await SQLDocumentRepository(session).get_by_id(saved_document.id)
        assert document.status == DocumentStatus.FAILED

    @pytest.mark.asyncio
    async def test_failure_stops_remaining_steps(self, session, saved_document):
        workflow = await _workflow(session)
        handlers = _scripted_handlers(fail_at=0)

        execution = await _executor(session, handlers).execute(saved_document.id, workflow.id)

        assert execution.status == WorkflowStatus.FAILED
        assert handlers.run.await_count == 1
        assert len(execution.steps) == 1

    @pytest.mark.asyncio
    async def test_unknown_document_raises(self, session):
        workflow = await _workflow(session)
        with pytest.raises(NotFoundError):
            await _executor(session, _scripted_handlers()).execute(str(uuid.uuid4()), workflow.id)

    @pytest.mark.asyncio
    async def test_unknown_workflow_raises(self, session, saved_document):
        with pytest.raises(NotFoundError):
            await _executor(session, _scripted_handlers()).execute(saved_document.id, "no-such-workflow")


class TestReplay:

    @pytest.mark.asyncio
    async def test_replaying_completed_execution_adds_nothing(self, session, saved_document):
        workflow = await _workflow(session)
        handlers = _scripted_handlers()
        executor = _executor(session, handlers)

        first = await executor.execute(saved_document.id, workflow.id, execution_id="exec-1")
        second = await executor.execute(saved_document.id, workflow.id, execution_id="exec-1")

        assert second.status == WorkflowStatus.COMPLETED
        assert handlers.run.await_count == 3
        assert len(await SQLStepEventRepository(session).list_for_execution("exec-1")) == 3
        assert [e.id for e in first.steps] == [e.id for e in second.steps]

    @pytest.mark.asyncio
    async def test_resume_skips_completed_steps(self, session, saved_document):
        workflow = await _workflow(session)
        events = SQLStepEventRepository(session)
        now = utc_now()
        await events.append(StepEvent(
            document_id=saved_document.id,
            execution_id="exec-2",
            workflow_id=workflow.id,
            step_index=0,
            step_name="First",
            step_type=StepType.EXTRACT_TEXT,
            status=StepStatus.COMPLETED,
            started_at=now,
            completed_at=now,
            result={"step": 0, "from": "earlier run"},
        ))
        handlers = _scripted_handlers()

        execution = await _executor(session, handlers).execute(saved_document.id, workflow.id, execution_id="exec-2")

        assert execution.status == WorkflowStatus.COMPLETED
        assert [c.args[0].step_index for c in handlers.run.await_args_list] == [1, 2]
        assert execution.steps[0].result == {"step": 0, "from": "earlier run"}
        assert execution.steps[1].result["seen"] == ["First"]

    @pytest.mark.asyncio
    async def test_appending_same_step_twice_keeps_original(self, session, saved_document):
        events = SQLStepEventRepository(session)
        now = utc_now()

        def event(result):
            return StepEvent(
                document_id=saved_document.id, execution_id="exec-3", workflow_id="wf",
                step_index=0, step_name="First", step_type=StepType.EXTRACT_TEXT,
                status=StepStatus.COMPLETED, started_at=now, completed_at=now, result=result,
            )

        await events.append(event({"v": 1}))
        kept = await events.append(event({"v": 2}))

        assert kept.result == {"v": 1}
        assert len(await events.list_for_execution("exec-3")) == 1

    @pytest.mark.asyncio
    async def test_running_execution_blocks_another(self, session, saved_document):
        workflow = await _workflow(session)
        running = WorkflowExecution(
            workflow_id=workflow.id,
            execution_id="exec-running",
            status=WorkflowStatus.RUNNING,
            started_at=utc_now(),
        )
        await SQLDocumentRepository(session).update_execution(saved_document.id, running, DocumentStatus.PROCESSING)

        with pytest.raises(ExecutionConflictError):
            await _executor(session, _scripted_handlers()).execute(saved_document.id, workflow.id, "exec-other")

    @pytest.mark.asyncio
    async def test_get_execution_returns_steps_from_log(self, session, saved_document):
        workflow = await _workflow(session)
        executor = _executor(session, _scripted_handlers(fail_at=1))
        await executor.execute(saved_document.id, workflow.id)

        execution = await executor.get_execution(saved_document.id)

        assert execution.status == WorkflowStatus.FAILED
        assert [e.status for e in execution.steps] == [StepStatus.COMPLETED, StepStatus.FAILED]


class TestApprovalPause:

    def _handlers(self, session) -> StepHandlers:
        return StepHandlers(
            document_repo=SQLDocumentRepository(session),
            file_storage=Mock(),
            extractor_factory=Mock(),
            ingestor=Mock(),
            ai_client=Mock(),
            field_extractor=Mock(),
            entity_extractor=Mock(),
            integration_repo=SQLIntegrationRepository(session),
            approval_repo=SQLApprovalRepository(session),
            notifiers=NotifierRegistry({}),
        )

    async def _paused(self, session, saved_document):
        workflow = await _workflow(session, [
            {"name": "Review", "type": "require_approval"},
            {"name": "Store", "type": "store_data", "config": {"integrationType": "database"}},
        ])
        executor = _executor(session, self._handlers(session))
        execution = await executor.execute(saved_document.id, workflow.id, execution_id="exec-approval")
        return workflow, executor, execution

    @pytest.mark.asyncio
    async def test_pauses_until_decided(self, session, saved_document):
        _, _, execution = await self._paused(session, saved_document)

        assert execution.status == WorkflowStatus.PAUSED_FOR_APPROVAL
        assert execution.pending_approval_id is not None
        assert execution.steps == []

        approval = await SQLApprovalRepository(session).get_by_id(execution.pending_approval_id)
        assert approval.status == ApprovalStatus.PENDING
        document = await SQLDocumentRepository(session).get_by_id(saved_document.id)
        assert document.status == DocumentStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_approval_resumes_to_completion(self, session, saved_document):
        workflow, executor, paused = await self._paused(session, saved_document)
        await SQLApprovalRepository(session).decide(paused.pending_approval_id, ApprovalStatus.APPROVED, "alice")

        execution = await executor.execute(saved_document.id, workflow.id, execution_id="exec-approval")

        assert execution.status == WorkflowStatus.COMPLETED
        assert [e.status for e in execution.steps] == [StepStatus.COMPLETED, StepStatus.COMPLETED]
        assert execution.steps[0].result["approver_id"] == "alice"
        assert execution.steps[1].result == {"message": "No active database integrations"}

    @pytest.mark.asyncio
    async def test_rejection_fails_workflow(self, session, saved_document):
        workflow, executor, paused = await self._paused(session, saved_document)
        await SQLApprovalRepository(session).decide(
            paused.pending_approval_id, ApprovalStatus.REJECTED, "bob", "missing signature"
        )

        execution = await executor.execute(saved_document.id, workflow.id, execution_id="exec-approval")

        assert execution.status == WorkflowStatus.FAILED
        assert execution.steps[0].status == StepStatus.FAILED
        assert "missing signature" in execution.steps[0].error


class TestInfrastructureFailures:

    @pytest.mark.asyncio
    async def test_event_log_failure_ends_failed(self, session, saved_document):
        workflow = await _workflow(session)
        events = SQLStepEventRepository(session)
        append = events.append

        async def flaky_append(event):
            if event.step_index == 1:
                raise RuntimeError("event log unavailable")
            return await append(event)

        events.append = flaky_append
        executor = WorkflowExecutor(
            document_repo=SQLDocumentRepository(session),
            event_repo=events,
            registry=WorkflowRegistry(SQLWorkflowRepository(session)),
            handlers=_scripted_handlers(),
        )

        execution = await executor.execute(saved_document.id, workflow.id)

        assert execution.status == WorkflowStatus.FAILED
        assert "event log unavailable" in execution.error
        assert [(e.step_index, e.status) for e in execution.steps] == [(0, StepStatus.COMPLETED)]
        document = await SQLDocumentRepository(session).get_by_id(saved_document.id)
        assert document.status == DocumentStatus.FAILED
        assert document.workflow_execution.status == WorkflowStatus.FAILED

    @pytest.mark.asyncio
    async def test_concurrent_modification_does_not_strand_document(self, session, saved_document):
        workflow = await _workflow(session)
        documents = SQLDocumentRepository(session)
        update_execution = documents.update_execution

        async def contested(document_id, execution, status=None):
            if execution.status == WorkflowStatus.RUNNING and execution.current_step == 1:
                raise ConcurrentModificationError(f"Document {document_id} was modified by another writer")
            return await update_execution(document_id, execution, status)

        documents.update_execution = contested
        executor = WorkflowExecutor(
            document_repo=documents,
            event_repo=SQLStepEventRepository(session),
            registry=WorkflowRegistry(SQLWorkflowRepository(session)),
            handlers=_scripted_handlers(),
        )

        execution = await executor.execute(saved_document.id, workflow.id)

        assert execution.status == WorkflowStatus.FAILED
        assert "modified by another writer" in execution.error
        document = await SQLDocumentRepository(session).get_by_id(saved_document.id)
        assert document.status == DocumentStatus.FAILED

        # A fresh execution is not blocked by the aborted one
        retried = await _executor(session, _scripted_handlers()).execute(saved_document.id, workflow.id)
        assert retried.status == WorkflowStatus.COMPLETED


class TestDocumentLock:

    @pytest.mark.asyncio
    async def test_executions_of_one_document_never_overlap(self):
        executor = WorkflowExecutor(Mock(), Mock(), Mock(), Mock())
        active = 0
        peak = 0

        async def tracked(document_id, workflow_id, execution_id):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.05)
            active -= 1
            return execution_id

        executor._execute = tracked

        first = asyncio.create_task(executor.execute("doc-1", "wf", "a"))
        await asyncio.sleep(0)
        queued = asyncio.create_task(executor.execute("doc-1", "wf", "b"))
        await first
        # Arrives while "b" is woken but has not yet reacquired the lock
        late = asyncio.create_task(executor.execute("doc-1", "wf", "c"))

        assert await asyncio.gather(queued, late) == ["b", "c"]
        assert peak == 1
        assert "doc-1" not in WorkflowExecutor._locks

    @pytest.mark.asyncio
    async def test_different_documents_run_in_parallel(self):
        executor = WorkflowExecutor(Mock(), Mock(), Mock(), Mock())
        active = 0
        peak = 0

        async def tracked(document_id, workflow_id, execution_id):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.05)
            active -= 1

        executor._execute = tracked

        await asyncio.gather(executor.execute("doc-1", "wf"), executor.execute("doc-2", "wf"))

        assert peak == 2
        assert WorkflowExecutor._locks == {}
