# services/workflow_registry.py
"""Built-in workflow definitions plus persisted custom workflows"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from core.domain import WorkflowDefinition, WorkflowStep
from core.enums import IntegrationType, StepType
from core.errors import NotFoundError, ValidationError
from core.interfaces import IWorkflowRepository
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


def _step(name: str, step_type: StepType, **config: Any) -> WorkflowStep:
    return WorkflowStep(name=name, type=step_type, config=config)


EXTRACT = _step("Extract Text", StepType.EXTRACT_TEXT)
ANALYZE = _step("Analyze Content", StepType.ANALYZE_CONTENT)

BUILTIN_WORKFLOWS: Dict[str, WorkflowDefinition] = {
    wf.id: wf for wf in [
        WorkflowDefinition(
            id="demo-workflow-1",
            name="Document Processing Workflow",
            description="Extract text, analyze it, notify Slack and store the results.",
            steps=[
                EXTRACT,
                ANALYZE,
                _step("Send Slack Notification", StepType.SEND_NOTIFICATION, integrationType="slack"),
                _step("Store in Database", StepType.STORE_DATA, integrationType="database"),
            ],
            is_builtin=True,
        ),
        WorkflowDefinition(
            id="invoice-processing-workflow",
            name="Invoice Processing Workflow",
            description="Extract invoice fields, store them and notify accounts payable.",
            steps=[
                EXTRACT,
                ANALYZE,
                _step("Store Invoice Data", StepType.STORE_DATA, integrationType="database"),
                _step("Notify Accounts Payable", StepType.SEND_NOTIFICATION, integrationType="slack"),
            ],
            is_builtin=True,
        ),
        WorkflowDefinition(
            id="contract-analysis-workflow",
            name="Contract Analysis Workflow",
            description="Analyze a contract and hold it for approval before storing.",
            steps=[
                EXTRACT,
                ANALYZE,
                _step("Contract Approval", StepType.REQUIRE_APPROVAL),
                _step("Notify Legal Team", StepType.SEND_NOTIFICATION, integrationType="slack"),
                _step("Store Contract Data", StepType.STORE_DATA, integrationType="database"),
            ],
            is_builtin=True,
        ),
        WorkflowDefinition(
            id="legal-document-workflow",
            name="Legal Document Workflow",
            description="Legal review with a mandatory approval gate.",
            steps=[
                EXTRACT,
                ANALYZE,
                _step("Legal Review", StepType.REQUIRE_APPROVAL),
                _step("Store Legal Record", StepType.STORE_DATA, integrationType="database"),
            ],
            is_builtin=True,
        ),
        WorkflowDefinition(
            id="financial-analysis-workflow",
            name="Financial Analysis Workflow",
            description="Store financial statements and email a summary.",
            steps=[
                EXTRACT,
                ANALYZE,
                _step("Store Financial Data", StepType.STORE_DATA, integrationType="database"),
                _step("Email Finance Team", StepType.SEND_NOTIFICATION, integrationType="email"),
            ],
            is_builtin=True,
        ),
        WorkflowDefinition(
            id="receipt-processing-workflow",
            name="Receipt Processing Workflow",
            description="Capture receipt totals for expense tracking.",
            steps=[
                EXTRACT,
                ANALYZE,
                _step("Store Expense", StepType.STORE_DATA, integrationType="database"),
            ],
            is_builtin=True,
        ),
        WorkflowDefinition(
            id="form-processing-workflow",
            name="Form Processing Workflow",
            description="Extract form fields and forward them to a webhook.",
            steps=[
                EXTRACT,
                ANALYZE,
                _step("Store Form Data", StepType.STORE_DATA, integrationType="database"),
                _step("Forward to Webhook", StepType.SEND_NOTIFICATION, integrationType="webhook"),
            ],
            is_builtin=True,
        ),
    ]
}


class WorkflowRegistry:
    """Read access to every workflow; write access to custom ones only."""

    def __init__(self, workflow_repo: IWorkflowRepository):
        self.workflow_repo = workflow_repo

    async def find(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        if workflow_id in BUILTIN_WORKFLOWS:
            return BUILTIN_WORKFLOWS[workflow_id]
        return await self.workflow_repo.get_by_id(workflow_id)

    async def get(self, workflow_id: str) -> WorkflowDefinition:
        workflow = await self.find(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        return workflow

    async def list_all(self) -> List[WorkflowDefinition]:
        return list(BUILTIN_WORKFLOWS.values()) + await self.workflow_repo.list_all()

    async def find_by_name(self, name: str) -> Optional[WorkflowDefinition]:
        for workflow in await self.list_all():
            if workflow.name.lower() == name.lower():
                return workflow
        return None

    # ============= Custom workflows =============

    @staticmethod
    def parse_steps(steps: List[Dict[str, Any]]) -> List[WorkflowStep]:
        if not steps:
            raise ValidationError("A workflow needs at least one step")

        parsed = []
        for position, raw in enumerate(steps, start=1):
            name = (raw.get("name") or "").strip()
            if not name:
                raise ValidationError(f"Step {position} has no name")
            try:
                step_type = StepType(raw.get("type"))
            except ValueError:
                allowed = ", ".join(t.value for t in StepType)
                raise ValidationError(f"Step '{name}' has unknown type '{raw.get('type')}'. Allowed: {allowed}")

            config = dict(raw.get("config") or {})
            if step_type in (StepType.SEND_NOTIFICATION, StepType.STORE_DATA) and "integrationType" in config:
                try:
                    IntegrationType(config["integrationType"])
                except ValueError:
                    raise ValidationError(
                        f"Step '{name}' has unknown integrationType '{config['integrationType']}'"
                    )
            parsed.append(WorkflowStep(name=name, type=step_type, config=config))
        return parsed

    async def _ensure_unique_name(self, name: str, workflow_id: Optional[str] = None) -> None:
        existing = await self.find_by_name(name)
        if existing is not None and existing.id != workflow_id:
            raise ValidationError(f"A workflow named '{name}' already exists")

    async def create(self, name: str, steps: List[Dict[str, Any]], description: str = "", status: str = "active") -> WorkflowDefinition:
        if not name or not name.strip():
            raise ValidationError("Workflow name is required")
        await self._ensure_unique_name(name.strip())
        workflow = WorkflowDefinition(
            id=str(uuid.uuid4()),
            name=name.strip(),
            description=description or "",
            steps=self.parse_steps(steps),
            status=status,
        )
        return await self.workflow_repo.create(workflow)

    async def update(
        self,
        workflow_id: str,
        name: Optional[str] = None,
        steps: Optional[List[Dict[str, Any]]] = None,
        description: Optional[str] = None,
        status: Optional[str] = None,
    ) -> WorkflowDefinition:
        if workflow_id in BUILTIN_WORKFLOWS:
            raise ValidationError(f"Built-in workflow {workflow_id} cannot be modified")
        workflow = await self.get(workflow_id)
        if name is not None:
            await self._ensure_unique_name(name.strip(), workflow_id)
            workflow.name = name.strip()
        if steps is not None:
            workflow.steps = self.parse_steps(steps)
        if description is not None:
            workflow.description = description
        if status is not None:
            workflow.status = status
        return await self.workflow_repo.update(workflow)

    async def delete(self, workflow_id: str) -> bool:
        if workflow_id in BUILTIN_WORKFLOWS:
            raise ValidationError(f"Built-in workflow {workflow_id} cannot be deleted")
        deleted = await self.workflow_repo.delete(workflow_id)
        if not deleted:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        return True

    async def increment_execution_count(self, workflow_id: str) -> None:
        if workflow_id not in BUILTIN_WORKFLOWS:
            await self.workflow_repo.increment_execution_count(workflow_id)
