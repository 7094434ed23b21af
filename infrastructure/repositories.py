# infrastructure/repositories.py
"""Database repository implementations"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any

from sqlalchemy import select, delete, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from core.domain import (
    Approval,
    Document,
    Integration,
    StepEvent,
    User,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowStep,
)
from core.enums import (
    ApprovalStatus,
    DocumentStatus,
    IntegrationStatus,
    IntegrationType,
    StepStatus,
    StepType,
)
from core.errors import ConcurrentModificationError, EmailInUseError, NotFoundError, ValidationError
from core.interfaces import (
    IApprovalRepository,
    IDocumentRepository,
    IExportRepository,
    IIntegrationRepository,
    IStepEventRepository,
    IUserRepository,
    IWorkflowRepository,
)
from database.session import (
    ApprovalEntity,
    DocumentEntity,
    ExportedRecordEntity,
    IntegrationEntity,
    RevokedTokenEntity,
    StepEventEntity,
    UserEntity,
    WorkflowEntity,
)
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


class SQLDocumentRepository(IDocumentRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, db_doc: Optional[DocumentEntity]) -> Optional[Document]:
        """Converts an SQLAlchemy entity to a domain model."""
        if db_doc is None:
            return None

        execution = None
        if db_doc.workflow_execution:
            execution = WorkflowExecution.from_summary(db_doc.workflow_execution)

        # Copies prevent accidental mutation of tracked JSON values
        return Document(
            id=db_doc.id,
            filename=db_doc.filename,
            mime_type=db_doc.mime_type,
            size=db_doc.size,
            file_hash=db_doc.file_hash,
            stored_filename=db_doc.stored_filename,
            uploaded_by=db_doc.uploaded_by,
            status=DocumentStatus.from_string(db_doc.status),
            category=db_doc.category,
            processing_results=dict(db_doc.processing_results or {}),
            workflow_execution=execution,
            integration_notifications=list(db_doc.integration_notifications or []),
            created_at=db_doc.created_at,
            updated_at=db_doc.updated_at,
            version=db_doc.version,
        )

    async def _load(self, document_id: str) -> DocumentEntity:
        # populate_existing re-reads the row so the version check uses fresh state
        db_doc = await self.session.get(DocumentEntity, document_id, populate_existing=True)
        if db_doc is None:
            raise NotFoundError(f"Document {document_id} not found")
        return db_doc

    async def _commit_versioned(self, db_doc: DocumentEntity) -> Document:
        document_id = db_doc.id
        try:
            await self.session.commit()
        except StaleDataError:
            await self.session.rollback()
            logger.warning(f"Concurrent update detected on document {document_id}")
            raise ConcurrentModificationError(
                f"Document {document_id} was modified by another writer"
            )
        await self.session.refresh(db_doc)
        return self._to_domain(db_doc)

    async def create(self, document: Document) -> Document:
        db_doc = DocumentEntity(
            id=document.id,
            filename=document.filename,
            mime_type=document.mime_type,
            size=document.size,
            file_hash=document.file_hash,
            stored_filename=document.stored_filename,
            uploaded_by=document.uploaded_by,
            status=document.status.value,
            category=document.category,
            processing_results=dict(document.processing_results),
            workflow_execution=None,
            integration_notifications=[],
        )
        self.session.add(db_doc)
        await self.session.commit()
        await self.session.refresh(db_doc)
        logger.info(f"Created document {document.id} in database")

        result = self._to_domain(db_doc)
        assert result is not None, "Created document should never be None"
        return result

    async def get_by_id(self, document_id: str) -> Optional[Document]:
        db_doc = await self.session.get(DocumentEntity, document_id, populate_existing=True)
        return self._to_domain(db_doc)

    async def get_by_hash(self, file_hash: str) -> Optional[Document]:
        result = await self.session.execute(
            select(DocumentEntity).where(DocumentEntity.file_hash == file_hash)
        )
        return self._to_domain(result.scalar_one_or_none())

    async def list_all(
        self, uploaded_by: Optional[str] = None, status: Optional[DocumentStatus] = None
    ) -> List[Document]:
        stmt = select(DocumentEntity).order_by(DocumentEntity.created_at.desc())
        if uploaded_by:
            stmt = stmt.where(DocumentEntity.uploaded_by == uploaded_by)
        if status:
            stmt = stmt.where(DocumentEntity.status == status.value)
        result = await self.session.execute(stmt)
        return [self._to_domain(doc) for doc in result.scalars().all()]

    async def update_execution(
        self,
        document_id: str,
        execution: WorkflowExecution,
        status: Optional[DocumentStatus] = None,
    ) -> Document:
        db_doc = await self._load(document_id)
        db_doc.workflow_execution = execution.to_summary()
        if status is not None:
            db_doc.status = status.value
        return await self._commit_versioned(db_doc)

    async def merge_processing_results(self, document_id: str, patch: Dict[str, Any]) -> Document:
        db_doc = await self._load(document_id)
        merged = dict(db_doc.processing_results or {})
        merged.update(patch)
        db_doc.processing_results = merged  # new object so the JSON change is tracked
        return await self._commit_versioned(db_doc)

    async def append_notifications(self, document_id: str, notifications: List[Dict[str, Any]]) -> Document:
        db_doc = await self._load(document_id)
        db_doc.integration_notifications = list(db_doc.integration_notifications or []) + list(notifications)
        return await self._commit_versioned(db_doc)

    async def delete(self, document_id: str) -> bool:
        doc = await self.session.get(DocumentEntity, document_id)
        if not doc:
            return False
        await self.session.delete(doc)
        await self.session.commit()
        return True


class SQLStepEventRepository(IStepEventRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, row: StepEventEntity) -> StepEvent:
        return StepEvent(
            id=row.id,
            document_id=row.document_id,
            execution_id=row.execution_id,
            workflow_id=row.workflow_id,
            step_index=row.step_index,
            step_name=row.step_name,
            step_type=StepType(row.step_type),
            status=StepStatus(row.status),
            result=row.result,
            error=row.error,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )

    async def _get(self, execution_id: str, step_index: int) -> Optional[StepEventEntity]:
        result = await self.session.execute(
            select(StepEventEntity).where(
                StepEventEntity.execution_id == execution_id,
                StepEventEntity.step_index == step_index,
            )
        )
        return result.scalar_one_or_none()

    async def append(self, event: StepEvent) -> StepEvent:
        existing = await self._get(event.execution_id, event.step_index)
        if existing is not None:
            logger.info(
                f"Step event ({event.execution_id}, {event.step_index}) already recorded; keeping original"
            )
            return self._to_domain(existing)

        row = StepEventEntity(
            document_id=event.document_id,
            execution_id=event.execution_id,
            workflow_id=event.workflow_id,
            step_index=event.step_index,
            step_name=event.step_name,
            step_type=event.step_type.value,
            status=event.status.value,
            result=event.result,
            error=event.error,
            started_at=event.started_at,
            completed_at=event.completed_at,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError:
            # Lost the insert race to another writer; theirs is authoritative
            await self.session.rollback()
            existing = await self._get(event.execution_id, event.step_index)
            return self._to_domain(existing)
        await self.session.refresh(row)
        return self._to_domain(row)

    async def list_for_execution(self, execution_id: str) -> List[StepEvent]:
        result = await self.session.execute(
            select(StepEventEntity)
            .where(StepEventEntity.execution_id == execution_id)
            .order_by(StepEventEntity.step_index)
        )
        return [self._to_domain(row) for row in result.scalars().all()]

    async def delete_by_document(self, document_id: str) -> int:
        result = await self.session.execute(
            delete(StepEventEntity).where(StepEventEntity.document_id == document_id)
        )
        await self.session.commit()
        return result.rowcount or 0


class SQLWorkflowRepository(IWorkflowRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, row: Optional[WorkflowEntity]) -> Optional[WorkflowDefinition]:
        if row is None:
            return None
        return WorkflowDefinition(
            id=row.id,
            name=row.name,
            description=row.description or "",
            steps=[WorkflowStep.from_dict(s) for s in (row.steps or [])],
            is_builtin=False,
            status=row.status,
            execution_count=row.execution_count or 0,
        )

    async def create(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        row = WorkflowEntity(
            id=workflow.id,
            name=workflow.name,
            description=workflow.description,
            steps=[s.to_dict() for s in workflow.steps],
            status=workflow.status,
            execution_count=0,
        )
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        logger.info(f"Created workflow {row.id} ({row.name})")
        return self._to_domain(row)

    async def get_by_id(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        row = await self.session.get(WorkflowEntity, workflow_id, populate_existing=True)
        return self._to_domain(row)

    async def list_all(self) -> List[WorkflowDefinition]:
        result = await self.session.execute(select(WorkflowEntity).order_by(WorkflowEntity.name))
        return [self._to_domain(row) for row in result.scalars().all()]

    async def update(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        row = await self.session.get(WorkflowEntity, workflow.id)
        if row is None:
            raise NotFoundError(f"Workflow {workflow.id} not found")
        row.name = workflow.name
        row.description = workflow.description
        row.steps = [s.to_dict() for s in workflow.steps]
        row.status = workflow.status
        await self.session.commit()
        await self.session.refresh(row)
        return self._to_domain(row)

    async def delete(self, workflow_id: str) -> bool:
        row = await self.session.get(WorkflowEntity, workflow_id)
        if not row:
            return False
        await self.session.delete(row)
        await self.session.commit()
        return True

    async def increment_execution_count(self, workflow_id: str) -> None:
        row = await self.session.get(WorkflowEntity, workflow_id)
        if row is None:
            return
        row.execution_count = WorkflowEntity.execution_count + 1
        await self.session.commit()


class SQLIntegrationRepository(IIntegrationRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, row: Optional[IntegrationEntity]) -> Optional[Integration]:
        if row is None:
            return None
        return Integration(
            id=row.id,
            type=IntegrationType(row.type),
            name=row.name,
            description=row.description or "",
            config=dict(row.config or {}),
            enabled=bool(row.enabled),
            status=IntegrationStatus(row.status),
            last_tested_at=row.last_tested_at,
            last_error=row.last_error,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def create(self, integration: Integration) -> Integration:
        row = IntegrationEntity(
            id=integration.id,
            type=integration.type.value,
            name=integration.name,
            description=integration.description,
            config=dict(integration.config),
            enabled=integration.enabled,
            status=integration.status.value,
        )
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        logger.info(f"Created {row.type} integration {row.id}")
        return self._to_domain(row)

    async def get_by_id(self, integration_id: str) -> Optional[Integration]:
        row = await self.session.get(IntegrationEntity, integration_id, populate_existing=True)
        return self._to_domain(row)

    async def list_all(self, integration_type: Optional[IntegrationType] = None) -> List[Integration]:
        stmt = select(IntegrationEntity).order_by(IntegrationEntity.created_at)
        if integration_type:
            stmt = stmt.where(IntegrationEntity.type == integration_type.value)
        result = await self.session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def list_enabled(self, integration_type: IntegrationType) -> List[Integration]:
        result = await self.session.execute(
            select(IntegrationEntity)
            .where(
                IntegrationEntity.type == integration_type.value,
                IntegrationEntity.enabled.is_(True),
            )
            .order_by(IntegrationEntity.created_at)
        )
        return [self._to_domain(row) for row in result.scalars().all()]

    async def update(self, integration: Integration) -> Integration:
        row = await self.session.get(IntegrationEntity, integration.id)
        if row is None:
            raise NotFoundError(f"Integration {integration.id} not found")
        row.name = integration.name
        row.description = integration.description
        row.config = dict(integration.config)
        row.enabled = integration.enabled
        row.status = integration.status.value
        row.last_tested_at = integration.last_tested_at
        row.last_error = integration.last_error
        await self.session.commit()
        await self.session.refresh(row)
        return self._to_domain(row)

    async def delete(self, integration_id: str) -> bool:
        row = await self.session.get(IntegrationEntity, integration_id)
        if not row:
            return False
        await self.session.delete(row)
        await self.session.commit()
        return True


class SQLApprovalRepository(IApprovalRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, row: Optional[ApprovalEntity]) -> Optional[Approval]:
        if row is None:
            return None
        return Approval(
            id=row.id,
            document_id=row.document_id,
            execution_id=row.execution_id,
            workflow_id=row.workflow_id,
            step_index=row.step_index,
            step_name=row.step_name,
            status=ApprovalStatus(row.status),
            approver_id=row.approver_id,
            reason=row.reason,
            created_at=row.created_at,
            decided_at=row.decided_at,
        )

    async def create(self, approval: Approval) -> Approval:
        row = ApprovalEntity(
            id=approval.id,
            document_id=approval.document_id,
            execution_id=approval.execution_id,
            workflow_id=approval.workflow_id,
            step_index=approval.step_index,
            step_name=approval.step_name,
            status=approval.status.value,
        )
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        return self._to_domain(row)

    async def get_by_id(self, approval_id: str) -> Optional[Approval]:
        row = await self.session.get(ApprovalEntity, approval_id, populate_existing=True)
        return self._to_domain(row)

    async def get_for_step(self, execution_id: str, step_index: int) -> Optional[Approval]:
        result = await self.session.execute(
            select(ApprovalEntity).where(
                ApprovalEntity.execution_id == execution_id,
                ApprovalEntity.step_index == step_index,
            ).execution_options(populate_existing=True)
        )
        return self._to_domain(result.scalar_one_or_none())

    async def list_all(self, status: Optional[ApprovalStatus] = None) -> List[Approval]:
        stmt = select(ApprovalEntity).order_by(ApprovalEntity.created_at.desc())
        if status:
            stmt = stmt.where(ApprovalEntity.status == status.value)
        result = await self.session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def decide(
        self, approval_id: str, status: ApprovalStatus, approver_id: str, reason: Optional[str] = None
    ) -> Approval:
        # Conditional on status so that only one of two racing decisions lands
        result = await self.session.execute(
            update(ApprovalEntity)
            .where(
                ApprovalEntity.id == approval_id,
                ApprovalEntity.status == ApprovalStatus.PENDING.value,
            )
            .values(
                status=status.value,
                approver_id=approver_id,
                reason=reason,
                decided_at=datetime.now(timezone.utc),
            )
        )
        await self.session.commit()
        row = await self.session.get(ApprovalEntity, approval_id, populate_existing=True)
        if row is None:
            raise NotFoundError(f"Approval {approval_id} not found")
        if result.rowcount == 0:
            raise ValidationError(f"Approval {approval_id} was already {row.status}")
        return self._to_domain(row)


class SQLExportRepository(IExportRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_record(self, integration_id: str, document_id: str, payload: Dict[str, Any]) -> str:
        record_id = str(uuid.uuid4())
        self.session.add(ExportedRecordEntity(
            id=record_id,
            integration_id=integration_id,
            document_id=document_id,
            payload=payload,
        ))
        await self.session.commit()
        return record_id

    async def ping(self) -> bool:
        await self.session.execute(text("SELECT 1"))
        return True


class SQLUserRepository(IUserRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, row: Optional[UserEntity]) -> Optional[User]:
        if row is None:
            return None
        return User(
            id=row.id,
            email=row.email,
            name=row.name,
            password_hash=row.password_hash,
            provider=row.provider,
            created_at=row.created_at,
        )

    async def create(self, user: User) -> User:
        row = UserEntity(
            id=user.id,
            email=user.email,
            name=user.name,
            password_hash=user.password_hash,
            provider=user.provider,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise EmailInUseError(f"An account with email {user.email} already exists")
        await self.session.refresh(row)
        logger.info(f"Registered user {user.id}")
        return self._to_domain(row)

    async def get_by_id(self, user_id: str) -> Optional[User]:
        return self._to_domain(await self.session.get(UserEntity, user_id))

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(select(UserEntity).where(UserEntity.email == email))
        return self._to_domain(result.scalar_one_or_none())

    async def revoke_token(self, token_id: str, expires_at: datetime) -> None:
        # Expired entries can no longer match a valid token
        await self.session.execute(
            delete(RevokedTokenEntity).where(RevokedTokenEntity.expires_at < datetime.now(timezone.utc))
        )
        if await self.session.get(RevokedTokenEntity, token_id) is None:
            self.session.add(RevokedTokenEntity(jti=token_id, expires_at=expires_at))
        await self.session.commit()

    async def is_token_revoked(self, token_id: str) -> bool:
        return await self.session.get(RevokedTokenEntity, token_id) is not None
