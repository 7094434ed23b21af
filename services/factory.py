# services/factory.py
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from core.enums import IntegrationType
from core.interfaces import (
    IAIClient,
    IDocumentRepository,
    IEmbeddingService,
    IFileStorage,
    IIntegrationRepository,
    IStepEventRepository,
)
from database.session import get_db, get_session
from infrastructure.embedding_services import HuggingFaceInferenceEmbedding, SentenceTransformerEmbedding
from infrastructure.file_storage import LocalFileStorage
from infrastructure.huggingface_client import HuggingFaceClient
from infrastructure.notifiers import (
    DatabaseExporter,
    EmailNotifier,
    NotifierRegistry,
    SlackNotifier,
    WebhookNotifier,
)
from infrastructure.repositories import (
    SQLApprovalRepository,
    SQLDocumentRepository,
    SQLExportRepository,
    SQLIntegrationRepository,
    SQLStepEventRepository,
    SQLUserRepository,
    SQLWorkflowRepository,
)
from infrastructure.vector_stores import SQLVectorStore
from services.approval_service import ApprovalService
from services.async_processor import async_processor
from services.auth_service import AuthService
from services.document_service import DocumentService
from services.entity_extractor import EntityExtractor, NerModelManager
from services.field_extractor import FieldExtractor
from services.ingestion_service import DocumentIngestor
from services.integration_service import IntegrationService
from services.search_service import SearchService
from services.step_handlers import StepHandlers
from services.text_extractor_factory import TextExtractorFactory
from services.workflow_executor import WorkflowExecutor
from services.workflow_registry import WorkflowRegistry
from services.workflow_selector import WorkflowSelector


# Provider functions for each component
def get_file_storage() -> IFileStorage:
    """Create file storage based on configuration."""
    return LocalFileStorage(base_path=settings.UPLOADS_DIR)


def get_text_extractor_factory() -> TextExtractorFactory:
    return TextExtractorFactory()


def get_ai_client() -> IAIClient:
    return HuggingFaceClient()


def get_embedding_service() -> IEmbeddingService:
    """Create embedding service based on configuration."""
    if settings.EMBEDDING_PROVIDER == "huggingface":
        return HuggingFaceInferenceEmbedding(HuggingFaceClient())
    if settings.EMBEDDING_PROVIDER == "local":
        return SentenceTransformerEmbedding(settings.EMBEDDING_MODEL_NAME)
    raise ValueError(f"Unknown embedding provider: {settings.EMBEDDING_PROVIDER}")


def get_entity_extractor() -> EntityExtractor:
    return EntityExtractor(ner_pipeline=NerModelManager.get_pipeline())


def get_document_repository(session: AsyncSession = Depends(get_db)) -> IDocumentRepository:
    """Create document repository with injected session."""
    return SQLDocumentRepository(session)


def get_step_event_repository(session: AsyncSession = Depends(get_db)) -> IStepEventRepository:
    return SQLStepEventRepository(session)


def get_integration_repository(session: AsyncSession = Depends(get_db)) -> IIntegrationRepository:
    return SQLIntegrationRepository(session)


def get_vector_store(session: AsyncSession = Depends(get_db)) -> SQLVectorStore:
    return SQLVectorStore(session)


def get_workflow_registry(session: AsyncSession = Depends(get_db)) -> WorkflowRegistry:
    return WorkflowRegistry(SQLWorkflowRepository(session))


def get_workflow_selector(registry: WorkflowRegistry = Depends(get_workflow_registry)) -> WorkflowSelector:
    return WorkflowSelector(registry)


def build_notifiers(session: AsyncSession) -> NotifierRegistry:
    return NotifierRegistry({
        IntegrationType.SLACK: SlackNotifier(),
        IntegrationType.EMAIL: EmailNotifier(),
        IntegrationType.WEBHOOK: WebhookNotifier(),
        IntegrationType.DATABASE: DatabaseExporter(SQLExportRepository(session)),
    })


def build_workflow_executor(
    session: AsyncSession,
    embedding_service: IEmbeddingService,
    ai_client: IAIClient,
    file_storage: IFileStorage,
    entity_extractor: EntityExtractor,
) -> WorkflowExecutor:
    """Wire an executor whose repositories all share one session."""
    document_repo = SQLDocumentRepository(session)
    handlers = StepHandlers(
        document_repo=document_repo,
        file_storage=file_storage,
        extractor_factory=get_text_extractor_factory(),
        ingestor=DocumentIngestor(embedding_service, SQLVectorStore(session)),
        ai_client=ai_client,
        field_extractor=FieldExtractor(),
        entity_extractor=entity_extractor,
        integration_repo=SQLIntegrationRepository(session),
        approval_repo=SQLApprovalRepository(session),
        notifiers=build_notifiers(session),
    )
    return WorkflowExecutor(
        document_repo=document_repo,
        event_repo=SQLStepEventRepository(session),
        registry=WorkflowRegistry(SQLWorkflowRepository(session)),
        handlers=handlers,
    )


# ============= Background executions =============

async def run_workflow(document_id: str, workflow_id: str, execution_id: str) -> None:
    """Runs one execution with its own session, outside any request."""
    async with get_session() as session:
        executor = build_workflow_executor(
            session,
            embedding_service=get_embedding_service(),
            ai_client=get_ai_client(),
            file_storage=get_file_storage(),
            entity_extractor=get_entity_extractor(),
        )
        await executor.execute(document_id, workflow_id, execution_id)


def schedule_workflow(document_id: str, workflow_id: str, execution_id: str) -> None:
    async_processor.submit_task(
        run_workflow(document_id, workflow_id, execution_id),
        name=f"workflow:{document_id}:{execution_id}",
    )


# Main service providers using FastAPI DI
def get_workflow_executor(
    session: AsyncSession = Depends(get_db),
    embedding_service: IEmbeddingService = Depends(get_embedding_service),
    ai_client: IAIClient = Depends(get_ai_client),
    file_storage: IFileStorage = Depends(get_file_storage),
    entity_extractor: EntityExtractor = Depends(get_entity_extractor),
) -> WorkflowExecutor:
    return build_workflow_executor(session, embedding_service, ai_client, file_storage, entity_extractor)


def get_document_service(
    document_repo: IDocumentRepository = Depends(get_document_repository),
    event_repo: IStepEventRepository = Depends(get_step_event_repository),
    vector_store: SQLVectorStore = Depends(get_vector_store),
    file_storage: IFileStorage = Depends(get_file_storage),
    selector: WorkflowSelector = Depends(get_workflow_selector),
) -> DocumentService:
    """
    Create document service with full dependency injection.

    FastAPI provides every dependency from its provider, so tests can
    override individual components.
    """
    return DocumentService(
        document_repo=document_repo,
        event_repo=event_repo,
        vector_store=vector_store,
        file_storage=file_storage,
        selector=selector,
    )


def get_search_service(
    embedding_service: IEmbeddingService = Depends(get_embedding_service),
    vector_store: SQLVectorStore = Depends(get_vector_store),
    document_repo: IDocumentRepository = Depends(get_document_repository),
    ai_client: IAIClient = Depends(get_ai_client),
) -> SearchService:
    return SearchService(embedding_service, vector_store, document_repo, ai_client)


def get_integration_service(session: AsyncSession = Depends(get_db)) -> IntegrationService:
    return IntegrationService(SQLIntegrationRepository(session), build_notifiers(session))


def get_approval_service(session: AsyncSession = Depends(get_db)) -> ApprovalService:
    return ApprovalService(SQLApprovalRepository(session), resume=schedule_workflow)


def get_auth_service(session: AsyncSession = Depends(get_db)) -> AuthService:
    return AuthService(SQLUserRepository(session))
