# core/interfaces.py
"""Core interfaces for the workflow service"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Dict, Any, Optional, Tuple

from core.domain import (
    Approval,
    ChunkSearchResult,
    Document,
    DocumentChunk,
    ExtractionResult,
    Integration,
    StepEvent,
    User,
    WorkflowDefinition,
    WorkflowExecution,
)
from core.enums import ApprovalStatus, DocumentStatus, IntegrationType


# ============= Vector Store Interface =============
class IVectorStore(ABC):
    """Interface for vector storage operations"""

    @abstractmethod
    async def add_chunks(self, chunks: List[DocumentChunk]) -> bool:
        """Add document chunks with embeddings"""
        pass

    @abstractmethod
    async def search(
        self,
        query_embedding: List[float],
        top_k: int = 5,
        document_id: Optional[str] = None,
    ) -> List[ChunkSearchResult]:
        """
        Rank stored chunks by cosine similarity to the query.

        Raises VectorDimensionError when a stored embedding and the query
        differ in length.
        """
        pass

    @abstractmethod
    async def has_chunks(self, document_id: str) -> bool:
        pass

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete all chunks for a document, returning how many were removed"""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Get total number of chunks"""
        pass

    @abstractmethod
    async def count_with_embeddings(self) -> int:
        pass


# ============= Embedding Service Interface =============
class IEmbeddingService(ABC):
    """Interface for embedding generation"""

    model_name: str

    @abstractmethod
    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for text chunks"""
        pass

    @abstractmethod
    async def generate_query_embedding(self, query: str) -> List[float]:
        """Generate embedding for search query"""
        pass

    @abstractmethod
    def get_dimension(self) -> Optional[int]:
        """Embedding length, or None if not yet known"""
        pass


# ============= Text Extraction Interface =============
class ITextExtractor(ABC):
    """Pulls plain text out of a stored file."""

    @abstractmethod
    async def extract(self, file_path: str) -> ExtractionResult:
        pass


# ============= AI Client Interface =============
class IAIClient(ABC):
    """Hosted model inference used for analysis and the agent endpoints"""

    @abstractmethod
    async def summarize(self, text: str, max_length: int = 150) -> str:
        pass

    @abstractmethod
    async def classify(self, text: str, labels: List[str]) -> Tuple[str, float]:
        """Zero-shot classification. Returns (best_label, score)."""
        pass

    @abstractmethod
    async def answer_question(self, question: str, context: str) -> Dict[str, Any]:
        """Extractive QA. Returns {"answer": str, "score": float}."""
        pass

    @abstractmethod
    async def health(self) -> Dict[str, Any]:
        pass


# ============= Notifier Interface =============
class INotifier(ABC):
    """Delivers messages or records to one kind of integration"""

    @abstractmethod
    async def send(self, integration: Integration, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Deliver payload; raises IntegrationError on failure."""
        pass

    @abstractmethod
    async def test(self, integration: Integration) -> Dict[str, Any]:
        """Checks connectivity; raises IntegrationError on failure."""
        pass


# ============= Repository Interfaces =============
class IDocumentRepository(ABC):
    """
    Interface for document records.

    Every update is checked against the row version. A write that lost a race
    with another writer raises ConcurrentModificationError.
    """

    @abstractmethod
    async def create(self, document: Document) -> Document:
        pass

    @abstractmethod
    async def get_by_id(self, document_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    async def get_by_hash(self, file_hash: str) -> Optional[Document]:
        """Find document by SHA256 hash for duplicate detection."""
        pass

    @abstractmethod
    async def list_all(
        self, uploaded_by: Optional[str] = None, status: Optional[DocumentStatus] = None
    ) -> List[Document]:
        pass

    @abstractmethod
    async def update_execution(
        self,
        document_id: str,
        execution: WorkflowExecution,
        status: Optional[DocumentStatus] = None,
    ) -> Document:
        """Replace the execution summary (and optionally the document status)."""
        pass

    @abstractmethod
    async def merge_processing_results(self, document_id: str, patch: Dict[str, Any]) -> Document:
        """Shallow-merge keys into processing_results."""
        pass

    @abstractmethod
    async def append_notifications(self, document_id: str, notifications: List[Dict[str, Any]]) -> Document:
        pass

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        pass


class IStepEventRepository(ABC):
    """Append-only log of step outcomes keyed by (execution_id, step_index)"""

    @abstractmethod
    async def append(self, event: StepEvent) -> StepEvent:
        """Insert the event; an existing event for the same key is returned unchanged."""
        pass

    @abstractmethod
    async def list_for_execution(self, execution_id: str) -> List[StepEvent]:
        pass

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        pass


class IWorkflowRepository(ABC):
    """Persistence for user-defined workflows"""

    @abstractmethod
    async def create(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        pass

    @abstractmethod
    async def get_by_id(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        pass

    @abstractmethod
    async def list_all(self) -> List[WorkflowDefinition]:
        pass

    @abstractmethod
    async def update(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        pass

    @abstractmethod
    async def delete(self, workflow_id: str) -> bool:
        pass

    @abstractmethod
    async def increment_execution_count(self, workflow_id: str) -> None:
        pass


class IIntegrationRepository(ABC):

    @abstractmethod
    async def create(self, integration: Integration) -> Integration:
        pass

    @abstractmethod
    async def get_by_id(self, integration_id: str) -> Optional[Integration]:
        pass

    @abstractmethod
    async def list_all(self, integration_type: Optional[IntegrationType] = None) -> List[Integration]:
        pass

    @abstractmethod
    async def list_enabled(self, integration_type: IntegrationType) -> List[Integration]:
        pass

    @abstractmethod
    async def update(self, integration: Integration) -> Integration:
        pass

    @abstractmethod
    async def delete(self, integration_id: str) -> bool:
        pass


class IApprovalRepository(ABC):

    @abstractmethod
    async def create(self, approval: Approval) -> Approval:
        pass

    @abstractmethod
    async def get_by_id(self, approval_id: str) -> Optional[Approval]:
        pass

    @abstractmethod
    async def get_for_step(self, execution_id: str, step_index: int) -> Optional[Approval]:
        pass

    @abstractmethod
    async def list_all(self, status: Optional[ApprovalStatus] = None) -> List[Approval]:
        pass

    @abstractmethod
    async def decide(
        self, approval_id: str, status: ApprovalStatus, approver_id: str, reason: Optional[str] = None
    ) -> Approval:
        pass


class IExportRepository(ABC):
    """Sink for the built-in database integration"""

    @abstractmethod
    async def create_record(self, integration_id: str, document_id: str, payload: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    async def ping(self) -> bool:
        pass


# ============= File Storage Interface =============
class IFileStorage(ABC):
    """Interface for physical file storage operations"""

    @abstractmethod
    async def save(self, content: bytes, filename: str) -> str:
        """
        Writes content under the configured storage directory.

        The filename should already be sanitized and unique (typically
        UUID-based) by the caller.

        Returns:
            str: Full absolute path to the saved file
        """
        pass

    @abstractmethod
    async def get_path(self, filename: str) -> Optional[str]:
        """Get the full path to a stored file."""
        pass

    @abstractmethod
    async def delete(self, filename: str) -> bool:
        """Delete a stored file."""
        pass


# ============= PDF to Image Converter Interface =============
class IPdfToImageConverter(ABC):
    """Interface for PDF to image conversion"""

    @abstractmethod
    def convert(
        self, file_path: str, dpi: Optional[int] = None, pages: Optional[List[int]] = None
    ) -> List[Any]:
        """Renders PDF pages (all, or the given zero-based ones) to images."""
        pass


# ============= User Repository Interface =============
class IUserRepository(ABC):
    """Accounts plus the denylist of tokens ended by logout"""

    @abstractmethod
    async def create(self, user: User) -> User:
        """Raises EmailInUseError when the email is already registered."""
        pass

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    async def revoke_token(self, token_id: str, expires_at: datetime) -> None:
        pass

    @abstractmethod
    async def is_token_revoked(self, token_id: str) -> bool:
        pass
