# core/enums.py
"""Shared enumerations used across the application."""
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for user-facing error messages."""
    INVALID_FORMAT = "INVALID_FORMAT"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    DUPLICATE_FILE = "DUPLICATE_FILE"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    EXTRACTION_ERROR = "EXTRACTION_ERROR"
    EMBEDDING_ERROR = "EMBEDDING_ERROR"
    VECTOR_DIMENSION_MISMATCH = "VECTOR_DIMENSION_MISMATCH"
    AI_SERVICE_ERROR = "AI_SERVICE_ERROR"
    STEP_FAILED = "STEP_FAILED"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    EXECUTION_CONFLICT = "EXECUTION_CONFLICT"
    INTEGRATION_ERROR = "INTEGRATION_ERROR"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    EMAIL_IN_USE = "EMAIL_IN_USE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class DocumentStatus(str, Enum):
    """Lifecycle of an uploaded document."""
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @staticmethod
    def from_string(status: str) -> 'DocumentStatus':
        """Convert string to DocumentStatus enum."""
        try:
            return DocumentStatus(status)
        except ValueError:
            return DocumentStatus.FAILED


class WorkflowStatus(str, Enum):
    """Status of a workflow execution."""
    PENDING = "pending"
    RUNNING = "running"
    PAUSED_FOR_APPROVAL = "paused_for_approval"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED)


class StepType(str, Enum):
    EXTRACT_TEXT = "extract_text"
    ANALYZE_CONTENT = "analyze_content"
    SEND_NOTIFICATION = "send_notification"
    STORE_DATA = "store_data"
    REQUIRE_APPROVAL = "require_approval"


class StepStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class IntegrationType(str, Enum):
    SLACK = "slack"
    EMAIL = "email"
    DATABASE = "database"
    WEBHOOK = "webhook"


class IntegrationStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class NotificationStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SelectionMode(str, Enum):
    """How a workflow is chosen for a document."""
    MANUAL = "manual"
    AUTO = "auto"
    HYBRID = "hybrid"
    DEFAULT = "default"


class DocumentCategory(str, Enum):
    INVOICE = "invoice"
    CONTRACT = "contract"
    LEGAL = "legal"
    FINANCIAL = "financial"
    RECEIPT = "receipt"
    FORM = "form"
    OTHER = "other"
    UNKNOWN = "unknown"
