# core/errors.py
"""Domain exceptions. Each carries an ErrorCode the API layer maps to an HTTP status."""
from core.enums import ErrorCode


class ApexFlowError(Exception):
    """Base error with a specific error code"""

    default_code = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str, error_code: ErrorCode = None):
        self.message = message
        self.error_code = error_code or self.default_code
        super().__init__(message)

    def __str__(self):
        # Format used for logging and persisted step errors
        return f"[{self.error_code.value}] {self.message}"


class DocumentProcessingError(ApexFlowError):
    """Raised when upload intake or extraction fails"""


class NotFoundError(ApexFlowError):
    default_code = ErrorCode.NOT_FOUND


class ValidationError(ApexFlowError):
    default_code = ErrorCode.VALIDATION_ERROR


class VectorDimensionError(ApexFlowError, ValueError):
    """Raised when two vectors that must be compared have different lengths"""
    default_code = ErrorCode.VECTOR_DIMENSION_MISMATCH


class StepExecutionError(ApexFlowError):
    default_code = ErrorCode.STEP_FAILED


class AIServiceError(ApexFlowError):
    default_code = ErrorCode.AI_SERVICE_ERROR


class ConcurrentModificationError(ApexFlowError):
    """Raised when a versioned row was changed by another writer"""
    default_code = ErrorCode.CONCURRENT_MODIFICATION


class ExecutionConflictError(ApexFlowError):
    """Raised when a different execution is already running for the document"""
    default_code = ErrorCode.EXECUTION_CONFLICT


class IntegrationError(ApexFlowError):
    default_code = ErrorCode.INTEGRATION_ERROR


class SignatureVerificationError(ApexFlowError):
    default_code = ErrorCode.SIGNATURE_INVALID


class AuthenticationError(ApexFlowError):
    """Missing, invalid, expired or revoked credentials"""
    default_code = ErrorCode.AUTHENTICATION_FAILED


class EmailInUseError(ApexFlowError):
    default_code = ErrorCode.EMAIL_IN_USE
