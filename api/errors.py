# api/errors.py
"""Translation of domain errors into HTTP responses"""
import logging

from fastapi import HTTPException

from core.enums import ErrorCode
from core.errors import ApexFlowError
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_FORMAT: 400,
    ErrorCode.VECTOR_DIMENSION_MISMATCH: 400,
    ErrorCode.SIGNATURE_INVALID: 401,
    ErrorCode.AUTHENTICATION_FAILED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.DUPLICATE_FILE: 409,
    ErrorCode.EMAIL_IN_USE: 409,
    ErrorCode.CONCURRENT_MODIFICATION: 409,
    ErrorCode.EXECUTION_CONFLICT: 409,
    ErrorCode.FILE_TOO_LARGE: 413,
    ErrorCode.AI_SERVICE_ERROR: 502,
    ErrorCode.EMBEDDING_ERROR: 502,
    ErrorCode.INTEGRATION_ERROR: 502,
}


def http_error(error: ApexFlowError) -> HTTPException:
    status_code = STATUS_BY_CODE.get(error.error_code, 500)
    if status_code >= 500:
        logger.error(f"Request failed: {error}")
    return HTTPException(
        status_code=status_code,
        detail={"message": error.message, "error_code": error.error_code.value},
    )
