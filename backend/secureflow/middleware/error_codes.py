"""
Error codes and HTTP mapping for API error responses.
"""

from enum import Enum
from typing import Optional, Type

from secureflow.services.pipeline_exceptions import (
    AlreadyRunningError,
    EventValidationError,
    ForbiddenError,
    JobNotFoundError,
    PipelineError,
    TransitionConflictError,
    UnauthenticatedError,
)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Client errors (4xx)
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


# HTTP status code to ErrorCode mapping
STATUS_TO_ERROR_CODE: dict[int, ErrorCode] = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    500: ErrorCode.INTERNAL_ERROR,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}

# Pipeline exception to HTTP status mapping, most specific first
EXCEPTION_TO_STATUS: list[tuple[Type[PipelineError], int]] = [
    (EventValidationError, 400),
    (UnauthenticatedError, 401),
    (ForbiddenError, 403),
    (JobNotFoundError, 404),
    (TransitionConflictError, 409),
    (AlreadyRunningError, 409),
]


def get_error_code(status_code: int) -> ErrorCode:
    """Get ErrorCode from HTTP status code."""
    return STATUS_TO_ERROR_CODE.get(status_code, ErrorCode.INTERNAL_ERROR)


def status_for_exception(exc: Exception) -> Optional[int]:
    """HTTP status for a pipeline exception, or None when it has no mapping."""
    for exc_type, status_code in EXCEPTION_TO_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return None
