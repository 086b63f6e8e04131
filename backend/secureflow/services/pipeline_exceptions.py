"""Custom exceptions for the analysis job pipeline."""
from __future__ import annotations


class PipelineError(Exception):
    """Base exception for pipeline failures."""


class EventValidationError(PipelineError):
    """Raised when an inbound trigger event is malformed."""


class JobNotFoundError(PipelineError):
    """Raised when a job id does not resolve to a stored job."""

    def __init__(self, job_id: str):
        super().__init__(f"Analysis job {job_id} not found")
        self.job_id = job_id


class TransitionConflictError(PipelineError):
    """Raised when a job is no longer in the state a transition expected."""

    def __init__(self, job_id: str, expected: str, actual: str | None = None):
        message = f"Job {job_id} is not {expected}"
        if actual:
            message += f" (current status: {actual})"
        super().__init__(message)
        self.job_id = job_id
        self.expected = expected
        self.actual = actual


class AlreadyRunningError(PipelineError):
    """Raised when a second orchestration of the same job is attempted."""

    def __init__(self, job_id: str):
        super().__init__(f"Analysis job {job_id} is already running")
        self.job_id = job_id


class StageExecutionError(PipelineError):
    """Raised by stage executors when a stage cannot produce its output."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage


class ForbiddenError(PipelineError):
    """Raised when the caller's role does not satisfy a required role."""

    def __init__(self, required: str, actual: str | None = None):
        super().__init__(f"Requires role {required}")
        self.required = required
        self.actual = actual


class UnauthenticatedError(PipelineError):
    """Raised when a request carries no valid credentials."""
