"""
Tracing Context - context management for job-scoped logging.

The orchestrator sets the context when it picks up a job so that every log
line written while the job runs carries the same identifiers. It uses
contextvars, so concurrent asyncio tasks each see their own values.

Usage:
    TracingContext.set(job_id="65f...", project_id="42", stage="AI_ANALYSIS")
    ctx = TracingContext.get()
    prefix = TracingContext.get_log_prefix()  # "[job=65f1a2b3]"
    TracingContext.clear()
"""

import uuid
from contextvars import ContextVar
from typing import Dict

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_job_id: ContextVar[str] = ContextVar("job_id", default="")
_project_id: ContextVar[str] = ContextVar("project_id", default="")
_stage: ContextVar[str] = ContextVar("stage", default="")
_task_name: ContextVar[str] = ContextVar("task_name", default="")


class TracingContext:
    """Per-task tracing context."""

    @staticmethod
    def set(
        correlation_id: str = "",
        job_id: str = "",
        project_id: str = "",
        stage: str = "",
        task_name: str = "",
    ) -> None:
        """Set tracing context for current execution."""
        if correlation_id:
            _correlation_id.set(correlation_id)
        if job_id:
            _job_id.set(job_id)
        if project_id:
            _project_id.set(project_id)
        if stage:
            _stage.set(stage)
        if task_name:
            _task_name.set(task_name)

    @staticmethod
    def get() -> Dict[str, str]:
        """Get current tracing context as dict."""
        return {
            "correlation_id": _correlation_id.get(),
            "job_id": _job_id.get(),
            "project_id": _project_id.get(),
            "stage": _stage.get(),
            "task_name": _task_name.get(),
        }

    @staticmethod
    def get_or_create_correlation_id() -> str:
        """Get current correlation ID or create a new one."""
        corr_id = _correlation_id.get()
        if not corr_id:
            corr_id = str(uuid.uuid4())
            _correlation_id.set(corr_id)
        return corr_id

    @staticmethod
    def get_log_prefix() -> str:
        """Get a formatted prefix for manual logging."""
        job_id = _job_id.get()
        if job_id:
            return f"[job={job_id[-8:]}]"
        return ""

    @staticmethod
    def clear() -> None:
        """Clear all tracing context."""
        _correlation_id.set("")
        _job_id.set("")
        _project_id.set("")
        _stage.set("")
        _task_name.set("")
