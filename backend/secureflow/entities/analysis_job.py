"""
Analysis Job Entity - one tracked security analysis of a single commit.

Collection: analysis_jobs
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import BaseEntity


class JobStatus(str, Enum):
    """Analysis job lifecycle status."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.IN_PROGRESS})
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class TriggerSource(str, Enum):
    """What created the job. Immutable after creation."""

    MANUAL = "manual"
    WEBHOOK = "webhook"
    SCHEDULED = "scheduled"


class AnalysisJob(BaseEntity):
    """
    A staged, asynchronously progressing analysis of one commit.

    ``stage`` is only meaningful while IN_PROGRESS, ``result`` only at
    COMPLETED and ``error`` only at FAILED. ``active_key`` exists while the job
    is non-terminal and backs the unique index that keeps at most one active
    job per (project, commit, trigger source).
    """

    project_id: str = Field(..., description="External id of the owning project")
    commit_hash: str
    status: JobStatus = JobStatus.PENDING
    stage: Optional[str] = None
    progress: int = Field(default=0, ge=0, le=100)
    triggered_by: TriggerSource
    requested_by: Optional[str] = Field(
        default=None, description="User notified about lifecycle transitions"
    )

    # Push metadata (webhook jobs)
    commit_message: Optional[str] = None
    author: Optional[Dict[str, Any]] = None
    ref: Optional[str] = None
    changed_files: List[str] = Field(default_factory=list)

    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    version: int = 0
    active_key: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status) in TERMINAL_STATUSES

    @staticmethod
    def make_active_key(project_id: str, commit_hash: str, triggered_by: TriggerSource) -> str:
        return f"{project_id}:{commit_hash}:{TriggerSource(triggered_by).value}"
