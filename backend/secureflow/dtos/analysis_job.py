"""DTOs for the analysis job API."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from secureflow.entities.analysis_job import AnalysisJob
from secureflow.entities.project import ScanFrequency

from .base import CamelModel


class AnalysisJobResponse(CamelModel):
    """Full analysis job record."""

    id: str
    project_id: str
    commit_hash: str
    status: str
    stage: Optional[str] = None
    progress: int
    triggered_by: str
    requested_by: Optional[str] = None
    commit_message: Optional[str] = None
    author: Optional[Dict[str, Any]] = None
    ref: Optional[str] = None
    changed_files: List[str] = []
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, job: AnalysisJob) -> "AnalysisJobResponse":
        data = job.model_dump(exclude={"id", "version", "active_key"})
        return cls(id=str(job.id), **data)


class JobProgressResponse(CamelModel):
    progress: int
    stage: Optional[str] = None
    status: str


class JobListResponse(CamelModel):
    items: List[AnalysisJobResponse]
    count: int


class TriggerJobRequest(CamelModel):
    """Manual trigger. Without a commit the branch head is analyzed."""

    commit_hash: str = "latest"
    commit_message: Optional[str] = None
    ref: Optional[str] = None


class ScheduledRunRequest(CamelModel):
    frequency: ScanFrequency


class ScheduledRunResponse(CamelModel):
    frequency: str
    scheduled: List[str]
    skipped: List[Dict[str, str]]
