"""API request/response DTOs. JSON field names are camelCase."""

from .analysis_job import (
    AnalysisJobResponse,
    JobListResponse,
    JobProgressResponse,
    ScheduledRunRequest,
    ScheduledRunResponse,
    TriggerJobRequest,
)
from .notification import (
    MarkReadResponse,
    NotificationListResponse,
    NotificationResponse,
)

__all__ = [
    "AnalysisJobResponse",
    "JobListResponse",
    "JobProgressResponse",
    "ScheduledRunRequest",
    "ScheduledRunResponse",
    "TriggerJobRequest",
    "MarkReadResponse",
    "NotificationListResponse",
    "NotificationResponse",
]
