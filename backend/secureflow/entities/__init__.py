"""Database entity models - represents the actual structure stored in MongoDB"""

from .analysis_job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    AnalysisJob,
    JobStatus,
    TriggerSource,
)
from .base import BaseEntity, PyObjectId
from .notification import Notification, NotificationType
from .project import Project, ScanFrequency

__all__ = [
    "BaseEntity",
    "PyObjectId",
    "AnalysisJob",
    "JobStatus",
    "TriggerSource",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Project",
    "ScanFrequency",
    "Notification",
    "NotificationType",
]
