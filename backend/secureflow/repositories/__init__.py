"""Repository layer for database operations"""

from .analysis_job import AnalysisJobRepository
from .base import BaseRepository
from .notification import NotificationRepository
from .project import ProjectRepository

__all__ = [
    "BaseRepository",
    "AnalysisJobRepository",
    "NotificationRepository",
    "ProjectRepository",
]
