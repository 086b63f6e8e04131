"""Project entity - a repository registered for security scanning."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from .base import BaseEntity


class ScanFrequency(str, Enum):
    """When the project is scanned."""

    ON_PUSH = "ON_PUSH"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class Project(BaseEntity):
    """Registered project. Only the fields the pipeline consumes are modelled."""

    external_id: str = Field(..., description="GitLab project id")
    name: str
    scan_frequency: ScanFrequency = ScanFrequency.ON_PUSH
    tracked_branches: List[str] = Field(
        default_factory=list,
        description="Branches whose pushes are analyzed; empty means the configured default",
    )
    webhook_secret: Optional[str] = None
    owner_id: Optional[str] = None
    last_scan_at: Optional[datetime] = None
