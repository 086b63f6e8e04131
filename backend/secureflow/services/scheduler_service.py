"""
Scheduled Scan Service - periodic analyses for DAILY and WEEKLY projects.

A project is skipped when it already has an active job or finished a scan
recently enough. Scheduled jobs analyze the branch head, recorded as commit
``latest``.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pymongo.database import Database

from secureflow.entities.analysis_job import TriggerSource
from secureflow.entities.project import ScanFrequency
from secureflow.pipeline.dispatch import JobDispatcher, dispatch_or_fail
from secureflow.repositories.analysis_job import AnalysisJobRepository
from secureflow.repositories.project import ProjectRepository
from secureflow.services.pipeline_exceptions import EventValidationError
from secureflow.tasks.events import EventPublisher
from secureflow.utils.datetime import utc_now

logger = logging.getLogger(__name__)

LATEST_COMMIT = "latest"

RECENT_SCAN_CUTOFF = {
    ScanFrequency.DAILY: timedelta(hours=20),
    ScanFrequency.WEEKLY: timedelta(days=6),
}


class ScanScheduler:
    def __init__(
        self,
        db: Database,
        dispatcher: JobDispatcher,
        clock: Callable[[], datetime] = utc_now,
        events: Optional[EventPublisher] = None,
    ):
        self.jobs = AnalysisJobRepository(db)
        self.projects = ProjectRepository(db)
        self.dispatcher = dispatcher
        self.clock = clock
        self.events = events

    def run(self, frequency: str) -> Dict[str, Any]:
        """
        Create scheduled jobs for every project scanned at ``frequency``.

        Returns:
            Summary with the created job ids and the skipped projects.
        """
        try:
            freq = ScanFrequency(frequency)
        except ValueError:
            raise EventValidationError(f"Unknown scan frequency: {frequency}")
        if freq not in RECENT_SCAN_CUTOFF:
            raise EventValidationError(f"{freq.value} projects are not scheduled")

        cutoff = self.clock() - RECENT_SCAN_CUTOFF[freq]
        scheduled: List[str] = []
        skipped: List[Dict[str, str]] = []

        for project in self.projects.list_by_frequency(freq):
            pid = project.external_id
            if self.jobs.find_active_for_project(pid) is not None:
                skipped.append({"projectId": pid, "reason": "analysis in progress"})
                continue
            if self.jobs.find_latest_completed(pid, since=cutoff) is not None:
                skipped.append({"projectId": pid, "reason": "recently scanned"})
                continue

            job, created = self.jobs.create_if_absent(
                pid,
                LATEST_COMMIT,
                TriggerSource.SCHEDULED,
                requested_by=project.owner_id,
                commit_message=f"Scheduled {freq.value.lower()} security scan",
            )
            if not created:
                skipped.append({"projectId": pid, "reason": "analysis in progress"})
                continue
            try:
                dispatch_or_fail(self.dispatcher, self.jobs, str(job.id), self.events)
            except Exception as e:
                skipped.append({"projectId": pid, "reason": f"dispatch failed: {e}"})
                continue
            scheduled.append(str(job.id))

        logger.info(
            f"{freq.value} scan run: {len(scheduled)} scheduled, {len(skipped)} skipped"
        )
        return {"frequency": freq.value, "scheduled": scheduled, "skipped": skipped}
