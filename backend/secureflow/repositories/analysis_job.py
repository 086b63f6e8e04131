"""
Analysis Job Repository - the durable store for analysis jobs.

All status changes go through ``transition``, a single conditional
``find_one_and_update``. The filter carries the status (and optionally the
stage) the caller last observed, so a writer that lost a race gets a
``TransitionConflictError`` instead of overwriting newer state.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from secureflow.entities.analysis_job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    AnalysisJob,
    JobStatus,
    TriggerSource,
)
from secureflow.services.pipeline_exceptions import (
    JobNotFoundError,
    PipelineError,
    TransitionConflictError,
)
from secureflow.utils.datetime import utc_now

from .base import BaseRepository

StatusFilter = Union[JobStatus, str, Iterable[Union[JobStatus, str]]]

_ANY_STAGE = object()
_CREATE_ATTEMPTS = 3


def _status_values(expected: StatusFilter) -> List[str]:
    if isinstance(expected, str):
        return [JobStatus(expected).value]
    return [JobStatus(s).value for s in expected]


class AnalysisJobRepository(BaseRepository[AnalysisJob]):
    """Repository for AnalysisJob entities."""

    def __init__(self, db: Database):
        super().__init__(db, "analysis_jobs", AnalysisJob)
        # Present only while a job is non-terminal, so uniqueness covers active jobs
        self.collection.create_index("active_key", unique=True, sparse=True)
        self.collection.create_index(
            [("project_id", ASCENDING), ("created_at", DESCENDING)]
        )

    def create_if_absent(
        self,
        project_id: str,
        commit_hash: str,
        triggered_by: TriggerSource,
        **details: Any,
    ) -> Tuple[AnalysisJob, bool]:
        """
        Create a PENDING job unless an active one exists for the same key.

        Returns:
            Tuple of (job, created). ``created`` is False when an existing
            non-terminal job for (project, commit, trigger source) was returned.
        """
        active_key = AnalysisJob.make_active_key(project_id, commit_hash, triggered_by)

        for _ in range(_CREATE_ATTEMPTS):
            job = AnalysisJob(
                project_id=project_id,
                commit_hash=commit_hash,
                triggered_by=triggered_by,
                status=JobStatus.PENDING,
                progress=0,
                active_key=active_key,
                **details,
            )
            try:
                return self.insert_one(job), True
            except DuplicateKeyError:
                existing = self.find_one({"active_key": active_key})
                if existing is not None:
                    return existing, False
                # The holder turned terminal between our insert and lookup

        raise PipelineError(f"Could not create analysis job for {active_key}")

    def get(self, job_id: str | ObjectId) -> AnalysisJob:
        """Load a job or raise JobNotFoundError (malformed ids included)."""
        job = self.find_by_id(job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    def list_by_project(self, project_id: str, limit: int = 20) -> List[AnalysisJob]:
        """Most recent jobs first."""
        return self.find_many(
            {"project_id": project_id},
            sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
            limit=limit,
        )

    def transition(
        self,
        job_id: str | ObjectId,
        expected_status: StatusFilter,
        updates: Dict[str, Any],
        expected_stage: Any = _ANY_STAGE,
    ) -> AnalysisJob:
        """
        Atomically apply ``updates`` if the job is still in the expected state.

        Raises:
            JobNotFoundError: no job with that id.
            TransitionConflictError: the job moved on, is terminal, or the
                update would move progress backwards.
        """
        expected = _status_values(expected_status)
        oid = self._to_object_id(job_id)
        if oid is None:
            raise JobNotFoundError(str(job_id))

        if any(JobStatus(s) in TERMINAL_STATUSES for s in expected):
            current = self.get(oid)
            raise TransitionConflictError(str(oid), "/".join(expected), current.status)

        query: Dict[str, Any] = {"_id": oid, "status": {"$in": expected}}
        if expected_stage is not _ANY_STAGE:
            query["stage"] = expected_stage
        if "progress" in updates:
            query["progress"] = {"$lte": updates["progress"]}

        payload = {**updates, "updated_at": utc_now()}
        for key, value in payload.items():
            if isinstance(value, JobStatus):
                payload[key] = value.value

        update: Dict[str, Any] = {"$set": payload, "$inc": {"version": 1}}
        if JobStatus(payload.get("status", expected[0])) in TERMINAL_STATUSES:
            update["$unset"] = {"active_key": ""}

        doc = self.collection.find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER
        )
        if doc is None:
            current = self.get(oid)
            raise TransitionConflictError(str(oid), "/".join(expected), current.status)
        return self._to_model(doc)

    def cancel(self, job_id: str | ObjectId) -> AnalysisJob:
        """Move a PENDING or IN_PROGRESS job to CANCELLED."""
        return self.transition(
            job_id,
            ACTIVE_STATUSES,
            {"status": JobStatus.CANCELLED, "cancelled_at": utc_now()},
        )

    def find_active_for_project(self, project_id: str) -> Optional[AnalysisJob]:
        return self.find_one(
            {
                "project_id": project_id,
                "status": {"$in": [s.value for s in ACTIVE_STATUSES]},
            }
        )

    def find_latest_completed(
        self, project_id: str, since: Optional[datetime] = None
    ) -> Optional[AnalysisJob]:
        query: Dict[str, Any] = {
            "project_id": project_id,
            "status": JobStatus.COMPLETED.value,
        }
        if since is not None:
            query["completed_at"] = {"$gte": since}
        jobs = self.find_many(query, sort=[("completed_at", DESCENDING)], limit=1)
        return jobs[0] if jobs else None

    def count_by_status(self) -> Dict[str, int]:
        """Number of jobs per status, for health reporting."""
        pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        return {row["_id"]: row["count"] for row in self.collection.aggregate(pipeline)}
