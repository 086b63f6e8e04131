"""
Ingestion Service - turns GitLab push webhooks into analysis jobs.

Outcomes:
- malformed payload: EventValidationError (HTTP 400), no job
- unregistered project, untracked branch, or project not scanned on push:
  ignored (HTTP 200), no job
- bad ``X-Gitlab-Token`` for a project with a webhook secret:
  UnauthenticatedError (HTTP 401), no job
- otherwise: the head commit of the push gets a webhook-triggered job
  (HTTP 202). The pipeline is dispatched only when the job is new, so a
  redelivered webhook returns the job already in flight.
"""

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from secureflow.config import settings
from secureflow.entities.analysis_job import AnalysisJob, TriggerSource
from secureflow.entities.project import Project, ScanFrequency
from secureflow.pipeline.dispatch import JobDispatcher, dispatch_or_fail
from secureflow.repositories.analysis_job import AnalysisJobRepository
from secureflow.repositories.project import ProjectRepository
from secureflow.services.pipeline_exceptions import (
    EventValidationError,
    UnauthenticatedError,
)
from secureflow.tasks.events import EventPublisher

logger = logging.getLogger(__name__)

BRANCH_REF_PREFIX = "refs/heads/"

IGNORED_UNKNOWN_PROJECT = "Project not configured for SecureFlow"
IGNORED_UNTRACKED_BRANCH = "Not main branch, ignoring"
IGNORED_NOT_PUSH_SCANNED = "Project not configured for push scanning"
ACCEPTED = "Analysis triggered successfully"
ALREADY_RUNNING = "Analysis already in progress for this commit"


@dataclass
class PushEvent:
    """Validated subset of a GitLab push payload."""

    project_id: str
    ref: str
    branch: str
    head_commit: Dict[str, Any]
    changed_files: List[str] = field(default_factory=list)


@dataclass
class IngestionOutcome:
    status_code: int
    message: str
    job: Optional[AnalysisJob] = None
    created: bool = False

    def to_response(self) -> Dict[str, Any]:
        if self.job is None:
            return {"message": self.message}
        return {
            "message": self.message,
            "analysisId": str(self.job.id),
            "projectId": self.job.project_id,
            "commitHash": self.job.commit_hash,
            "status": self.job.status,
        }


def resolve_branch(ref: str) -> str:
    """``refs/heads/feature/x`` -> ``feature/x``; other refs -> last segment."""
    if ref.startswith(BRANCH_REF_PREFIX):
        return ref[len(BRANCH_REF_PREFIX):]
    return ref.rsplit("/", 1)[-1]


def parse_push_event(payload: Any) -> PushEvent:
    """Validate a push payload or raise EventValidationError."""
    if not isinstance(payload, dict):
        raise EventValidationError("Payload must be a JSON object")
    if payload.get("object_kind") != "push":
        raise EventValidationError("Only push events are supported")

    project = payload.get("project")
    if not isinstance(project, dict) or project.get("id") in (None, ""):
        raise EventValidationError("Missing project id")

    commits = payload.get("commits")
    if not isinstance(commits, list) or not commits:
        raise EventValidationError("Push contains no commits")
    for commit in commits:
        if not isinstance(commit, dict) or not commit.get("id"):
            raise EventValidationError("Commit without id")
        for key in ("added", "modified"):
            paths = commit.get(key)
            if paths is None:
                continue
            if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
                raise EventValidationError(f"Commit {key} must be a list of paths")

    ref = payload.get("ref")
    if not isinstance(ref, str) or not ref:
        raise EventValidationError("Missing ref")

    changed: List[str] = []
    for commit in commits:
        for key in ("added", "modified"):
            for path in commit.get(key) or []:
                if path not in changed:
                    changed.append(path)

    return PushEvent(
        project_id=str(project["id"]),
        ref=ref,
        branch=resolve_branch(ref),
        head_commit=commits[-1],
        changed_files=changed,
    )


class IngestionGate:
    """Validates push events and creates webhook-triggered jobs."""

    def __init__(
        self,
        db: Database,
        dispatcher: JobDispatcher,
        default_branches: Optional[List[str]] = None,
        verify_token: Optional[bool] = None,
        events: Optional[EventPublisher] = None,
    ):
        self.jobs = AnalysisJobRepository(db)
        self.projects = ProjectRepository(db)
        self.dispatcher = dispatcher
        self.events = events
        self.default_branches = list(default_branches or settings.TRACKED_BRANCHES)
        self.verify_token = (
            settings.WEBHOOK_VERIFY_TOKEN if verify_token is None else verify_token
        )

    def tracked_branches(self, project: Project) -> List[str]:
        return list(project.tracked_branches) or self.default_branches

    def handle_push(self, payload: Any, token: Optional[str] = None) -> IngestionOutcome:
        event = parse_push_event(payload)

        # Tracked branches and the webhook secret live on the project, so an
        # unregistered project is reported before any branch filtering.

        project = self.projects.find_by_external_id(event.project_id)
        if project is None:
            logger.info(f"Ignoring push for unregistered project {event.project_id}")
            return IngestionOutcome(200, IGNORED_UNKNOWN_PROJECT)

        self._check_token(project, token)

        if event.branch not in self.tracked_branches(project):
            logger.info(
                f"Ignoring push to {event.branch} for project {event.project_id}"
            )
            return IngestionOutcome(200, IGNORED_UNTRACKED_BRANCH)

        if project.scan_frequency != ScanFrequency.ON_PUSH.value:
            return IngestionOutcome(200, IGNORED_NOT_PUSH_SCANNED)

        commit = event.head_commit
        job, created = self.jobs.create_if_absent(
            event.project_id,
            str(commit["id"]),
            TriggerSource.WEBHOOK,
            requested_by=project.owner_id,
            commit_message=commit.get("message"),
            author=commit.get("author") if isinstance(commit.get("author"), dict) else None,
            ref=event.ref,
            changed_files=event.changed_files,
        )

        if not created:
            logger.info(f"Duplicate push for {job.commit_hash}, job {job.id} in flight")
            return IngestionOutcome(202, ALREADY_RUNNING, job=job, created=False)

        logger.info(
            f"Created analysis job {job.id} for project {job.project_id} "
            f"commit {job.commit_hash}"
        )
        dispatch_or_fail(self.dispatcher, self.jobs, str(job.id), self.events)
        return IngestionOutcome(202, ACCEPTED, job=job, created=True)

    def _check_token(self, project: Project, token: Optional[str]) -> None:
        if not self.verify_token or not project.webhook_secret:
            return
        if token is None or not hmac.compare_digest(
            token.encode(), project.webhook_secret.encode()
        ):
            logger.warning(f"Rejected webhook with bad token for project {project.external_id}")
            raise UnauthenticatedError("Invalid webhook token")
