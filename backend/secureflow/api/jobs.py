"""Analysis job query, trigger and cancel endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pymongo.database import Database

from secureflow.api.deps import get_dispatcher, get_events
from secureflow.config import settings
from secureflow.database.mongo import get_db
from secureflow.dtos.analysis_job import (
    AnalysisJobResponse,
    JobListResponse,
    JobProgressResponse,
    ScheduledRunRequest,
    ScheduledRunResponse,
    TriggerJobRequest,
)
from secureflow.entities.analysis_job import TriggerSource
from secureflow.middleware.auth import get_current_user
from secureflow.middleware.rbac import RequireRole
from secureflow.pipeline.dispatch import JobDispatcher, dispatch_or_fail
from secureflow.repositories.analysis_job import AnalysisJobRepository
from secureflow.repositories.project import ProjectRepository
from secureflow.services.notification_service import NotificationEmitter
from secureflow.services.scheduler_service import ScanScheduler
from secureflow.tasks.events import EventPublisher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analysis Jobs"])


@router.get("/jobs/{job_id}", response_model=AnalysisJobResponse)
def get_job(
    job_id: str,
    db: Database = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """Get an analysis job by id."""
    job = AnalysisJobRepository(db).get(job_id)
    return AnalysisJobResponse.from_entity(job)


@router.get("/jobs/{job_id}/progress", response_model=JobProgressResponse)
def get_job_progress(
    job_id: str,
    db: Database = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """Lightweight status for polling clients."""
    job = AnalysisJobRepository(db).get(job_id)
    return JobProgressResponse(progress=job.progress, stage=job.stage, status=job.status)


@router.get("/projects/{project_id}/jobs", response_model=JobListResponse)
def list_project_jobs(
    project_id: str,
    limit: int = Query(20, ge=1, le=100),
    db: Database = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    """Most recent analysis jobs of a project."""
    jobs = AnalysisJobRepository(db).list_by_project(project_id, limit=limit)
    items = [AnalysisJobResponse.from_entity(job) for job in jobs]
    return JobListResponse(items=items, count=len(items))


@router.post("/projects/{project_id}/jobs", response_model=AnalysisJobResponse)
def trigger_job(
    project_id: str,
    response: Response,
    payload: Optional[TriggerJobRequest] = None,
    db: Database = Depends(get_db),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
    events: Optional[EventPublisher] = Depends(get_events),
    current_user: dict = Depends(RequireRole(settings.TRIGGER_REQUIRED_ROLE)),
):
    """
    Start a manual analysis. 202 with the new job, or 200 with the job
    already running for the same commit.
    """
    payload = payload or TriggerJobRequest()
    project = ProjectRepository(db).find_by_external_id(project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    repo = AnalysisJobRepository(db)
    job, created = repo.create_if_absent(
        project_id,
        payload.commit_hash,
        TriggerSource.MANUAL,
        requested_by=current_user["_id"],
        commit_message=payload.commit_message,
        ref=payload.ref,
    )
    if created:
        logger.info(f"User {current_user['_id']} triggered analysis job {job.id}")
        dispatch_or_fail(dispatcher, repo, str(job.id), events)
        response.status_code = status.HTTP_202_ACCEPTED
    else:
        response.status_code = status.HTTP_200_OK
    return AnalysisJobResponse.from_entity(job)


@router.post("/jobs/{job_id}/cancel", response_model=AnalysisJobResponse)
def cancel_job(
    job_id: str,
    db: Database = Depends(get_db),
    events: Optional[EventPublisher] = Depends(get_events),
    current_user: dict = Depends(RequireRole(settings.CANCEL_REQUIRED_ROLE)),
):
    """Cancel a PENDING or IN_PROGRESS job. 409 when it already finished."""
    job = AnalysisJobRepository(db).cancel(job_id)
    logger.info(f"User {current_user['_id']} cancelled analysis job {job.id}")
    if events is not None:
        NotificationEmitter(publisher=events.publish_job_update).publish_update(job)
    return AnalysisJobResponse.from_entity(job)


@router.post("/jobs/scheduled/trigger", response_model=ScheduledRunResponse)
def trigger_scheduled_run(
    request: ScheduledRunRequest,
    db: Database = Depends(get_db),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
    events: Optional[EventPublisher] = Depends(get_events),
    current_user: dict = Depends(RequireRole(settings.SCHEDULE_REQUIRED_ROLE)),
):
    """Run the DAILY or WEEKLY scan batch now."""
    summary = ScanScheduler(db, dispatcher, events=events).run(request.frequency)
    return ScheduledRunResponse(**summary)
