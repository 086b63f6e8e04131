"""
Pipeline Orchestrator - drives one analysis job through the stage list.

Each job runs as its own asyncio task. Store and notification calls are
blocking pymongo/redis work and run in worker threads, so a slow round trip
stalls only its own job. The steps of one job are awaited in order and never
interleave. Every write is a compare-and-set against the status and stage the
orchestrator last observed; losing that race (for example to a cancel) means
the orchestrator stops without overwriting anything.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional, Set, Tuple, Union

from pymongo.database import Database

from secureflow.core.tracing import TracingContext
from secureflow.entities.analysis_job import TERMINAL_STATUSES, AnalysisJob, JobStatus
from secureflow.repositories.analysis_job import AnalysisJobRepository
from secureflow.repositories.project import ProjectRepository
from secureflow.services.notification_service import NotificationEmitter
from secureflow.services.pipeline_exceptions import (
    AlreadyRunningError,
    StageExecutionError,
    TransitionConflictError,
)
from secureflow.tasks.events import EventPublisher
from secureflow.utils.datetime import utc_now

from .executor import StageContext, StageExecutor, default_executor
from .stages import StageSpec, build_stages, default_stages

logger = logging.getLogger(__name__)

_USE_SETTINGS = object()

# Added to the stage deadline before an IN_PROGRESS job counts as abandoned
STALE_GRACE_SECONDS = 60


class PipelineOrchestrator:
    """
    Runs analysis jobs stage by stage.

    Args:
        jobs: Job store
        executor: Performs the work of each stage
        notifier: Optional emitter with ``job_started``/``job_progress``/
            ``job_completed``/``job_failed`` coroutines. Failures are logged.
        stages: ``StageSpec`` list or ``(name, progress)`` pairs; defaults to
            the configured list
        stage_timeout: Seconds allowed per stage, None for no limit
        projects: When given, the project's ``last_scan_at`` is updated on
            completion
    """

    def __init__(
        self,
        jobs: AnalysisJobRepository,
        executor: StageExecutor,
        notifier: Any = None,
        stages: Optional[Iterable[Union[StageSpec, Tuple[str, int]]]] = None,
        stage_timeout: Any = _USE_SETTINGS,
        projects: Optional[ProjectRepository] = None,
    ):
        self.jobs = jobs
        self.executor = executor
        self.notifier = notifier
        self.projects = projects
        if stages is None:
            self.stages = default_stages()
        else:
            self.stages = build_stages(
                (s.name, s.progress) if isinstance(s, StageSpec) else s for s in stages
            )
        if stage_timeout is _USE_SETTINGS:
            from secureflow.config import settings

            stage_timeout = settings.STAGE_TIMEOUT_SECONDS
        self.stage_timeout: Optional[float] = stage_timeout
        self._running: Set[str] = set()

    async def run(self, job_id: str, reclaim: bool = False) -> AnalysisJob:
        """
        Drive a PENDING job to a terminal state and return its final record.

        An IN_PROGRESS job that is not running in this process is treated as
        abandoned, and failed, when ``reclaim`` is set (the task was
        redelivered after its worker died) or when it has not been written for
        longer than a stage may take.

        Raises:
            JobNotFoundError: unknown job id
            AlreadyRunningError: the job is IN_PROGRESS here or elsewhere
            TransitionConflictError: the job is already COMPLETED or FAILED
        """
        job = await asyncio.to_thread(self.jobs.get, job_id)
        key = str(job.id)
        if key in self._running:
            raise AlreadyRunningError(key)

        status = JobStatus(job.status)
        if status == JobStatus.CANCELLED:
            logger.info(f"Job {key} was cancelled before it started, skipping")
            return job
        if status == JobStatus.IN_PROGRESS:
            if reclaim or self.is_stale(job):
                return await self._fail_abandoned(job)
            raise AlreadyRunningError(key)
        if status in TERMINAL_STATUSES:
            raise TransitionConflictError(key, JobStatus.PENDING.value, status.value)

        self._running.add(key)
        TracingContext.set(job_id=key, project_id=job.project_id)
        try:
            return await self._drive(job)
        finally:
            self._running.discard(key)

    @property
    def running_jobs(self) -> Set[str]:
        return set(self._running)

    def is_stale(self, job: AnalysisJob) -> bool:
        """True when an IN_PROGRESS job has outlived any live stage."""
        if self.stage_timeout is None or job.updated_at is None:
            return False
        limit = timedelta(seconds=self.stage_timeout + STALE_GRACE_SECONDS)
        return utc_now() - job.updated_at > limit

    async def _drive(self, job: AnalysisJob) -> AnalysisJob:
        key = str(job.id)
        prefix = TracingContext.get_log_prefix()

        try:
            job = await asyncio.to_thread(
                self.jobs.transition,
                key,
                JobStatus.PENDING,
                {
                    "status": JobStatus.IN_PROGRESS,
                    "stage": self.stages[0].name,
                    "progress": 0,
                    "started_at": utc_now(),
                },
            )
        except TransitionConflictError:
            current = await asyncio.to_thread(self.jobs.get, key)
            if current.status == JobStatus.IN_PROGRESS.value:
                raise AlreadyRunningError(key)
            if current.status == JobStatus.CANCELLED.value:
                logger.info(f"{prefix} Cancelled before start, skipping")
                return current
            raise

        logger.info(f"{prefix} Analysis started for commit {job.commit_hash}")
        await self._notify("job_started", job)

        outputs: Dict[str, Any] = {}
        for index, stage in enumerate(self.stages):
            current = await asyncio.to_thread(self.jobs.get, key)
            if current.status != JobStatus.IN_PROGRESS.value or current.stage != stage.name:
                logger.info(
                    f"{prefix} Stopping before {stage.name}: job is {current.status}"
                )
                return current

            TracingContext.set(stage=stage.name)
            context = StageContext(
                job_id=key,
                project_id=job.project_id,
                commit_hash=job.commit_hash,
                stage=stage.name,
                changed_files=list(job.changed_files),
                previous=dict(outputs),
            )
            try:
                output = await self._run_stage(context)
            except Exception as exc:
                return await self._fail(key, stage, exc)

            outputs.update(output)
            is_last = index == len(self.stages) - 1
            if is_last:
                updates = {
                    "status": JobStatus.COMPLETED,
                    "progress": 100,
                    "result": outputs,
                    "completed_at": utc_now(),
                }
            else:
                updates = {
                    "stage": self.stages[index + 1].name,
                    "progress": stage.progress,
                }

            try:
                job = await asyncio.to_thread(
                    self.jobs.transition,
                    key,
                    JobStatus.IN_PROGRESS,
                    updates,
                    expected_stage=stage.name,
                )
            except TransitionConflictError:
                current = await asyncio.to_thread(self.jobs.get, key)
                logger.info(
                    f"{prefix} Discarding {stage.name} output: job is {current.status}"
                )
                return current

            if not is_last:
                logger.info(f"{prefix} {stage.name} done ({stage.progress}%)")
                await self._notify("job_progress", job)

        logger.info(f"{prefix} Analysis completed")
        if self.projects is not None:
            await asyncio.to_thread(
                self.projects.touch_last_scan, job.project_id, job.completed_at
            )
        await self._notify("job_completed", job)
        return job

    async def _run_stage(self, context: StageContext) -> Dict[str, Any]:
        call = self.executor.run_stage(context)
        try:
            if self.stage_timeout is None:
                output = await call
            else:
                output = await asyncio.wait_for(call, timeout=self.stage_timeout)
        except asyncio.TimeoutError:
            raise StageExecutionError(
                context.stage,
                f"Stage {context.stage} timed out after {self.stage_timeout} seconds",
            )

        if output is None:
            return {}
        if not isinstance(output, dict):
            raise StageExecutionError(
                context.stage,
                f"Stage {context.stage} returned {type(output).__name__}, expected dict",
            )
        return output

    async def _fail(self, key: str, stage: StageSpec, exc: Exception) -> AnalysisJob:
        message = str(exc) or type(exc).__name__
        prefix = TracingContext.get_log_prefix()
        logger.error(f"{prefix} {stage.name} failed: {message}")
        return await self._mark_failed(key, stage.name, message)

    async def _fail_abandoned(self, job: AnalysisJob) -> AnalysisJob:
        key = str(job.id)
        message = f"Worker lost while running {job.stage}"
        logger.warning(f"Job {key} was abandoned in {job.stage}, marking it failed")
        return await self._mark_failed(key, job.stage, message)

    async def _mark_failed(
        self, key: str, stage: Optional[str], message: str
    ) -> AnalysisJob:
        try:
            job = await asyncio.to_thread(
                self.jobs.transition,
                key,
                JobStatus.IN_PROGRESS,
                {"status": JobStatus.FAILED, "error": message, "failed_at": utc_now()},
                expected_stage=stage,
            )
        except TransitionConflictError:
            return await asyncio.to_thread(self.jobs.get, key)
        await self._notify("job_failed", job)
        return job

    async def _notify(self, hook: str, job: AnalysisJob) -> None:
        if self.notifier is None:
            return
        try:
            await getattr(self.notifier, hook)(job)
        except Exception as e:
            logger.warning(f"Notification {hook} failed for job {job.id}: {e}")


def build_orchestrator(
    db: Database, events: Optional[EventPublisher] = None
) -> PipelineOrchestrator:
    """Orchestrator wired with the configured executor, stages and notifier."""
    return PipelineOrchestrator(
        jobs=AnalysisJobRepository(db),
        executor=default_executor(),
        notifier=NotificationEmitter(
            db=db, publisher=events.publish_job_update if events else None
        ),
        projects=ProjectRepository(db),
    )
