"""
Job dispatchers - hand a newly created job to the orchestrator.

Dispatching never waits for the pipeline; the webhook and trigger endpoints
acknowledge as soon as the job is stored.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Dict, Optional, Protocol

from secureflow.entities.analysis_job import JobStatus
from secureflow.repositories.analysis_job import AnalysisJobRepository
from secureflow.services.notification_service import NotificationEmitter
from secureflow.services.pipeline_exceptions import TransitionConflictError
from secureflow.tasks.events import EventPublisher
from secureflow.utils.datetime import utc_now

from .orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


class JobDispatcher(Protocol):
    def dispatch(self, job_id: str) -> None:
        ...


class CeleryDispatcher:
    """Queue the job on the Celery ``pipeline`` queue."""

    def dispatch(self, job_id: str) -> None:
        from secureflow.celery_app import celery_app

        celery_app.send_task(
            "secureflow.tasks.analysis.run_analysis_job", args=[job_id], queue="pipeline"
        )
        logger.info(f"Queued analysis job {job_id}")


class BackgroundLoopDispatcher:
    """
    Run jobs as tasks on an asyncio loop owned by a background thread.

    For single-process deployments without a Celery worker. ``start`` and
    ``stop`` are called by the application lifespan.
    """

    def __init__(self, orchestrator: PipelineOrchestrator):
        self.orchestrator = orchestrator
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._futures: Dict[str, Future] = {}

    def start(self) -> None:
        if self._loop is not None:
            return
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="pipeline-loop", daemon=True
        )
        self._thread.start()

    def dispatch(self, job_id: str) -> None:
        if self._loop is None:
            self.start()
        future = asyncio.run_coroutine_threadsafe(
            self.orchestrator.run(job_id), self._loop
        )
        self._futures[job_id] = future
        future.add_done_callback(lambda f, jid=job_id: self._on_done(jid, f))

    def _on_done(self, job_id: str, future: Future) -> None:
        self._futures.pop(job_id, None)
        if future.cancelled():
            logger.warning(f"Analysis job {job_id} task was cancelled")
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"Analysis job {job_id} did not run: {exc}")

    def wait(self, job_id: str, timeout: Optional[float] = None) -> None:
        """Block until the job's task finishes. Returns at once if it is unknown."""
        future = self._futures.get(job_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except Exception as e:
                logger.debug(f"Analysis job {job_id} ended with {e!r}")

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel running jobs, let them unwind, then close the loop."""
        if self._loop is None:
            return
        shutdown = asyncio.run_coroutine_threadsafe(self._cancel_all(), self._loop)
        try:
            shutdown.result(timeout=timeout)
        except FutureTimeoutError:
            logger.warning("Pipeline loop did not finish cancelling jobs in time")
        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._loop.close()
        self._loop = None
        self._thread = None

    async def _cancel_all(self) -> None:
        current = asyncio.current_task()
        tasks = [task for task in asyncio.all_tasks() if task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await asyncio.get_running_loop().shutdown_default_executor()


def dispatch_or_fail(
    dispatcher: JobDispatcher,
    jobs: AnalysisJobRepository,
    job_id: str,
    events: Optional[EventPublisher] = None,
) -> None:
    """
    Dispatch a freshly created job. If dispatching raises, the job is marked
    FAILED so its idempotency key is released, the FAILED state is published
    when ``events`` is given, and the error is re-raised.
    """
    try:
        dispatcher.dispatch(job_id)
    except Exception as e:
        logger.error(f"Failed to dispatch analysis job {job_id}: {e}")
        try:
            failed = jobs.transition(
                job_id,
                JobStatus.PENDING,
                {
                    "status": JobStatus.FAILED,
                    "error": f"Dispatch failed: {e}",
                    "failed_at": utc_now(),
                },
            )
        except TransitionConflictError:
            logger.warning(f"Job {job_id} left PENDING before it could be failed")
        else:
            if events is not None:
                NotificationEmitter(
                    publisher=events.publish_job_update
                ).publish_update(failed)
        raise
