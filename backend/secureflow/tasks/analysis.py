"""
Analysis Tasks - run one analysis job through the pipeline on a worker.
"""

import asyncio
import logging
from typing import Any, Dict

from celery import shared_task

from secureflow.core.tracing import TracingContext
from secureflow.pipeline.orchestrator import build_orchestrator
from secureflow.services.pipeline_exceptions import PipelineError

from .worker import get_worker_db, get_worker_events

logger = logging.getLogger(__name__)


@shared_task(
    name="secureflow.tasks.analysis.run_analysis_job",
    bind=True,
    queue="pipeline",
)
def run_analysis_job(self, job_id: str) -> Dict[str, Any]:
    """
    Drive one job to a terminal state.

    Not retried: a failed stage is a terminal FAILED job, and a job that
    another worker already runs is rejected by the orchestrator. A
    redelivered message means the worker that held it died, so a job it left
    IN_PROGRESS is failed instead of rejected.
    """
    TracingContext.clear()
    TracingContext.set(
        correlation_id=self.request.id or "",
        job_id=job_id,
        task_name="run_analysis_job",
    )
    redelivered = bool((self.request.delivery_info or {}).get("redelivered"))
    orchestrator = build_orchestrator(get_worker_db(), get_worker_events())

    try:
        job = asyncio.run(orchestrator.run(job_id, reclaim=redelivered))
    except PipelineError as e:
        logger.warning(f"Analysis job {job_id} not run: {e}")
        return {"status": "skipped", "job_id": job_id, "reason": str(e)}
    finally:
        TracingContext.clear()

    return {
        "status": job.status,
        "job_id": job_id,
        "progress": job.progress,
    }
