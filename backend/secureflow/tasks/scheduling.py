"""
Scheduling Tasks - periodic DAILY/WEEKLY scans via Celery Beat.
"""

import logging
from typing import Any, Dict

from celery import shared_task

from secureflow.pipeline.dispatch import CeleryDispatcher
from secureflow.services.scheduler_service import ScanScheduler

from .worker import get_worker_db, get_worker_events

logger = logging.getLogger(__name__)


@shared_task(
    name="secureflow.tasks.scheduling.run_scheduled_analyses",
    bind=True,
    queue="scheduling",
)
def run_scheduled_analyses(self, frequency: str) -> Dict[str, Any]:
    """Create and queue scheduled jobs for every project scanned at ``frequency``."""
    try:
        return ScanScheduler(
            get_worker_db(), CeleryDispatcher(), events=get_worker_events()
        ).run(frequency)
    except Exception as e:
        logger.error(f"Scheduled {frequency} scan run failed: {e}", exc_info=True)
        raise
