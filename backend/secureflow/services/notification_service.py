"""
Analysis Notification Service - In-app, Slack, and realtime notifications.

Channels:
- In-app: Always sent when the job has a requesting user, stored in MongoDB
- Slack: Failures, and completions with a HIGH or CRITICAL threat level
- Realtime: A JOB_UPDATE event on every persisted transition, when a
  publisher is wired in

Every channel is best-effort. A failing channel is logged and skipped; it
never fails or rolls back the job transition that triggered it.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
from pymongo.database import Database

from secureflow.config import settings
from secureflow.entities.analysis_job import AnalysisJob
from secureflow.entities.notification import Notification, NotificationType
from secureflow.repositories.notification import NotificationRepository
from secureflow.templates import slack_templates

logger = logging.getLogger(__name__)

SLACK_THREAT_LEVELS = ("HIGH", "CRITICAL")


class NotificationEmitter:
    """
    Multi-channel notifier for analysis job lifecycle transitions.

    Args:
        db: Database for in-app notifications; None disables the channel
        slack_webhook_url: Incoming webhook; defaults to settings
        publisher: Callable publishing a realtime job update, usually
            ``EventPublisher.publish_job_update``; None disables the channel
        http_transport: Optional httpx transport for the Slack client
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        slack_webhook_url: Optional[str] = None,
        publisher: Optional[Callable[..., bool]] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.slack_webhook_url = slack_webhook_url or settings.SLACK_WEBHOOK_URL
        self.publisher = publisher
        self.http_transport = http_transport

    # -------------------------------------------------------------------------
    # Lifecycle hooks
    # -------------------------------------------------------------------------

    async def job_started(self, job: AnalysisJob) -> None:
        await asyncio.to_thread(
            self._create_in_app,
            job,
            NotificationType.ANALYSIS_STARTED,
            title="Security Analysis Started",
            message=f"Analysis of commit {job.commit_hash[:8]} for project "
            f"{job.project_id} has started.",
        )
        await asyncio.to_thread(self.publish_update, job)

    async def job_completed(self, job: AnalysisJob) -> None:
        result = job.result or {}
        threat_level = result.get("threatLevel", "UNKNOWN")
        score = result.get("securityScore")
        await asyncio.to_thread(
            self._create_in_app,
            job,
            NotificationType.ANALYSIS_COMPLETED,
            title="Security Analysis Completed",
            message=f"Analysis of commit {job.commit_hash[:8]} completed. "
            f"Threat level: {threat_level}.",
            extra={"threatLevel": threat_level, "securityScore": score},
        )
        await asyncio.to_thread(self.publish_update, job)
        if threat_level in SLACK_THREAT_LEVELS:
            slack_msg = slack_templates.analysis_completed(
                job.project_id, job.commit_hash, threat_level, score
            )
            await self.send_slack(blocks=slack_msg["blocks"], text=slack_msg["text"])

    async def job_failed(self, job: AnalysisJob) -> None:
        error = job.error or "Unknown error"
        await asyncio.to_thread(
            self._create_in_app,
            job,
            NotificationType.ANALYSIS_FAILED,
            title="Security Analysis Failed",
            message=f"Analysis of commit {job.commit_hash[:8]} failed: {error}",
            extra={"error": error},
        )
        await asyncio.to_thread(self.publish_update, job)
        slack_msg = slack_templates.analysis_failed(
            job.project_id, job.commit_hash, error, link=self._job_link(job)
        )
        await self.send_slack(blocks=slack_msg["blocks"], text=slack_msg["text"])

    async def job_progress(self, job: AnalysisJob) -> None:
        await asyncio.to_thread(self.publish_update, job)

    # -------------------------------------------------------------------------
    # Channels
    # -------------------------------------------------------------------------

    def _job_link(self, job: AnalysisJob) -> str:
        return f"{settings.FRONTEND_BASE_URL}/projects/{job.project_id}/analyses/{job.id}"

    def _create_in_app(
        self,
        job: AnalysisJob,
        type: NotificationType,
        title: str,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """Create an in-app notification for the job's requesting user."""
        if self.db is None:
            logger.debug("Database not configured for in-app notifications")
            return None
        if not job.requested_by:
            logger.debug(f"Job {job.id} has no requesting user, skipping in-app")
            return None

        metadata = {
            "analysisId": str(job.id),
            "projectId": job.project_id,
            "commitHash": job.commit_hash,
        }
        if extra:
            metadata.update(extra)

        try:
            repo = NotificationRepository(self.db)
            return repo.insert_one(
                Notification(
                    user_id=job.requested_by,
                    type=type,
                    title=title,
                    message=message,
                    link=self._job_link(job),
                    metadata=metadata,
                )
            )
        except Exception as e:
            logger.error(f"In-app notification failed for job {job.id}: {e}")
            return None

    def publish_update(self, job: AnalysisJob) -> bool:
        """Publish the job's current state; blocking, never raises."""
        if self.publisher is None:
            return False
        try:
            return self.publisher(
                job_id=str(job.id),
                project_id=job.project_id,
                status=job.status,
                stage=job.stage,
                progress=job.progress,
                error=job.error,
            )
        except Exception as e:
            logger.error(f"Realtime update failed for job {job.id}: {e}")
            return False

    async def send_slack(self, blocks: List[Dict[str, Any]], text: str = "") -> bool:
        """Send a Slack message via Incoming Webhook."""
        if not self.slack_webhook_url:
            logger.debug("Slack webhook not configured")
            return False

        try:
            async with httpx.AsyncClient(
                timeout=10.0, transport=self.http_transport
            ) as client:
                response = await client.post(
                    self.slack_webhook_url,
                    json={"blocks": blocks, "text": text},
                )
                if response.status_code == 200:
                    logger.info("Slack notification sent")
                    return True
                logger.warning(f"Slack failed: {response.status_code}")
                return False
        except Exception as e:
            logger.error(f"Slack error: {e}")
            return False
