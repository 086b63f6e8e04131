"""
Event publishing for real-time dashboard updates.

Events go to a Redis pub/sub channel and are forwarded to browser clients by
whatever realtime gateway subscribes to it. An ``EventPublisher`` is owned by
the process runtime, like ``MongoResource``: the API lifespan creates one at
startup and each Celery worker process creates one on init.
"""

import json
import logging
from typing import Any, Dict, Optional

import redis

from secureflow.config import settings

logger = logging.getLogger(__name__)

# Redis channel for realtime events
EVENTS_CHANNEL = "events"


class EventPublisher:
    """
    Publishes JSON events on the Redis events channel.

    Args:
        redis_url: Defaults to ``REDIS_URL``
        client: Pre-built Redis client, mainly for tests
        enabled: Defaults to ``REALTIME_EVENTS_ENABLED``
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[redis.Redis] = None,
        enabled: Optional[bool] = None,
    ):
        self.redis_url = redis_url or settings.REDIS_URL
        self.enabled = settings.REALTIME_EVENTS_ENABLED if enabled is None else enabled
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            timeout = settings.REDIS_SOCKET_TIMEOUT_SECONDS
            self._client = redis.from_url(
                self.redis_url,
                socket_connect_timeout=timeout,
                socket_timeout=timeout,
            )
        return self._client

    def publish(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Publish an event to the Redis events channel.

        Args:
            event_type: Event type (e.g., "JOB_UPDATE")
            payload: Event payload data

        Returns:
            True if published successfully, False otherwise
        """
        if not self.enabled:
            return False
        try:
            message = json.dumps({"type": event_type, "payload": payload}, default=str)
            self.client.publish(EVENTS_CHANNEL, message)
            return True
        except Exception as e:
            logger.error(f"Failed to publish event {event_type}: {e}")
            return False

    def publish_job_update(
        self,
        job_id: str,
        project_id: str,
        status: str,
        stage: Optional[str] = None,
        progress: int = 0,
        error: Optional[str] = None,
    ) -> bool:
        """Publish an analysis job transition for real-time UI updates."""
        payload: Dict[str, Any] = {
            "job_id": job_id,
            "project_id": project_id,
            "status": status,
            "stage": stage,
            "progress": progress,
        }
        if error:
            payload["error"] = error
        return self.publish("JOB_UPDATE", payload)

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning(f"Error closing Redis client: {e}")
            self._client = None
