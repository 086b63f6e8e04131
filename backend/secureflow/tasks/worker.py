"""
Per-process resources for Celery workers.

Each worker process opens one MongoResource and one EventPublisher when it
starts and closes them on shutdown. Tasks reach them through
``get_worker_db`` and ``get_worker_events``.
"""

import logging
from typing import Optional

from celery.signals import worker_process_init, worker_process_shutdown
from pymongo.database import Database

from secureflow.core.logging import setup_logging
from secureflow.database.mongo import MongoResource

from .events import EventPublisher

logger = logging.getLogger(__name__)

_resource: Optional[MongoResource] = None
_events: Optional[EventPublisher] = None


@worker_process_init.connect
def _open_worker_resources(**kwargs) -> None:
    global _resource, _events
    setup_logging()
    _resource = MongoResource()
    _resource.open()
    _events = EventPublisher()
    logger.info("Worker MongoDB resource opened")


@worker_process_shutdown.connect
def _close_worker_resources(**kwargs) -> None:
    global _resource, _events
    if _events is not None:
        _events.close()
        _events = None
    if _resource is not None:
        _resource.close()
        _resource = None


def get_worker_db() -> Database:
    """Database for the current worker process, opened lazily outside prefork."""
    global _resource
    if _resource is None:
        _resource = MongoResource()
        _resource.open()
    return _resource.database


def get_worker_events() -> EventPublisher:
    """Realtime publisher for the current worker process."""
    global _events
    if _events is None:
        _events = EventPublisher()
    return _events
