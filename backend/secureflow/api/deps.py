"""Shared FastAPI dependencies for pipeline endpoints."""

from typing import Optional

from fastapi import Request

from secureflow.pipeline.dispatch import JobDispatcher
from secureflow.tasks.events import EventPublisher


def get_dispatcher(request: Request) -> JobDispatcher:
    return request.app.state.dispatcher


def get_events(request: Request) -> Optional[EventPublisher]:
    """The application's realtime publisher, None when it has none."""
    return getattr(request.app.state, "events", None)
