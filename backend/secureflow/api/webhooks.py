"""
GitLab webhook endpoint.

The push is validated and turned into a job synchronously; the analysis
itself is dispatched and never awaited here.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pymongo.database import Database

from secureflow.api.deps import get_dispatcher, get_events
from secureflow.core.tracing import TracingContext
from secureflow.database.mongo import get_db
from secureflow.pipeline.dispatch import JobDispatcher
from secureflow.services.ingestion_service import IngestionGate
from secureflow.services.pipeline_exceptions import EventValidationError
from secureflow.tasks.events import EventPublisher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.options("/gitlab", status_code=status.HTTP_204_NO_CONTENT)
async def gitlab_webhook_preflight() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/gitlab")
async def gitlab_webhook(
    request: Request,
    x_gitlab_token: Optional[str] = Header(default=None),
    db: Database = Depends(get_db),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
    events: Optional[EventPublisher] = Depends(get_events),
):
    """Receive a GitLab push event. 202 when a job exists for it, 200 when ignored."""
    TracingContext.get_or_create_correlation_id()
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise EventValidationError("Body is not valid JSON")

    gate = IngestionGate(db, dispatcher, events=events)
    outcome = await run_in_threadpool(gate.handle_push, payload, x_gitlab_token)
    return JSONResponse(status_code=outcome.status_code, content=outcome.to_response())
