"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from secureflow.api import health, jobs, notifications, webhooks
from secureflow.config import settings
from secureflow.core.logging import setup_logging
from secureflow.core.tracing import TracingContext
from secureflow.database.mongo import MongoResource
from secureflow.middleware.error_codes import get_error_code, status_for_exception
from secureflow.pipeline.dispatch import (
    BackgroundLoopDispatcher,
    CeleryDispatcher,
    JobDispatcher,
)
from secureflow.pipeline.orchestrator import build_orchestrator
from secureflow.services.pipeline_exceptions import PipelineError
from secureflow.tasks.events import EventPublisher

logger = logging.getLogger(__name__)


def _error_response(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "code": get_error_code(status_code).value},
    )


def create_app(
    mongo: Optional[MongoResource] = None,
    dispatcher: Optional[JobDispatcher] = None,
    events: Optional[EventPublisher] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        mongo: Database resource; a new one from settings when omitted
        dispatcher: Job dispatcher; chosen by ``PIPELINE_DISPATCHER`` when omitted
        events: Realtime publisher; a new one from settings when omitted
    """
    mongo = mongo or MongoResource()
    events = events or EventPublisher()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        db = mongo.open()
        app.state.mongo = mongo
        app.state.events = events

        owned_loop: Optional[BackgroundLoopDispatcher] = None
        if dispatcher is not None:
            app.state.dispatcher = dispatcher
        elif settings.PIPELINE_DISPATCHER == "background":
            owned_loop = BackgroundLoopDispatcher(build_orchestrator(db, events))
            owned_loop.start()
            app.state.dispatcher = owned_loop
        else:
            app.state.dispatcher = CeleryDispatcher()

        logger.info(
            f"{settings.APP_NAME} started with {type(app.state.dispatcher).__name__}"
        )
        try:
            yield
        finally:
            if owned_loop is not None:
                owned_loop.stop()
            events.close()
            mongo.close()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Analysis job pipeline for push-triggered security scans",
        version=settings.APP_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def tracing_middleware(request: Request, call_next):
        TracingContext.clear()
        correlation_id = request.headers.get("X-Correlation-ID", "")
        TracingContext.set(correlation_id=correlation_id)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = TracingContext.get_or_create_correlation_id()
        return response

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        status_code = status_for_exception(exc)
        if status_code is None:
            logger.error(f"Unhandled pipeline error: {exc}", exc_info=exc)
            return _error_response(500, "Internal server error")
        return _error_response(status_code, str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        response = _error_response(exc.status_code, str(exc.detail))
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(webhooks.router, prefix="/api")
    app.include_router(jobs.router, prefix="/api")
    app.include_router(notifications.router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/api/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("secureflow.main:app", host="0.0.0.0", port=8000, reload=True)
