"""Liveness and dependency checks for the pipeline service."""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pymongo.database import Database

from secureflow.config import settings
from secureflow.database.mongo import get_db
from secureflow.entities.analysis_job import ACTIVE_STATUSES
from secureflow.repositories.analysis_job import AnalysisJobRepository
from secureflow.utils.datetime import utc_now

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Process is up; reports how jobs are dispatched and which stages run."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "dispatcher": type(dispatcher).__name__ if dispatcher is not None else None,
        "stages": [name for name, _ in settings.PIPELINE_STAGES],
        "timestamp": utc_now().isoformat(),
    }


@router.get("/health/db")
def database_health(db: Database = Depends(get_db)):
    """MongoDB reachability plus the job backlog. 503 when the ping fails."""
    try:
        db.command("ping")
        counts = AnalysisJobRepository(db).count_by_status()
    except Exception as exc:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "disconnected", "error": str(exc)},
        )

    return {
        "status": "healthy",
        "database": "connected",
        "activeJobs": sum(counts.get(s.value, 0) for s in ACTIVE_STATUSES),
        "jobsByStatus": counts,
    }
