"""
Application configuration
"""
from typing import List, Optional, Tuple

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "SecureFlow Analysis Pipeline"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    FRONTEND_BASE_URL: str = "http://localhost:3000"

    # Database (MongoDB)
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "secureflow"
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = 5000

    # Redis (Celery broker + real-time events)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Roles required for privileged pipeline operations
    TRIGGER_REQUIRED_ROLE: str = "DEVELOPER"
    CANCEL_REQUIRED_ROLE: str = "SECURITY_ANALYST"
    SCHEDULE_REQUIRED_ROLE: str = "ADMIN"

    # Webhook ingestion
    TRACKED_BRANCHES: List[str] = ["main", "master"]
    WEBHOOK_VERIFY_TOKEN: bool = True

    # Pipeline
    PIPELINE_DISPATCHER: str = "celery"  # "celery" or "background"
    PIPELINE_STAGES: List[Tuple[str, int]] = [
        ("FETCHING_CODE", 20),
        ("STATIC_ANALYSIS", 40),
        ("AI_ANALYSIS", 60),
        ("THREAT_MODELING", 80),
        ("GENERATING_REPORT", 95),
    ]
    STAGE_TIMEOUT_SECONDS: Optional[float] = 300.0

    # Stage executor backend; canned results are used when no analyzer is set
    ANALYZER_URL: Optional[str] = None
    ANALYZER_TOKEN: Optional[str] = None
    ANALYZER_TIMEOUT_SECONDS: float = 120.0

    # Notifications
    SLACK_WEBHOOK_URL: Optional[str] = None
    REALTIME_EVENTS_ENABLED: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
