"""Analysis job pipeline: stage list, executors, orchestrator and dispatchers."""

from .dispatch import (
    BackgroundLoopDispatcher,
    CeleryDispatcher,
    JobDispatcher,
    dispatch_or_fail,
)
from .executor import (
    CannedStageExecutor,
    HttpStageExecutor,
    StageContext,
    StageExecutor,
    default_executor,
    summarize_findings,
)
from .orchestrator import PipelineOrchestrator, build_orchestrator
from .stages import StageConfigurationError, StageSpec, build_stages, default_stages

__all__ = [
    "BackgroundLoopDispatcher",
    "CeleryDispatcher",
    "JobDispatcher",
    "dispatch_or_fail",
    "CannedStageExecutor",
    "HttpStageExecutor",
    "StageContext",
    "StageExecutor",
    "default_executor",
    "summarize_findings",
    "PipelineOrchestrator",
    "build_orchestrator",
    "StageConfigurationError",
    "StageSpec",
    "build_stages",
    "default_stages",
]
