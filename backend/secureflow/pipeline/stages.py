"""
Stage list for the analysis pipeline.

A stage is an ordered step with the progress value the job reports once the
stage has finished. The list comes from configuration and is validated once
when the orchestrator is built.
"""

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from secureflow.services.pipeline_exceptions import PipelineError


class StageConfigurationError(PipelineError):
    """Raised when the configured stage list is unusable."""


@dataclass(frozen=True)
class StageSpec:
    name: str
    progress: int  # reported after the stage succeeds


def build_stages(pairs: Iterable[Tuple[str, int]]) -> List[StageSpec]:
    """
    Validate ``(name, progress)`` pairs and return them as StageSpecs.

    The list must be non-empty, names unique, and progress strictly increasing
    within [0, 100). 100 is reserved for COMPLETED.
    """
    stages = [StageSpec(str(name), int(progress)) for name, progress in pairs]
    if not stages:
        raise StageConfigurationError("Pipeline needs at least one stage")

    seen = set()
    previous = -1
    for stage in stages:
        if stage.name in seen:
            raise StageConfigurationError(f"Duplicate stage name: {stage.name}")
        seen.add(stage.name)
        if not 0 <= stage.progress < 100:
            raise StageConfigurationError(
                f"Stage {stage.name} progress {stage.progress} outside [0, 100)"
            )
        if stage.progress <= previous:
            raise StageConfigurationError(
                f"Stage {stage.name} progress must be greater than {previous}"
            )
        previous = stage.progress
    return stages


def default_stages() -> List[StageSpec]:
    from secureflow.config import settings

    return build_stages(settings.PIPELINE_STAGES)
