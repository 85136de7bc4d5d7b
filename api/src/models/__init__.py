from api.src.models.generation import GenerationRun, GenerationStep, GENERATION_STEPS, enabled_steps
from api.src.models.schemas import (
    GenerationRequest,
    GenerationQueued,
    GenerationRunResponse,
    StepResponse,
    UsageResponse,
)

__all__ = [
    "GenerationRun",
    "GenerationStep",
    "GENERATION_STEPS",
    "enabled_steps",
    "GenerationRequest",
    "GenerationQueued",
    "GenerationRunResponse",
    "StepResponse",
    "UsageResponse",
]
