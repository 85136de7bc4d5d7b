from generator.src.models.step import (
    StepStatus,
    StepDefinition,
    StepState,
    StepReport,
    PipelineResult,
    GenerationJob,
)
from generator.src.models.usage import (
    RequestRecord,
    RateLimitStats,
    UsageSnapshot,
    AdmissionDecision,
    AdmissionLimits,
)

__all__ = [
    "StepStatus",
    "StepDefinition",
    "StepState",
    "StepReport",
    "PipelineResult",
    "GenerationJob",
    "RequestRecord",
    "RateLimitStats",
    "UsageSnapshot",
    "AdmissionDecision",
    "AdmissionLimits",
]
