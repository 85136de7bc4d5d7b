"""
Step execution models.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Awaitable, Callable, List, Optional
from datetime import datetime
from enum import Enum

from generator.src.errors import InvalidStepTransitionError

StepOperation = Callable[[], Awaitable[Any]]

class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)

# Allowed moves of the per-step state machine
_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.RUNNING},
    StepStatus.RUNNING: {StepStatus.RETRYING, StepStatus.COMPLETED, StepStatus.FAILED},
    StepStatus.RETRYING: {StepStatus.RUNNING, StepStatus.RETRYING, StepStatus.COMPLETED, StepStatus.FAILED},
    StepStatus.COMPLETED: set(),
    StepStatus.FAILED: set(),
}

class StepDefinition(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    operation: Optional[StepOperation] = None
    timeout: float = Field(default=120.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    requires_admission: bool = False

class StepState(BaseModel):
    name: str
    status: StepStatus = StepStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_ms: Optional[int] = None
    retry_count: int = 0
    last_error: Optional[str] = None
    result: Any = None

    def advance(self, status: StepStatus):
        """Move to ``status``, refusing any move the state machine forbids."""
        if status not in _TRANSITIONS[self.status]:
            raise InvalidStepTransitionError(
                f"Step '{self.name}' cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

class StepReport(BaseModel):
    name: str
    status: StepStatus
    duration_ms: Optional[int] = None
    retry_count: int = 0
    error: Optional[str] = None

    @classmethod
    def from_state(cls, state: StepState) -> "StepReport":
        return cls(
            name=state.name,
            status=state.status,
            duration_ms=state.duration_ms,
            retry_count=state.retry_count,
            error=state.last_error,
        )

class PipelineResult(BaseModel):
    success: bool
    duration_ms: int
    steps: List[StepReport] = []
    error: Optional[str] = None
    failed_step: Optional[str] = None
    app_path: Optional[str] = None
    files_count: int = 0
    tokens_used: int = 0

class GenerationJob(BaseModel):
    run_id: str
    prompt: str
    project_name: Optional[str] = None
    queued_at: str
