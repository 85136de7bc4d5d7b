from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from uuid import UUID

class GenerationRequest(BaseModel):
    prompt: str = Field(..., min_length=10, max_length=2000)
    project_name: Optional[str] = Field(None, max_length=50)

class GenerationQueued(BaseModel):
    status: str
    run_id: UUID
    steps: List[str]

class StepResponse(BaseModel):
    id: UUID
    name: str
    status: str
    step_order: int
    retry_count: int = 0
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class GenerationRunResponse(BaseModel):
    id: UUID
    prompt: str
    project_name: Optional[str] = None
    status: str
    app_path: Optional[str] = None
    error: Optional[str] = None
    failed_step: Optional[str] = None
    duration_ms: Optional[int] = None
    tokens_used: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: datetime
    steps: List[StepResponse] = []

    class Config:
        from_attributes = True

class UsageResponse(BaseModel):
    request_count: int
    token_count: int
    total_cost: float
    last_reset: Optional[datetime] = None
    limits: Dict[str, float]
    usage_percent: Dict[str, float]
