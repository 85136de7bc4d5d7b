"""
Usage accounting models shared by the ledger and the admission controller.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime

class RequestRecord(BaseModel):
    """One completed provider call. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    tokens: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0)
    success: bool = True
    model: str = ""
    duration_ms: int = Field(default=0, ge=0)

class RateLimitStats(BaseModel):
    """Daily counters persisted across restarts (camelCase on disk)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    request_count: int = 0
    token_count: int = 0
    total_cost: float = 0.0
    last_reset: datetime
    daily_limit: int = 0
    tokens_per_minute: int = 0
    requests_per_minute: int = 0

class UsageSnapshot(BaseModel):
    daily_requests: int
    daily_tokens: int
    daily_cost: float
    minute_requests: int
    minute_tokens: int

class AdmissionDecision(BaseModel):
    allowed: bool
    current_usage: UsageSnapshot
    reason: Optional[str] = None
    wait_time_seconds: Optional[int] = None
    limit: Optional[str] = None

class AdmissionLimits(BaseModel):
    max_requests_per_minute: int = Field(default=60, ge=0)
    max_tokens_per_minute: int = Field(default=100000, ge=0)
    max_daily_cost: float = Field(default=50.00, ge=0)
    max_generations_per_day: int = Field(default=50, ge=0)

    @classmethod
    def from_settings(cls, settings) -> "AdmissionLimits":
        return cls(
            max_requests_per_minute=settings.max_requests_per_minute,
            max_tokens_per_minute=settings.max_tokens_per_minute,
            max_daily_cost=settings.max_daily_cost,
            max_generations_per_day=settings.max_generations_per_day,
        )
