from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text, Float
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from api.src.db.database import Base

GENERATION_STEPS = [
    "validation",
    "rate_limit_check",
    "architecture_generation",
    "code_generation",
    "file_creation",
    "validation_final",
    "report_generation",
]
OPTIONAL_STEPS = {
    "validation_final": "enable_validation",
    "report_generation": "enable_report",
}

def enabled_steps(settings) -> list:
    """Step names a worker with the same settings will run, in order."""
    return [
        name for name in GENERATION_STEPS
        if name not in OPTIONAL_STEPS or getattr(settings, OPTIONAL_STEPS[name])
    ]

class GenerationRun(Base):
    __tablename__ = "generation_runs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    prompt = Column(Text, nullable=False)
    project_name = Column(String(255))
    status = Column(String(50), default="pending")
    app_path = Column(String(500))
    error = Column(Text)
    failed_step = Column(String(255))
    duration_ms = Column(Integer)
    tokens_used = Column(Integer, default=0)
    result = Column(JSONB)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    steps = relationship("GenerationStep", back_populates="run")

class GenerationStep(Base):
    __tablename__ = "generation_steps"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(UUID(as_uuid=True), ForeignKey("generation_runs.id", ondelete="CASCADE"))
    name = Column(String(255), nullable=False)
    status = Column(String(50), default="pending")
    step_order = Column(Integer, nullable=False)
    retry_count = Column(Integer, default=0)
    duration_ms = Column(Float)
    error = Column(Text)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    run = relationship("GenerationRun", back_populates="steps")
