"""
Report generation run and step status to database.
"""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional
from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker

from generator.src.config import get_settings
from generator.src.models.step import PipelineResult, StepState

logger = logging.getLogger(__name__)
settings = get_settings()

@lru_cache()
def get_session_factory():
    """Sync database sessions for the worker."""
    engine = create_engine(settings.database_url)
    return sessionmaker(bind=engine)

def update_run_status(
    run_id: str,
    status: str,
    started_at: Optional[datetime] = None,
    finished_at: Optional[datetime] = None,
    result: Optional[PipelineResult] = None,
):
    """Update generation run status in database."""
    from generator.src.models.db import GenerationRun

    with get_session_factory()() as session:
        values = {"status": status, "updated_at": datetime.utcnow()}

        if started_at:
            values["started_at"] = started_at
        if finished_at:
            values["finished_at"] = finished_at
        if result is not None:
            values.update(
                app_path=result.app_path,
                error=result.error,
                failed_step=result.failed_step,
                duration_ms=result.duration_ms,
                tokens_used=result.tokens_used,
                result=result.model_dump(mode="json"),
            )

        session.execute(
            update(GenerationRun)
            .where(GenerationRun.id == run_id)
            .values(**values)
        )
        session.commit()
        logger.info(f"Updated run {run_id} status to {status}")

def update_step_status(run_id: str, state: StepState):
    """Mirror an executor step state into database."""
    from generator.src.models.db import GenerationStep

    with get_session_factory()() as session:
        values = {
            "status": state.status.value,
            "retry_count": state.retry_count,
            "error": state.last_error,
            "updated_at": datetime.utcnow(),
        }

        if state.start_time:
            values["started_at"] = state.start_time.replace(tzinfo=None)
        if state.status.is_terminal:
            values["finished_at"] = state.end_time.replace(tzinfo=None) if state.end_time else None
            values["duration_ms"] = state.duration_ms

        session.execute(
            update(GenerationStep)
            .where(GenerationStep.run_id == run_id)
            .where(GenerationStep.name == state.name)
            .values(**values)
        )
        session.commit()
        logger.debug(f"Updated step {state.name} of run {run_id} to {state.status.value}")
