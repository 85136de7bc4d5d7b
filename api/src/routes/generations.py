from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from typing import List, Optional
from uuid import UUID, uuid4
import logging

from api.src.config import get_settings
from api.src.db.database import get_db
from api.src.models.generation import GenerationRun, GenerationStep, enabled_steps
from api.src.models.schemas import GenerationQueued, GenerationRequest, GenerationRunResponse
from api.src.services.queue import enqueue_generation, get_run_status

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/generations", tags=["generations"])

@router.post("", status_code=202, response_model=GenerationQueued)
async def create_generation(request: GenerationRequest, db: AsyncSession = Depends(get_db)):
    """Create a generation run with pending steps and queue it for the worker."""
    run = GenerationRun(
        id=uuid4(),
        prompt=request.prompt,
        project_name=request.project_name,
        status="queued",
    )
    db.add(run)
    await db.flush()

    steps = enabled_steps(settings)
    for i, name in enumerate(steps):
        db.add(GenerationStep(
            run_id=run.id,
            name=name,
            status="pending",
            step_order=i,
        ))

    await db.commit()

    await enqueue_generation(
        run_id=str(run.id),
        prompt=request.prompt,
        project_name=request.project_name,
    )

    logger.info(f"Generation run {run.id} created and queued")

    return {"status": "queued", "run_id": run.id, "steps": steps}

@router.get("/runs", response_model=List[GenerationRunResponse])
async def list_runs(
    limit: int = 20,
    offset: int = 0,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """List generation runs, newest first."""
    query = (
        select(GenerationRun)
        .options(selectinload(GenerationRun.steps))
        .order_by(GenerationRun.created_at.desc())
    )

    if status:
        query = query.where(GenerationRun.status == status)

    query = query.limit(limit).offset(offset)

    result = await db.execute(query)
    return result.scalars().all()

async def _load_run(run_id: UUID, db: AsyncSession) -> GenerationRun:
    query = (
        select(GenerationRun)
        .options(selectinload(GenerationRun.steps))
        .where(GenerationRun.id == run_id)
    )
    result = await db.execute(query)
    run = result.scalar_one_or_none()

    if not run:
        raise HTTPException(status_code=404, detail="Generation run not found")
    return run

@router.get("/runs/{run_id}", response_model=GenerationRunResponse)
async def get_run(run_id: UUID, db: AsyncSession = Depends(get_db)):
    return await _load_run(run_id, db)

@router.get("/runs/{run_id}/status")
async def get_run_status_endpoint(run_id: UUID, db: AsyncSession = Depends(get_db)):
    """Get real-time status of a generation run."""
    run = await _load_run(run_id, db)
    live_status = await get_run_status(str(run_id))

    return {
        "run_id": str(run_id),
        "db_status": run.status,
        "live_status": live_status,
        "failed_step": run.failed_step,
        "steps": [
            {
                "name": step.name,
                "status": step.status,
                "order": step.step_order,
                "retry_count": step.retry_count,
                "error": step.error,
            }
            for step in sorted(run.steps, key=lambda s: s.step_order)
        ]
    }

@router.get("/stats")
async def get_generation_stats(db: AsyncSession = Depends(get_db)):
    """Count runs by status and sum tokens spent."""
    status_query = (
        select(GenerationRun.status, func.count(GenerationRun.id))
        .group_by(GenerationRun.status)
    )
    result = await db.execute(status_query)
    status_counts = {row[0]: row[1] for row in result.all()}

    tokens_query = select(func.coalesce(func.sum(GenerationRun.tokens_used), 0))
    result = await db.execute(tokens_query)
    tokens_used = result.scalar()

    return {
        "runs": status_counts,
        "total_runs": sum(status_counts.values()),
        "tokens_used": tokens_used,
    }
