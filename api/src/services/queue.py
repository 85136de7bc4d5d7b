"""
Redis queue service for generation jobs.
"""

import redis.asyncio as redis
import json
from typing import Optional
from datetime import datetime, timezone

from api.src.config import get_settings

settings = get_settings()

GENERATION_QUEUE = "appforge:jobs"
GENERATION_STATUS = "appforge:status"

async def get_redis_client() -> redis.Redis:
    """Get async Redis client."""
    return redis.from_url(settings.redis_url, decode_responses=True)

async def enqueue_generation(run_id: str, prompt: str, project_name: Optional[str] = None):
    """Add a generation run to the worker queue."""
    client = await get_redis_client()

    job = {
        "run_id": run_id,
        "prompt": prompt,
        "project_name": project_name,
        "queued_at": datetime.now(timezone.utc).isoformat(),
    }

    try:
        await client.lpush(GENERATION_QUEUE, json.dumps(job))
        await client.hset(GENERATION_STATUS, run_id, "queued")
    finally:
        await client.close()

async def get_run_status(run_id: str) -> Optional[str]:
    """Get live generation status from Redis."""
    client = await get_redis_client()

    try:
        return await client.hget(GENERATION_STATUS, run_id)
    finally:
        await client.close()

async def get_queue_length() -> int:
    """Get number of jobs in queue."""
    client = await get_redis_client()

    try:
        return await client.llen(GENERATION_QUEUE)
    finally:
        await client.close()
