from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
import redis.asyncio as redis

from api.src.db.database import get_db
from api.src.config import get_settings
from api.src.services.queue import get_queue_length
from api.src.services.usage import load_stats, UsageUnavailableError

settings = get_settings()

router = APIRouter(tags=["health"])

async def _ping_redis():
    client = redis.from_url(settings.redis_url)
    try:
        await client.ping()
    finally:
        await client.close()

@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "appforge-api"}

@router.get("/health/db")
async def db_health_check(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": str(e)}

@router.get("/health/redis")
async def redis_health_check():
    try:
        await _ping_redis()
        return {"status": "healthy", "redis": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "redis": str(e)}

@router.get("/health/queue")
async def queue_health_check():
    try:
        queue_length = await get_queue_length()
        return {
            "status": "healthy",
            "queue_length": queue_length,
        }
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

@router.get("/health/all")
async def full_health_check(db: AsyncSession = Depends(get_db)):
    """Combined health check for all services."""
    health = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "usage_stats": "unknown",
        "queue_length": 0,
    }

    try:
        await db.execute(text("SELECT 1"))
        health["database"] = "healthy"
    except Exception as e:
        health["database"] = f"unhealthy: {e}"

    try:
        await _ping_redis()
        health["redis"] = "healthy"
    except Exception as e:
        health["redis"] = f"unhealthy: {e}"

    # A missing stats file only means no generation has run yet
    try:
        load_stats(settings.stats_file)
        health["usage_stats"] = "healthy"
    except UsageUnavailableError as e:
        health["usage_stats"] = f"unhealthy: {e}"

    try:
        health["queue_length"] = await get_queue_length()
    except Exception:
        health["queue_length"] = None

    overall = "healthy" if all(
        v == "healthy" for k, v in health.items()
        if k not in ["queue_length"]
    ) else "degraded"

    return {"status": overall, "services": health}
