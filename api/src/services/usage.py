"""
Read-only view of the generator's persisted rate-limit counters.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from api.src.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

class UsageUnavailableError(Exception):
    pass

def _percent(value: float, limit: float) -> float:
    return round(value / limit * 100, 2) if limit else 0.0

def load_stats(path: str) -> Optional[Dict[str, Any]]:
    """Load the stats file written by the generator, None when it does not exist yet."""
    try:
        with open(path, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        raise UsageUnavailableError(f"Cannot read usage stats from {path}: {e}")

def read_usage(
    path: Optional[str] = None,
    now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    config=None,
) -> Dict[str, Any]:
    """
    Daily usage against the configured limits.
    Counters from a previous calendar day read as zero, matching what the
    generator will report after its next reset.
    """
    config = config or settings
    data = load_stats(path or config.stats_file) or {}

    request_count = int(data.get("requestCount", 0))
    token_count = int(data.get("tokenCount", 0))
    total_cost = float(data.get("totalCost", 0.0))
    last_reset = None

    if data.get("lastReset"):
        last_reset = datetime.fromisoformat(data["lastReset"].replace("Z", "+00:00"))
        if last_reset.tzinfo is None:
            last_reset = last_reset.replace(tzinfo=timezone.utc)

        zone = ZoneInfo(config.reset_timezone)
        if last_reset.astimezone(zone).date() != now().astimezone(zone).date():
            logger.debug(f"Usage stats last reset {last_reset.isoformat()} belong to a previous day")
            request_count, token_count, total_cost = 0, 0, 0.0

    limits = {
        "generations_per_day": config.max_generations_per_day,
        "daily_cost": config.max_daily_cost,
        "requests_per_minute": config.max_requests_per_minute,
        "tokens_per_minute": config.max_tokens_per_minute,
    }

    return {
        "request_count": request_count,
        "token_count": token_count,
        "total_cost": total_cost,
        "last_reset": last_reset,
        "limits": limits,
        "usage_percent": {
            "daily_generations": _percent(request_count, config.max_generations_per_day),
            "daily_cost": _percent(total_cost, config.max_daily_cost),
        },
    }
