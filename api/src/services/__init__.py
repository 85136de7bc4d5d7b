from api.src.services.queue import (
    enqueue_generation,
    get_run_status,
    get_queue_length,
)
from api.src.services.usage import (
    read_usage,
    load_stats,
    UsageUnavailableError,
)

__all__ = [
    "enqueue_generation",
    "get_run_status",
    "get_queue_length",
    "read_usage",
    "load_stats",
    "UsageUnavailableError",
]
