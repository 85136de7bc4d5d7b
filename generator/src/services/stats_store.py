"""
Durable storage for the daily rate-limit counters.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from generator.src.errors import PersistenceError
from generator.src.models.usage import RateLimitStats

logger = logging.getLogger(__name__)

class StatsStore(Protocol):
    def load(self) -> Optional[RateLimitStats]:
        ...

    def save(self, stats: RateLimitStats) -> None:
        ...

class JsonFileStatsStore:
    """Stores the stats record as a JSON document on disk.

    Writes go to a temporary file in the same directory which then replaces
    the target, so readers never see a half-written record.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Optional[RateLimitStats]:
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            return RateLimitStats.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise PersistenceError(
                f"Failed to read rate limit stats from {self.path}: {e}",
                details={"path": str(self.path)},
            ) from e

    def save(self, stats: RateLimitStats) -> None:
        payload = stats.model_dump(mode="json", by_alias=True)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".rate-limit-", suffix=".json", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(
                f"Failed to write rate limit stats to {self.path}: {e}",
                details={"path": str(self.path)},
            ) from e

class MemoryStatsStore:
    """Process-local store, used by tests and single-shot runs."""

    def __init__(self, stats: Optional[RateLimitStats] = None):
        self.stats = stats.model_copy() if stats else None
        self.saves = 0

    def load(self) -> Optional[RateLimitStats]:
        return self.stats.model_copy() if self.stats else None

    def save(self, stats: RateLimitStats) -> None:
        self.stats = stats.model_copy()
        self.saves += 1
