"""
In-memory ledger of completed provider calls.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterator, List

from generator.src.models.usage import RequestRecord

logger = logging.getLogger(__name__)

LEDGER_HORIZON = timedelta(hours=1)
MINUTE_WINDOW = timedelta(seconds=60)

class RequestLedger:
    """Append-only sequence of request records, pruned to a one-hour horizon.

    Records are appended in time order, so the oldest record of any window is
    the first one returned.
    """

    def __init__(self, horizon: timedelta = LEDGER_HORIZON):
        self.horizon = horizon
        self._records: List[RequestRecord] = []

    def append(self, record: RequestRecord):
        self._records.append(record)

    def prune(self, now: datetime) -> int:
        """Drop records older than the horizon. Returns how many were dropped."""
        cutoff = now - self.horizon
        initial = len(self._records)
        self._records = [r for r in self._records if r.timestamp > cutoff]
        removed = initial - len(self._records)
        if removed:
            logger.debug(f"Pruned {removed} request records older than {self.horizon}")
        return removed

    def window(self, now: datetime, span: timedelta = MINUTE_WINDOW) -> List[RequestRecord]:
        """Records strictly newer than ``now - span``, oldest first."""
        cutoff = now - span
        return [r for r in self._records if r.timestamp > cutoff]

    def __iter__(self) -> Iterator[RequestRecord]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)
