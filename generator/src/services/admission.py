"""
Admission control for provider calls.

The controller combines two horizons:

- a short one, kept in memory by a ``RequestLedger``: requests and tokens in
  the last 60 seconds;
- a long one, persisted through a ``StatsStore``: generations, tokens and cost
  for the current calendar day.

A call is admitted only when all four limits hold. Denials are ordinary
results (``AdmissionDecision``), never exceptions. The only exception raised
is ``PersistenceError`` when the counters cannot be saved; from then on the
controller denies admission until a save succeeds again.
"""

import asyncio
import logging
import math
import threading
from collections import defaultdict
from datetime import datetime, timezone, tzinfo
from typing import Any, Awaitable, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from generator.src.errors import PersistenceError
from generator.src.models.usage import (
    AdmissionDecision,
    AdmissionLimits,
    RateLimitStats,
    RequestRecord,
    UsageSnapshot,
)
from generator.src.services.ledger import MINUTE_WINDOW, RequestLedger
from generator.src.services.stats_store import StatsStore

logger = logging.getLogger(__name__)

WARNING_THRESHOLD = 0.8

LIMIT_DAILY_GENERATIONS = "daily_generations"
LIMIT_DAILY_COST = "daily_cost"
LIMIT_MINUTE_REQUESTS = "minute_requests"
LIMIT_MINUTE_TOKENS = "minute_tokens"
LIMIT_PERSISTENCE = "persistence"

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def _percent(value: float, limit: float) -> float:
    # A zero limit blocks everything; report it as 0% rather than dividing
    return value / limit * 100 if limit else 0.0

class AdmissionController:
    def __init__(
        self,
        store: StatsStore,
        limits: Optional[AdmissionLimits] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        reset_timezone: str = "UTC",
    ):
        self.store = store
        self.limits = limits or AdmissionLimits()
        self._clock = clock
        self._sleep = sleep
        self._tz: tzinfo = ZoneInfo(reset_timezone)
        self._ledger = RequestLedger()
        self._lock = threading.Lock()
        self._warned = set()
        self._degraded = False
        self._stats = self._load_stats()

        logger.info(
            f"AdmissionController initialized: "
            f"{self.limits.max_generations_per_day} generations/day, "
            f"${self.limits.max_daily_cost:.2f}/day, "
            f"{self.limits.max_requests_per_minute} requests/min, "
            f"{self.limits.max_tokens_per_minute} tokens/min"
        )

    @property
    def ledger(self) -> RequestLedger:
        return self._ledger

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now

    def _fresh_stats(self, now: datetime) -> RateLimitStats:
        return RateLimitStats(
            last_reset=now,
            daily_limit=self.limits.max_generations_per_day,
            tokens_per_minute=self.limits.max_tokens_per_minute,
            requests_per_minute=self.limits.max_requests_per_minute,
        )

    def _load_stats(self) -> RateLimitStats:
        now = self._now()
        try:
            stats = self.store.load()
        except PersistenceError as e:
            logger.warning(f"Could not load rate limit stats, starting from zero: {e}")
            stats = None

        if stats is None:
            stats = self._fresh_stats(now)
            self._persist(stats, raise_on_error=False)
            return stats

        if stats.last_reset.tzinfo is None:
            stats.last_reset = stats.last_reset.replace(tzinfo=timezone.utc)
        stats.daily_limit = self.limits.max_generations_per_day
        stats.tokens_per_minute = self.limits.max_tokens_per_minute
        stats.requests_per_minute = self.limits.max_requests_per_minute

        logger.info(
            f"Loaded rate limit stats: {stats.request_count} requests, "
            f"{stats.token_count} tokens, ${stats.total_cost:.2f} since "
            f"{stats.last_reset.isoformat()}"
        )
        return stats

    def _persist(self, stats: RateLimitStats, raise_on_error: bool = True) -> bool:
        try:
            self.store.save(stats)
        except PersistenceError as e:
            self._degraded = True
            logger.error(f"Failed to persist rate limit stats: {e}")
            if raise_on_error:
                raise
            return False

        if self._degraded:
            logger.info("Rate limit stats persisted again, admission resumed")
        self._degraded = False
        return True

    # Daily reset

    def _should_reset_daily(self, now: datetime) -> bool:
        current = now.astimezone(self._tz).date()
        last = self._stats.last_reset.astimezone(self._tz).date()
        return current != last

    def _reset_daily_if_needed(self, now: datetime) -> bool:
        if not self._should_reset_daily(now):
            return False

        previous = self._stats
        self._stats = previous.model_copy(update={
            "request_count": 0,
            "token_count": 0,
            "total_cost": 0.0,
            "last_reset": now,
        })
        self._warned.clear()

        logger.info(
            f"Daily limits reset (previous day: {previous.request_count} requests, "
            f"{previous.token_count} tokens, ${previous.total_cost:.2f})"
        )
        self._persist(self._stats, raise_on_error=False)
        return True

    # Usage

    def _usage(self, now: datetime):
        recent = self._ledger.window(now, MINUTE_WINDOW)
        usage = UsageSnapshot(
            daily_requests=self._stats.request_count,
            daily_tokens=self._stats.token_count,
            daily_cost=self._stats.total_cost,
            minute_requests=len(recent),
            minute_tokens=sum(r.tokens for r in recent),
        )
        return usage, recent

    def _wait_time(self, now: datetime, recent) -> int:
        """Seconds until the oldest record in the minute window ages out."""
        age = (now - recent[0].timestamp).total_seconds()
        return int(MINUTE_WINDOW.total_seconds() - math.floor(age))

    def _warn_on_approach(self):
        limits = self.limits
        stats = self._stats

        if (
            LIMIT_DAILY_GENERATIONS not in self._warned
            and stats.request_count > limits.max_generations_per_day * WARNING_THRESHOLD
        ):
            self._warned.add(LIMIT_DAILY_GENERATIONS)
            logger.warning(
                f"Approaching daily generation limit: {stats.request_count}/"
                f"{limits.max_generations_per_day} "
                f"({round(stats.request_count / limits.max_generations_per_day * 100)}%)"
            )

        if (
            LIMIT_DAILY_COST not in self._warned
            and stats.total_cost > limits.max_daily_cost * WARNING_THRESHOLD
        ):
            self._warned.add(LIMIT_DAILY_COST)
            logger.warning(
                f"Approaching daily cost limit: ${stats.total_cost:.2f}/"
                f"${limits.max_daily_cost:.2f} "
                f"({round(stats.total_cost / limits.max_daily_cost * 100)}%)"
            )

    def check_limit(self) -> AdmissionDecision:
        """Decide whether a provider call may start now.

        Constraints are evaluated in a fixed order (daily generations, daily
        cost, requests per minute, tokens per minute) and the first violated
        one determines the reason. Only per-minute denials carry a wait time.
        """
        with self._lock:
            now = self._now()
            self._reset_daily_if_needed(now)
            self._ledger.prune(now)

            usage, recent = self._usage(now)
            limits = self.limits

            if self._degraded and not self._persist(self._stats, raise_on_error=False):
                return AdmissionDecision(
                    allowed=False,
                    reason="Usage counters cannot be persisted; admission suspended",
                    limit=LIMIT_PERSISTENCE,
                    current_usage=usage,
                )

            if usage.daily_requests >= limits.max_generations_per_day:
                logger.warning(
                    f"Daily generation limit reached: {usage.daily_requests}/"
                    f"{limits.max_generations_per_day}"
                )
                return AdmissionDecision(
                    allowed=False,
                    reason=f"Daily limit reached ({limits.max_generations_per_day} generations/day)",
                    limit=LIMIT_DAILY_GENERATIONS,
                    current_usage=usage,
                )

            if usage.daily_cost >= limits.max_daily_cost:
                logger.warning(
                    f"Daily cost limit reached: ${usage.daily_cost:.2f}/${limits.max_daily_cost:.2f}"
                )
                return AdmissionDecision(
                    allowed=False,
                    reason=f"Daily cost limit reached (${limits.max_daily_cost:.2f})",
                    limit=LIMIT_DAILY_COST,
                    current_usage=usage,
                )

            if usage.minute_requests >= limits.max_requests_per_minute:
                wait_time = self._wait_time(now, recent)
                logger.warning(
                    f"Requests per minute limit reached: {usage.minute_requests}/"
                    f"{limits.max_requests_per_minute}, wait {wait_time}s"
                )
                return AdmissionDecision(
                    allowed=False,
                    reason=f"Requests per minute limit reached ({limits.max_requests_per_minute}/min)",
                    wait_time_seconds=wait_time,
                    limit=LIMIT_MINUTE_REQUESTS,
                    current_usage=usage,
                )

            if usage.minute_tokens >= limits.max_tokens_per_minute:
                wait_time = self._wait_time(now, recent)
                logger.warning(
                    f"Tokens per minute limit reached: {usage.minute_tokens}/"
                    f"{limits.max_tokens_per_minute}, wait {wait_time}s"
                )
                return AdmissionDecision(
                    allowed=False,
                    reason=f"Tokens per minute limit reached ({limits.max_tokens_per_minute}/min)",
                    wait_time_seconds=wait_time,
                    limit=LIMIT_MINUTE_TOKENS,
                    current_usage=usage,
                )

            self._warn_on_approach()
            return AdmissionDecision(allowed=True, current_usage=usage)

    def can_make_request(self) -> bool:
        """Boolean-only variant of ``check_limit`` for simple gates."""
        with self._lock:
            now = self._now()
            self._reset_daily_if_needed(now)
            self._ledger.prune(now)

            if self._degraded:
                return False

            usage, _ = self._usage(now)
            limits = self.limits
            return (
                usage.daily_requests < limits.max_generations_per_day
                and usage.daily_cost < limits.max_daily_cost
                and usage.minute_requests < limits.max_requests_per_minute
                and usage.minute_tokens < limits.max_tokens_per_minute
            )

    def record_request(
        self,
        tokens: int,
        cost: float,
        success: bool = True,
        model: str = "",
        duration_ms: int = 0,
    ) -> RequestRecord:
        """Account for a completed provider call.

        Every call lands in the ledger so failed attempts still count against
        the per-minute limits; only successful calls move the daily counters.
        The counters are persisted before returning.
        """
        with self._lock:
            now = self._now()
            self._reset_daily_if_needed(now)

            record = RequestRecord(
                timestamp=now,
                tokens=tokens,
                cost=cost,
                success=success,
                model=model,
                duration_ms=duration_ms,
            )
            self._ledger.append(record)

            if success:
                self._stats.request_count += 1
                self._stats.token_count += tokens
                self._stats.total_cost += cost

            logger.info(
                f"Recorded provider request: model={model or 'unknown'} tokens={tokens} "
                f"cost=${cost:.4f} success={success} duration={duration_ms}ms "
                f"(today: {self._stats.request_count} requests, "
                f"{self._stats.token_count} tokens, ${self._stats.total_cost:.2f})"
            )

            self._ledger.prune(now)
            self._persist(self._stats)
            return record

    async def wait_if_needed(self) -> AdmissionDecision:
        """Sleep through a per-minute denial. Does not re-check after waking."""
        decision = self.check_limit()

        if not decision.allowed and decision.wait_time_seconds:
            logger.info(f"Waiting {decision.wait_time_seconds}s to respect rate limits")
            await self._sleep(decision.wait_time_seconds)

        return decision

    # Reporting

    def get_current_stats(self) -> Dict[str, Any]:
        with self._lock:
            now = self._now()
            self._reset_daily_if_needed(now)
            self._ledger.prune(now)
            usage, _ = self._usage(now)
            stats = self._stats

            return {
                **stats.model_dump(mode="json"),
                "minute_requests": usage.minute_requests,
                "minute_tokens": usage.minute_tokens,
                "average_cost_per_request": (
                    stats.total_cost / stats.request_count if stats.request_count else 0.0
                ),
                "average_tokens_per_request": (
                    stats.token_count / stats.request_count if stats.request_count else 0.0
                ),
            }

    def get_detailed_report(self) -> Dict[str, Any]:
        stats = self.get_current_stats()
        limits = self.limits

        with self._lock:
            records = list(self._ledger)

        model_usage = defaultdict(lambda: {"requests": 0, "tokens": 0, "cost": 0.0})
        for record in records:
            entry = model_usage[record.model]
            entry["requests"] += 1
            entry["tokens"] += record.tokens
            entry["cost"] += record.cost

        successful = sum(1 for r in records if r.success)
        success_rate = (successful / len(records) * 100) if records else 0.0

        return {
            "summary": stats,
            "limits": limits.model_dump(),
            "usage": {
                "daily_generations_percent": _percent(stats["request_count"], limits.max_generations_per_day),
                "daily_cost_percent": _percent(stats["total_cost"], limits.max_daily_cost),
                "minute_requests_percent": _percent(stats["minute_requests"], limits.max_requests_per_minute),
                "minute_tokens_percent": _percent(stats["minute_tokens"], limits.max_tokens_per_minute),
            },
            "model_usage": dict(model_usage),
            "success_rate": success_rate,
        }
