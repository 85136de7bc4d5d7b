"""
Step executor - runs named pipeline steps with timeout, retry and backoff.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from generator.src.errors import AdmissionDeniedError, StepTimeoutError, is_retryable
from generator.src.models.step import (
    StepDefinition,
    StepOperation,
    StepReport,
    StepState,
    StepStatus,
)

logger = logging.getLogger(__name__)

StateListener = Callable[[StepState], None]

DEFAULT_BACKOFF_BASE_MS = 1000
DEFAULT_BACKOFF_CAP_MS = 10000

def backoff_delay(
    attempt: int,
    base_ms: int = DEFAULT_BACKOFF_BASE_MS,
    cap_ms: int = DEFAULT_BACKOFF_CAP_MS,
) -> float:
    """Delay in seconds to wait after failed attempt number ``attempt`` (1-based)."""
    return min(base_ms * 2 ** (attempt - 1), cap_ms) / 1000

class StepExecutor:
    """Executes an ordered list of steps for a single pipeline run.

    Every step gets a ``StepState`` that only moves forward through
    pending -> running/retrying -> completed/failed. Steps flagged with
    ``requires_admission`` ask the admission controller before each attempt.
    """

    def __init__(
        self,
        steps: Optional[List[StepDefinition]] = None,
        admission=None,
        backoff_base_ms: int = DEFAULT_BACKOFF_BASE_MS,
        backoff_cap_ms: int = DEFAULT_BACKOFF_CAP_MS,
        max_admission_wait: float = 60.0,
        on_state_change: Optional[StateListener] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.steps: List[StepDefinition] = []
        self.states: Dict[str, StepState] = {}
        self.admission = admission
        self.backoff_base_ms = backoff_base_ms
        self.backoff_cap_ms = backoff_cap_ms
        self.max_admission_wait = max_admission_wait
        self.on_state_change = on_state_change
        self._sleep = sleep

        for step in steps or []:
            self.add_step(step)

    def add_step(self, definition: StepDefinition):
        if definition.name in self.states:
            raise ValueError(f"Duplicate step name: {definition.name}")
        self.steps.append(definition)
        self.states[definition.name] = StepState(name=definition.name)

    def _set_status(self, state: StepState, status: StepStatus):
        state.advance(status)
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception:
                logger.exception(f"State listener failed for step {state.name}")

    async def _admit(self, definition: StepDefinition):
        decision = self.admission.check_limit()
        if decision.allowed:
            return

        wait = decision.wait_time_seconds
        if wait and wait <= self.max_admission_wait:
            logger.info(
                f"Step {definition.name} waiting {wait}s for admission: {decision.reason}"
            )
            await self._sleep(wait)
            decision = self.admission.check_limit()
            if decision.allowed:
                return

        raise AdmissionDeniedError(decision)

    async def _attempt(self, definition: StepDefinition, operation: StepOperation):
        if definition.requires_admission and self.admission is not None:
            await self._admit(definition)

        try:
            return await asyncio.wait_for(operation(), timeout=definition.timeout)
        except asyncio.TimeoutError:
            raise StepTimeoutError(definition.name, definition.timeout)

    async def run_step(
        self,
        definition: StepDefinition,
        operation: Optional[StepOperation] = None,
    ) -> Any:
        """
        Run one step to a terminal state.
        Returns the operation result, or re-raises the last error on failure.
        """
        operation = operation or definition.operation
        if operation is None:
            raise ValueError(f"Step {definition.name} has no operation")

        if definition.name not in self.states:
            self.add_step(definition)
        state = self.states[definition.name]

        try:
            return await self._run_attempts(definition, operation, state)
        except asyncio.CancelledError:
            # Cancelled from outside, e.g. worker shutdown
            if not state.status.is_terminal and state.status != StepStatus.PENDING:
                state.last_error = "Step cancelled"
                state.end_time = datetime.now(timezone.utc)
                self._set_status(state, StepStatus.FAILED)
                logger.warning(f"Step {definition.name} cancelled")
            raise

    async def _run_attempts(
        self,
        definition: StepDefinition,
        operation: StepOperation,
        state: StepState,
    ) -> Any:
        max_retries = definition.max_retries

        for attempt in range(1, max_retries + 1):
            self._set_status(state, StepStatus.RUNNING if attempt == 1 else StepStatus.RETRYING)
            state.start_time = datetime.now(timezone.utc)
            state.retry_count = attempt - 1
            started = time.monotonic()

            logger.info(
                f"Executing step {definition.name} "
                f"(attempt {attempt}/{max_retries}, timeout {definition.timeout:g}s)"
            )

            try:
                result = await self._attempt(definition, operation)
            except Exception as e:
                state.last_error = str(e) or e.__class__.__name__
                elapsed_ms = int((time.monotonic() - started) * 1000)

                if attempt == max_retries or not is_retryable(e):
                    state.end_time = datetime.now(timezone.utc)
                    state.duration_ms = elapsed_ms
                    self._set_status(state, StepStatus.FAILED)
                    logger.error(
                        f"Step {definition.name} failed after {attempt}/{max_retries} "
                        f"attempts ({elapsed_ms}ms): {state.last_error}"
                    )
                    raise

                delay = backoff_delay(attempt, self.backoff_base_ms, self.backoff_cap_ms)
                logger.warning(
                    f"Step {definition.name} attempt {attempt}/{max_retries} failed "
                    f"after {elapsed_ms}ms: {state.last_error}; retrying in {delay:g}s"
                )
                await self._sleep(delay)
                continue

            state.end_time = datetime.now(timezone.utc)
            state.duration_ms = int((time.monotonic() - started) * 1000)
            state.result = result
            self._set_status(state, StepStatus.COMPLETED)

            logger.info(
                f"Step {definition.name} completed in {state.duration_ms}ms "
                f"(attempt {attempt}/{max_retries})"
            )
            return result

    async def run_all(self) -> Dict[str, Any]:
        """
        Run every configured step in order.
        Stops at the first failed step by re-raising its error.
        """
        results = {}
        for definition in self.steps:
            results[definition.name] = await self.run_step(definition)
        return results

    def snapshot(self) -> List[StepReport]:
        return [StepReport.from_state(self.states[d.name]) for d in self.steps]
