"""Tests for the step executor."""

import asyncio

import pytest

from generator.src.errors import (
    AdmissionDeniedError,
    InputValidationError,
    InvalidStepTransitionError,
    StepTimeoutError,
)
from generator.src.models.step import StepDefinition, StepState, StepStatus
from generator.src.services.executor import StepExecutor, backoff_delay
from generator.tests.fakes import RecordingSleep

def failing_operation(counter, fail_times, error=RuntimeError("boom")):
    async def operation():
        counter.append(1)
        if len(counter) <= fail_times:
            raise error
        return "ok"
    return operation

def test_backoff_delay_doubles_until_cap():
    delays = [backoff_delay(i) for i in range(1, 8)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0, 10.0]
    assert delays == sorted(delays)

def test_backoff_delay_custom_base_and_cap():
    assert backoff_delay(1, base_ms=200, cap_ms=500) == 0.2
    assert backoff_delay(3, base_ms=200, cap_ms=500) == 0.5

@pytest.mark.parametrize("max_retries", [1, 2, 3, 5])
async def test_permanent_failure_uses_every_attempt(max_retries):
    calls = []
    sleep = RecordingSleep()
    executor = StepExecutor(sleep=sleep)
    step = StepDefinition(name="generate", timeout=5, max_retries=max_retries)

    with pytest.raises(RuntimeError, match="boom"):
        await executor.run_step(step, failing_operation(calls, fail_times=99))

    state = executor.states["generate"]
    assert len(calls) == max_retries
    assert state.status == StepStatus.FAILED
    assert state.retry_count == max_retries - 1
    assert state.last_error == "boom"
    assert sleep.calls == [backoff_delay(i) for i in range(1, max_retries)]

@pytest.mark.parametrize("succeed_on", [1, 2, 3])
async def test_success_on_attempt_k(succeed_on):
    calls = []
    executor = StepExecutor(sleep=RecordingSleep())
    step = StepDefinition(name="generate", timeout=5, max_retries=3)

    result = await executor.run_step(step, failing_operation(calls, fail_times=succeed_on - 1))

    state = executor.states["generate"]
    assert result == "ok"
    assert state.status == StepStatus.COMPLETED
    assert state.retry_count == succeed_on - 1
    assert state.result == "ok"
    assert state.duration_ms is not None
    assert state.end_time >= state.start_time

async def test_timeout_counts_as_failed_attempt():
    started = []

    async def slow():
        started.append(1)
        await asyncio.sleep(10)

    executor = StepExecutor(sleep=RecordingSleep())
    step = StepDefinition(name="slow", timeout=0.01, max_retries=2)

    with pytest.raises(StepTimeoutError, match="timed out"):
        await executor.run_step(step, slow)

    assert len(started) == 2
    assert executor.states["slow"].status == StepStatus.FAILED

async def test_timeout_cancels_the_operation():
    cancelled = asyncio.Event()

    async def hangs():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    executor = StepExecutor(sleep=RecordingSleep())
    with pytest.raises(StepTimeoutError):
        await executor.run_step(StepDefinition(name="hang", timeout=0.01, max_retries=1), hangs)

    assert cancelled.is_set()

async def test_non_retryable_error_fails_immediately():
    calls = []
    sleep = RecordingSleep()
    executor = StepExecutor(sleep=sleep)
    step = StepDefinition(name="validation", timeout=5, max_retries=3)

    with pytest.raises(InputValidationError):
        await executor.run_step(
            step, failing_operation(calls, fail_times=99, error=InputValidationError("bad"))
        )

    assert len(calls) == 1
    assert sleep.calls == []
    assert executor.states["validation"].status == StepStatus.FAILED

async def test_run_all_stops_at_first_failure():
    ran = []

    def op(name, fail=False):
        async def operation():
            ran.append(name)
            if fail:
                raise RuntimeError(f"{name} failed")
            return name
        return operation

    executor = StepExecutor(
        [
            StepDefinition(name="first", operation=op("first"), max_retries=1),
            StepDefinition(name="second", operation=op("second", fail=True), max_retries=1),
            StepDefinition(name="third", operation=op("third"), max_retries=1),
        ],
        sleep=RecordingSleep(),
    )

    with pytest.raises(RuntimeError, match="second failed"):
        await executor.run_all()

    assert ran == ["first", "second"]
    statuses = {r.name: r.status for r in executor.snapshot()}
    assert statuses == {
        "first": StepStatus.COMPLETED,
        "second": StepStatus.FAILED,
        "third": StepStatus.PENDING,
    }

async def test_listener_sees_every_transition():
    seen = []
    calls = []
    executor = StepExecutor(
        on_state_change=lambda state: seen.append(state.status),
        sleep=RecordingSleep(),
    )
    step = StepDefinition(name="generate", max_retries=3)

    await executor.run_step(step, failing_operation(calls, fail_times=2))

    assert seen == [
        StepStatus.RUNNING,
        StepStatus.RETRYING,
        StepStatus.RETRYING,
        StepStatus.COMPLETED,
    ]

async def test_listener_errors_do_not_break_the_step():
    def broken_listener(state):
        raise RuntimeError("db down")

    executor = StepExecutor(on_state_change=broken_listener, sleep=RecordingSleep())
    result = await executor.run_step(StepDefinition(name="s", max_retries=1), failing_operation([], 0))
    assert result == "ok"

def test_duplicate_step_names_rejected():
    executor = StepExecutor([StepDefinition(name="a")])
    with pytest.raises(ValueError, match="Duplicate"):
        executor.add_step(StepDefinition(name="a"))

def test_step_definition_constraints():
    with pytest.raises(ValueError):
        StepDefinition(name="a", max_retries=0)
    with pytest.raises(ValueError):
        StepDefinition(name="a", timeout=0)

def test_state_never_regresses():
    state = StepState(name="a")
    state.advance(StepStatus.RUNNING)
    state.advance(StepStatus.COMPLETED)

    with pytest.raises(InvalidStepTransitionError):
        state.advance(StepStatus.RUNNING)

    with pytest.raises(InvalidStepTransitionError):
        StepState(name="b").advance(StepStatus.COMPLETED)

async def test_admission_wait_then_proceed(make_controller, clock):
    controller = make_controller(max_requests_per_minute=1)
    controller.record_request(10, 0.01)
    clock.advance(seconds=30)

    sleep = RecordingSleep(clock)
    executor = StepExecutor(admission=controller, sleep=sleep)
    step = StepDefinition(name="generate", max_retries=1, requires_admission=True)

    result = await executor.run_step(step, failing_operation([], 0))

    assert result == "ok"
    assert sleep.calls == [30]

async def test_admission_denial_beyond_wait_budget_fails_step(make_controller):
    controller = make_controller(max_generations_per_day=1)
    controller.record_request(10, 0.01)

    calls = []
    executor = StepExecutor(admission=controller, sleep=RecordingSleep())
    step = StepDefinition(name="generate", max_retries=3, requires_admission=True)

    with pytest.raises(AdmissionDeniedError, match="Daily limit"):
        await executor.run_step(step, failing_operation(calls, 0))

    assert calls == []
    assert executor.states["generate"].status == StepStatus.FAILED

async def test_outside_cancellation_fails_the_step():
    started = asyncio.Event()

    async def waits_forever():
        started.set()
        await asyncio.Event().wait()

    executor = StepExecutor(sleep=RecordingSleep())
    task = asyncio.create_task(
        executor.run_step(StepDefinition(name="generate", timeout=30, max_retries=3), waits_forever)
    )
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    state = executor.states["generate"]
    assert state.status == StepStatus.FAILED
    assert state.last_error == "Step cancelled"
    assert state.end_time is not None
