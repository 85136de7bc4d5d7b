"""
Queue worker - pulls generation jobs from Redis and runs them.
"""

import asyncio
import logging
import json
from datetime import datetime
from typing import Optional, Dict, Any

import redis.asyncio as redis
from pydantic import ValidationError

from generator.src.config import get_settings
from generator.src.models.step import GenerationJob, StepState
from generator.src.models.usage import AdmissionLimits
from generator.src.services.admission import AdmissionController
from generator.src.services.artifacts import FileSink
from generator.src.services.pipeline import PipelineOptions, PipelineRun
from generator.src.services.provider import AnthropicProvider, ModelConfig
from generator.src.services.stats_store import JsonFileStatsStore
from generator.src.services.status_reporter import update_run_status, update_step_status
from generator.src.services.step_config import load_steps_config

logger = logging.getLogger(__name__)
settings = get_settings()

GENERATION_QUEUE = "appforge:jobs"
GENERATION_STATUS = "appforge:status"

class GenerationWorker:
    """Runs queued generations concurrently against one shared admission controller."""

    def __init__(self, client: redis.Redis, admission: AdmissionController, provider, sink: FileSink,
                 model_config: ModelConfig, options: PipelineOptions, max_concurrent_runs: int = 2):
        self.client = client
        self.admission = admission
        self.provider = provider
        self.sink = sink
        self.model_config = model_config
        self.options = options
        self._slots = asyncio.Semaphore(max_concurrent_runs)
        self._tasks = set()

    async def get_next_job(self, timeout: int = 5) -> Optional[Dict[str, Any]]:
        """Pull next job from Redis queue."""
        result = await self.client.brpop(GENERATION_QUEUE, timeout=timeout)
        if result:
            _, job_data = result
            return json.loads(job_data)
        return None

    async def _set_live_status(self, run_id: str, status: str):
        await self.client.hset(GENERATION_STATUS, run_id, status)

    async def process_job(self, job: GenerationJob):
        run_id = job.run_id

        def on_state_change(state: StepState):
            update_step_status(run_id, state)

        pipeline = PipelineRun(
            job.prompt,
            job.project_name,
            admission=self.admission,
            provider=self.provider,
            sink=self.sink,
            model_config=self.model_config,
            options=self.options,
            on_state_change=on_state_change,
            run_id=run_id,
        )

        update_run_status(run_id, "running", started_at=datetime.utcnow())
        await self._set_live_status(run_id, "running")

        result = await pipeline.run()

        final_status = "succeeded" if result.success else "failed"
        update_run_status(run_id, final_status, finished_at=datetime.utcnow(), result=result)
        await self._set_live_status(run_id, final_status)
        logger.info(f"Generation run {run_id} finished with status: {final_status}")
        return result

    async def _run_guarded(self, job: GenerationJob):
        try:
            await self.process_job(job)
        except Exception as e:
            logger.exception(f"Failed to execute generation {job.run_id}: {e}")
            await self._set_live_status(job.run_id, "failed")
        finally:
            self._slots.release()

    async def run(self):
        """Main worker loop."""
        logger.info("Worker started, waiting for jobs...")

        while True:
            try:
                await self._slots.acquire()
                try:
                    data = await self.get_next_job()
                    job = GenerationJob.model_validate(data) if data else None
                except ValidationError as e:
                    self._slots.release()
                    logger.error(f"Discarding malformed job {data!r}: {e}")
                    continue
                except BaseException:
                    self._slots.release()
                    raise

                if job is None:
                    self._slots.release()
                    continue

                logger.info(f"Received job for run {job.run_id}")

                task = asyncio.create_task(self._run_guarded(job))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

            except asyncio.CancelledError:
                logger.info("Worker shutting down...")
                raise
            except Exception as e:
                logger.exception(f"Worker error: {e}")
                await asyncio.sleep(5)

def build_worker() -> GenerationWorker:
    """Wire the shared collaborators from settings."""
    admission = AdmissionController(
        JsonFileStatsStore(settings.stats_file),
        AdmissionLimits.from_settings(settings),
        reset_timezone=settings.reset_timezone,
    )
    provider = AnthropicProvider(
        api_key=settings.anthropic_api_key,
        base_url=settings.anthropic_base_url,
        api_version=settings.anthropic_version,
    )
    model_config = ModelConfig(
        model=settings.model_name,
        max_tokens=settings.max_output_tokens,
        input_cost_per_mtok=settings.input_cost_per_mtok,
        output_cost_per_mtok=settings.output_cost_per_mtok,
    )
    options = PipelineOptions.from_settings(settings, load_steps_config(settings.steps_config_file))

    return GenerationWorker(
        client=redis.from_url(settings.redis_url, decode_responses=True),
        admission=admission,
        provider=provider,
        sink=FileSink(settings.output_dir),
        model_config=model_config,
        options=options,
        max_concurrent_runs=settings.max_concurrent_runs,
    )

async def worker_loop():
    worker = build_worker()
    try:
        await worker.run()
    finally:
        await worker.provider.aclose()
        await worker.client.close()

def run_worker():
    """Entry point for worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker stopped")
