from generator.src.services.admission import AdmissionController
from generator.src.services.artifacts import FileSink
from generator.src.services.executor import StepExecutor, backoff_delay
from generator.src.services.ledger import RequestLedger
from generator.src.services.pipeline import PipelineOptions, PipelineRun, GENERATION_STEPS
from generator.src.services.provider import AnthropicProvider, ModelConfig, GenerationResponse
from generator.src.services.stats_store import JsonFileStatsStore, MemoryStatsStore
from generator.src.services.step_config import (
    parse_steps_config,
    parse_steps_dict,
    load_steps_config,
    StepConfigError,
)

__all__ = [
    "AdmissionController",
    "FileSink",
    "StepExecutor",
    "backoff_delay",
    "RequestLedger",
    "PipelineOptions",
    "PipelineRun",
    "GENERATION_STEPS",
    "AnthropicProvider",
    "ModelConfig",
    "GenerationResponse",
    "JsonFileStatsStore",
    "MemoryStatsStore",
    "parse_steps_config",
    "parse_steps_dict",
    "load_steps_config",
    "StepConfigError",
]
