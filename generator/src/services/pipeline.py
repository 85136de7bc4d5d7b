"""
Generation pipeline - turns a prompt into a generated application.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel

from generator.src.errors import (
    AdmissionDeniedError,
    InputValidationError,
    OutputValidationError,
    PersistenceError,
)
from generator.src.models.step import PipelineResult, StepDefinition, StepStatus
from generator.src.services.admission import AdmissionController
from generator.src.services.artifacts import FileSink
from generator.src.services.executor import StateListener, StepExecutor
from generator.src.services.parsing import (
    Architecture,
    extract_project_name,
    has_balanced_delimiters,
    parse_architecture,
    parse_code_files,
)
from generator.src.services.provider import GenerationResponse, ModelConfig, TextProvider

logger = logging.getLogger(__name__)

GENERATION_STEPS = [
    "validation",
    "rate_limit_check",
    "architecture_generation",
    "code_generation",
    "file_creation",
    "validation_final",
    "report_generation",
]
PROVIDER_STEPS = {"architecture_generation", "code_generation"}

MIN_PROMPT_LENGTH = 10
MAX_PROMPT_LENGTH = 2000
MAX_PROJECT_NAME_LENGTH = 50
DANGEROUS_KEYWORDS = ["hack", "virus", "malware", "exploit"]
REQUIRED_FILES = ["package.json"]
SOURCE_SUFFIXES = (".ts", ".tsx", ".js", ".jsx")

ARCHITECTURE_PROMPT = """Design the architecture of a web application for this request.
Answer with a single YAML document containing `metadata` (name, domain),
`pages_structure` and `data_schema`.

Project name: {project_name}
Request: {prompt}
"""

CODE_PROMPT = """Write the complete source code for the application below.
Emit every file as a fenced code block whose first line is a comment holding
the file path, and include package.json.

Request: {prompt}
Architecture:
{architecture}
"""

class PipelineOptions(BaseModel):
    max_retries: int = 3
    step_timeout: float = 120.0
    backoff_base_ms: int = 1000
    backoff_cap_ms: int = 10000
    max_admission_wait: float = 60.0
    enable_validation: bool = True
    enable_report: bool = True
    step_overrides: Dict[str, Dict[str, Any]] = {}

    @classmethod
    def from_settings(cls, settings, step_overrides=None) -> "PipelineOptions":
        return cls(
            max_retries=settings.max_retries,
            step_timeout=settings.step_timeout,
            backoff_base_ms=settings.backoff_base_ms,
            backoff_cap_ms=settings.backoff_cap_ms,
            max_admission_wait=settings.max_admission_wait,
            enable_validation=settings.enable_validation,
            enable_report=settings.enable_report,
            step_overrides=step_overrides or {},
        )

class PipelineRun:
    """One "generate an application" run.

    Steps run strictly in order through a ``StepExecutor``; the first failed
    step ends the run. Files written by earlier steps are left in place.
    """

    def __init__(
        self,
        prompt: str,
        project_name: Optional[str] = None,
        *,
        admission: AdmissionController,
        provider: TextProvider,
        sink: FileSink,
        model_config: ModelConfig,
        options: Optional[PipelineOptions] = None,
        on_state_change: Optional[StateListener] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        run_id: Optional[str] = None,
    ):
        self.run_id = run_id or str(uuid.uuid4())
        self.prompt = prompt
        self.project_name = project_name
        self.admission = admission
        self.provider = provider
        self.sink = sink
        self.model_config = model_config
        self.options = options or PipelineOptions()

        self.architecture: Optional[Architecture] = None
        self.files: Dict[str, str] = {}
        self.app_path: Optional[Path] = None
        self.tokens_used = 0
        self.started_at: Optional[datetime] = None

        self.executor = StepExecutor(
            self._configure_steps(),
            admission=admission,
            backoff_base_ms=self.options.backoff_base_ms,
            backoff_cap_ms=self.options.backoff_cap_ms,
            max_admission_wait=self.options.max_admission_wait,
            on_state_change=on_state_change,
            sleep=sleep,
        )

    def _definition(self, name: str, operation) -> StepDefinition:
        override = self.options.step_overrides.get(name, {})
        return StepDefinition(
            name=name,
            operation=operation,
            timeout=override.get("timeout", self.options.step_timeout),
            max_retries=override.get("max_retries", self.options.max_retries),
            requires_admission=name in PROVIDER_STEPS,
        )

    def _configure_steps(self):
        operations = {
            "validation": self._validate_input,
            "rate_limit_check": self._check_rate_limit,
            "architecture_generation": self._generate_architecture,
            "code_generation": self._generate_code,
            "file_creation": self._create_files,
            "validation_final": self._validate_output,
            "report_generation": self._write_report,
        }
        if not self.options.enable_validation:
            operations.pop("validation_final")
        if not self.options.enable_report:
            operations.pop("report_generation")

        return [self._definition(name, operations[name]) for name in GENERATION_STEPS if name in operations]

    async def run(self) -> PipelineResult:
        self.started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        logger.info(f"Starting generation run {self.run_id}: {self.prompt[:80]!r}")

        try:
            await self.executor.run_all()
        except Exception as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            steps = self.executor.snapshot()
            failed_step = next((s.name for s in steps if s.status == StepStatus.FAILED), None)
            logger.error(
                f"Generation run {self.run_id} failed at step {failed_step} "
                f"after {duration_ms}ms: {e}"
            )
            return PipelineResult(
                success=False,
                duration_ms=duration_ms,
                steps=steps,
                error=str(e) or e.__class__.__name__,
                failed_step=failed_step,
                app_path=str(self.app_path) if self.app_path else None,
                files_count=len(self.files),
                tokens_used=self.tokens_used,
            )

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Generation run {self.run_id} succeeded in {duration_ms}ms: "
            f"{len(self.files)} files in {self.app_path}"
        )
        return PipelineResult(
            success=True,
            duration_ms=duration_ms,
            steps=self.executor.snapshot(),
            app_path=str(self.app_path),
            files_count=len(self.files),
            tokens_used=self.tokens_used,
        )

    async def _call_provider(self, prompt: str) -> GenerationResponse:
        model = self.model_config.model
        started = time.monotonic()

        try:
            response = await self.provider.generate(prompt, self.model_config)
        except (Exception, asyncio.CancelledError):
            # Failed and cancelled calls still count against per-minute limits
            try:
                self.admission.record_request(
                    0, 0.0, success=False, model=model,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
            except PersistenceError as e:
                logger.error(f"Could not record failed provider call for run {self.run_id}: {e}")
            raise

        self.tokens_used += response.tokens_used
        self.admission.record_request(
            response.tokens_used,
            self.model_config.cost(response.input_tokens, response.output_tokens),
            success=True,
            model=model,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return response

    # Step operations

    async def _validate_input(self):
        prompt = (self.prompt or "").strip()
        if len(prompt) < MIN_PROMPT_LENGTH:
            raise InputValidationError(
                f"Prompt must contain at least {MIN_PROMPT_LENGTH} characters"
            )
        if len(self.prompt) > MAX_PROMPT_LENGTH:
            raise InputValidationError(
                f"Prompt cannot exceed {MAX_PROMPT_LENGTH} characters"
            )
        if self.project_name and len(self.project_name) > MAX_PROJECT_NAME_LENGTH:
            raise InputValidationError(
                f"Project name cannot exceed {MAX_PROJECT_NAME_LENGTH} characters"
            )

        lowered = prompt.lower()
        for keyword in DANGEROUS_KEYWORDS:
            if keyword in lowered:
                raise InputValidationError(
                    f"Potentially dangerous content detected: {keyword}",
                    details={"keyword": keyword},
                )

    async def _check_rate_limit(self):
        if not self.admission.can_make_request():
            raise AdmissionDeniedError(self.admission.check_limit())

    async def _generate_architecture(self) -> Architecture:
        project_name = self.project_name or extract_project_name(self.prompt)
        response = await self._call_provider(
            ARCHITECTURE_PROMPT.format(project_name=project_name, prompt=self.prompt)
        )
        architecture = parse_architecture(response.text)
        if self.project_name:
            architecture.project_name = self.project_name

        logger.info(
            f"Architecture for {architecture.project_name}: domain={architecture.domain}, "
            f"{len(architecture.pages)} pages"
        )
        self.architecture = architecture
        return architecture

    async def _generate_code(self) -> Dict[str, str]:
        response = await self._call_provider(
            CODE_PROMPT.format(prompt=self.prompt, architecture=self.architecture.model_dump_json(indent=2))
        )
        files = parse_code_files(response.text)
        logger.info(f"Code generation produced {len(files)} files")
        self.files = files
        return files

    async def _create_files(self) -> str:
        if self.app_path is None:
            self.app_path = self.sink.create_app_folder(self.architecture.project_name)

        self.sink.write_json(self.app_path, "architecture.json", self.architecture.raw)
        self.sink.write_files(self.app_path, self.files)
        return str(self.app_path)

    async def _validate_output(self):
        missing = [
            name for name in REQUIRED_FILES
            if name not in self.files and not (self.app_path / name).exists()
        ]
        if missing:
            raise OutputValidationError(f"Required files missing: {', '.join(missing)}")

        for path, content in self.files.items():
            if path.endswith(SOURCE_SUFFIXES) and not has_balanced_delimiters(content):
                logger.warning(f"Suspicious syntax (unbalanced delimiters) in {path}")

        logger.info(f"Validation passed for {self.app_path}")

    async def _write_report(self) -> str:
        architecture = self.architecture
        elapsed = datetime.now(timezone.utc) - self.started_at
        file_list = "\n".join(f"- {path}" for path in sorted(self.files))
        steps = "\n".join(
            f"| {s.name} | {s.status.value} | {s.retry_count} | {s.duration_ms if s.duration_ms is not None else '-'} |"
            for s in self.executor.snapshot()
        )

        report = f"""# Generation Report

## Overview
- **Date**: {datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")}
- **Run ID**: {self.run_id}
- **Elapsed**: {int(elapsed.total_seconds() * 1000)}ms
- **Application**: {architecture.project_name}
- **Domain**: {architecture.domain}
- **Pages**: {len(architecture.pages)}
- **Tokens used**: {self.tokens_used}

## Prompt
```
{self.prompt}
```

## Files
{file_list}

## Steps
| Step | Status | Retries | Duration (ms) |
|------|--------|---------|---------------|
{steps}
"""
        path = self.sink.write_file(self.app_path, "GENERATION_REPORT.md", report)
        logger.info(f"Report written to {path}")
        return str(path)
