"""Workflow orchestrator driving sessions through the step table."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from .collaborators import AdIntelligenceTools, FunctionsClient, FunctionsToolSuite
from .config import AdScoutConfig, PipelineConfig, load_config
from .constants import WORKFLOW_TOOL
from .contracts import (
    RunMetadata,
    WorkflowArtifact,
    WorkflowFailure,
    WorkflowInput,
    WorkflowResult,
)
from .errors import InvalidWorkflowInput, StepFailedError, describe_error
from .logsink import ExecutionLogSink
from .persistence import (
    ExecutionLogEntry,
    LogStatus,
    SessionRepository,
    get_repository,
)
from .pipeline import StepContext, StepDefinition, build_ad_intelligence_pipeline
from .steps import StepExecutor

logger = logging.getLogger(__name__)

WORKFLOW_START_PROGRESS = 5
WORKFLOW_STEP_NAME = "Workflow"
WorkflowOutcome = Union[WorkflowResult, WorkflowFailure]


def validate_steps(steps: Sequence[StepDefinition]) -> None:
    """Ensure the step table has unique keys and monotonic progress checkpoints."""
    if not steps:
        raise ValueError("A workflow needs at least one step")
    keys = [s.key for s in steps]
    if len(set(keys)) != len(keys):
        raise ValueError(f"Duplicate step keys: {keys}")
    previous = WORKFLOW_START_PROGRESS
    for step in steps:
        if not previous <= step.start_progress <= step.end_progress <= 100:
            raise ValueError(
                f"Step '{step.key}' progress {step.start_progress}-{step.end_progress} "
                f"is not monotonic after {previous}"
            )
        previous = step.end_progress


def parse_input(workflow_input: Union[WorkflowInput, Mapping[str, Any]]) -> WorkflowInput:
    """Validate raw input, raising :class:`InvalidWorkflowInput`."""
    if isinstance(workflow_input, WorkflowInput):
        return workflow_input
    if not isinstance(workflow_input, Mapping):
        raise InvalidWorkflowInput("Workflow input must be an object")
    try:
        return WorkflowInput.model_validate(dict(workflow_input))
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise InvalidWorkflowInput(f"Invalid workflow input: {problems}") from exc


class WorkflowOrchestrator:
    """Run the step table for one session at a time.

    Step failures are absorbed through each step's fallback. Only failures of
    the session store (or errors outside every step guard) end a run as
    ``failed``.
    """

    def __init__(
        self,
        repository: SessionRepository,
        tools: AdIntelligenceTools,
        steps: Optional[Sequence[StepDefinition]] = None,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self._repository = repository
        self._tools = tools
        self._steps = list(steps if steps is not None else build_ad_intelligence_pipeline())
        self._config = config or PipelineConfig()
        validate_steps(self._steps)

    @property
    def steps(self) -> list[StepDefinition]:
        return list(self._steps)

    async def run(
        self, workflow_input: Union[WorkflowInput, Mapping[str, Any]]
    ) -> WorkflowOutcome:
        """Run the workflow and return a success or failure envelope."""
        try:
            data = parse_input(workflow_input)
        except InvalidWorkflowInput as exc:
            logger.warning(f"Rejected workflow input: {exc}")
            return WorkflowFailure(session_id=None, error=str(exc))

        session_id = data.session_id or str(uuid.uuid4())
        logger.info(
            f"Starting workflow session_id={session_id} user={data.user_id} "
            f"brand={data.brand_name!r} query={data.competitor_query!r}"
        )

        sink = ExecutionLogSink(self._repository)
        await sink.start()
        created = False
        try:
            await self._repository.create_session(
                session_id,
                data.user_id,
                current_step="initializing",
                metadata={"input": data.model_dump(mode="json", by_alias=True)},
            )
            created = True
            return await self._run_session(session_id, data, sink)
        except Exception as exc:
            error = describe_error(exc)
            logger.exception(f"Workflow session_id={session_id} failed: {error}")
            if created:
                await self._fail_session(session_id, error, sink)
            return WorkflowFailure(session_id=session_id, error=error)
        finally:
            await sink.close()

    async def _run_session(
        self, session_id: str, data: WorkflowInput, sink: ExecutionLogSink
    ) -> WorkflowResult:
        started = time.perf_counter()
        executor = StepExecutor(session_id, sink)
        ctx = StepContext(
            session_id=session_id,
            input=data,
            artifact=WorkflowArtifact(),
            tools=self._tools,
            config=self._config,
        )
        degraded: list[str] = []

        sink.append(
            ExecutionLogEntry(
                session_id=session_id,
                step_name=WORKFLOW_STEP_NAME,
                tool_name=WORKFLOW_TOOL,
                status=LogStatus.STARTED,
                input_data={"query": data.competitor_query, "brand": data.brand_name},
                progress_percent=WORKFLOW_START_PROGRESS,
                sub_step="Initializing agent...",
            )
        )

        for step in self._steps:
            await self._repository.update_progress(
                session_id, step.key, step.start_progress
            )
            value = await self._run_step(step, ctx, executor, degraded)
            if value is None:
                raise ValueError(f"Step '{step.key}' produced no value")
            setattr(ctx.artifact, step.slot, value)
            await self._repository.update_progress(
                session_id, step.key, step.end_progress
            )

        total_ms = int(round((time.perf_counter() - started) * 1000))
        metadata = RunMetadata.from_artifact(ctx.artifact, total_ms, degraded)
        await self._repository.mark_session_completed(
            session_id,
            {
                **metadata.model_dump(by_alias=True),
                "artifact": ctx.artifact.model_dump(mode="json", by_alias=True),
            },
        )
        sink.append(
            ExecutionLogEntry(
                session_id=session_id,
                step_name=WORKFLOW_STEP_NAME,
                tool_name=WORKFLOW_TOOL,
                status=LogStatus.COMPLETED,
                output_data=metadata.model_dump(by_alias=True),
                duration_ms=total_ms,
                progress_percent=100,
                sub_step=f"Completed in {total_ms / 1000:.1f}s",
            )
        )
        logger.info(
            f"Workflow session_id={session_id} completed in {total_ms}ms"
            + (f" (degraded: {', '.join(degraded)})" if degraded else "")
        )
        return WorkflowResult(
            session_id=session_id,
            synthesis=ctx.artifact.synthesis,
            metadata=metadata,
            artifact=ctx.artifact,
        )

    async def _run_step(
        self,
        step: StepDefinition,
        ctx: StepContext,
        executor: StepExecutor,
        degraded: list[str],
    ) -> Any:
        if step.key in self._config.disabled_steps:
            executor.skip(
                step.name, step.tool, progress=step.start_progress, reason="Disabled"
            )
            return step.fallback(ctx) if step.fallback else None

        reason = step.nothing_to_do(ctx) if step.nothing_to_do else None
        if reason:
            executor.complete_without_work(
                step.name,
                step.tool,
                progress=step.start_progress,
                completed_progress=step.end_progress,
                reason=reason,
            )
            return step.fallback(ctx) if step.fallback else None

        try:
            return await executor.execute(
                step.name,
                step.tool,
                lambda: step.run(ctx),
                progress=step.start_progress,
                completed_progress=step.end_progress,
                sub_step=step.start_note(ctx) if step.start_note else None,
                input_summary=step.input_summary(ctx) if step.input_summary else None,
                summarize=step.summarize,
                describe=step.describe,
                timeout=(
                    step.timeout(ctx) if step.timeout else ctx.config.step_timeout_seconds
                ),
            )
        except StepFailedError as exc:
            if step.fallback is None:
                raise
            degraded.append(step.key)
            if step.tolerable:
                logger.warning(f"Using fallback for '{step.name}': {exc}")
            else:
                logger.error(f"Using local fallback for '{step.name}': {exc}")
            return step.fallback(ctx)

    async def _fail_session(
        self, session_id: str, error: str, sink: ExecutionLogSink
    ) -> None:
        sink.append(
            ExecutionLogEntry(
                session_id=session_id,
                step_name=WORKFLOW_STEP_NAME,
                tool_name=WORKFLOW_TOOL,
                status=LogStatus.FAILED,
                error_message=error,
            )
        )
        try:
            await self._repository.mark_session_failed(session_id, error)
        except Exception:
            logger.exception(f"Could not mark session_id={session_id} as failed")


async def run_workflow(
    workflow_input: Union[WorkflowInput, Mapping[str, Any]],
    config: Optional[AdScoutConfig] = None,
    repository: Optional[SessionRepository] = None,
    tools: Optional[AdIntelligenceTools] = None,
) -> WorkflowOutcome:
    """Run the ad intelligence workflow with components built from config.

    Input is validated before any component is built, and configuration
    errors are returned as a failure envelope like every other failure.
    """
    try:
        data = parse_input(workflow_input)
    except InvalidWorkflowInput as exc:
        logger.warning(f"Rejected workflow input: {exc}")
        return WorkflowFailure(session_id=None, error=str(exc))

    try:
        config = config or load_config()
        repository = repository or get_repository(config=config)
        if tools is None:
            client = FunctionsClient.from_config(config.functions)
    except Exception as exc:
        error = describe_error(exc)
        logger.exception(f"Could not set up workflow components: {error}")
        return WorkflowFailure(session_id=None, error=error)

    if tools is not None:
        orchestrator = WorkflowOrchestrator(repository, tools, config=config.pipeline)
        return await orchestrator.run(data)

    async with client:
        suite = FunctionsToolSuite(
            client, analysis_timeout=config.pipeline.analysis_timeout_seconds
        )
        orchestrator = WorkflowOrchestrator(repository, suite, config=config.pipeline)
        return await orchestrator.run(data)
