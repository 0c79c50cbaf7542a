"""Pipeline runner - sequential, fail-fast pipeline controller."""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from conveyor.exceptions import PipelineError, StageFailed, ToolResolutionError
from conveyor.pipeline.constants import EXIT_FAILED, EXIT_SUCCEEDED, POST_STAGE_NAME
from conveyor.pipeline.definition import PipelineDefinition
from conveyor.pipeline.results import ExecutionResult, ResultStatus
from conveyor.pipeline.stage import StageExecutor
from conveyor.pipeline.tools import ToolResolver
from conveyor.state import PipelineStatus, StateManager

logger = structlog.get_logger()


@dataclass
class PipelineResult(ExecutionResult):
    """Terminal result of a pipeline run.

    Attributes:
        pipeline_status: Final lifecycle status (succeeded or failed).
        completed_stages: Stages that ran and succeeded, in order.
        skipped_stages: Stages excluded from this run.
        failed_stage: Stage that failed the pipeline, if any.
        run_id: Identifier of the run.
    """

    pipeline_status: PipelineStatus = PipelineStatus.PENDING
    completed_stages: list[str] = field(default_factory=list)
    skipped_stages: list[str] = field(default_factory=list)
    failed_stage: str | None = None
    run_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = super().to_dict()
        data.update(
            {
                "pipeline_status": self.pipeline_status.value,
                "completed_stages": list(self.completed_stages),
                "skipped_stages": list(self.skipped_stages),
                "failed_stage": self.failed_stage,
                "run_id": self.run_id,
            }
        )
        return data


class PipelineRunner:
    """Main pipeline execution engine.

    Runs stages strictly in declaration order. The first stage failure
    fails the pipeline and every later stage stays pending. Side effects
    of earlier stages are never rolled back.
    """

    def __init__(
        self,
        stage_executor: StageExecutor,
        tool_resolver: ToolResolver | None = None,
        state: StateManager | None = None,
    ) -> None:
        """Initialize pipeline runner.

        Args:
            stage_executor: Executes individual stages.
            tool_resolver: Resolves tool declarations (none known if omitted).
            state: Run state manager for status tracking and persistence.
        """
        self.stage_executor = stage_executor
        self.tool_resolver = tool_resolver or ToolResolver([])
        self.state = state or StateManager(stage_executor.paths, persist=False)

    def run(
        self,
        pipeline: PipelineDefinition,
        *,
        skip: Iterable[str] = (),
    ) -> PipelineResult:
        """Run a pipeline.

        Args:
            pipeline: Pipeline definition to execute.
            skip: Stage names excluded from this run (reported as skipped).

        Returns:
            PipelineResult; on failure ``error`` is a StageFailed naming the
            failing stage and its cause.
        """
        log = logger.bind(pipeline=pipeline.name, stage_count=len(pipeline.stages))
        log.info("Starting pipeline execution")
        start_time = time.perf_counter()

        skip_set = set(skip)
        unknown = skip_set - set(pipeline.stage_names())
        if unknown:
            log.warning("Ignoring unknown stages in skip list", stages=sorted(unknown))

        self.state.initialize(pipeline.name, pipeline.stage_names())
        self.state.transition_to(PipelineStatus.RUNNING)

        result = PipelineResult(
            name=pipeline.name,
            status=ResultStatus.SUCCESS,
            run_id=self.state.state.run_id,
        )
        failure: PipelineError | None = None

        tool_env: dict[str, str] = {}
        try:
            tool_env = self.tool_resolver.resolve(pipeline.tools)
        except ToolResolutionError as e:
            log.error("Tool resolution failed", error=str(e))
            failure = e

        if failure is None:
            for stage in pipeline.stages:
                stage_log = log.bind(stage=stage.name)

                if stage.name in skip_set:
                    stage_log.info("Skipping stage")
                    self.state.mark_stage_skipped(stage.name)
                    result.children.append(
                        ExecutionResult.skipped(stage.name, "excluded from this run")
                    )
                    result.skipped_stages.append(stage.name)
                    continue

                self.state.mark_stage_running(stage.name)
                stage_result = self.stage_executor.execute(
                    stage, pipeline.agent, tool_env=tool_env
                )
                result.children.append(stage_result)

                if stage_result.success:
                    self.state.mark_stage_succeeded(stage.name, host=stage_result.host)
                    result.completed_stages.append(stage.name)
                    continue

                self.state.mark_stage_failed(
                    stage.name, stage_result.detail or "unknown error", host=stage_result.host
                )
                failure = StageFailed(stage.name, stage_result.error)
                result.failed_stage = stage.name
                stage_log.error("Stage failed, halting pipeline", error=stage_result.detail)
                break

        if pipeline.post:
            post_result = self.stage_executor.run_steps(
                POST_STAGE_NAME, pipeline.post, pipeline.agent, tool_env=tool_env
            )
            result.children.append(post_result)
            if not post_result.success and failure is None:
                failure = StageFailed(POST_STAGE_NAME, post_result.error)
                result.failed_stage = POST_STAGE_NAME

        result.warnings = [w for child in result.children for w in child.warnings]
        result.duration_ms = int((time.perf_counter() - start_time) * 1000)

        if failure is None:
            result.pipeline_status = PipelineStatus.SUCCEEDED
            result.exit_code = EXIT_SUCCEEDED
        else:
            result.status = ResultStatus.FAILURE
            result.pipeline_status = PipelineStatus.FAILED
            result.error = failure
            result.exit_code = EXIT_FAILED

        self.state.transition_to(result.pipeline_status)
        self.state.record_result(
            result.to_dict(), failed_stage=result.failed_stage, error=result.detail
        )

        log.info(
            "Pipeline execution completed",
            status=result.pipeline_status.value,
            completed=len(result.completed_stages),
            failed_stage=result.failed_stage,
            duration_ms=result.duration_ms,
        )
        return result
