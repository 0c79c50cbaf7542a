"""Step runner - executes a stage's steps in declaration order."""

from __future__ import annotations

import time
from collections.abc import Sequence

import structlog

from conveyor.exceptions import ConveyorError, StepError
from conveyor.pipeline.agents import Host
from conveyor.pipeline.definition import BaseStep, StepKind
from conveyor.pipeline.executors.archive import ArchiveStepExecutor
from conveyor.pipeline.executors.base import StepContext, StepExecutor
from conveyor.pipeline.executors.checkout import CheckoutStepExecutor
from conveyor.pipeline.executors.publish import PublishTestsStepExecutor
from conveyor.pipeline.executors.shell import ShellStepExecutor
from conveyor.pipeline.results import ExecutionResult, ResultStatus

logger = structlog.get_logger()


class StepRunner:
    """Runs an ordered list of steps on a bound host.

    Steps run strictly in declaration order and the run stops at the first
    failing step. There is no reordering and no skipping.
    """

    def __init__(self, executors: dict[StepKind, StepExecutor] | None = None) -> None:
        """Initialize the step runner.

        Args:
            executors: Executor per step kind (defaults to the built-in set).
        """
        self._executors: dict[StepKind, StepExecutor] = executors or {
            StepKind.CHECKOUT: CheckoutStepExecutor(),
            StepKind.SH: ShellStepExecutor(),
            StepKind.ARCHIVE: ArchiveStepExecutor(),
            StepKind.PUBLISH_TESTS: PublishTestsStepExecutor(),
        }

    def run(
        self,
        steps: Sequence[BaseStep],
        host: Host,
        ctx: StepContext,
    ) -> ExecutionResult:
        """Run steps in order.

        Args:
            steps: Steps to execute.
            host: Host the stage is bound to.
            ctx: Step context.

        Returns:
            Result carrying the status, exit code and error of the last
            attempted step, with every attempted step result as children.
        """
        log = logger.bind(stage=ctx.stage_name, host=host.name, step_count=len(steps))
        start = time.perf_counter()

        results: list[ExecutionResult] = []
        for index, step in enumerate(steps):
            result = self._run_with_retries(step, host, ctx, index)
            results.append(result)
            if not result.success:
                log.error(
                    "Step failed, aborting stage",
                    step=step.describe(),
                    index=index,
                    error=result.detail,
                )
                break

        last = results[-1] if results else ExecutionResult.ok(ctx.stage_name)
        return ExecutionResult(
            name=ctx.stage_name,
            status=last.status,
            exit_code=last.exit_code,
            error=last.error,
            duration_ms=int((time.perf_counter() - start) * 1000),
            warnings=[w for r in results for w in r.warnings],
            children=results,
            host=host.name,
        )

    def _run_with_retries(
        self,
        step: BaseStep,
        host: Host,
        ctx: StepContext,
        index: int,
    ) -> ExecutionResult:
        """Run one step, re-attempting failures up to ``policy.step_retries`` times."""
        attempts = 1 + ctx.policy.step_retries
        result = self._run_step(step, host, ctx, index)
        attempt = 1
        while not result.success and attempt < attempts:
            attempt += 1
            logger.info(
                "Retrying step",
                stage=ctx.stage_name,
                step=step.describe(),
                attempt=attempt,
                max_attempts=attempts,
            )
            result = self._run_step(step, host, ctx, index)
        if attempt > 1:
            result.metrics["attempts"] = attempt
        return result

    def _run_step(
        self,
        step: BaseStep,
        host: Host,
        ctx: StepContext,
        index: int,
    ) -> ExecutionResult:
        """Run a single step and convert raised errors into a failure result."""
        kind = StepKind(step.kind)  # type: ignore[attr-defined]
        step_log = logger.bind(stage=ctx.stage_name, step=step.describe(), index=index)
        step_log.info("Executing step")

        executor = self._executors.get(kind)
        start = time.perf_counter()

        try:
            if executor is None:
                msg = f"No executor for step kind: {kind.value}"
                raise StepError(msg, step=kind.value)
            result = executor.execute(step, host, ctx, index)
        except ConveyorError as e:
            result = ExecutionResult.failed(
                step.describe(),
                e,
                exit_code=getattr(e, "returncode", None),
                host=host.name,
            )
        except Exception as e:
            step_log.error("Step execution error", error=str(e), error_type=type(e).__name__)
            error = StepError(f"{type(e).__name__}: {e}", step=kind.value)
            error.__cause__ = e
            result = ExecutionResult.failed(step.describe(), error, host=host.name)

        result.duration_ms = int((time.perf_counter() - start) * 1000)
        if result.status == ResultStatus.SUCCESS:
            step_log.info("Step completed", duration_ms=result.duration_ms)
        return result
