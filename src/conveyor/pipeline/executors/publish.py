"""Publish test results step executor."""

from __future__ import annotations

import structlog

from conveyor.exceptions import NoReportsMatched
from conveyor.pipeline.agents import Host
from conveyor.pipeline.definition import PublishTestsStep
from conveyor.pipeline.executors.base import StepContext, is_strict
from conveyor.pipeline.results import ExecutionResult

logger = structlog.get_logger()


class PublishTestsStepExecutor:
    """Publishes test reports through the report collaborator.

    Reporting is best-effort: an empty match is a warning unless strict
    mode applies. Failing tests inside the reports do not fail the step;
    the counts are surfaced in the result metrics.
    """

    def execute(
        self,
        step: PublishTestsStep,
        host: Host,
        ctx: StepContext,
        index: int,  # noqa: ARG002
    ) -> ExecutionResult:
        """Publish reports matching the step's pattern.

        Raises:
            NoReportsMatched: If nothing matched and strict mode applies.
        """
        log = logger.bind(stage=ctx.stage_name, host=host.name, pattern=step.pattern)

        try:
            result = ctx.collaborators.reports.publish(
                step.pattern,
                step.retention,
                source_dir=ctx.workspace(host),
            )
        except NoReportsMatched as e:
            if is_strict(step.allow_empty, ctx.policy.strict_reports):
                log.error("No test reports matched (strict)")
                raise
            log.warning("No test reports matched, continuing")
            return ExecutionResult.ok(
                step.describe(),
                host=host.name,
                warnings=[str(e)],
                metrics={"parsed_count": 0},
            )

        warnings: list[str] = []
        if result.failures or result.errors:
            warnings.append(
                f"{result.failures} failed and {result.errors} errored "
                f"of {result.tests} tests"
            )

        return ExecutionResult.ok(
            step.describe(),
            host=host.name,
            warnings=warnings,
            metrics={
                "parsed_count": result.parsed_count,
                "tests": result.tests,
                "failures": result.failures,
                "errors": result.errors,
                "skipped": result.skipped,
            },
        )
