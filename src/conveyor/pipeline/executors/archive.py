"""Archive artifacts step executor."""

from __future__ import annotations

import structlog

from conveyor.exceptions import NoArtifactsMatched
from conveyor.pipeline.agents import Host
from conveyor.pipeline.definition import ArchiveStep
from conveyor.pipeline.executors.base import StepContext, is_strict
from conveyor.pipeline.results import ExecutionResult

logger = structlog.get_logger()


class ArchiveStepExecutor:
    """Archives artifacts through the storage collaborator.

    An empty match is a warning unless strict mode applies.
    """

    def execute(
        self,
        step: ArchiveStep,
        host: Host,
        ctx: StepContext,
        index: int,  # noqa: ARG002
    ) -> ExecutionResult:
        """Archive files matching the step's pattern.

        Raises:
            NoArtifactsMatched: If nothing matched and strict mode applies.
        """
        log = logger.bind(stage=ctx.stage_name, host=host.name, pattern=step.pattern)

        try:
            result = ctx.collaborators.artifacts.archive(
                step.pattern,
                step.follow_symlinks,
                source_dir=ctx.workspace(host),
            )
        except NoArtifactsMatched as e:
            if is_strict(step.allow_empty, ctx.policy.strict_archive):
                log.error("No artifacts matched (strict)")
                raise
            log.warning("No artifacts matched, continuing")
            return ExecutionResult.ok(
                step.describe(),
                host=host.name,
                warnings=[str(e)],
                metrics={"archived_count": 0},
            )

        return ExecutionResult.ok(
            step.describe(),
            host=host.name,
            metrics={"archived_count": result.archived_count},
        )
