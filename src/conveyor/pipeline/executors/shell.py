"""Shell command step executor."""

from __future__ import annotations

import structlog

from conveyor.exceptions import CommandError
from conveyor.pipeline.agents import Host
from conveyor.pipeline.definition import ShellStep
from conveyor.pipeline.executors.base import StepContext
from conveyor.pipeline.results import ExecutionResult

logger = structlog.get_logger()


class ShellStepExecutor:
    """Runs an opaque shell command through the process collaborator.

    Success means exit code 0. Any other status, including signal
    termination (negative codes), fails the step with CommandError.
    """

    def execute(
        self,
        step: ShellStep,
        host: Host,
        ctx: StepContext,
        index: int,
    ) -> ExecutionResult:
        """Run the command in the host workspace.

        Raises:
            CommandError: If the command exits non-zero.
        """
        log = logger.bind(stage=ctx.stage_name, host=host.name, command=step.command)

        env = {**ctx.tool_env, **step.env}
        log_path = ctx.paths.log_path(ctx.stage_name, index, step.kind)

        result = ctx.collaborators.process.execute(
            step.command,
            ctx.workspace(host),
            host,
            env=env,
            log_path=log_path,
        )

        if not result.ok:
            log.warning("Command failed", exit_code=result.exit_code)
            if result.exit_code < 0:
                msg = f"Command terminated by signal {-result.exit_code}: {step.command}"
            else:
                msg = f"Command failed with exit code {result.exit_code}: {step.command}"
            raise CommandError(msg, command=step.command, returncode=result.exit_code)

        return ExecutionResult.ok(step.describe(), exit_code=0, host=host.name)
