"""Checkout step executor."""

from __future__ import annotations

import structlog

from conveyor.exceptions import CheckoutError
from conveyor.pipeline.agents import Host
from conveyor.pipeline.definition import CheckoutStep
from conveyor.pipeline.executors.base import StepContext
from conveyor.pipeline.results import ExecutionResult

logger = structlog.get_logger()


class CheckoutStepExecutor:
    """Delegates source checkout to the version-control collaborator."""

    def execute(
        self,
        step: CheckoutStep,
        host: Host,
        ctx: StepContext,
        index: int,  # noqa: ARG002
    ) -> ExecutionResult:
        """Check out the repository into the host workspace.

        Raises:
            CheckoutError: If the target escapes the workspace, or
                propagated from the collaborator.
        """
        workspace = ctx.workspace(host).resolve()
        dest = (workspace / step.directory).resolve()
        if not dest.is_relative_to(workspace):
            msg = f"Checkout directory escapes the workspace: {step.directory}"
            raise CheckoutError(msg, url=step.url)

        logger.bind(stage=ctx.stage_name, host=host.name).info(
            "Checking out sources", url=step.url, branch=step.branch
        )
        result = ctx.collaborators.vcs.checkout(
            step.url,
            step.credentials_id,
            branch=step.branch,
            dest=dest,
        )
        metrics = {"revision": result.revision} if result.revision else {}
        return ExecutionResult.ok(step.describe(), host=host.name, metrics=metrics)
