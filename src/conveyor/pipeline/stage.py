"""Stage executor - binds a stage to an agent and runs its steps."""

from __future__ import annotations

import time
from collections.abc import Sequence

import structlog

from conveyor.config import PolicyConfig
from conveyor.exceptions import AgentError
from conveyor.integrations.base import Collaborators
from conveyor.paths import RunPaths
from conveyor.pipeline.agents import AgentResolver
from conveyor.pipeline.definition import AgentRequirement, BaseStep, StageDefinition
from conveyor.pipeline.executors.base import StepContext
from conveyor.pipeline.results import ExecutionResult
from conveyor.pipeline.steps import StepRunner

logger = structlog.get_logger()


class StageExecutor:
    """Wraps a step run with stage identity, agent binding and result capture."""

    def __init__(
        self,
        resolver: AgentResolver,
        collaborators: Collaborators,
        paths: RunPaths,
        policy: PolicyConfig,
        step_runner: StepRunner | None = None,
    ) -> None:
        """Initialize the stage executor.

        Args:
            resolver: Agent resolver over the engine's host pool.
            collaborators: External collaborators handed to steps.
            paths: Run paths.
            policy: Best-effort and retry policy.
            step_runner: Step runner (defaults to the built-in executors).
        """
        self.resolver = resolver
        self.collaborators = collaborators
        self.paths = paths
        self.policy = policy
        self.step_runner = step_runner or StepRunner()

    def execute(
        self,
        stage: StageDefinition,
        default_agent: AgentRequirement,
        *,
        tool_env: dict[str, str] | None = None,
    ) -> ExecutionResult:
        """Execute a stage.

        The stage's own agent override wins over ``default_agent``. When
        no host qualifies the stage fails with the resolution error and
        none of its steps run.

        Args:
            stage: Stage declaration.
            default_agent: Pipeline-wide default requirement.
            tool_env: Environment from resolved tool declarations.

        Returns:
            Stage ExecutionResult with step results as children.
        """
        return self.run_steps(
            stage.name,
            stage.steps,
            stage.effective_agent(default_agent),
            tool_env=tool_env,
        )

    def run_steps(
        self,
        name: str,
        steps: Sequence[BaseStep],
        requirement: AgentRequirement,
        *,
        tool_env: dict[str, str] | None = None,
    ) -> ExecutionResult:
        """Resolve an agent for ``requirement`` and run ``steps`` on it.

        Also used for the pipeline's post-build block.
        """
        log = logger.bind(stage=name, requirement=str(requirement))
        log.info("Starting stage")
        start = time.perf_counter()

        try:
            host = self.resolver.resolve(requirement)
        except AgentError as e:
            log.error("Agent resolution failed", error=str(e))
            return ExecutionResult.failed(
                name, e, duration_ms=int((time.perf_counter() - start) * 1000)
            )

        ctx = StepContext(
            collaborators=self.collaborators,
            paths=self.paths,
            policy=self.policy,
            stage_name=name,
            tool_env=dict(tool_env or {}),
        )

        try:
            with self.resolver.pool.lease(host):
                result = self.step_runner.run(steps, host, ctx)
        except AgentError as e:
            log.error("Agent lease failed", host=host.name, error=str(e))
            return ExecutionResult.failed(
                name,
                e,
                host=host.name,
                duration_ms=int((time.perf_counter() - start) * 1000),
            )

        result.name = name
        result.duration_ms = int((time.perf_counter() - start) * 1000)

        if result.success:
            log.info(
                "Stage completed",
                host=host.name,
                duration_ms=result.duration_ms,
                warnings=len(result.warnings),
            )
        else:
            log.error("Stage failed", host=host.name, error=result.detail)
        return result
