"""Base protocol and context for step executors."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from conveyor.config import PolicyConfig
    from conveyor.integrations.base import Collaborators
    from conveyor.paths import RunPaths
    from conveyor.pipeline.agents import Host
    from conveyor.pipeline.definition import BaseStep
    from conveyor.pipeline.results import ExecutionResult


@dataclass
class StepContext:
    """Context for step execution.

    Provides all dependencies needed by step executors.

    Attributes:
        collaborators: External collaborators (vcs, process, artifacts, reports).
        paths: Run paths.
        policy: Best-effort and retry policy.
        stage_name: Name of the owning stage.
        tool_env: Environment resolved from the pipeline's tool declarations.
    """

    collaborators: Collaborators
    paths: RunPaths
    policy: PolicyConfig
    stage_name: str
    tool_env: dict[str, str] = field(default_factory=dict)

    def workspace(self, host: Host) -> Path:
        """Workspace directory of ``host`` for this run."""
        return self.paths.workspace_for(host.name)


def is_strict(allow_empty: bool | None, policy_strict: bool) -> bool:
    """Decide whether an empty match fails a best-effort step.

    The step's own ``allow_empty`` wins when set; otherwise the configured
    policy applies.
    """
    if allow_empty is not None:
        return not allow_empty
    return policy_strict


class StepExecutor(Protocol):
    """Protocol for step executors.

    Each step kind has a corresponding executor. Executors either return
    a result or raise a StepError; the step runner turns raised errors
    into failure results.
    """

    def execute(
        self,
        step: BaseStep,
        host: Host,
        ctx: StepContext,
        index: int,
    ) -> ExecutionResult:
        """Execute the step.

        Args:
            step: Step declaration.
            host: Host the owning stage is bound to.
            ctx: Execution context with dependencies.
            index: Zero-based position of the step within its stage.

        Returns:
            ExecutionResult of the step.
        """
        ...
