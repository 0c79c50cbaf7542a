"""Unit tests for StageExecutor agent binding."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conveyor.config import PolicyConfig
from conveyor.exceptions import AgentBusyError, NoAgentsAvailable, NoMatchingAgent
from conveyor.integrations.base import Collaborators
from conveyor.integrations.fake import Journal
from conveyor.paths import RunPaths
from conveyor.pipeline.agents import AgentResolver, Host, HostPool
from conveyor.pipeline.definition import AgentRequirement, ShellStep, StageDefinition
from conveyor.pipeline.results import ExecutionResult
from conveyor.pipeline.stage import StageExecutor
from conveyor.pipeline.steps import StepRunner


@pytest.fixture
def stage_executor(
    host_pool: HostPool, fakes: Collaborators, run_paths: RunPaths
) -> StageExecutor:
    return StageExecutor(
        resolver=AgentResolver(host_pool),
        collaborators=fakes,
        paths=run_paths,
        policy=PolicyConfig(),
    )


def build_stage(agent: AgentRequirement | None = None) -> StageDefinition:
    return StageDefinition(name="build", agent=agent, steps=[ShellStep(command="make")])


class TestStageExecutor:
    """Tests for StageExecutor."""

    def test_inherits_pipeline_agent(
        self, stage_executor: StageExecutor, journal: Journal
    ) -> None:
        """Test a stage without override runs on the default agent."""
        result = stage_executor.execute(build_stage(), AgentRequirement.of_label("docker"))

        assert result.success
        assert result.name == "build"
        assert result.host == "linux-2"
        assert journal.entries == ["sh:make@linux-2"]

    def test_override_wins(self, stage_executor: StageExecutor, journal: Journal) -> None:
        """Test the stage's own agent beats the pipeline default."""
        result = stage_executor.execute(
            build_stage(AgentRequirement.of_label("maven")),
            AgentRequirement.of_label("docker"),
        )

        assert result.host == "linux-1"

    def test_no_matching_agent_runs_nothing(
        self, stage_executor: StageExecutor, journal: Journal
    ) -> None:
        """Test an unsatisfiable requirement fails before any step."""
        result = stage_executor.execute(
            build_stage(AgentRequirement.of_label("windows")), AgentRequirement.any()
        )

        assert not result.success
        assert isinstance(result.error, NoMatchingAgent)
        assert result.children == []
        assert result.host is None
        assert journal.entries == []

    def test_empty_pool(self, fakes: Collaborators, run_paths: RunPaths) -> None:
        """Test Any with no hosts fails with NoAgentsAvailable."""
        executor = StageExecutor(
            resolver=AgentResolver(HostPool()),
            collaborators=fakes,
            paths=run_paths,
            policy=PolicyConfig(),
        )

        result = executor.execute(build_stage(), AgentRequirement.any())

        assert isinstance(result.error, NoAgentsAvailable)

    def test_host_released_after_stage(
        self, stage_executor: StageExecutor, host_pool: HostPool
    ) -> None:
        """Test the host is free again once the stage finishes."""
        stage_executor.execute(build_stage(), AgentRequirement.any())
        assert host_pool.free_hosts() == host_pool.hosts

    def test_host_busy_during_steps(
        self, host_pool: HostPool, fakes: Collaborators, run_paths: RunPaths
    ) -> None:
        """Test the bound host is occupied while the steps run."""
        seen: list[bool] = []

        def fake_run(steps, host, ctx):
            seen.append(host_pool.is_busy(host))
            return ExecutionResult.ok(ctx.stage_name, host=host.name)

        runner = MagicMock(spec=StepRunner)
        runner.run.side_effect = fake_run
        executor = StageExecutor(
            resolver=AgentResolver(host_pool),
            collaborators=fakes,
            paths=run_paths,
            policy=PolicyConfig(),
            step_runner=runner,
        )

        executor.execute(build_stage(), AgentRequirement.any())

        assert seen == [True]

    def test_lease_conflict(self, fakes: Collaborators, run_paths: RunPaths) -> None:
        """Test a lease conflict fails the stage instead of raising."""
        resolver = MagicMock(spec=AgentResolver)
        resolver.pool = MagicMock(spec=HostPool)
        resolver.pool.lease.side_effect = AgentBusyError("linux-1")
        resolver.resolve.return_value = Host("linux-1")
        executor = StageExecutor(
            resolver=resolver,
            collaborators=fakes,
            paths=run_paths,
            policy=PolicyConfig(),
        )

        result = executor.execute(build_stage(), AgentRequirement.any())

        assert not result.success
        assert isinstance(result.error, AgentBusyError)
        assert result.host == "linux-1"
