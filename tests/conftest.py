"""Pytest fixtures for conveyor tests."""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

import pytest

from conveyor.config import AgentConfig, ConveyorConfig, PolicyConfig, ToolInstallation
from conveyor.infra.command import CommandRunner
from conveyor.integrations.base import Collaborators, PublishResult
from conveyor.integrations.fake import FakeCommand, Journal, create_fake_collaborators
from conveyor.paths import RunPaths
from conveyor.pipeline.agents import AgentResolver, HostPool
from conveyor.pipeline.definition import PipelineDefinition
from conveyor.pipeline.runner import PipelineRunner
from conveyor.pipeline.stage import StageExecutor
from conveyor.pipeline.tools import ToolResolver

SAMPLE_PIPELINE_YAML = """
name: app
agent: linux
stages:
  - name: pull
    steps:
      - kind: checkout
        url: https://git.example.com/app.git
        credentials_id: git-creds
  - name: build
    steps:
      - kind: sh
        command: mvn -B package
  - name: publish
    steps:
      - kind: archive
        pattern: target/*.jar
      - kind: publish_tests
        pattern: "**/surefire-reports/*.xml"
"""


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a temporary project directory."""
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def tmp_git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repository with one commit on main."""
    repo = tmp_path / "repo"
    repo.mkdir()

    subprocess.run(["git", "init"], cwd=repo, check=True, capture_output=True)
    subprocess.run(
        ["git", "config", "user.email", "test@test.com"],
        cwd=repo,
        check=True,
        capture_output=True,
    )
    subprocess.run(
        ["git", "config", "user.name", "Test User"],
        cwd=repo,
        check=True,
        capture_output=True,
    )

    (repo / "build.sh").write_text("#!/bin/sh\necho building\n")

    subprocess.run(["git", "add", "-A"], cwd=repo, check=True, capture_output=True)
    subprocess.run(
        ["git", "commit", "-m", "Initial commit"],
        cwd=repo,
        check=True,
        capture_output=True,
    )
    subprocess.run(
        ["git", "branch", "-M", "main"],
        cwd=repo,
        check=True,
        capture_output=True,
    )

    return repo


@pytest.fixture
def run_paths(tmp_project: Path) -> RunPaths:
    """Create RunPaths for a test run."""
    return RunPaths.create_new(tmp_project, "test_run")


@pytest.fixture
def command_runner() -> CommandRunner:
    """Create a CommandRunner instance."""
    return CommandRunner(heartbeat_interval=0)


@pytest.fixture
def dry_run_command_runner() -> CommandRunner:
    """Create a dry-run CommandRunner instance."""
    return CommandRunner(dry_run=True)


@pytest.fixture
def default_config() -> ConveyorConfig:
    """Create a default ConveyorConfig."""
    return ConveyorConfig.default()


@pytest.fixture
def pool_config() -> ConveyorConfig:
    """Config with two Linux hosts advertising different extra labels."""
    return ConveyorConfig(
        agents=[
            AgentConfig(name="linux-1", labels=["linux", "maven"]),
            AgentConfig(name="linux-2", labels=["linux", "docker"]),
            AgentConfig(name="mac-1", labels=["macos"], enabled=False),
        ],
        tools=[
            ToolInstallation(name="maven", version="3.9.6", home=Path("/opt/maven-3.9.6")),
            ToolInstallation(name="jdk", version="17", home=Path("/opt/jdk-17")),
        ],
    )


@pytest.fixture
def host_pool(pool_config: ConveyorConfig) -> HostPool:
    """Host pool built from pool_config."""
    return HostPool.from_config(pool_config.get_enabled_agents())


@pytest.fixture
def journal() -> Journal:
    """Shared call journal for fake collaborators."""
    return Journal()


@pytest.fixture
def fakes(journal: Journal) -> Collaborators:
    """Fake collaborators where every sample pipeline step succeeds."""
    return create_fake_collaborators(
        artifacts={"target/*.jar": ["target/app.jar"]},
        reports={
            "**/surefire-reports/*.xml": PublishResult(parsed_count=2, tests=10, skipped=1)
        },
        journal=journal,
    )


@pytest.fixture
def sample_pipeline() -> PipelineDefinition:
    """Three-stage pipeline: pull, build, publish."""
    return PipelineDefinition.from_yaml(SAMPLE_PIPELINE_YAML)


@pytest.fixture
def make_runner(
    run_paths: RunPaths,
    host_pool: HostPool,
    pool_config: ConveyorConfig,
) -> Callable[..., PipelineRunner]:
    """Factory building a PipelineRunner over fake collaborators.

    Example:
        runner = make_runner(fakes, policy=PolicyConfig(strict_archive=True))
    """

    def _make(
        collaborators: Collaborators,
        *,
        policy: PolicyConfig | None = None,
    ) -> PipelineRunner:
        stage_executor = StageExecutor(
            resolver=AgentResolver(host_pool),
            collaborators=collaborators,
            paths=run_paths,
            policy=policy or PolicyConfig(),
        )
        return PipelineRunner(stage_executor, tool_resolver=ToolResolver(pool_config.tools))

    return _make


@pytest.fixture
def failing_build_fakes(journal: Journal) -> Collaborators:
    """Fake collaborators where `mvn -B package` exits 1."""
    return create_fake_collaborators(
        commands=[FakeCommand("mvn -B package", exit_code=1, stderr="BUILD FAILURE")],
        artifacts={"target/*.jar": ["target/app.jar"]},
        journal=journal,
    )
