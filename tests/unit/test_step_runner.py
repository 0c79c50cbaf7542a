"""Unit tests for the step runner and step executors."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conveyor.config import PolicyConfig
from conveyor.exceptions import (
    CheckoutError,
    CommandError,
    NoArtifactsMatched,
    NoReportsMatched,
    StepError,
)
from conveyor.integrations.base import Collaborators, PublishResult
from conveyor.integrations.fake import FakeCommand, Journal, create_fake_collaborators
from conveyor.paths import RunPaths
from conveyor.pipeline.agents import Host
from conveyor.pipeline.definition import (
    ArchiveStep,
    CheckoutStep,
    PublishTestsStep,
    ShellStep,
    StepKind,
)
from conveyor.pipeline.executors.base import StepContext, is_strict
from conveyor.pipeline.results import ResultStatus
from conveyor.pipeline.steps import StepRunner

HOST = Host("linux-1", frozenset({"linux"}))


def make_ctx(
    collaborators: Collaborators,
    paths: RunPaths,
    *,
    policy: PolicyConfig | None = None,
    tool_env: dict[str, str] | None = None,
) -> StepContext:
    return StepContext(
        collaborators=collaborators,
        paths=paths,
        policy=policy or PolicyConfig(),
        stage_name="build",
        tool_env=tool_env or {},
    )


class TestIsStrict:
    """Tests for the strict-mode decision."""

    @pytest.mark.parametrize(
        ("allow_empty", "policy", "expected"),
        [
            (None, False, False),
            (None, True, True),
            (True, True, False),
            (False, False, True),
        ],
    )
    def test_step_override_wins(self, allow_empty, policy, expected) -> None:
        """Test allow_empty overrides the configured policy."""
        assert is_strict(allow_empty, policy) is expected


class TestStepRunner:
    """Tests for StepRunner ordering and fail-fast behavior."""

    def test_runs_steps_in_order(self, run_paths: RunPaths, journal: Journal) -> None:
        """Test steps execute in declaration order."""
        fakes = create_fake_collaborators(
            artifacts={"*.jar": ["app.jar"]},
            journal=journal,
        )
        steps = [
            CheckoutStep(url="https://git.example.com/app.git"),
            ShellStep(command="make"),
            ShellStep(command="make test"),
            ArchiveStep(pattern="*.jar"),
        ]

        result = StepRunner().run(steps, HOST, make_ctx(fakes, run_paths))

        assert result.success
        assert result.host == "linux-1"
        assert len(result.children) == 4
        assert journal.entries == [
            "checkout:https://git.example.com/app.git@main",
            "sh:make@linux-1",
            "sh:make test@linux-1",
            "archive:*.jar",
        ]

    def test_stops_at_first_failure(self, run_paths: RunPaths, journal: Journal) -> None:
        """Test no step after a failing one runs."""
        fakes = create_fake_collaborators(
            commands=[FakeCommand("make", exit_code=2)],
            journal=journal,
        )
        steps = [
            ShellStep(command="make"),
            ShellStep(command="make install"),
        ]

        result = StepRunner().run(steps, HOST, make_ctx(fakes, run_paths))

        assert not result.success
        assert result.status == ResultStatus.FAILURE
        assert result.exit_code == 2
        assert isinstance(result.error, CommandError)
        assert len(result.children) == 1
        assert journal.entries == ["sh:make@linux-1"]

    def test_checkout_failure(self, run_paths: RunPaths, journal: Journal) -> None:
        """Test a failed checkout fails the stage with CheckoutError."""
        fakes = create_fake_collaborators(failing_urls={"https://bad"}, journal=journal)
        steps = [CheckoutStep(url="https://bad"), ShellStep(command="make")]

        result = StepRunner().run(steps, HOST, make_ctx(fakes, run_paths))

        assert not result.success
        assert isinstance(result.error, CheckoutError)
        assert result.exit_code == 128
        assert "sh:make@linux-1" not in journal.entries

    def test_checkout_through_symlink_outside_workspace(
        self, run_paths: RunPaths, journal: Journal, tmp_path
    ) -> None:
        """Test a checkout target resolving outside the workspace never reaches git."""
        outside = tmp_path / "precious"
        outside.mkdir()
        (outside / "data.txt").write_text("keep")
        workspace = run_paths.workspace_for(HOST.name)
        workspace.mkdir(parents=True, exist_ok=True)
        (workspace / "src").symlink_to(outside, target_is_directory=True)
        fakes = create_fake_collaborators(journal=journal)
        step = CheckoutStep(url="https://git.example.com/app.git", directory="src")

        result = StepRunner().run([step], HOST, make_ctx(fakes, run_paths))

        assert not result.success
        assert isinstance(result.error, CheckoutError)
        assert "escapes the workspace" in str(result.error)
        assert journal.entries == []
        assert (outside / "data.txt").read_text() == "keep"

    def test_retries_failing_step(self, run_paths: RunPaths) -> None:
        """Test a step failing on the first attempt succeeds on retry."""
        fakes = create_fake_collaborators(
            commands=[FakeCommand("flaky", exit_code=1, fail_on_attempt=1)],
        )
        ctx = make_ctx(fakes, run_paths, policy=PolicyConfig(step_retries=2))

        result = StepRunner().run([ShellStep(command="flaky")], HOST, ctx)

        assert result.success
        assert result.children[0].metrics["attempts"] == 2

    def test_retries_exhausted(self, run_paths: RunPaths, journal: Journal) -> None:
        """Test a persistently failing step fails after all attempts."""
        fakes = create_fake_collaborators(
            commands=[FakeCommand("broken", exit_code=1)],
            journal=journal,
        )
        ctx = make_ctx(fakes, run_paths, policy=PolicyConfig(step_retries=1))

        result = StepRunner().run([ShellStep(command="broken")], HOST, ctx)

        assert not result.success
        assert result.children[0].metrics["attempts"] == 2
        assert journal.entries == ["sh:broken@linux-1", "sh:broken@linux-1"]

    def test_unexpected_exception_becomes_failure(self, run_paths: RunPaths) -> None:
        """Test a non-conveyor exception in an executor is wrapped in StepError."""
        broken = MagicMock()
        broken.execute.side_effect = OSError("disk full")
        runner = StepRunner({StepKind.SH: broken})
        fakes = create_fake_collaborators()

        result = runner.run([ShellStep(command="make")], HOST, make_ctx(fakes, run_paths))

        assert not result.success
        assert isinstance(result.error, StepError)
        assert "OSError: disk full" in str(result.error)
        assert isinstance(result.error.__cause__, OSError)

    def test_missing_executor(self, run_paths: RunPaths) -> None:
        """Test a step kind without an executor fails cleanly."""
        runner = StepRunner({StepKind.SH: MagicMock()})
        fakes = create_fake_collaborators()

        result = runner.run(
            [ArchiveStep(pattern="*.jar")], HOST, make_ctx(fakes, run_paths)
        )

        assert not result.success
        assert "No executor for step kind: archive" in str(result.error)


class TestShellStepExecutor:
    """Tests for shell steps."""

    def test_environment_merges_tools_and_step(self, run_paths: RunPaths) -> None:
        """Test tool env is merged with step env, the step winning."""
        fakes = create_fake_collaborators()
        ctx = make_ctx(
            fakes,
            run_paths,
            tool_env={"MAVEN_HOME": "/opt/maven", "MODE": "tools"},
        )
        step = ShellStep(command="mvn package", env={"MODE": "step"})

        StepRunner().run([step], HOST, ctx)

        command, working_dir, host, env = fakes.process.calls[0]
        assert command == "mvn package"
        assert working_dir == run_paths.workspace_for("linux-1")
        assert host == "linux-1"
        assert env == {"MAVEN_HOME": "/opt/maven", "MODE": "step"}

    def test_writes_step_log(self, run_paths: RunPaths) -> None:
        """Test command output is written to the step log file."""
        fakes = create_fake_collaborators(
            commands=[FakeCommand("make", stdout="compiled\n")],
        )

        StepRunner().run([ShellStep(command="make")], HOST, make_ctx(fakes, run_paths))

        log_path = run_paths.log_path("build", 0, "sh")
        assert log_path.read_text() == "compiled\n"

    def test_signal_termination(self, run_paths: RunPaths) -> None:
        """Test a negative exit code is reported as a signal."""
        fakes = create_fake_collaborators(commands=[FakeCommand("make", exit_code=-9)])

        result = StepRunner().run(
            [ShellStep(command="make")], HOST, make_ctx(fakes, run_paths)
        )

        assert not result.success
        assert result.exit_code == -9
        assert "signal 9" in str(result.error)


class TestArchiveStepExecutor:
    """Tests for archive steps."""

    def test_archives_matches(self, run_paths: RunPaths) -> None:
        """Test archived file count is reported."""
        fakes = create_fake_collaborators(artifacts={"*.jar": ["a.jar", "b.jar"]})

        result = StepRunner().run(
            [ArchiveStep(pattern="*.jar")], HOST, make_ctx(fakes, run_paths)
        )

        assert result.success
        assert result.children[0].metrics["archived_count"] == 2
        assert fakes.artifacts.archived == ["a.jar", "b.jar"]

    def test_empty_match_best_effort(self, run_paths: RunPaths) -> None:
        """Test an empty match is only a warning by default."""
        fakes = create_fake_collaborators()

        result = StepRunner().run(
            [ArchiveStep(pattern="*.jar")], HOST, make_ctx(fakes, run_paths)
        )

        assert result.success
        assert result.warnings == ["No artifacts matched pattern '*.jar'"]
        assert result.children[0].metrics["archived_count"] == 0

    def test_empty_match_strict(self, run_paths: RunPaths) -> None:
        """Test an empty match fails under strict policy."""
        fakes = create_fake_collaborators()
        ctx = make_ctx(fakes, run_paths, policy=PolicyConfig(strict_archive=True))

        result = StepRunner().run([ArchiveStep(pattern="*.jar")], HOST, ctx)

        assert not result.success
        assert isinstance(result.error, NoArtifactsMatched)

    def test_allow_empty_overrides_strict_policy(self, run_paths: RunPaths) -> None:
        """Test allow_empty=True keeps a strict policy from failing the step."""
        fakes = create_fake_collaborators()
        ctx = make_ctx(fakes, run_paths, policy=PolicyConfig(strict_archive=True))

        result = StepRunner().run(
            [ArchiveStep(pattern="*.jar", allow_empty=True)], HOST, ctx
        )

        assert result.success


class TestPublishTestsStepExecutor:
    """Tests for publish_tests steps."""

    def test_failing_tests_are_warnings(self, run_paths: RunPaths) -> None:
        """Test failing test cases do not fail the step."""
        fakes = create_fake_collaborators(
            reports={"*.xml": PublishResult(parsed_count=1, tests=5, failures=2, errors=1)},
        )

        result = StepRunner().run(
            [PublishTestsStep(pattern="*.xml")], HOST, make_ctx(fakes, run_paths)
        )

        assert result.success
        assert result.warnings == ["2 failed and 1 errored of 5 tests"]
        metrics = result.children[0].metrics
        assert metrics["parsed_count"] == 1
        assert metrics["failures"] == 2

    def test_empty_match_best_effort(self, run_paths: RunPaths) -> None:
        """Test an empty report match is a warning by default."""
        fakes = create_fake_collaborators()

        result = StepRunner().run(
            [PublishTestsStep(pattern="*.xml")], HOST, make_ctx(fakes, run_paths)
        )

        assert result.success
        assert result.children[0].metrics == {"parsed_count": 0}
        assert len(result.warnings) == 1

    def test_empty_match_strict(self, run_paths: RunPaths) -> None:
        """Test an empty report match fails under strict reports policy."""
        fakes = create_fake_collaborators()
        ctx = make_ctx(fakes, run_paths, policy=PolicyConfig(strict_reports=True))

        result = StepRunner().run([PublishTestsStep(pattern="*.xml")], HOST, ctx)

        assert not result.success
        assert isinstance(result.error, NoReportsMatched)

    def test_strict_archive_does_not_affect_reports(self, run_paths: RunPaths) -> None:
        """Test the two strict policies are independent."""
        fakes = create_fake_collaborators()
        ctx = make_ctx(fakes, run_paths, policy=PolicyConfig(strict_archive=True))

        result = StepRunner().run([PublishTestsStep(pattern="*.xml")], HOST, ctx)

        assert result.success
