"""In-memory fake collaborators for testing and dry runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from conveyor.exceptions import CheckoutError, NoArtifactsMatched, NoReportsMatched
from conveyor.integrations.base import (
    ArchiveResult,
    CheckoutResult,
    Collaborators,
    ProcessResult,
    PublishResult,
)

if TYPE_CHECKING:
    from conveyor.pipeline.agents import Host
    from conveyor.pipeline.definition import RetentionPolicy

logger = structlog.get_logger()


@dataclass
class FakeCommand:
    """Describes how the fake process executor answers a command.

    Attributes:
        command: Exact command string to match.
        exit_code: Exit code to return.
        stdout: Output to return.
        stderr: Error output to return.
        fail_on_attempt: Only return ``exit_code`` on this attempt number,
            succeed otherwise (for retry tests).
    """

    command: str
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    fail_on_attempt: int | None = None


@dataclass
class Journal:
    """Ordered record of every collaborator call.

    Entries look like ``"sh:make build@local"`` or ``"archive:*.jar"``.
    """

    entries: list[str] = field(default_factory=list)

    def record(self, entry: str) -> None:
        """Append an entry."""
        self.entries.append(entry)

    def clear(self) -> None:
        """Forget all entries."""
        self.entries.clear()


class FakeVersionControl:
    """Fake checkout that succeeds unless the URL is marked failing."""

    def __init__(
        self,
        *,
        failing_urls: set[str] | None = None,
        revision: str = "0000000",
        journal: Journal | None = None,
    ) -> None:
        self.failing_urls = failing_urls or set()
        self.revision = revision
        self.journal = journal or Journal()

    def checkout(
        self,
        url: str,
        credentials_id: str | None,
        *,
        branch: str,
        dest: Path,
    ) -> CheckoutResult:
        """Record the checkout and fail for URLs in ``failing_urls``."""
        self.journal.record(f"checkout:{url}@{branch}")
        if url in self.failing_urls:
            raise CheckoutError(f"Authentication failed for {url}", url=url, returncode=128)
        return CheckoutResult(path=dest, revision=self.revision)


class FakeProcessExecutor:
    """Fake shell that answers commands from configured scenarios.

    Unknown commands exit 0 with empty output.
    """

    def __init__(
        self,
        *,
        commands: list[FakeCommand] | None = None,
        journal: Journal | None = None,
    ) -> None:
        self._commands: dict[str, FakeCommand] = {c.command: c for c in commands or []}
        self._attempts: dict[str, int] = {}
        self.journal = journal or Journal()
        self.calls: list[tuple[str, Path, str, dict[str, str]]] = []

    def add_command(self, command: FakeCommand) -> None:
        """Add or replace a command scenario."""
        self._commands[command.command] = command

    def execute(
        self,
        command: str,
        working_dir: Path,
        host: Host,
        *,
        env: dict[str, str] | None = None,
        log_path: Path | None = None,
    ) -> ProcessResult:
        """Record the call and return the scenario's outcome."""
        self.journal.record(f"sh:{command}@{host.name}")
        self.calls.append((command, working_dir, host.name, dict(env or {})))

        attempt = self._attempts.get(command, 0) + 1
        self._attempts[command] = attempt

        scenario = self._commands.get(command)
        if scenario is None:
            return ProcessResult(exit_code=0)

        exit_code = scenario.exit_code
        if scenario.fail_on_attempt is not None and attempt != scenario.fail_on_attempt:
            exit_code = 0

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_path.write_text(scenario.stdout + scenario.stderr)

        return ProcessResult(
            exit_code=exit_code, stdout=scenario.stdout, stderr=scenario.stderr
        )


class FakeArtifactStorage:
    """Fake storage matching patterns against a fixed table.

    Args to the constructor map a glob pattern to the files it "matches";
    any other pattern matches nothing.
    """

    def __init__(
        self,
        *,
        matches: dict[str, list[str]] | None = None,
        journal: Journal | None = None,
    ) -> None:
        self.matches = matches or {}
        self.journal = journal or Journal()
        self.archived: list[str] = []

    def archive(
        self,
        pattern: str,
        follow_symlinks: bool,
        *,
        source_dir: Path,
    ) -> ArchiveResult:
        """Record the call and archive the configured files."""
        self.journal.record(f"archive:{pattern}")
        files = self.matches.get(pattern, [])
        if not files:
            raise NoArtifactsMatched(pattern)
        self.archived.extend(files)
        return ArchiveResult(archived_count=len(files), files=list(files))


class FakeReportPublisher:
    """Fake publisher matching patterns against a fixed table of test counts."""

    def __init__(
        self,
        *,
        reports: dict[str, PublishResult] | None = None,
        journal: Journal | None = None,
    ) -> None:
        self.reports = reports or {}
        self.journal = journal or Journal()

    def publish(
        self,
        pattern: str,
        retention: RetentionPolicy,
        *,
        source_dir: Path,
    ) -> PublishResult:
        """Record the call and return the configured result."""
        self.journal.record(f"publish_tests:{pattern}")
        result = self.reports.get(pattern)
        if result is None:
            raise NoReportsMatched(pattern)
        return result


def create_fake_collaborators(
    *,
    commands: list[FakeCommand] | None = None,
    failing_urls: set[str] | None = None,
    artifacts: dict[str, list[str]] | None = None,
    reports: dict[str, PublishResult] | None = None,
    journal: Journal | None = None,
) -> Collaborators:
    """Build a full set of fakes sharing one journal.

    Example:
        >>> fakes = create_fake_collaborators(
        ...     commands=[FakeCommand("make build", exit_code=1)],
        ... )
        >>> fakes.process.journal is fakes.vcs.journal
        True
    """
    journal = journal or Journal()
    return Collaborators(
        vcs=FakeVersionControl(failing_urls=failing_urls, journal=journal),
        process=FakeProcessExecutor(commands=commands, journal=journal),
        artifacts=FakeArtifactStorage(matches=artifacts, journal=journal),
        reports=FakeReportPublisher(reports=reports, journal=journal),
    )
