"""Collaborator protocols and result types.

The engine only orchestrates these collaborators; it never performs a
checkout, runs a build tool, stores artifacts or parses reports itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from conveyor.pipeline.agents import Host
    from conveyor.pipeline.definition import RetentionPolicy


@dataclass
class CheckoutResult:
    """Result of a source checkout.

    Attributes:
        path: Directory the sources were checked out into.
        revision: Resolved commit identifier, when known.
    """

    path: Path
    revision: str | None = None


@dataclass
class ProcessResult:
    """Result of a shell command.

    Attributes:
        exit_code: Process exit status (negative for signal termination).
        stdout: Captured stdout.
        stderr: Captured stderr.
    """

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """Check if the command exited with status 0."""
        return self.exit_code == 0


@dataclass
class ArchiveResult:
    """Result of archiving artifacts.

    Attributes:
        archived_count: Number of files archived.
        files: Archived paths relative to the source directory.
    """

    archived_count: int
    files: list[str] = field(default_factory=list)


@dataclass
class PublishResult:
    """Result of publishing test reports.

    Attributes:
        parsed_count: Number of report files parsed.
        tests: Total test cases found.
        failures: Failed test cases.
        errors: Errored test cases.
        skipped: Skipped test cases.
    """

    parsed_count: int
    tests: int = 0
    failures: int = 0
    errors: int = 0
    skipped: int = 0


@runtime_checkable
class VersionControl(Protocol):
    """Checks out sources into a workspace."""

    def checkout(
        self,
        url: str,
        credentials_id: str | None,
        *,
        branch: str,
        dest: Path,
    ) -> CheckoutResult:
        """Check out ``url`` at ``branch`` into ``dest``.

        Raises:
            CheckoutError: On network, auth or ref-resolution failure.
        """
        ...


@runtime_checkable
class ProcessExecutor(Protocol):
    """Runs shell commands on a host."""

    def execute(
        self,
        command: str,
        working_dir: Path,
        host: Host,
        *,
        env: dict[str, str] | None = None,
        log_path: Path | None = None,
    ) -> ProcessResult:
        """Run ``command`` in ``working_dir`` on ``host``."""
        ...


@runtime_checkable
class ArtifactStorage(Protocol):
    """Stores build artifacts."""

    def archive(
        self,
        pattern: str,
        follow_symlinks: bool,
        *,
        source_dir: Path,
    ) -> ArchiveResult:
        """Archive files under ``source_dir`` matching ``pattern``.

        Raises:
            NoArtifactsMatched: If the pattern matches nothing.
        """
        ...


@runtime_checkable
class ReportPublisher(Protocol):
    """Parses and publishes test reports."""

    def publish(
        self,
        pattern: str,
        retention: RetentionPolicy,
        *,
        source_dir: Path,
    ) -> PublishResult:
        """Publish report files under ``source_dir`` matching ``pattern``.

        Raises:
            NoReportsMatched: If the pattern matches nothing.
        """
        ...


@dataclass
class Collaborators:
    """The four external collaborators an engine instance talks to."""

    vcs: VersionControl
    process: ProcessExecutor
    artifacts: ArtifactStorage
    reports: ReportPublisher
